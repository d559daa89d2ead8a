"""Configuration inspection commands."""

from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, create_table, dim, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        ctx: typer.Context,
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: search config.toml, "
                "$CADENCE_HOME/config.toml, /etc/cadence/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Inspect the effective configuration."""
        if action is None:
            typer.echo(ctx.get_help())
            raise typer.Exit(0)

        from rich.syntax import Syntax

        from cadence.config import ConfigError, load_config

        if action not in ("show", "validate"):
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)

        try:
            config_obj = load_config(path)
        except FileNotFoundError as e:
            error(str(e))
            raise typer.Exit(1) from None
        except ConfigError as e:
            error("Configuration validation failed:")
            console.print(str(e), markup=False)
            raise typer.Exit(1) from None

        if action == "show":
            content = config_obj.model_dump_json(indent=2)
            console.print(Syntax(content, "json", theme="monokai"))
            return

        table = create_table(
            "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
        )
        table.add_row("Store", config_obj.store.url_template)
        table.add_row("Data directory", str(config_obj.store.data_dir))
        table.add_row("Broker", config_obj.broker.redis_url)
        table.add_row("Tenancy pattern", config_obj.broker.tenancy_pattern)
        table.add_row(
            "Tenants",
            config_obj.tenancy.tenants_url
            or ", ".join(config_obj.tenancy.tenants)
            or "[dim]none[/dim]",
        )
        table.add_row(
            "HTTP allow-list",
            ", ".join(config_obj.http.allowed_base_urls) or "[dim]any[/dim]",
        )
        table.add_row("Overlap policy", config_obj.scheduler.overlap_policy)
        table.add_row("Server", f"{config_obj.server.host}:{config_obj.server.port}")

        success("Configuration is valid!")
        console.print()
        console.print(table)
        if not config_obj.tenancy.tenants_url and not config_obj.tenancy.tenants:
            dim("No tenants configured; tenants will arrive via provisioning events")
