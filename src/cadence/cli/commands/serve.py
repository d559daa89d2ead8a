"""Server command for running the Cadence service."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

from cadence.errors import FatalInitError

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        host: Annotated[
            str | None,
            typer.Option(
                "--host",
                "-h",
                help="Host to bind to (default: server.host)",
            ),
        ] = None,
        port: Annotated[
            int | None,
            typer.Option(
                "--port",
                "-p",
                help="Port to bind to (default: server.port)",
            ),
        ] = None,
    ) -> None:
        """Start the Cadence scheduler and job API."""
        from cadence.cli.console import error
        from cadence.config import ConfigError

        try:
            asyncio.run(_run_server(config, host, port))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")
        except (ConfigError, FileNotFoundError) as e:
            error(f"Configuration error: {e}")
            raise typer.Exit(1) from None
        except FatalInitError as e:
            error(f"Startup failed: {e}")
            raise typer.Exit(1) from None


async def _run_server(
    config_path: Path | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the server asynchronously."""
    from cadence.logging import configure_logging

    # Configure logging with Rich for colorful server output and file logging
    configure_logging(use_rich=True, log_to_file=True)

    from cadence.config import load_config
    from cadence.engine import build_engine
    from cadence.server import ServerRunner, create_app

    logger.info("Loading configuration")
    cadence_config = load_config(config_path)

    engine = build_engine(cadence_config)
    app = create_app(engine)

    runner = ServerRunner(
        app,
        host=host or cadence_config.server.host,
        port=port or cadence_config.server.port,
    )
    await runner.run()
