"""Main CLI application."""

import typer

from cadence.cli.commands import config, serve

app = typer.Typer(
    name="cadence",
    help="Cadence - multi-tenant scheduled-action engine",
    no_args_is_help=True,
)

serve.register(app)
config.register(app)


if __name__ == "__main__":
    app()
