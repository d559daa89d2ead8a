"""CLI command modules."""

from cadence.cli.commands import config, serve

__all__ = [
    "config",
    "serve",
]
