"""CLI command modules."""

from cadence.cli.commands import automations, database, serve

__all__ = [
    "automations",
    "database",
    "serve",
]
