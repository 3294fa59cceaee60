"""CLI command modules."""

from cadence.cli.commands import config, schedule, serve, tick

__all__ = [
    "config",
    "schedule",
    "serve",
    "tick",
]
