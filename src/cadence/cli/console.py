"""Rich output helpers for the cadence commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from cadence.config.models import CadenceConfig

console = Console()


def error(msg: str) -> None:
    console.print(f"[red]{msg}[/red]")


def warning(msg: str) -> None:
    console.print(f"[yellow]{msg}[/yellow]")


def success(msg: str) -> None:
    console.print(f"[green]{msg}[/green]")


def dim(msg: str) -> None:
    console.print(f"[dim]{msg}[/dim]")


def create_table(
    title: str,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Build a schedule listing table.

    Args:
        title: Heading shown above the rows.
        columns: ``(name, style)`` pairs; a dict instead of a style is passed
            to ``Table.add_column`` as keyword arguments (``justify`` for the
            error count, for example).
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def confirm_or_cancel(prompt: str, force: bool) -> bool:
    """Ask before a destructive schedule action unless ``--force`` was given."""
    if force:
        return True
    confirmed = typer.confirm(prompt)
    if not confirmed:
        dim("Cancelled")
    return confirmed


def load_config_or_exit(path: Path | None) -> CadenceConfig:
    """Load the cadence config, exiting with status 1 when none is found."""
    from cadence.config import load_config

    try:
        return load_config(path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None
