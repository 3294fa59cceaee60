"""Schedule management commands."""

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Annotated

import click
import typer

from cadence.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    load_config_or_exit,
    success,
    warning,
)


def _format_countdown(next_run: datetime | None) -> str:
    """Format a countdown string for the next run time."""
    if next_run is None:
        return "[dim]-[/dim]"

    now = datetime.now(UTC)
    if next_run <= now:
        return "[green]due[/green]"

    total_minutes = int((next_run - now).total_seconds()) // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, due, enable, disable, delete"),
        ] = None,
        schedule_id: Annotated[
            str | None,
            typer.Option(
                "--id",
                "-i",
                help="Schedule ID for enable, disable and delete",
            ),
        ] = None,
        owner: Annotated[
            str | None,
            typer.Option("--owner", "-o", help="Only show this owner's schedules"),
        ] = None,
        config: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
        force: Annotated[
            bool,
            typer.Option(
                "--force",
                "-f",
                help="Force action without confirmation",
            ),
        ] = False,
    ) -> None:
        """Inspect and manage stored schedules.

        Examples:
            cadence schedule list                 # List schedules
            cadence schedule due                  # Count schedules due now
            cadence schedule disable --id 1a2b3c  # Disarm a schedule
            cadence schedule delete --id 1a2b3c   # Soft-delete a schedule
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ("list", "due", "enable", "disable", "delete"):
            error(f"Unknown action: {action}")
            console.print("Valid actions: list, due, enable, disable, delete")
            raise typer.Exit(1)

        if action in ("enable", "disable", "delete") and schedule_id is None:
            error(f"--id is required for {action}")
            raise typer.Exit(1)

        if action == "delete" and not confirm_or_cancel(
            f"Delete schedule {schedule_id}?", force
        ):
            return

        cadence_config = load_config_or_exit(config)
        asyncio.run(_run(cadence_config, action, schedule_id, owner))


async def _run(cadence_config, action: str, schedule_id: str | None, owner: str | None) -> None:
    from cadence.scheduling.errors import ScheduleError, ScheduleValidationError
    from cadence.scheduling.service import ScheduleService
    from cadence.scheduling.store import ScheduleStore
    from cadence.services import build_database

    scheduling = cadence_config.scheduling
    database = build_database(cadence_config)
    await database.connect()
    try:
        await database.create_tables()
        store = ScheduleStore(
            database, lease_ttl=timedelta(seconds=scheduling.lease_ttl_seconds)
        )
        service = ScheduleService(
            store,
            round_step=scheduling.round_minutes,
            default_timezone=scheduling.default_timezone,
            clone_grace_seconds=scheduling.clone_grace_seconds,
        )

        try:
            if action == "list":
                await _schedule_list(service, owner)
            elif action == "due":
                count = await store.count_due(service.now())
                console.print(f"{count} schedule(s) due")
            elif schedule_id is None:
                error(f"--id is required for {action}")
                raise typer.Exit(1)
            elif action == "enable":
                enabled = await service.enable(schedule_id)
                success(f"Enabled {schedule_id}, next run {enabled.next_run_at}")
            elif action == "disable":
                await service.disable(schedule_id)
                success(f"Disabled {schedule_id}")
            elif action == "delete":
                await service.delete(schedule_id)
                success(f"Deleted {schedule_id}")
        except ScheduleValidationError as e:
            error(f"Cannot {action} {schedule_id}: {e.code.value}")
            raise typer.Exit(1) from None
        except ScheduleError as e:
            error(str(e))
            raise typer.Exit(1) from None
    finally:
        await database.disconnect()


async def _schedule_list(service, owner: str | None) -> None:
    from cadence.scheduling.recurrence import describe

    schedules = await service.list_schedules(owner_id=owner, limit=500)
    if not schedules:
        warning("No schedules found")
        return

    table = create_table(
        "Schedules",
        [
            ("ID", "dim"),
            ("Owner", ""),
            ("Subject", "cyan"),
            ("Target", ""),
            ("Pattern", ""),
            ("Status", ""),
            ("Next Run", ""),
            ("Errors", {"justify": "right"}),
        ],
    )
    for s in schedules:
        status = "[green]enabled[/green]" if s.enabled else "[yellow]draft[/yellow]"
        table.add_row(
            s.id,
            s.owner_id,
            s.subject_id,
            f"{s.target_type.value}:{s.target_id}",
            describe(s.pattern) if s.hour is not None else "[dim]incomplete[/dim]",
            status,
            _format_countdown(s.next_run_at),
            str(s.error_count) if s.error_count else "",
        )

    console.print(table)
    dim(f"Total: {len(schedules)} schedule(s)")
