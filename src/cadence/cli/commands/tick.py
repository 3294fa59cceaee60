"""Tick command: the periodic caller of the scheduler endpoint."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, error, load_config_or_exit, success


def register(app: typer.Typer) -> None:
    """Register the tick command."""

    @app.command()
    def tick(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        url: Annotated[
            str | None,
            typer.Option(
                "--url",
                "-u",
                help="Tick endpoint URL (default: [trigger] url)",
            ),
        ] = None,
    ) -> None:
        """Post one tick to the running server.

        Meant to be run from cron or a systemd timer, e.g. once a minute.
        Transport failures and 5xx answers are retried with backoff.
        """
        import httpx

        from cadence.trigger import TickInvoker

        cadence_config = load_config_or_exit(config)
        trigger = cadence_config.trigger
        invoker = TickInvoker(
            url or trigger.url,
            trigger.secret,
            max_attempts=trigger.max_attempts,
            backoff_ms=trigger.backoff_ms,
            timeout_seconds=trigger.timeout_seconds,
        )

        try:
            result = asyncio.run(invoker.invoke())
        except httpx.HTTPStatusError as e:
            error(f"Tick rejected: HTTP {e.response.status_code}")
            raise typer.Exit(1) from None
        except httpx.HTTPError as e:
            error(f"Tick failed: {e}")
            raise typer.Exit(1) from None

        success(
            f"Tick {result.get('rid')}: {result.get('processed', 0)} processed"
        )
        if result.get("failed"):
            console.print(f"[yellow]{result['failed']} failed[/yellow]")
