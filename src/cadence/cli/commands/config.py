"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from cadence.cli.console import console, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate, paths"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $CADENCE_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError
        from rich.syntax import Syntax
        from rich.table import Table

        from cadence.config import load_config
        from cadence.config.paths import get_all_paths, get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                console.print("Copy config.example.toml to create one")
                raise typer.Exit(1)

            content = expanded_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            try:
                config_obj = load_config(expanded_path)
            except ValidationError as e:
                error("Configuration validation failed:")
                console.print()
                for err in e.errors():
                    loc = ".".join(str(x) for x in err["loc"])
                    console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
                raise typer.Exit(1) from None
            except Exception as e:
                error(f"Error loading config: {e}")
                raise typer.Exit(1) from None

            table = Table(title="Configuration Summary")
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            scheduling = config_obj.scheduling
            table.add_row("Timezone", scheduling.default_timezone)
            table.add_row("Minute step", str(scheduling.round_minutes))
            table.add_row(
                "Claim lease",
                f"{scheduling.lease_ttl_seconds}s"
                if scheduling.lease_ttl_seconds
                else "[dim]disabled[/dim]",
            )
            table.add_row(
                "Subjects",
                ", ".join(sorted(config_obj.subjects)) or "[yellow]none[/yellow]",
            )
            table.add_row(
                "Trigger secret",
                "configured"
                if config_obj.trigger.secret
                else "[yellow]missing (ticks are rejected)[/yellow]",
            )
            table.add_row(
                "Telegram",
                "configured"
                if config_obj.telegram and config_obj.telegram.bot_token
                else "[dim]not configured[/dim]",
            )
            table.add_row(
                "Anthropic",
                "configured"
                if config_obj.anthropic and config_obj.anthropic.api_key
                else "[dim]not configured[/dim]",
            )
            table.add_row(
                "Database", config_obj.database.url or str(config_obj.database.path)
            )
            table.add_row(
                "Server", f"{config_obj.server.host}:{config_obj.server.port}"
            )

            success("Configuration is valid!")
            console.print()
            console.print(table)

        elif action == "paths":
            for name, value in get_all_paths().items():
                console.print(f"[cyan]{name:>8}[/cyan]  {value}")

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate, paths")
            raise typer.Exit(1)
