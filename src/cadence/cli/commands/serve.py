"""Server command for running the Cadence service."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

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
        webhook: Annotated[
            bool,
            typer.Option(
                "--webhook",
                help="Use webhook mode instead of polling",
            ),
        ] = False,
        host: Annotated[
            str | None,
            typer.Option(
                "--host",
                "-h",
                help="Host to bind to (default: [server] host)",
            ),
        ] = None,
        port: Annotated[
            int | None,
            typer.Option(
                "--port",
                "-p",
                help="Port to bind to (default: [server] port)",
            ),
        ] = None,
    ) -> None:
        """Start the Cadence server."""
        try:
            asyncio.run(_run_server(config, webhook, host, port))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


def _secrets(cadence_config) -> list[str]:
    values = [cadence_config.trigger.secret]
    if cadence_config.telegram:
        values.append(cadence_config.telegram.bot_token)
    if cadence_config.anthropic:
        values.append(cadence_config.anthropic.api_key)
    return [v.get_secret_value() for v in values if v is not None]


async def _run_server(
    config_path: Path | None = None,
    webhook: bool = False,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the server asynchronously."""
    from cadence.cli.console import error, load_config_or_exit
    from cadence.config import ConfigError
    from cadence.logging import configure_logging
    from cadence.server import ServerRunner, create_app
    from cadence.services import build_services

    cadence_config = load_config_or_exit(config_path)
    configure_logging(use_rich=True, log_to_file=True, secrets=_secrets(cadence_config))

    try:
        services = build_services(cadence_config)
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1) from None

    if not cadence_config.subjects:
        logger.warning("no_subjects_configured")

    host = host or cadence_config.server.host
    port = port or cadence_config.server.port
    fastapi_app = create_app(services)

    logger.info("server_listening", extra={"server.host": host, "server.port": port})
    runner = ServerRunner(
        fastapi_app,
        host=host,
        port=port,
        polling_provider=None if webhook else services.telegram_provider,
    )
    await runner.run()
