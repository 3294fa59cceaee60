"""FastAPI application for the Cadence server."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from cadence import __version__
from cadence.server.routes import health, jobs, schedules, webhooks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from cadence.providers.telegram import TelegramWizardHandler
    from cadence.services import Services

logger = logging.getLogger(__name__)


class CadenceServer:
    """Main server application.

    Owns the FastAPI app and wires the Telegram wizard on startup.
    """

    def __init__(self, services: "Services"):
        self._services = services
        self._telegram_handler: TelegramWizardHandler | None = None
        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self._app

    @property
    def services(self) -> "Services":
        return self._services

    def _create_app(self) -> FastAPI:
        services = self._services
        provider = services.telegram_provider

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> "AsyncIterator[None]":
            logger.info("server_starting")
            if not services.database.is_connected:
                await services.database.connect()
            await services.database.create_tables()

            if provider:
                from cadence.providers.telegram import TelegramWizardHandler

                self._telegram_handler = TelegramWizardHandler(
                    provider=provider,
                    wizard=services.wizard,
                    subjects=services.config.subjects,
                )
                self._telegram_handler.register()

            yield

            logger.info("server_stopping")
            if provider:
                await provider.stop()
            await services.database.disconnect()

        app = FastAPI(
            title="Cadence",
            description="Recurring content scheduler API",
            version=__version__,
            lifespan=lifespan,
        )

        app.state.server = self
        app.state.services = services

        for exc_class, handler in schedules.EXCEPTION_HANDLERS.items():
            app.add_exception_handler(exc_class, handler)

        app.include_router(health.router, tags=["health"])
        app.include_router(jobs.router, tags=["jobs"])
        app.include_router(
            schedules.router, prefix="/api/schedules", tags=["schedules"]
        )

        if provider:
            app.include_router(
                webhooks.router,
                prefix=services.config.server.webhook_path,
                tags=["webhooks"],
            )

        return app

    async def get_telegram_handler(self) -> "TelegramWizardHandler | None":
        """Get the Telegram wizard handler once the lifespan has wired it."""
        return self._telegram_handler


def create_app(services: "Services") -> FastAPI:
    """Create the FastAPI application."""
    return CadenceServer(services).app
