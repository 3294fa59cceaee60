"""Runtime server orchestration helpers."""

from __future__ import annotations

import asyncio
import logging
import os
import signal as signal_module
import time
from typing import TYPE_CHECKING, Protocol

import uvicorn

if TYPE_CHECKING:
    from fastapi import FastAPI


class PollingProvider(Protocol):
    """Minimal provider contract required by the server runner."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


logger = logging.getLogger(__name__)

HANDLER_POLL_INTERVAL_SECONDS = 0.1
HANDLER_WAIT_TIMEOUT_SECONDS = 60.0


class ServerRunner:
    """Owns uvicorn serving and optional Telegram long polling."""

    def __init__(
        self,
        app: FastAPI,
        *,
        host: str,
        port: int,
        polling_provider: PollingProvider | None = None,
    ) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._polling_provider = polling_provider

    async def run(self) -> None:
        """Serve until signalled; a second signal exits immediately."""
        server = uvicorn.Server(
            uvicorn.Config(
                self._app,
                host=self._host,
                port=self._port,
                log_level="info",
                log_config=None,
            )
        )

        polling_task: asyncio.Task | None = None
        loop = asyncio.get_running_loop()
        shutdown_count = 0

        def handle_signal() -> None:
            nonlocal shutdown_count
            shutdown_count += 1

            if shutdown_count == 1:
                logger.info("server_shutting_down")
                server.should_exit = True
                provider = self._polling_provider
                if provider:
                    loop.call_soon(lambda: asyncio.create_task(provider.stop()))
                if polling_task and not polling_task.done():
                    polling_task.cancel()
            else:
                logger.warning("server_force_shutdown")
                os._exit(1)

        for sig in (signal_module.SIGTERM, signal_module.SIGINT):
            loop.add_signal_handler(sig, handle_signal)

        if not self._polling_provider:
            await server.serve()
            return

        logger.info("telegram_polling_starting")
        server_task = asyncio.create_task(server.serve())

        async def start_polling() -> None:
            # Handlers are registered in the app lifespan; wait for it.
            deadline = time.monotonic() + HANDLER_WAIT_TIMEOUT_SECONDS
            while not server_task.done():
                if await self._app.state.server.get_telegram_handler():
                    try:
                        provider = self._polling_provider
                        if provider:
                            await provider.start()
                    except asyncio.CancelledError:
                        logger.info("telegram_polling_cancelled")
                    return
                if time.monotonic() >= deadline:
                    logger.error("telegram_handler_timeout")
                    return
                await asyncio.sleep(HANDLER_POLL_INTERVAL_SECONDS)

            logger.error("telegram_handler_unavailable")

        polling_task = asyncio.create_task(start_polling())
        await asyncio.gather(server_task, polling_task, return_exceptions=True)
