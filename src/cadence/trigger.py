"""Tick trigger: the authenticated boundary around the dispatcher.

``TickTrigger`` is what the HTTP route wraps. ``TickInvoker`` is the
periodic caller on the other side (cron, a systemd timer, ``cadence tick``):
it posts to the route and retries transport failures with backoff, tagging
every attempt with the same correlation id.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from typing import Any

import httpx
from pydantic import SecretStr

from cadence.retry import RetryConfig, with_retry
from cadence.scheduling.dispatcher import Dispatcher
from cadence.scheduling.errors import TriggerAuthError
from cadence.scheduling.types import TickResult

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Internal-Token"
RID_HEADER = "X-Tick-Rid"
ATTEMPT_HEADER = "X-Tick-Attempt"


def new_rid() -> str:
    return uuid.uuid4().hex[:12]


def _secret_value(secret: SecretStr | str | None) -> str | None:
    if isinstance(secret, SecretStr):
        return secret.get_secret_value()
    return secret


class TickTrigger:
    """Authenticate a tick invocation, then drain the due set."""

    def __init__(self, secret: SecretStr | str | None, dispatcher: Dispatcher):
        self._secret = _secret_value(secret)
        self._dispatcher = dispatcher

    def authenticate(self, token: str | None) -> None:
        """Compare the presented token with the configured secret.

        Raises:
            TriggerAuthError: No secret is configured, or the token is
                missing or wrong.
        """
        if not self._secret:
            raise TriggerAuthError("trigger secret not configured")
        if not token or not hmac.compare_digest(
            token.encode("utf-8"), self._secret.encode("utf-8")
        ):
            raise TriggerAuthError("invalid trigger token")

    async def run(self, token: str | None, rid: str | None = None) -> TickResult:
        """Authenticate and run one tick. Nothing is claimed on auth failure."""
        rid = rid or new_rid()
        try:
            self.authenticate(token)
        except TriggerAuthError as e:
            logger.warning("tick_rejected", extra={"tick.rid": rid, "error.message": str(e)})
            raise
        logger.info("tick_started", extra={"tick.rid": rid})
        return await self._dispatcher.tick(rid)


class TickInvoker:
    """Calls the tick endpoint, retrying with exponential backoff."""

    def __init__(
        self,
        url: str,
        secret: SecretStr | str | None,
        *,
        max_attempts: int = 3,
        backoff_ms: int = 2000,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        self._secret = _secret_value(secret)
        self._retry = RetryConfig(
            max_retries=max(0, max_attempts - 1),
            base_delay_ms=backoff_ms,
        )
        self._timeout = timeout_seconds
        self._client = client

    async def invoke(self, rid: str | None = None) -> dict[str, Any]:
        """Post one tick and return the endpoint's JSON summary.

        Raises:
            httpx.HTTPStatusError: Final non-2xx response (403 is not retried).
            httpx.TransportError: Transport failure after the last attempt.
        """
        rid = rid or new_rid()
        attempt = 0

        async def _post(client: httpx.AsyncClient) -> dict[str, Any]:
            nonlocal attempt
            attempt += 1
            headers = {RID_HEADER: rid, ATTEMPT_HEADER: str(attempt)}
            if self._secret:
                headers[TOKEN_HEADER] = self._secret
            logger.debug("tick_invoke_attempt", extra={"tick.rid": rid, "attempt": attempt})
            response = await client.post(self._url, headers=headers)
            response.raise_for_status()
            return response.json()

        if self._client is not None:
            client = self._client
            result = await with_retry(
                lambda: _post(client), self._retry, operation_name="tick_invoke"
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                result = await with_retry(
                    lambda: _post(client), self._retry, operation_name="tick_invoke"
                )

        logger.info(
            "tick_invoked",
            extra={
                "tick.rid": rid,
                "tick.processed": result.get("processed"),
                "attempt": attempt,
            },
        )
        return result
