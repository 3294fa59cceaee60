"""Retry with exponential backoff for flaky network calls."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERN = re.compile(
    r"overloaded|rate.?limit|too many requests|"
    r"429|500|502|503|504|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|connect.?error|timeout|timed out",
    re.IGNORECASE,
)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Backoff exponent cap; keeps the delay bounded even with many attempts.
MAX_BACKOFF_EXPONENT = 7


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 30000


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is worth retrying.

    Rate limits, 5xx responses, overload and connection/timeout failures are
    retryable. Anything else (bad request, auth failure) is not.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in RETRYABLE_STATUS_CODES

    response = getattr(error, "response", None)
    if response is not None and getattr(response, "status_code", None) is not None:
        return response.status_code in RETRYABLE_STATUS_CODES

    if RETRYABLE_PATTERN.search(str(error)):
        return True

    error_type = type(error).__name__.lower()
    return any(
        t in error_type
        for t in ["timeout", "connect", "overloaded", "ratelimit", "rate_limit"]
    )


def backoff_delay_ms(attempt: int, config: RetryConfig) -> int:
    """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""
    exponent = min(attempt, MAX_BACKOFF_EXPONENT)
    return min(config.base_delay_ms * (2**exponent), config.max_delay_ms)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
    should_retry: Callable[[Exception], bool] = is_retryable_error,
) -> T:
    """Execute an async function with exponential backoff retry.

    Args:
        func: Async function to execute.
        config: Retry configuration.
        operation_name: Name for logging.
        should_retry: Predicate deciding whether an error is transient.

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail.
    """
    config = config or RetryConfig()

    if not config.enabled:
        return await func()

    last_error: Exception | None = None

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            last_error = e

            if not should_retry(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": config.max_retries + 1,
                        "error.message": str(e),
                        "error.type": type(e).__name__,
                    },
                )
                raise

            delay_s = backoff_delay_ms(attempt, config) / 1000

            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_retries + 1,
                    "retry_delay_s": round(delay_s, 1),
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )

            await asyncio.sleep(delay_s)

    assert last_error is not None
    raise last_error
