"""Claim-drain loop that runs due schedules.

Each tick repeatedly claims the earliest-due schedule, generates and
delivers its content, and records the outcome, until nothing due is left.
A failing schedule is recorded and skipped; a failing store aborts the tick.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from cadence.scheduling.errors import ExecutionError
from cadence.scheduling.recurrence import as_utc, compute_next
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import (
    Clock,
    Schedule,
    TargetContext,
    TickResult,
    system_clock,
)

if TYPE_CHECKING:
    from cadence.generation import ContentGenerator
    from cadence.providers.base import DeliveryTransport

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def _error_text(error: Exception) -> str:
    text = str(error) or type(error).__name__
    return text[:MAX_ERROR_LENGTH]


class Dispatcher:
    """Runs every due schedule exactly once per tick."""

    def __init__(
        self,
        store: ScheduleStore,
        generator: ContentGenerator,
        transport: DeliveryTransport,
        *,
        clock: Clock = system_clock,
        failure_backoff: timedelta | None = None,
    ) -> None:
        self._store = store
        self._generator = generator
        self._transport = transport
        self._clock = clock
        self._failure_backoff = failure_backoff

    async def tick(self, rid: str | None = None) -> TickResult:
        """Claim and execute due schedules until none remain.

        A schedule handled earlier in the same tick is never claimed again,
        even if a failure left it due.

        Raises:
            Store errors propagate; the next tick retries.
        """
        result = TickResult()
        handled: set[str] = set()

        while True:
            now = as_utc(self._clock())
            candidate = await self._store.claim_one_due(now, exclude=handled)
            if candidate is None:
                break
            handled.add(candidate.id)
            result.processed += 1

            logger.info(
                "schedule_claimed",
                extra={
                    "tick.rid": rid,
                    "schedule.id": candidate.id,
                    "schedule.next_run_at": candidate.next_run_at.isoformat()
                    if candidate.next_run_at
                    else None,
                },
            )
            if await self._execute(candidate, rid):
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "tick_completed",
            extra={
                "tick.rid": rid,
                "tick.processed": result.processed,
                "tick.succeeded": result.succeeded,
                "tick.failed": result.failed,
            },
        )
        return result

    async def _run(self, schedule: Schedule) -> None:
        context = TargetContext(
            schedule_id=schedule.id,
            owner_id=schedule.owner_id,
            target_type=schedule.target_type,
            target_id=schedule.target_id,
            timezone=schedule.timezone,
            scheduled_for=schedule.next_run_at,
        )
        content = await self._generator.generate(schedule.subject_id, context)
        content = [text for text in content or [] if text and text.strip()]
        if not content:
            raise ExecutionError("empty response")
        await self._transport.deliver(schedule.target_type, schedule.target_id, content)

    async def _execute(self, schedule: Schedule, rid: str | None) -> bool:
        """Run one claimed schedule and release its claim.

        Returns:
            True if content was generated and delivered.
        """
        try:
            await self._run(schedule)
        except Exception as e:
            now = as_utc(self._clock())
            next_run_at = (
                now + self._failure_backoff if self._failure_backoff else None
            )
            logger.warning(
                "schedule_run_failed",
                extra={
                    "tick.rid": rid,
                    "schedule.id": schedule.id,
                    "error.message": _error_text(e),
                    "error.type": type(e).__name__,
                },
            )
            await self._store.mark_failure(
                schedule.id,
                now,
                _error_text(e),
                next_run_at=next_run_at,
                claimed_at=schedule.claimed_at,
            )
            return False

        now = as_utc(self._clock())
        next_run_at = compute_next(schedule.pattern, schedule.timezone, now)
        if next_run_at is None:
            logger.warning("next_run_uncomputable", extra={"schedule.id": schedule.id})
        await self._store.mark_success(
            schedule.id, now, next_run_at, claimed_at=schedule.claimed_at
        )
        logger.info(
            "schedule_run_succeeded",
            extra={
                "tick.rid": rid,
                "schedule.id": schedule.id,
                "schedule.next_run_at": next_run_at.isoformat() if next_run_at else None,
            },
        )
        return True
