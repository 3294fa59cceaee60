"""Schedule lifecycle operations: drafts, enable/disable, patch, cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime

from cadence.scheduling.errors import (
    ScheduleForbiddenError,
    ScheduleNotFoundError,
    ScheduleValidationError,
    ValidationCode,
)
from cadence.scheduling.recurrence import (
    compute_next,
    compute_next_with_grace,
    infer_frequency,
    round_minutes,
)
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import (
    Clock,
    Frequency,
    Schedule,
    TargetType,
    Weekday,
    sort_monthdays,
    sort_weekdays,
    system_clock,
)

logger = logging.getLogger(__name__)


@dataclass
class SchedulePatch:
    """Partial update; ``None`` leaves a field unchanged."""

    frequency: Frequency | None = None
    by_weekday: list[Weekday] | None = None
    by_monthday: list[int] | None = None
    hour: int | None = None
    minute: int | None = None
    timezone: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def normalize_days(
    frequency: Frequency | None,
    by_weekday: list[Weekday],
    by_monthday: list[int],
    *,
    fill_defaults: bool = True,
) -> tuple[list[Weekday], list[int]]:
    """Keep only the day set the frequency uses.

    With ``fill_defaults`` an empty weekly set becomes Monday and an empty
    monthly set the 1st. Daily clears both sets.
    """
    match frequency:
        case Frequency.DAILY:
            return [], []
        case Frequency.WEEKLY:
            weekdays = sort_weekdays(by_weekday)
            return (weekdays or [Weekday.MO] if fill_defaults else weekdays), []
        case Frequency.MONTHLY:
            monthdays = sort_monthdays(by_monthday)
            return [], (monthdays or [1] if fill_defaults else monthdays)
        case _:
            return sort_weekdays(by_weekday), sort_monthdays(by_monthday)


def check_time(hour: int | None, minute: int | None) -> None:
    if hour is not None and not 0 <= hour <= 23:
        raise ScheduleValidationError(ValidationCode.INVALID_TIME, f"hour {hour}")
    if minute is not None and not 0 <= minute <= 59:
        raise ScheduleValidationError(ValidationCode.INVALID_TIME, f"minute {minute}")


def validate_for_enable(schedule: Schedule) -> None:
    """Raise if the schedule lacks fields its frequency requires."""
    if schedule.hour is None or schedule.minute is None:
        raise ScheduleValidationError(ValidationCode.TIME_REQUIRED)
    frequency = schedule.frequency or infer_frequency(schedule.pattern)
    if frequency is Frequency.WEEKLY and not schedule.by_weekday:
        raise ScheduleValidationError(ValidationCode.WEEKDAY_REQUIRED)
    if frequency is Frequency.MONTHLY and not schedule.by_monthday:
        raise ScheduleValidationError(ValidationCode.MONTHDAY_REQUIRED)


def pair_copies(
    sources: list[Schedule], copies: list[Schedule]
) -> list[tuple[Schedule, Schedule | None]]:
    """Match each source schedule with at most one existing copy.

    Copies carrying the same rule and timezone as a source are matched
    first. Sources left over take the remaining copies in order, and any
    source still without one gets None (a new copy is needed).
    """
    unmatched = list(copies)
    matched: dict[int, Schedule] = {}
    for index, source in enumerate(sources):
        for copy in unmatched:
            if copy.pattern == source.pattern and copy.timezone == source.timezone:
                matched[index] = copy
                unmatched.remove(copy)
                break

    pairs: list[tuple[Schedule, Schedule | None]] = []
    for index, source in enumerate(sources):
        existing = matched.get(index)
        if existing is None and unmatched:
            existing = unmatched.pop(0)
        pairs.append((source, existing))
    return pairs


class ScheduleService:
    """Create, arm, disarm, edit and clean up schedules.

    Enabling always recomputes ``next_run_at`` from the current pattern and
    the current time; disabling always clears it.
    """

    def __init__(
        self,
        store: ScheduleStore,
        *,
        clock: Clock = system_clock,
        round_step: int = 5,
        default_timezone: str = "Asia/Tokyo",
        clone_grace_seconds: int = 60,
    ) -> None:
        self._store = store
        self._clock = clock
        self._round_step = round_step
        self._default_timezone = default_timezone
        self._clone_grace_seconds = clone_grace_seconds

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def round_step(self) -> int:
        return self._round_step

    @property
    def default_timezone(self) -> str:
        return self._default_timezone

    def now(self) -> datetime:
        return self._clock()

    async def create_draft(
        self,
        owner_id: str,
        subject_id: str,
        target_type: TargetType,
        target_id: str,
        *,
        frequency: Frequency | None = None,
        by_weekday: list[Weekday] | None = None,
        by_monthday: list[int] | None = None,
        hour: int | None = None,
        minute: int | None = None,
        timezone: str | None = None,
    ) -> Schedule:
        """Persist a new disabled draft."""
        check_time(hour, minute)
        weekdays, monthdays = normalize_days(
            frequency, by_weekday or [], by_monthday or [], fill_defaults=False
        )
        now = self._clock()
        draft = Schedule(
            id="",
            owner_id=owner_id,
            subject_id=subject_id,
            target_type=target_type,
            target_id=target_id,
            timezone=timezone or self._default_timezone,
            frequency=frequency,
            by_weekday=weekdays,
            by_monthday=monthdays,
            hour=hour,
            minute=round_minutes(minute, self._round_step) if minute is not None else None,
            enabled=False,
            created_at=now,
            updated_at=now,
        )
        created = await self._store.create(draft)
        logger.info(
            "schedule_draft_created",
            extra={
                "schedule.id": created.id,
                "schedule.owner_id": owner_id,
                "schedule.subject_id": subject_id,
            },
        )
        return created

    async def get(self, schedule_id: str, owner_id: str | None = None) -> Schedule:
        """Fetch a schedule, enforcing ownership when ``owner_id`` is given."""
        schedule = await self._store.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        if owner_id is not None and schedule.owner_id != owner_id:
            raise ScheduleForbiddenError(schedule_id)
        return schedule

    async def list_schedules(
        self,
        *,
        owner_id: str | None = None,
        subject_id: str | None = None,
        target_type: TargetType | None = None,
        target_id: str | None = None,
        enabled: bool | None = None,
        limit: int = 50,
    ) -> list[Schedule]:
        return await self._store.list_schedules(
            owner_id=owner_id,
            subject_id=subject_id,
            target_type=target_type,
            target_id=target_id,
            enabled=enabled,
            limit=limit,
        )

    async def _write(self, schedule_id: str, **values: object) -> Schedule:
        updated = await self._store.update_fields(schedule_id, self._clock(), **values)
        if updated is None:
            raise ScheduleNotFoundError(schedule_id)
        return updated

    async def enable(self, schedule_id: str, owner_id: str | None = None) -> Schedule:
        """Validate, then compute ``next_run_at`` and arm the schedule.

        Raises:
            ScheduleValidationError: Required fields are missing
                (``time_required``, ``weekday_required``, ``monthday_required``)
                or no future occurrence exists (``next_uncomputable``).
        """
        schedule = await self.get(schedule_id, owner_id)
        validate_for_enable(schedule)

        if schedule.minute is None:
            raise ScheduleValidationError(ValidationCode.TIME_REQUIRED)
        minute = round_minutes(schedule.minute, self._round_step)
        pattern = schedule.pattern
        if minute != schedule.minute:
            pattern = replace(pattern, minute=minute)

        next_run_at = compute_next(pattern, schedule.timezone, self._clock())
        if next_run_at is None:
            raise ScheduleValidationError(ValidationCode.NEXT_UNCOMPUTABLE)

        enabled = await self._write(
            schedule_id, enabled=True, minute=minute, next_run_at=next_run_at
        )
        logger.info(
            "schedule_enabled",
            extra={
                "schedule.id": schedule_id,
                "schedule.next_run_at": next_run_at.isoformat(),
            },
        )
        return enabled

    async def disable(self, schedule_id: str, owner_id: str | None = None) -> Schedule:
        await self.get(schedule_id, owner_id)
        disabled = await self._write(schedule_id, enabled=False, next_run_at=None)
        logger.info("schedule_disabled", extra={"schedule.id": schedule_id})
        return disabled

    async def patch(
        self,
        schedule_id: str,
        changes: SchedulePatch,
        owner_id: str | None = None,
    ) -> Schedule:
        """Apply a partial update.

        Day sets are normalized for the resulting frequency, the minute is
        re-rounded, and ``next_run_at`` is recomputed when the schedule is
        enabled (and cleared when it is not).
        """
        schedule = await self.get(schedule_id, owner_id)
        check_time(changes.hour, changes.minute)

        frequency = changes.frequency or schedule.frequency
        hour = changes.hour if changes.hour is not None else schedule.hour
        minute = changes.minute if changes.minute is not None else schedule.minute
        if minute is not None:
            minute = round_minutes(minute, self._round_step)
        weekdays, monthdays = normalize_days(
            frequency,
            changes.by_weekday if changes.by_weekday is not None else schedule.by_weekday,
            changes.by_monthday
            if changes.by_monthday is not None
            else schedule.by_monthday,
        )
        timezone = changes.timezone or schedule.timezone

        candidate = Schedule(
            id=schedule.id,
            owner_id=schedule.owner_id,
            subject_id=schedule.subject_id,
            target_type=schedule.target_type,
            target_id=schedule.target_id,
            timezone=timezone,
            frequency=frequency,
            by_weekday=weekdays,
            by_monthday=monthdays,
            hour=hour,
            minute=minute,
            second=schedule.second,
            enabled=schedule.enabled,
        )

        next_run_at = None
        if schedule.enabled:
            validate_for_enable(candidate)
            next_run_at = compute_next(candidate.pattern, timezone, self._clock())

        return await self._write(
            schedule_id,
            frequency=frequency,
            by_weekday=weekdays,
            by_monthday=monthdays,
            hour=hour,
            minute=minute,
            timezone=timezone,
            next_run_at=next_run_at,
        )

    async def delete(self, schedule_id: str, owner_id: str | None = None) -> None:
        await self.get(schedule_id, owner_id)
        if not await self._store.soft_delete(schedule_id, self._clock()):
            raise ScheduleNotFoundError(schedule_id)
        logger.info("schedule_deleted", extra={"schedule.id": schedule_id})

    async def reset_draft(
        self,
        schedule_id: str,
        frequency: Frequency,
        target_type: TargetType,
        target_id: str,
    ) -> Schedule:
        """Start a draft over with a new frequency, clearing its pattern."""
        return await self._write(
            schedule_id,
            frequency=frequency,
            by_weekday=[],
            by_monthday=[],
            hour=None,
            minute=None,
            target_type=target_type,
            target_id=target_id,
            next_run_at=None,
        )

    async def update_draft(
        self,
        schedule_id: str,
        *,
        by_weekday: list[Weekday] | None = None,
        by_monthday: list[int] | None = None,
        hour: int | None = None,
        minute: int | None = None,
    ) -> Schedule:
        """Write wizard answers onto a draft as given.

        Unlike ``patch`` no day defaults are filled in, so a weekday
        selection may be emptied while it is being edited.

        Raises:
            ScheduleValidationError: ``invalid_frequency`` when a day set is
                written that the draft's frequency does not use.
        """
        check_time(hour, minute)
        if by_weekday is not None or by_monthday is not None:
            draft = await self.get(schedule_id)
            if by_weekday is not None and draft.frequency is not Frequency.WEEKLY:
                raise ScheduleValidationError(
                    ValidationCode.INVALID_FREQUENCY, "weekdays need a weekly draft"
                )
            if by_monthday is not None and draft.frequency is not Frequency.MONTHLY:
                raise ScheduleValidationError(
                    ValidationCode.INVALID_FREQUENCY, "monthdays need a monthly draft"
                )

        values: dict[str, object] = {}
        if by_weekday is not None:
            values["by_weekday"] = sort_weekdays(by_weekday)
        if by_monthday is not None:
            values["by_monthday"] = sort_monthdays(by_monthday)
        if hour is not None:
            values["hour"] = hour
        if minute is not None:
            values["minute"] = round_minutes(minute, self._round_step)
        return await self._write(schedule_id, **values)

    async def discard_drafts(self, owner_id: str, subject_id: str) -> int:
        """Soft-delete every unfinished draft of the owner for a subject."""
        count = await self._store.soft_delete_drafts(
            owner_id, subject_id, self._clock()
        )
        logger.info(
            "schedule_drafts_discarded",
            extra={
                "schedule.owner_id": owner_id,
                "schedule.subject_id": subject_id,
                "count": count,
            },
        )
        return count

    async def clone_to_target(
        self,
        owner_id: str,
        subject_id: str,
        target_type: TargetType,
        target_id: str,
    ) -> int:
        """Copy the owner's enabled personal schedules onto a group or room.

        Each source keeps its own copy in the target: a copy with the same
        rule is reused, otherwise a leftover copy is rewritten in place. The first
        run of each copy is pushed past a short grace period so joining a
        conversation never fires a delivery immediately.

        Returns:
            Number of schedules created or updated.
        """
        if target_type is TargetType.INDIVIDUAL:
            raise ValueError("clone target must be a group or room")

        sources = await self._store.list_schedules(
            owner_id=owner_id,
            subject_id=subject_id,
            target_type=TargetType.INDIVIDUAL,
            enabled=True,
        )
        copies = await self._store.list_schedules(
            owner_id=owner_id,
            subject_id=subject_id,
            target_type=target_type,
            target_id=target_id,
        )
        now = self._clock()
        copied = 0
        for source, existing in pair_copies(sources, copies):
            next_run_at = compute_next_with_grace(
                source.pattern, source.timezone, now, self._clone_grace_seconds
            )
            values = {
                "frequency": source.frequency,
                "by_weekday": source.by_weekday,
                "by_monthday": source.by_monthday,
                "hour": source.hour,
                "minute": source.minute,
                "second": source.second,
                "timezone": source.timezone,
                "enabled": next_run_at is not None,
                "next_run_at": next_run_at,
            }
            if existing is not None:
                await self._store.update_fields(existing.id, now, **values)
            else:
                await self._store.create(
                    Schedule(
                        id="",
                        owner_id=owner_id,
                        subject_id=subject_id,
                        target_type=target_type,
                        target_id=target_id,
                        timezone=source.timezone,
                        frequency=source.frequency,
                        by_weekday=list(source.by_weekday),
                        by_monthday=list(source.by_monthday),
                        hour=source.hour,
                        minute=source.minute,
                        second=source.second,
                        enabled=next_run_at is not None,
                        next_run_at=next_run_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
            copied += 1

        logger.info(
            "schedules_cloned",
            extra={
                "schedule.owner_id": owner_id,
                "schedule.target_id": target_id,
                "count": copied,
            },
        )
        return copied

    async def handle_target_removed(
        self, target_type: TargetType, target_id: str
    ) -> int:
        """Soft-delete everything delivering into a conversation we left."""
        count = await self._store.soft_delete_by_target(
            target_type, target_id, self._clock()
        )
        logger.info(
            "target_schedules_deleted",
            extra={"schedule.target_id": target_id, "count": count},
        )
        return count

    async def handle_owner_blocked(self, owner_id: str) -> int:
        """Soft-delete an owner's schedules after they block the bot."""
        count = await self._store.soft_delete_by_owner(owner_id, self._clock())
        logger.info(
            "owner_schedules_deleted",
            extra={"schedule.owner_id": owner_id, "count": count},
        )
        return count
