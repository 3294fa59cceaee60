"""Schedule persistence backed by the async SQLAlchemy database.

Every mutation is an id-scoped conditional UPDATE guarded by the row's own
state (``deleted_at``, ``enabled``, ``claimed_at``), so concurrent writers
coordinate through the database rather than in-process locks.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import ColumnElement, and_, case, func, or_, select, update

from cadence.db import Database, ScheduleRecord
from cadence.scheduling.recurrence import as_utc
from cadence.scheduling.types import (
    Frequency,
    Schedule,
    TargetType,
    Weekday,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50

# How many due ids one claim attempt looks at before giving up. Losing a race
# on the earliest candidate falls through to the next one.
CLAIM_BATCH = 5

_MUTABLE_FIELDS = frozenset(
    {
        "frequency",
        "by_weekday",
        "by_monthday",
        "hour",
        "minute",
        "second",
        "timezone",
        "enabled",
        "next_run_at",
        "target_type",
        "target_id",
    }
)


def _opt_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _while_armed(value: datetime | None) -> ColumnElement[Any] | None:
    """``value`` while the row is enabled and undeleted, NULL otherwise."""
    if value is None:
        return None
    armed = and_(ScheduleRecord.enabled.is_(True), ScheduleRecord.deleted_at.is_(None))
    return case((armed, as_utc(value)), else_=None)


def _to_schedule(record: ScheduleRecord) -> Schedule:
    """Convert a database row into a Schedule, re-attaching UTC."""
    return Schedule(
        id=record.id,
        owner_id=record.owner_id,
        subject_id=record.subject_id,
        target_type=TargetType(record.target_type),
        target_id=record.target_id,
        timezone=record.timezone,
        frequency=Frequency(record.frequency) if record.frequency else None,
        by_weekday=[Weekday(d) for d in record.by_weekday or []],
        by_monthday=[int(d) for d in record.by_monthday or []],
        hour=record.hour,
        minute=record.minute,
        second=record.second or 0,
        enabled=bool(record.enabled),
        next_run_at=_opt_utc(record.next_run_at),
        claimed_at=_opt_utc(record.claimed_at),
        last_run_at=_opt_utc(record.last_run_at),
        last_error=record.last_error,
        error_count=record.error_count or 0,
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
        deleted_at=_opt_utc(record.deleted_at),
    )


def _to_column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert domain values (enums, aware datetimes) to column values."""
    unknown = set(fields) - _MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {}
    for key, value in fields.items():
        if key == "by_weekday":
            value = [Weekday(d).value for d in value]
        elif key == "by_monthday":
            value = [int(d) for d in value]
        elif key in ("frequency", "target_type") and value is not None:
            value = value.value if hasattr(value, "value") else str(value)
        elif key == "next_run_at":
            value = _opt_utc(value)
        values[key] = value
    return values


class ScheduleStore:
    """Storage for Schedule entities with an atomic claim primitive."""

    def __init__(
        self,
        database: Database,
        lease_ttl: timedelta | None = None,
    ) -> None:
        self._db = database
        if lease_ttl is not None and lease_ttl.total_seconds() <= 0:
            lease_ttl = None
        self._lease_ttl = lease_ttl

    @property
    def lease_ttl(self) -> timedelta | None:
        return self._lease_ttl

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get(
        self, schedule_id: str, *, include_deleted: bool = False
    ) -> Schedule | None:
        async with self._db.session() as session:
            record = await session.get(ScheduleRecord, schedule_id)
            if record is None:
                return None
            if record.deleted_at is not None and not include_deleted:
                return None
            return _to_schedule(record)

    async def find_active_draft(
        self, owner_id: str, subject_id: str
    ) -> Schedule | None:
        """Most recently created non-deleted, disabled schedule for the pair."""
        stmt = (
            select(ScheduleRecord)
            .where(
                ScheduleRecord.owner_id == owner_id,
                ScheduleRecord.subject_id == subject_id,
                ScheduleRecord.enabled.is_(False),
                ScheduleRecord.deleted_at.is_(None),
            )
            .order_by(ScheduleRecord.created_at.desc(), ScheduleRecord.id.desc())
            .limit(1)
        )
        async with self._db.session() as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            return _to_schedule(record) if record else None

    async def find_latest_draft(self, owner_id: str) -> Schedule | None:
        """Most recently touched draft of the owner across subjects."""
        stmt = (
            select(ScheduleRecord)
            .where(
                ScheduleRecord.owner_id == owner_id,
                ScheduleRecord.enabled.is_(False),
                ScheduleRecord.deleted_at.is_(None),
            )
            .order_by(ScheduleRecord.updated_at.desc(), ScheduleRecord.id.desc())
            .limit(1)
        )
        async with self._db.session() as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            return _to_schedule(record) if record else None

    async def list_schedules(
        self,
        *,
        owner_id: str | None = None,
        subject_id: str | None = None,
        target_type: TargetType | None = None,
        target_id: str | None = None,
        enabled: bool | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Schedule]:
        """List non-deleted schedules, newest first."""
        conditions: list[ColumnElement[bool]] = [ScheduleRecord.deleted_at.is_(None)]
        if owner_id is not None:
            conditions.append(ScheduleRecord.owner_id == owner_id)
        if subject_id is not None:
            conditions.append(ScheduleRecord.subject_id == subject_id)
        if target_type is not None:
            conditions.append(ScheduleRecord.target_type == target_type.value)
        if target_id is not None:
            conditions.append(ScheduleRecord.target_id == target_id)
        if enabled is not None:
            conditions.append(ScheduleRecord.enabled.is_(enabled))

        stmt = (
            select(ScheduleRecord)
            .where(*conditions)
            .order_by(ScheduleRecord.created_at.desc(), ScheduleRecord.id.desc())
            .limit(limit)
        )
        async with self._db.session() as session:
            records = (await session.execute(stmt)).scalars().all()
            return [_to_schedule(r) for r in records]

    async def count_due(self, now: datetime) -> int:
        """Count schedules a claim at ``now`` could pick up."""
        stmt = select(func.count()).select_from(ScheduleRecord).where(
            self._due_clause(as_utc(now))
        )
        async with self._db.session() as session:
            return int((await session.execute(stmt)).scalar_one())

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create(self, schedule: Schedule) -> Schedule:
        """Insert a new schedule. The id is generated when empty."""
        if not schedule.id:
            schedule.id = uuid.uuid4().hex[:8]
        record = ScheduleRecord(
            id=schedule.id,
            owner_id=schedule.owner_id,
            subject_id=schedule.subject_id,
            target_type=schedule.target_type.value,
            target_id=schedule.target_id,
            timezone=schedule.timezone,
            frequency=schedule.frequency.value if schedule.frequency else None,
            by_weekday=[d.value for d in schedule.by_weekday],
            by_monthday=list(schedule.by_monthday),
            hour=schedule.hour,
            minute=schedule.minute,
            second=schedule.second,
            enabled=schedule.enabled,
            next_run_at=_opt_utc(schedule.next_run_at),
            created_at=as_utc(schedule.created_at),
            updated_at=as_utc(schedule.updated_at),
        )
        async with self._db.session() as session:
            session.add(record)
        logger.debug(
            "schedule_created",
            extra={"schedule.id": schedule.id, "schedule.owner_id": schedule.owner_id},
        )
        return schedule

    async def update_fields(
        self, schedule_id: str, now: datetime, **fields: Any
    ) -> Schedule | None:
        """Write fields on a non-deleted schedule.

        Returns:
            The updated schedule, or None if it is missing or deleted.
        """
        values = _to_column_values(fields)
        values["updated_at"] = as_utc(now)
        stmt = (
            update(ScheduleRecord)
            .where(
                ScheduleRecord.id == schedule_id,
                ScheduleRecord.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            record = await session.get(ScheduleRecord, schedule_id)
            return _to_schedule(record) if record else None

    def _due_clause(self, now: datetime) -> ColumnElement[bool]:
        claimable = ScheduleRecord.claimed_at.is_(None)
        if self._lease_ttl is not None:
            claimable = or_(claimable, ScheduleRecord.claimed_at < now - self._lease_ttl)
        return and_(
            ScheduleRecord.enabled.is_(True),
            ScheduleRecord.deleted_at.is_(None),
            ScheduleRecord.next_run_at.is_not(None),
            ScheduleRecord.next_run_at <= now,
            claimable,
        )

    async def claim_one_due(
        self,
        now: datetime,
        *,
        exclude: Collection[str] = (),
    ) -> Schedule | None:
        """Atomically claim the earliest-due schedule.

        The claim is a conditional UPDATE that re-checks the due predicate, so
        of several concurrent callers exactly one sees ``rowcount == 1`` for a
        given row. A claim older than the lease TTL counts as abandoned.

        Args:
            now: Claim instant; also written to ``claimed_at``.
            exclude: Ids this caller already handled and must not take again.

        Returns:
            The claimed schedule (with ``claimed_at`` set), or None.
        """
        now = as_utc(now)
        due = self._due_clause(now)
        if exclude:
            due = and_(due, ScheduleRecord.id.not_in(list(exclude)))
        candidates_stmt = (
            select(ScheduleRecord.id)
            .where(due)
            .order_by(ScheduleRecord.next_run_at.asc(), ScheduleRecord.id.asc())
            .limit(CLAIM_BATCH)
        )
        async with self._db.session() as session:
            candidate_ids: Sequence[str] = (
                (await session.execute(candidates_stmt)).scalars().all()
            )
            for candidate_id in candidate_ids:
                claim_stmt = (
                    update(ScheduleRecord)
                    .where(ScheduleRecord.id == candidate_id, due)
                    .values(claimed_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(claim_stmt)
                if result.rowcount != 1:
                    logger.debug("claim_lost", extra={"schedule.id": candidate_id})
                    continue
                record = await session.get(ScheduleRecord, candidate_id)
                if record is None:
                    continue
                return _to_schedule(record)
        return None

    def _claimed_by(
        self, schedule_id: str, claimed_at: datetime | None
    ) -> list[ColumnElement[bool]]:
        conditions = [ScheduleRecord.id == schedule_id]
        if claimed_at is not None:
            conditions.append(ScheduleRecord.claimed_at == as_utc(claimed_at))
        return conditions

    async def mark_success(
        self,
        schedule_id: str,
        now: datetime,
        next_run_at: datetime | None,
        *,
        claimed_at: datetime | None = None,
    ) -> bool:
        """Release a claim after a successful run.

        When ``claimed_at`` is given the write only applies if the row still
        carries that claim, so a run whose lease was taken over cannot clobber
        the new holder. A schedule disabled or deleted mid-run keeps a NULL
        ``next_run_at``.
        """
        now = as_utc(now)
        stmt = (
            update(ScheduleRecord)
            .where(*self._claimed_by(schedule_id, claimed_at))
            .values(
                claimed_at=None,
                last_run_at=now,
                next_run_at=_while_armed(next_run_at),
                last_error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
        if result.rowcount != 1:
            logger.warning("claim_release_skipped", extra={"schedule.id": schedule_id})
            return False
        return True

    async def mark_failure(
        self,
        schedule_id: str,
        now: datetime,
        error: str,
        *,
        next_run_at: datetime | None = None,
        claimed_at: datetime | None = None,
    ) -> bool:
        """Release a claim after a failed run.

        ``next_run_at`` replaces the stored value only when given; otherwise
        the schedule keeps its existing next occurrence.
        """
        now = as_utc(now)
        values: dict[str, Any] = {
            "claimed_at": None,
            "last_run_at": now,
            "last_error": error,
            "error_count": ScheduleRecord.error_count + 1,
            "updated_at": now,
        }
        if next_run_at is not None:
            values["next_run_at"] = _while_armed(next_run_at)
        stmt = (
            update(ScheduleRecord)
            .where(*self._claimed_by(schedule_id, claimed_at))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
        if result.rowcount != 1:
            logger.warning("claim_release_skipped", extra={"schedule.id": schedule_id})
            return False
        return True

    async def _soft_delete_where(
        self, now: datetime, *conditions: ColumnElement[bool]
    ) -> int:
        now = as_utc(now)
        stmt = (
            update(ScheduleRecord)
            .where(ScheduleRecord.deleted_at.is_(None), *conditions)
            .values(deleted_at=now, enabled=False, next_run_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
        return int(result.rowcount or 0)

    async def soft_delete(self, schedule_id: str, now: datetime) -> bool:
        return await self._soft_delete_where(now, ScheduleRecord.id == schedule_id) == 1

    async def soft_delete_drafts(
        self, owner_id: str, subject_id: str, now: datetime
    ) -> int:
        """Soft-delete every unfinished (disabled) draft of the owner for a subject."""
        return await self._soft_delete_where(
            now,
            ScheduleRecord.owner_id == owner_id,
            ScheduleRecord.subject_id == subject_id,
            ScheduleRecord.enabled.is_(False),
        )

    async def soft_delete_by_target(
        self,
        target_type: TargetType,
        target_id: str,
        now: datetime,
        *,
        subject_id: str | None = None,
    ) -> int:
        """Soft-delete schedules delivering into a conversation."""
        conditions = [
            ScheduleRecord.target_type == target_type.value,
            ScheduleRecord.target_id == target_id,
        ]
        if subject_id is not None:
            conditions.append(ScheduleRecord.subject_id == subject_id)
        return await self._soft_delete_where(now, *conditions)

    async def soft_delete_by_owner(
        self,
        owner_id: str,
        now: datetime,
        *,
        subject_id: str | None = None,
    ) -> int:
        conditions = [ScheduleRecord.owner_id == owner_id]
        if subject_id is not None:
            conditions.append(ScheduleRecord.subject_id == subject_id)
        return await self._soft_delete_where(now, *conditions)
