"""Schedule types.

Public types:
- Schedule: a persisted recurring delivery (draft or armed)
- RecurrencePattern: the calendar part of a schedule
- TargetContext: what the content generator learns about a delivery
- TickResult: summary of one dispatcher tick
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

# Injectable wall-clock source; must return an aware UTC datetime.
Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


class Frequency(StrEnum):
    """How often a schedule recurs."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Weekday(StrEnum):
    """Weekday tags, Monday first."""

    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def number(self) -> int:
        """Weekday number matching ``datetime.weekday()`` (Monday is 0)."""
        return WEEKDAY_ORDER.index(self)

    @property
    def label(self) -> str:
        return WEEKDAY_LABELS[self]


WEEKDAY_ORDER: tuple[Weekday, ...] = tuple(Weekday)

WEEKDAY_LABELS: dict[Weekday, str] = {
    Weekday.MO: "Mon",
    Weekday.TU: "Tue",
    Weekday.WE: "Wed",
    Weekday.TH: "Thu",
    Weekday.FR: "Fri",
    Weekday.SA: "Sat",
    Weekday.SU: "Sun",
}

WORKDAYS: tuple[Weekday, ...] = WEEKDAY_ORDER[:5]
WEEKEND: tuple[Weekday, ...] = WEEKDAY_ORDER[5:]


class TargetType(StrEnum):
    """Kind of conversation a schedule delivers into."""

    INDIVIDUAL = "individual"
    GROUP = "group"
    ROOM = "room"


def sort_weekdays(days: list[Weekday] | tuple[Weekday, ...]) -> list[Weekday]:
    """Deduplicate and sort weekdays Monday first."""
    return sorted(set(days), key=lambda d: d.number)


def sort_monthdays(days: list[int] | tuple[int, ...]) -> list[int]:
    """Deduplicate, drop out-of-range values and sort days of month."""
    return sorted({d for d in days if 1 <= d <= 31})


@dataclass(frozen=True)
class RecurrencePattern:
    """Calendar rule: frequency, day selection and time of day."""

    frequency: Frequency | None = None
    by_weekday: tuple[Weekday, ...] = ()
    by_monthday: tuple[int, ...] = ()
    hour: int | None = None
    minute: int | None = None
    second: int = 0


@dataclass
class Schedule:
    """A recurring delivery of a subject's content to a conversation."""

    id: str
    owner_id: str
    subject_id: str
    target_type: TargetType
    target_id: str
    timezone: str
    frequency: Frequency | None = None
    by_weekday: list[Weekday] = field(default_factory=list)
    by_monthday: list[int] = field(default_factory=list)
    hour: int | None = None
    minute: int | None = None
    second: int = 0
    enabled: bool = False
    next_run_at: datetime | None = None
    claimed_at: datetime | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None
    error_count: int = 0
    created_at: datetime = field(default_factory=system_clock)
    updated_at: datetime = field(default_factory=system_clock)
    deleted_at: datetime | None = None

    @property
    def pattern(self) -> RecurrencePattern:
        return RecurrencePattern(
            frequency=self.frequency,
            by_weekday=tuple(self.by_weekday),
            by_monthday=tuple(self.by_monthday),
            hour=self.hour,
            minute=self.minute,
            second=self.second,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize for the HTTP API."""

        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "subject_id": self.subject_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "timezone": self.timezone,
            "frequency": self.frequency.value if self.frequency else None,
            "by_weekday": [d.value for d in self.by_weekday],
            "by_monthday": list(self.by_monthday),
            "hour": self.hour,
            "minute": self.minute,
            "second": self.second,
            "enabled": self.enabled,
            "next_run_at": _iso(self.next_run_at),
            "last_run_at": _iso(self.last_run_at),
            "last_error": self.last_error,
            "error_count": self.error_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class TargetContext:
    """Delivery context handed to the content generator."""

    schedule_id: str
    owner_id: str
    target_type: TargetType
    target_id: str
    timezone: str
    scheduled_for: datetime | None = None


@dataclass
class TickResult:
    """Outcome of one dispatcher tick."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
