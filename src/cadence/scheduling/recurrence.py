"""Next-occurrence calculation for recurrence patterns.

All results are aware UTC datetimes strictly later than the reference
instant. Wall-clock times are interpreted in the schedule's IANA timezone,
so daylight-saving shifts are honoured. A local time that falls into a DST
gap resolves with ``fold=0`` (the pre-transition offset).
"""

from __future__ import annotations

import calendar
import logging
import math
from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cadence.scheduling.types import (
    Frequency,
    RecurrencePattern,
    sort_monthdays,
    sort_weekdays,
)

logger = logging.getLogger(__name__)

DEFAULT_HOUR = 9
DEFAULT_MINUTE = 0
DEFAULT_SECOND = 0

# Search windows. Any weekday set repeats within two weeks; every day of
# month 1-31 occurs at least once in any 18 consecutive months.
WEEKLY_WINDOW_DAYS = 14
MONTHLY_WINDOW_MONTHS = 18


def resolve_zone(name: str | None) -> tzinfo:
    """Return the named IANA zone, or UTC when it is unknown."""
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("invalid_timezone", extra={"schedule.timezone": name})
        return UTC


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def round_minutes(raw: int, step: int) -> int:
    """Round a minute value to the nearest step, clamped to 0-59.

    Halves round up. Rounding that would reach 60 is clamped to 59 rather than
    carried into the next hour.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    rounded = math.floor(raw / step + 0.5) * step
    return max(0, min(59, rounded))


def infer_frequency(pattern: RecurrencePattern) -> Frequency:
    """Guess the frequency from populated fields: monthday beats weekday."""
    if pattern.by_monthday:
        return Frequency.MONTHLY
    if pattern.by_weekday:
        return Frequency.WEEKLY
    return Frequency.DAILY


def _add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def compute_next(
    pattern: RecurrencePattern,
    timezone: str | None,
    from_: datetime,
) -> datetime | None:
    """Compute the next occurrence strictly after ``from_``.

    Args:
        pattern: Frequency, day selection and time of day. Missing time
            fields default to 09:00:00.
        timezone: IANA zone the time of day is expressed in.
        from_: Reference instant.

    Returns:
        The next occurrence in UTC, or None when the pattern's weekday or
        monthday set is empty.
    """
    zone = resolve_zone(timezone)
    reference = as_utc(from_)
    frequency = pattern.frequency or infer_frequency(pattern)

    hour = DEFAULT_HOUR if pattern.hour is None else pattern.hour
    minute = DEFAULT_MINUTE if pattern.minute is None else pattern.minute
    second = pattern.second or DEFAULT_SECOND

    def at(day: date) -> datetime:
        local = datetime(
            day.year, day.month, day.day, hour, minute, second, tzinfo=zone
        )
        return local.astimezone(UTC)

    today = reference.astimezone(zone).date()

    match frequency:
        case Frequency.DAILY:
            for offset in range(3):
                candidate = at(today + timedelta(days=offset))
                if candidate > reference:
                    return candidate
            return None

        case Frequency.WEEKLY:
            wanted = {day.number for day in pattern.by_weekday}
            if not wanted:
                return None
            for offset in range(WEEKLY_WINDOW_DAYS):
                day = today + timedelta(days=offset)
                if day.weekday() not in wanted:
                    continue
                candidate = at(day)
                if candidate > reference:
                    return candidate
            return None

        case Frequency.MONTHLY:
            days = sort_monthdays(pattern.by_monthday)
            if not days:
                return None
            for offset in range(MONTHLY_WINDOW_MONTHS):
                year, month = _add_months(today.year, today.month, offset)
                last_day = calendar.monthrange(year, month)[1]
                for day in days:
                    # Months without this day are skipped, never rolled over.
                    if day > last_day:
                        continue
                    candidate = at(date(year, month, day))
                    if candidate > reference:
                        return candidate
            return None


def compute_next_with_grace(
    pattern: RecurrencePattern,
    timezone: str | None,
    from_: datetime,
    grace_seconds: int,
) -> datetime | None:
    """Like compute_next, but never earlier than ``from_ + grace``."""
    return compute_next(
        pattern, timezone, as_utc(from_) + timedelta(seconds=max(0, grace_seconds))
    )


def format_time(hour: int | None, minute: int | None) -> str:
    h = DEFAULT_HOUR if hour is None else hour
    m = DEFAULT_MINUTE if minute is None else minute
    return f"{h:02d}:{m:02d}"


def describe(pattern: RecurrencePattern) -> str:
    """Short human summary, e.g. ``Weekly on Mon, Wed at 09:05``."""
    frequency = pattern.frequency or infer_frequency(pattern)
    time_text = format_time(pattern.hour, pattern.minute)
    match frequency:
        case Frequency.DAILY:
            return f"Daily at {time_text}"
        case Frequency.WEEKLY:
            days = ", ".join(d.label for d in sort_weekdays(pattern.by_weekday))
            return f"Weekly on {days or 'no days'} at {time_text}"
        case Frequency.MONTHLY:
            days = ", ".join(str(d) for d in sort_monthdays(pattern.by_monthday))
            return f"Monthly on day {days or '?'} at {time_text}"
