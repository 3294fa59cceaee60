"""Tests for next-occurrence calculation."""

from datetime import UTC, datetime, timedelta

import pytest

from cadence.scheduling.recurrence import (
    compute_next,
    compute_next_with_grace,
    describe,
    infer_frequency,
    resolve_zone,
    round_minutes,
)
from cadence.scheduling.types import Frequency, RecurrencePattern, Weekday


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestRoundMinutes:
    def test_rounds_to_nearest_step(self):
        assert round_minutes(3, 5) == 5
        assert round_minutes(2, 5) == 0
        assert round_minutes(57, 5) == 55
        assert round_minutes(30, 15) == 30

    def test_halves_round_up(self):
        assert round_minutes(5, 10) == 10
        assert round_minutes(15, 30) == 30

    def test_clamped_below_sixty(self):
        assert round_minutes(58, 5) == 59
        assert round_minutes(59, 10) == 59

    def test_step_one_is_identity(self):
        assert [round_minutes(m, 1) for m in range(60)] == list(range(60))

    def test_invalid_step(self):
        with pytest.raises(ValueError):
            round_minutes(10, 0)


class TestInferFrequency:
    def test_monthday_beats_weekday(self):
        pattern = RecurrencePattern(by_weekday=(Weekday.MO,), by_monthday=(3,))
        assert infer_frequency(pattern) is Frequency.MONTHLY

    def test_weekday(self):
        assert infer_frequency(RecurrencePattern(by_weekday=(Weekday.FR,))) is (
            Frequency.WEEKLY
        )

    def test_default_daily(self):
        assert infer_frequency(RecurrencePattern()) is Frequency.DAILY


class TestDaily:
    def test_later_today(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        # 08:59 in Tokyo
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 5, 23, 59)) == utc(
            2025, 1, 6, 0, 0
        )

    def test_exact_match_moves_to_next_day(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 6, 0, 0)) == utc(
            2025, 1, 7, 0, 0
        )

    def test_missing_time_defaults_to_nine(self):
        pattern = RecurrencePattern(Frequency.DAILY)
        assert compute_next(pattern, "UTC", utc(2025, 1, 6, 10, 0)) == utc(
            2025, 1, 7, 9, 0
        )

    def test_naive_reference_is_utc(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=12, minute=30)
        assert compute_next(pattern, "UTC", datetime(2025, 1, 6, 8, 0)) == utc(
            2025, 1, 6, 12, 30
        )

    def test_unknown_timezone_falls_back_to_utc(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        assert compute_next(pattern, "Not/AZone", utc(2025, 1, 6, 0, 0)) == utc(
            2025, 1, 6, 9, 0
        )
        assert resolve_zone(None) is UTC


class TestWeekly:
    def test_same_day_later(self):
        pattern = RecurrencePattern(
            Frequency.WEEKLY, by_weekday=(Weekday.MO, Weekday.WE), hour=9, minute=5
        )
        # Monday 09:00 in Tokyo
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 6, 0, 0)) == utc(
            2025, 1, 6, 0, 5
        )

    def test_skips_to_next_selected_day(self):
        pattern = RecurrencePattern(
            Frequency.WEEKLY, by_weekday=(Weekday.MO, Weekday.WE), hour=9, minute=5
        )
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 6, 0, 5)) == utc(
            2025, 1, 8, 0, 5
        )

    def test_tuesday_morning_goes_to_wednesday(self):
        pattern = RecurrencePattern(
            Frequency.WEEKLY, by_weekday=(Weekday.MO, Weekday.WE), hour=9, minute=5
        )
        # Tuesday 08:00 in Tokyo: Wednesday this week, not next Monday
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 6, 23, 0)) == utc(
            2025, 1, 8, 0, 5
        )

    def test_wraps_to_next_week(self):
        pattern = RecurrencePattern(
            Frequency.WEEKLY, by_weekday=(Weekday.MO,), hour=9, minute=0
        )
        assert compute_next(pattern, "UTC", utc(2025, 1, 6, 9, 0)) == utc(
            2025, 1, 13, 9, 0
        )

    def test_empty_set_has_no_occurrence(self):
        pattern = RecurrencePattern(Frequency.WEEKLY, hour=9, minute=0)
        assert compute_next(pattern, "UTC", utc(2025, 1, 6)) is None


class TestMonthly:
    def test_skips_months_without_the_day(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, by_monthday=(31,), hour=9)
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 2, 1)) == utc(
            2025, 3, 31, 0, 0
        )

    def test_last_minute_of_january_skips_february(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, by_monthday=(31,), hour=9)
        # Jan 31 23:59 in Tokyo
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 31, 14, 59)) == utc(
            2025, 3, 31, 0, 0
        )

    def test_day_29_outside_leap_year(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, by_monthday=(29,), hour=9)
        assert compute_next(pattern, "Asia/Tokyo", utc(2025, 1, 30)) == utc(
            2025, 3, 29, 0, 0
        )

    def test_day_29_in_leap_year(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, by_monthday=(29,), hour=9)
        assert compute_next(pattern, "Asia/Tokyo", utc(2024, 2, 1)) == utc(
            2024, 2, 29, 0, 0
        )

    def test_earliest_of_several_days(self):
        pattern = RecurrencePattern(
            Frequency.MONTHLY, by_monthday=(20, 5), hour=8, minute=30
        )
        assert compute_next(pattern, "UTC", utc(2025, 1, 10)) == utc(
            2025, 1, 20, 8, 30
        )

    def test_empty_set_has_no_occurrence(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, hour=9)
        assert compute_next(pattern, "UTC", utc(2025, 1, 6)) is None


class TestDaylightSaving:
    def test_follows_offset_change(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        # Saturday 10:00 EST; Sunday 09:00 is already EDT
        assert compute_next(
            pattern, "America/New_York", utc(2025, 3, 8, 15, 0)
        ) == utc(2025, 3, 9, 13, 0)

    def test_gap_time_uses_pre_transition_offset(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=2, minute=30)
        # 02:30 does not exist on 2025-03-09 in New York
        assert compute_next(
            pattern, "America/New_York", utc(2025, 3, 9, 5, 0)
        ) == utc(2025, 3, 9, 7, 30)

    def test_repeated_time_uses_first_occurrence(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=1, minute=30)
        assert compute_next(
            pattern, "America/New_York", utc(2025, 11, 2, 4, 0)
        ) == utc(2025, 11, 2, 5, 30)


class TestStrictlyLater:
    @pytest.mark.parametrize(
        "pattern",
        [
            RecurrencePattern(Frequency.DAILY, hour=0, minute=0),
            RecurrencePattern(Frequency.WEEKLY, by_weekday=(Weekday.SU,), hour=23),
            RecurrencePattern(Frequency.MONTHLY, by_monthday=(1, 31), hour=12),
        ],
    )
    def test_result_always_after_reference(self, pattern: RecurrencePattern):
        reference = utc(2025, 1, 1)
        for _ in range(60):
            following = compute_next(pattern, "Europe/Berlin", reference)
            assert following is not None
            assert following > reference
            assert following.tzinfo is UTC
            reference = following


class TestGrace:
    def test_occurrence_inside_grace_is_skipped(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        assert compute_next_with_grace(
            pattern, "Asia/Tokyo", utc(2025, 1, 5, 23, 59, 30), 60
        ) == utc(2025, 1, 7, 0, 0)

    def test_zero_grace_matches_compute_next(self):
        pattern = RecurrencePattern(Frequency.DAILY, hour=9, minute=0)
        now = utc(2025, 1, 5, 23, 59, 30)
        assert compute_next_with_grace(pattern, "Asia/Tokyo", now, 0) == (
            compute_next(pattern, "Asia/Tokyo", now)
        )
        assert compute_next_with_grace(pattern, "Asia/Tokyo", now, 0) - now < (
            timedelta(minutes=1)
        )


class TestDescribe:
    def test_weekly(self):
        pattern = RecurrencePattern(
            Frequency.WEEKLY, by_weekday=(Weekday.WE, Weekday.MO), hour=9, minute=5
        )
        assert describe(pattern) == "Weekly on Mon, Wed at 09:05"

    def test_monthly(self):
        pattern = RecurrencePattern(Frequency.MONTHLY, by_monthday=(15,), hour=18)
        assert describe(pattern) == "Monthly on day 15 at 18:00"

    def test_daily(self):
        assert describe(RecurrencePattern(hour=7, minute=30)) == "Daily at 07:30"
