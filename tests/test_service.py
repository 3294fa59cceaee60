"""Tests for schedule lifecycle operations."""

from datetime import UTC, datetime

import pytest

from cadence.scheduling.errors import (
    ScheduleForbiddenError,
    ScheduleNotFoundError,
    ScheduleValidationError,
    ValidationCode,
)
from cadence.scheduling.service import SchedulePatch, ScheduleService, normalize_days
from cadence.scheduling.types import Frequency, TargetType, Weekday
from tests.conftest import FakeClock, make_enabled


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestNormalizeDays:
    def test_daily_clears_both(self):
        assert normalize_days(Frequency.DAILY, [Weekday.MO], [3]) == ([], [])

    def test_weekly_defaults_to_monday(self):
        assert normalize_days(Frequency.WEEKLY, [], [3]) == ([Weekday.MO], [])

    def test_monthly_defaults_to_first(self):
        assert normalize_days(Frequency.MONTHLY, [Weekday.FR], []) == ([], [1])

    def test_without_defaults(self):
        assert normalize_days(Frequency.WEEKLY, [], [], fill_defaults=False) == (
            [],
            [],
        )

    def test_sorts_and_dedupes(self):
        weekdays, _ = normalize_days(
            Frequency.WEEKLY, [Weekday.FR, Weekday.MO, Weekday.FR], []
        )
        assert weekdays == [Weekday.MO, Weekday.FR]


class TestDrafts:
    async def test_create_draft(self, service: ScheduleService):
        draft = await service.create_draft(
            "100", "quote", TargetType.INDIVIDUAL, "100", hour=9, minute=3
        )
        assert draft.enabled is False
        assert draft.next_run_at is None
        assert draft.timezone == "Asia/Tokyo"
        assert draft.minute == 5

    async def test_invalid_time_rejected(self, service: ScheduleService):
        with pytest.raises(ScheduleValidationError) as exc_info:
            await service.create_draft(
                "100", "quote", TargetType.INDIVIDUAL, "100", hour=24, minute=0
            )
        assert exc_info.value.code is ValidationCode.INVALID_TIME

    async def test_reset_draft_clears_pattern(self, service: ScheduleService):
        draft = await service.create_draft(
            "100",
            "quote",
            TargetType.INDIVIDUAL,
            "100",
            frequency=Frequency.WEEKLY,
            by_weekday=[Weekday.TU],
            hour=7,
            minute=0,
        )
        reset = await service.reset_draft(
            draft.id, Frequency.MONTHLY, TargetType.GROUP, "-42"
        )
        assert reset.frequency is Frequency.MONTHLY
        assert reset.by_weekday == []
        assert reset.hour is None and reset.minute is None
        assert (reset.target_type, reset.target_id) == (TargetType.GROUP, "-42")

    async def test_update_draft_allows_empty_weekdays(self, service: ScheduleService):
        draft = await service.create_draft(
            "100",
            "quote",
            TargetType.INDIVIDUAL,
            "100",
            frequency=Frequency.WEEKLY,
            by_weekday=[Weekday.TU],
        )
        updated = await service.update_draft(draft.id, by_weekday=[])
        assert updated.by_weekday == []

        updated = await service.update_draft(draft.id, hour=8, minute=58)
        assert (updated.hour, updated.minute) == (8, 59)

    async def test_update_draft_rejects_other_day_kind(self, service: ScheduleService):
        weekly = await service.create_draft(
            "100", "quote", TargetType.INDIVIDUAL, "100", frequency=Frequency.WEEKLY
        )
        monthly = await service.create_draft(
            "100", "news", TargetType.INDIVIDUAL, "100", frequency=Frequency.MONTHLY
        )

        with pytest.raises(ScheduleValidationError) as exc_info:
            await service.update_draft(weekly.id, by_monthday=[15])
        assert exc_info.value.code is ValidationCode.INVALID_FREQUENCY
        with pytest.raises(ScheduleValidationError):
            await service.update_draft(monthly.id, by_weekday=[Weekday.MO])

        assert (await service.get(weekly.id)).by_monthday == []
        assert (await service.get(monthly.id)).by_weekday == []

    async def test_discard_drafts(self, service: ScheduleService):
        draft = await service.create_draft(
            "100", "quote", TargetType.INDIVIDUAL, "100"
        )
        assert await service.discard_drafts("100", "quote") == 1
        with pytest.raises(ScheduleNotFoundError):
            await service.get(draft.id)


class TestEnable:
    async def test_computes_next_run(self, service: ScheduleService):
        # The clock sits exactly on 09:00 in Tokyo, so today is already past.
        schedule = await make_enabled(service)
        assert schedule.enabled is True
        assert schedule.next_run_at == utc(2025, 1, 7, 0, 0)

    @pytest.mark.parametrize(
        ("frequency", "hour", "code"),
        [
            (Frequency.DAILY, None, ValidationCode.TIME_REQUIRED),
            (Frequency.WEEKLY, 9, ValidationCode.WEEKDAY_REQUIRED),
            (Frequency.MONTHLY, 9, ValidationCode.MONTHDAY_REQUIRED),
        ],
    )
    async def test_missing_fields(
        self,
        service: ScheduleService,
        frequency: Frequency,
        hour: int | None,
        code: ValidationCode,
    ):
        draft = await service.create_draft(
            "100",
            "quote",
            TargetType.INDIVIDUAL,
            "100",
            frequency=frequency,
            hour=hour,
            minute=0 if hour is not None else None,
        )
        with pytest.raises(ScheduleValidationError) as exc_info:
            await service.enable(draft.id)
        assert exc_info.value.code is code

        stored = await service.get(draft.id)
        assert stored.enabled is False

    async def test_enforces_owner(self, service: ScheduleService):
        draft = await service.create_draft(
            "100", "quote", TargetType.INDIVIDUAL, "100", hour=9, minute=0
        )
        with pytest.raises(ScheduleForbiddenError):
            await service.enable(draft.id, owner_id="200")

    async def test_unknown_schedule(self, service: ScheduleService):
        with pytest.raises(ScheduleNotFoundError):
            await service.enable("missing")

    async def test_reenable_recomputes_from_now(
        self, service: ScheduleService, clock: FakeClock
    ):
        schedule = await make_enabled(service)
        await service.disable(schedule.id)
        clock.advance(days=3)

        enabled = await service.enable(schedule.id)
        assert enabled.next_run_at == utc(2025, 1, 10, 0, 0)


class TestDisable:
    async def test_clears_next_run(self, service: ScheduleService):
        schedule = await make_enabled(service)
        disabled = await service.disable(schedule.id)
        assert disabled.enabled is False
        assert disabled.next_run_at is None


class TestPatch:
    async def test_rearms_enabled_schedule(self, service: ScheduleService):
        schedule = await make_enabled(service)
        patched = await service.patch(schedule.id, SchedulePatch(hour=10))
        # 10:00 in Tokyo is still ahead today
        assert patched.next_run_at == utc(2025, 1, 6, 1, 0)

    async def test_weekly_without_days_defaults_to_monday(
        self, service: ScheduleService
    ):
        schedule = await make_enabled(service)
        patched = await service.patch(
            schedule.id, SchedulePatch(frequency=Frequency.WEEKLY)
        )
        assert patched.by_weekday == [Weekday.MO]
        assert patched.next_run_at == utc(2025, 1, 13, 0, 0)

    async def test_timezone_change(self, service: ScheduleService):
        schedule = await make_enabled(service)
        patched = await service.patch(schedule.id, SchedulePatch(timezone="UTC"))
        assert patched.timezone == "UTC"
        assert patched.next_run_at == utc(2025, 1, 6, 9, 0)

    async def test_draft_stays_unarmed(self, service: ScheduleService):
        draft = await service.create_draft(
            "100", "quote", TargetType.INDIVIDUAL, "100", hour=9, minute=0
        )
        patched = await service.patch(draft.id, SchedulePatch(minute=33))
        assert patched.minute == 35
        assert patched.next_run_at is None

    async def test_enforces_owner(self, service: ScheduleService):
        schedule = await make_enabled(service)
        with pytest.raises(ScheduleForbiddenError):
            await service.patch(schedule.id, SchedulePatch(hour=1), owner_id="200")


class TestDelete:
    async def test_soft_deletes(self, service: ScheduleService):
        schedule = await make_enabled(service)
        await service.delete(schedule.id)

        with pytest.raises(ScheduleNotFoundError):
            await service.get(schedule.id)
        deleted = await service.store.get(schedule.id, include_deleted=True)
        assert deleted is not None
        assert deleted.deleted_at is not None

    async def test_delete_twice(self, service: ScheduleService):
        schedule = await make_enabled(service)
        await service.delete(schedule.id)
        with pytest.raises(ScheduleNotFoundError):
            await service.delete(schedule.id)


class TestCloneToTarget:
    async def test_copies_with_grace(self, service: ScheduleService, clock: FakeClock):
        await make_enabled(service)
        clock.now = utc(2025, 1, 6, 23, 59, 30)

        assert await service.clone_to_target(
            "100", "quote", TargetType.GROUP, "-42"
        ) == 1
        copies = await service.list_schedules(
            target_type=TargetType.GROUP, target_id="-42"
        )
        assert len(copies) == 1
        assert copies[0].enabled is True
        # 09:00 Tokyo on the 7th is only 30s away, inside the grace period
        assert copies[0].next_run_at == utc(2025, 1, 8, 0, 0)

    async def test_repeat_updates_in_place(self, service: ScheduleService):
        source = await make_enabled(service)
        await service.clone_to_target("100", "quote", TargetType.GROUP, "-42")
        await service.patch(source.id, SchedulePatch(hour=18))
        await service.clone_to_target("100", "quote", TargetType.GROUP, "-42")

        copies = await service.list_schedules(target_type=TargetType.GROUP)
        assert len(copies) == 1
        assert copies[0].hour == 18

    async def test_each_source_keeps_its_own_copy(self, service: ScheduleService):
        await make_enabled(service, hour=9)
        await make_enabled(service, hour=18)

        assert await service.clone_to_target(
            "100", "quote", TargetType.GROUP, "-42"
        ) == 2
        first = await service.list_schedules(target_type=TargetType.GROUP)
        assert sorted(s.hour for s in first) == [9, 18]

        assert await service.clone_to_target(
            "100", "quote", TargetType.GROUP, "-42"
        ) == 2
        second = await service.list_schedules(target_type=TargetType.GROUP)
        assert sorted(s.hour for s in second) == [9, 18]
        assert {s.id for s in second} == {s.id for s in first}

    async def test_rejects_individual_target(self, service: ScheduleService):
        with pytest.raises(ValueError):
            await service.clone_to_target(
                "100", "quote", TargetType.INDIVIDUAL, "100"
            )


class TestCleanup:
    async def test_target_removed(self, service: ScheduleService):
        group = await make_enabled(
            service, target_type=TargetType.GROUP, target_id="-42"
        )
        personal = await make_enabled(service)

        assert await service.handle_target_removed(TargetType.GROUP, "-42") == 1
        with pytest.raises(ScheduleNotFoundError):
            await service.get(group.id)
        assert (await service.get(personal.id)).enabled is True

    async def test_owner_blocked(self, service: ScheduleService):
        await make_enabled(service)
        await make_enabled(service, subject_id="news")
        other = await make_enabled(service, owner_id="200", target_id="200")

        assert await service.handle_owner_blocked("100") == 2
        assert (await service.get(other.id)).enabled is True
