"""Tests for the claim-drain dispatcher."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from cadence.scheduling.dispatcher import MAX_ERROR_LENGTH, Dispatcher
from cadence.scheduling.service import ScheduleService
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import Frequency, TargetType, Weekday
from tests.conftest import FakeClock, FakeGenerator, FakeTransport, make_enabled


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestTick:
    async def test_nothing_due(self, dispatcher: Dispatcher, service: ScheduleService):
        await make_enabled(service)
        result = await dispatcher.tick("rid1")
        assert (result.processed, result.succeeded, result.failed) == (0, 0, 0)

    async def test_runs_due_schedule_and_rearms(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        generator: FakeGenerator,
        transport: FakeTransport,
    ):
        schedule = await make_enabled(service)
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick("rid1")

        assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
        assert transport.sent == [
            (TargetType.INDIVIDUAL, "100", ["Hello from the schedule"])
        ]
        subject_id, context = generator.calls[0]
        assert subject_id == "quote"
        assert context.schedule_id == schedule.id
        assert context.scheduled_for == utc(2025, 1, 7, 0, 0)

        stored = await service.get(schedule.id)
        assert stored.claimed_at is None
        assert stored.last_run_at == utc(2025, 1, 7, 0, 0)
        assert stored.next_run_at == utc(2025, 1, 8, 0, 0)

    async def test_drains_every_due_schedule(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        transport: FakeTransport,
    ):
        await make_enabled(service, hour=9)
        await make_enabled(service, subject_id="news", hour=8)
        await make_enabled(
            service,
            owner_id="200",
            target_id="200",
            frequency=Frequency.WEEKLY,
            by_weekday=[Weekday.FR],
        )
        clock.now = utc(2025, 1, 7, 1, 0)

        result = await dispatcher.tick()

        assert result.processed == 2
        # Earliest due first: 08:00 before 09:00 Tokyo
        assert [sent[1] for sent in transport.sent] == ["100", "100"]
        assert await service.store.count_due(clock.now) == 0

    async def test_second_tick_finds_nothing(
        self, dispatcher: Dispatcher, service: ScheduleService, clock: FakeClock
    ):
        await make_enabled(service)
        clock.now = utc(2025, 1, 7, 0, 0)

        assert (await dispatcher.tick()).processed == 1
        assert (await dispatcher.tick()).processed == 0


class TestFailures:
    async def test_generator_failure_is_recorded(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        generator: FakeGenerator,
        transport: FakeTransport,
    ):
        failing = await make_enabled(service)
        healthy = await make_enabled(service, subject_id="news")
        generator.fail_for.add(failing.id)
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick()

        assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
        stored = await service.get(failing.id)
        assert stored.last_error == "generator exploded"
        assert stored.error_count == 1
        assert stored.claimed_at is None
        # Kept due; the next tick retries it
        assert stored.next_run_at == utc(2025, 1, 7, 0, 0)
        assert (await service.get(healthy.id)).next_run_at == utc(2025, 1, 8, 0, 0)
        assert len(transport.sent) == 1

    async def test_failed_schedule_not_retried_within_tick(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        transport: FakeTransport,
    ):
        await make_enabled(service)
        transport.fail = True
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick()
        assert (result.processed, result.failed) == (1, 1)

        transport.fail = False
        retried = await dispatcher.tick()
        assert (retried.processed, retried.succeeded) == (1, 1)

    async def test_empty_content_fails(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        generator: FakeGenerator,
    ):
        schedule = await make_enabled(service)
        generator.content = ["  ", ""]
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick()
        assert result.failed == 1
        assert (await service.get(schedule.id)).last_error == "empty response"

    async def test_error_text_is_truncated(
        self,
        dispatcher: Dispatcher,
        service: ScheduleService,
        clock: FakeClock,
        transport: FakeTransport,
    ):
        schedule = await make_enabled(service)
        transport.deliver = AsyncMock(side_effect=RuntimeError("x" * 2000))
        clock.now = utc(2025, 1, 7, 0, 0)

        await dispatcher.tick()
        stored = await service.get(schedule.id)
        assert stored.last_error is not None
        assert len(stored.last_error) == MAX_ERROR_LENGTH

    async def test_failure_backoff(
        self,
        store: ScheduleStore,
        service: ScheduleService,
        clock: FakeClock,
        generator: FakeGenerator,
        transport: FakeTransport,
    ):
        dispatcher = Dispatcher(
            store,
            generator,
            transport,
            clock=clock,
            failure_backoff=timedelta(minutes=10),
        )
        schedule = await make_enabled(service)
        transport.fail = True
        clock.now = utc(2025, 1, 7, 0, 0)

        await dispatcher.tick()
        stored = await service.get(schedule.id)
        assert stored.next_run_at == utc(2025, 1, 7, 0, 10)

    async def test_store_failure_aborts_tick(
        self, generator: FakeGenerator, transport: FakeTransport, clock: FakeClock
    ):
        store = AsyncMock(spec=ScheduleStore)
        store.claim_one_due.side_effect = RuntimeError("database is locked")
        dispatcher = Dispatcher(store, generator, transport, clock=clock)

        with pytest.raises(RuntimeError, match="database is locked"):
            await dispatcher.tick()
        assert generator.calls == []


class ChangingGenerator(FakeGenerator):
    """Generator that disables or deletes its schedule while running."""

    def __init__(self, service: ScheduleService, *, delete: bool = False):
        super().__init__()
        self.service = service
        self.delete = delete

    async def generate(self, subject_id, context):
        if self.delete:
            await self.service.delete(context.schedule_id)
        else:
            await self.service.disable(context.schedule_id)
        return await super().generate(subject_id, context)


class TestChangedMidRun:
    async def test_disabled_during_run_stays_unarmed(
        self,
        store: ScheduleStore,
        service: ScheduleService,
        clock: FakeClock,
        transport: FakeTransport,
    ):
        generator = ChangingGenerator(service)
        dispatcher = Dispatcher(store, generator, transport, clock=clock)
        schedule = await make_enabled(service)
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick()

        assert result.succeeded == 1
        stored = await service.get(schedule.id)
        assert stored.enabled is False
        assert stored.next_run_at is None
        assert stored.claimed_at is None
        assert stored.last_run_at == utc(2025, 1, 7, 0, 0)

        clock.now = utc(2025, 1, 9, 0, 0)
        assert (await dispatcher.tick()).processed == 0

    async def test_deleted_during_failed_run_stays_unarmed(
        self,
        store: ScheduleStore,
        service: ScheduleService,
        clock: FakeClock,
        transport: FakeTransport,
    ):
        generator = ChangingGenerator(service, delete=True)
        dispatcher = Dispatcher(
            store,
            generator,
            transport,
            clock=clock,
            failure_backoff=timedelta(minutes=10),
        )
        schedule = await make_enabled(service)
        transport.fail = True
        clock.now = utc(2025, 1, 7, 0, 0)

        result = await dispatcher.tick()

        assert result.failed == 1
        stored = await store.get(schedule.id, include_deleted=True)
        assert stored is not None
        assert stored.deleted_at == utc(2025, 1, 7, 0, 0)
        assert stored.next_run_at is None
        assert stored.enabled is False
