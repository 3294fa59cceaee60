"""Shared test fixtures and factories."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from cadence.config.models import (
    CadenceConfig,
    DatabaseConfig,
    SchedulingConfig,
    SubjectConfig,
    TriggerConfig,
)
from cadence.db.engine import Database
from cadence.scheduling.dispatcher import Dispatcher
from cadence.scheduling.service import ScheduleService
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import (
    Frequency,
    Schedule,
    TargetContext,
    TargetType,
    Weekday,
)
from cadence.wizard.machine import Actor, ConfigurationWizard

TRIGGER_SECRET = "test-trigger-secret"

# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    # Monday 2025-01-06 00:00 UTC, 09:00 in Tokyo
    return FakeClock(datetime(2025, 1, 6, 0, 0, tzinfo=UTC))


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def subjects() -> dict[str, SubjectConfig]:
    return {
        "quote": SubjectConfig(name="Daily quote", instructions="Share one quote."),
        "news": SubjectConfig(name="News digest", instructions="Summarize news."),
    }


@pytest.fixture
def cadence_config(tmp_path: Path, subjects: dict[str, SubjectConfig]) -> CadenceConfig:
    """Configuration pointing at a temporary database."""
    return CadenceConfig(
        scheduling=SchedulingConfig(default_timezone="Asia/Tokyo", round_minutes=5),
        trigger=TriggerConfig(secret=TRIGGER_SECRET),
        database=DatabaseConfig(path=tmp_path / "cadence.db"),
        subjects=subjects,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db = Database(database_path=tmp_path / "test.db")
    await db.connect()
    await db.create_tables()

    yield db

    await db.disconnect()


@pytest.fixture
def store(database: Database) -> ScheduleStore:
    return ScheduleStore(database, lease_ttl=timedelta(minutes=15))


@pytest.fixture
def service(store: ScheduleStore, clock: FakeClock) -> ScheduleService:
    return ScheduleService(
        store, clock=clock, round_step=5, default_timezone="Asia/Tokyo"
    )


@pytest.fixture
def wizard(service: ScheduleService) -> ConfigurationWizard:
    return ConfigurationWizard(service)


@pytest.fixture
def actor() -> Actor:
    return Actor(owner_id="100", target_type=TargetType.INDIVIDUAL, target_id="100")


# =============================================================================
# Generation and Delivery Fakes
# =============================================================================


class FakeGenerator:
    """Content generator returning canned text, optionally failing."""

    def __init__(self, content: list[str] | None = None):
        self.content = ["Hello from the schedule"] if content is None else content
        self.calls: list[tuple[str, TargetContext]] = []
        self.fail_for: set[str] = set()

    async def generate(self, subject_id: str, context: TargetContext) -> list[str]:
        self.calls.append((subject_id, context))
        if context.schedule_id in self.fail_for:
            raise RuntimeError("generator exploded")
        return list(self.content)


class FakeTransport:
    """Delivery transport recording every send."""

    def __init__(self):
        self.sent: list[tuple[TargetType, str, list[str]]] = []
        self.fail = False

    @property
    def name(self) -> str:
        return "fake"

    async def deliver(
        self, target_type: TargetType, target_id: str, content: list[str]
    ) -> None:
        if self.fail:
            raise ConnectionError("transport down")
        self.sent.append((target_type, target_id, content))


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def dispatcher(
    store: ScheduleStore,
    generator: FakeGenerator,
    transport: FakeTransport,
    clock: FakeClock,
) -> Dispatcher:
    return Dispatcher(store, generator, transport, clock=clock)


# =============================================================================
# Factories
# =============================================================================


async def make_enabled(
    service: ScheduleService,
    *,
    owner_id: str = "100",
    subject_id: str = "quote",
    target_type: TargetType = TargetType.INDIVIDUAL,
    target_id: str = "100",
    frequency: Frequency = Frequency.DAILY,
    by_weekday: list[Weekday] | None = None,
    by_monthday: list[int] | None = None,
    hour: int = 9,
    minute: int = 0,
    timezone: str = "Asia/Tokyo",
) -> Schedule:
    """Create and arm a schedule through the service."""
    draft = await service.create_draft(
        owner_id,
        subject_id,
        target_type,
        target_id,
        frequency=frequency,
        by_weekday=by_weekday,
        by_monthday=by_monthday,
        hour=hour,
        minute=minute,
        timezone=timezone,
    )
    return await service.enable(draft.id)
