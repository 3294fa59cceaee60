"""Engine and session handling for the schedules database."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cadence.db.models import Base

# Seconds a SQLite connection waits on a locked file. Concurrent ticks
# contend on the claim UPDATE, so this must outlast one claim round.
SQLITE_BUSY_TIMEOUT = 30


class Database:
    """Async engine and session factory for the schedules table.

    One instance is built per process by ``build_services`` (or per CLI
    command). The schedule store reads and writes through it.
    """

    def __init__(
        self, database_url: str | None = None, database_path: Path | None = None
    ):
        """Resolve the database URL; nothing connects until ``connect``.

        Args:
            database_url: SQLAlchemy async URL, used as given when set.
            database_path: SQLite file for the default ``aiosqlite`` driver;
                its directory is created on demand.
        """
        if database_url:
            self._url = database_url
        elif database_path:
            database_path.parent.mkdir(parents=True, exist_ok=True)
            self._url = f"sqlite+aiosqlite:///{database_path}"
        else:
            raise ValueError("Either database_url or database_path must be provided")

        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Schedules database is not connected")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Schedules database is not connected")
        return self._session_factory

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        connect_args = (
            {"timeout": SQLITE_BUSY_TIMEOUT} if self._url.startswith("sqlite") else {}
        )
        self._engine = create_async_engine(
            self._url,
            echo=False,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        # Loaded rows stay readable after their session commits.
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_tables(self) -> None:
        """Create the schedules table and its due index if missing."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def disconnect(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on exit and rolls back on error.

        Each store operation runs in its own session, so a conditional
        UPDATE (claim or release) commits before the next one starts.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
