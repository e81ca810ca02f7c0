"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are plain SQL types,
so they are created on SQLite as-is.  Redis-backed collaborators (trip
sessions, change feed) are replaced by small in-memory stand-ins that
honour the same contracts.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.entities import Actor, TripSession
from src.domain.enums import UserRole
from src.domain.fare import FareCalculator
from src.infrastructure.change_feed import JobChange
from src.infrastructure.database import Base
from src.infrastructure.models import UserModel
from src.services.dispatch import DispatchCoordinator


TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

DISPATCHER = Actor(id="dispatcher-1", role=UserRole.DISPATCHER)
DRIVER_X = Actor(id="driver-x", role=UserRole.DRIVER)
DRIVER_Y = Actor(id="driver-y", role=UserRole.DRIVER)


# ── In-memory collaborators ───────────────────────────────────────────


class InMemoryTripSessionStore:
    """Same contract as ``RedisTripSessionStore``; stores serialised copies."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}

    async def get(self, driver_id: str) -> Optional[TripSession]:
        data = self.sessions.get(driver_id)
        return TripSession.from_dict(data) if data else None

    async def begin(self, session: TripSession) -> bool:
        if session.driver_id in self.sessions:
            return False
        self.sessions[session.driver_id] = session.to_dict()
        return True

    async def save(self, session: TripSession) -> None:
        if session.driver_id in self.sessions:
            self.sessions[session.driver_id] = session.to_dict()

    async def end(self, driver_id: str, job_id: str) -> bool:
        data = self.sessions.get(driver_id)
        if data and data["job_id"] == job_id:
            del self.sessions[driver_id]
            return True
        return False


class RecordingChangeFeed:
    def __init__(self):
        self.published: list[JobChange] = []
        self._queue: asyncio.Queue[JobChange] = asyncio.Queue()

    async def publish(self, change: JobChange) -> None:
        self.published.append(change)
        self._queue.put_nowait(change)

    async def listen(self):
        while True:
            yield await self._queue.get()


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables and seed users; dispose the engine afterwards."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                UserModel(id=DISPATCHER.id, full_name="Dana", role=UserRole.DISPATCHER),
                UserModel(
                    id=DRIVER_X.id,
                    full_name="Xavi",
                    role=UserRole.DRIVER,
                    phone_number="+15555550101",
                    sms_notifications_enabled=True,
                    expo_push_token="ExponentPushToken[x]",
                ),
                UserModel(
                    id=DRIVER_Y.id,
                    full_name="Yara",
                    role=UserRole.DRIVER,
                    phone_number="+15555550102",
                    sms_notifications_enabled=True,
                ),
            ]
        )
        await session.commit()

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def trip_store() -> InMemoryTripSessionStore:
    return InMemoryTripSessionStore()


@pytest.fixture
def change_feed() -> RecordingChangeFeed:
    return RecordingChangeFeed()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def notices() -> list:
    return []


@pytest.fixture
def coordinator(db_session, trip_store, change_feed, clock, notices) -> DispatchCoordinator:
    return DispatchCoordinator(
        db_session,
        trip_store,
        change_feed,
        FareCalculator(rate_per_minute=1.0, payout_fraction=0.8),
        notify=notices.append,
        clock=clock,
    )
