"""FastAPI dependency injection helpers."""

from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.domain.fare import FareCalculator
from src.infrastructure.change_feed import ChangeFeed, RedisChangeFeed
from src.infrastructure.database import async_session_factory
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import UserRepository
from src.infrastructure.trip_sessions import RedisTripSessionStore, TripSessionStore
from src.services.dispatch import DispatchCoordinator, FailureKind, OperationResult
from src.workers import notifier

_FAILURE_STATUS = {
    FailureKind.VALIDATION: 400,
    FailureKind.FORBIDDEN: 403,
    FailureKind.NOT_FOUND: 404,
    FailureKind.CONFLICT: 409,
    FailureKind.UNAVAILABLE: 503,
}


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for long-lived handlers (WebSockets) that open their own sessions."""
    return async_session_factory


async def get_trip_store(
    client: aioredis.Redis = Depends(get_redis),
) -> TripSessionStore:
    return RedisTripSessionStore(client, ttl_seconds=settings.trip_session_ttl_seconds)


async def get_change_feed(
    client: aioredis.Redis = Depends(get_redis),
) -> ChangeFeed:
    return RedisChangeFeed(client, channel=settings.jobs_channel)


def get_fare_calculator() -> FareCalculator:
    return FareCalculator(settings.rate_per_minute, settings.payout_fraction)


async def resolve_actor(session: AsyncSession, user_id: str) -> Optional[Actor]:
    user = await UserRepository(session).get_by_id(user_id)
    if user is None:
        return None
    return Actor(id=user.id, role=UserRole(user.role))


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """The identity provider's user id arrives in ``X-User-Id``."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not signed in")
    actor = await resolve_actor(db, x_user_id)
    if actor is None:
        raise HTTPException(status_code=403, detail="Unknown user")
    return actor


async def get_coordinator(
    db: AsyncSession = Depends(get_db),
    trips: TripSessionStore = Depends(get_trip_store),
    feed: ChangeFeed = Depends(get_change_feed),
    fares: FareCalculator = Depends(get_fare_calculator),
) -> DispatchCoordinator:
    notify = notifier.schedule_new_job_notifications if settings.notify_on_create else None
    return DispatchCoordinator(db, trips, feed, fares, notify=notify)


def ensure_ok(result: OperationResult) -> OperationResult:
    """Turn a failed coordinator result into the matching HTTP error."""
    if not result.ok:
        raise HTTPException(
            status_code=_FAILURE_STATUS.get(result.failure, 500),
            detail=result.message,
        )
    return result
