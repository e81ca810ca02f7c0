"""
Trip endpoints (drivers)
========================

POST /api/v1/trips/{job_id}/start      -- start the trip timer
POST /api/v1/trips/{job_id}/positions  -- report a GPS fix
POST /api/v1/trips/{job_id}/end        -- stop, compute fare, complete
GET  /api/v1/trips/current             -- active trip + live fare
WS   /api/v1/trips/live?user_id=       -- live fare pushed every tick
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.dependencies import (
    ensure_ok,
    get_actor,
    get_coordinator,
    get_fare_calculator,
    get_session_factory,
    get_trip_store,
    resolve_actor,
)
from src.api.middleware import limiter
from src.api.schemas import JobResponse, PositionRequest, PositionResponse, TripResponse
from src.config import settings
from src.domain.entities import Actor, TripSession
from src.domain.enums import UserRole
from src.domain.fare import FareCalculator, LiveTripEstimate
from src.infrastructure.trip_sessions import TripSessionStore
from src.services.dispatch import DispatchCoordinator, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


def _trip_response(
    trip: Optional[TripSession], estimate: Optional[LiveTripEstimate]
) -> TripResponse:
    if trip is None or estimate is None:
        return TripResponse(active=False)
    return TripResponse(
        active=True,
        job_id=trip.job_id,
        start_time=trip.start_time,
        distance_meters=trip.accumulated_distance_meters,
        elapsed_seconds=estimate.elapsed_seconds,
        elapsed_minutes=estimate.elapsed_minutes,
        estimated_fare=estimate.estimated_fare,
    )


@router.post("/{job_id}/start", response_model=JobResponse, summary="Start a trip")
@limiter.limit("100/minute")
async def start_trip(
    request: Request,
    job_id: str,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.start_trip(actor, job_id)).job


@router.post(
    "/{job_id}/positions",
    response_model=PositionResponse,
    summary="Report a position sample",
)
@limiter.limit("600/minute")
async def record_position(
    request: Request,
    job_id: str,
    body: PositionRequest,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    result = ensure_ok(
        await coordinator.record_position(actor, job_id, body.lat, body.lon)
    )
    return PositionResponse(
        meters_added=result.meters_added,
        distance_meters=result.trip.accumulated_distance_meters,
    )


@router.post("/{job_id}/end", response_model=JobResponse, summary="End a trip")
@limiter.limit("100/minute")
async def end_trip(
    request: Request,
    job_id: str,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.end_trip(actor, job_id)).job


@router.get("/current", response_model=TripResponse, summary="Active trip and live fare")
@limiter.limit("100/minute")
async def current_trip(
    request: Request,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    result = ensure_ok(await coordinator.current_trip(actor))
    return _trip_response(result.trip, result.estimate)


@router.websocket("/live")
async def live_trip(
    websocket: WebSocket,
    user_id: str = Query(...),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    trips: TripSessionStore = Depends(get_trip_store),
    fares: FareCalculator = Depends(get_fare_calculator),
):
    """Display-only ticker; it stops as soon as the trip or the socket ends."""
    async with session_factory() as session:
        actor = await resolve_actor(session, user_id)
    if actor is None or actor.role != UserRole.DRIVER:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        while True:
            trip = await trips.get(actor.id)
            estimate = fares.live_estimate(trip.start_time, utcnow()) if trip else None
            await websocket.send_json(
                _trip_response(trip, estimate).model_dump(mode="json")
            )
            if trip is None:
                break
            await asyncio.sleep(settings.live_tick_seconds)
    except WebSocketDisconnect:
        logger.info("Live trip feed for %s closed", actor.id)
        return
    except RedisError as exc:
        logger.warning("Live trip feed for %s stopped: %s", actor.id, exc)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    await websocket.close()
