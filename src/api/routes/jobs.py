"""
Job endpoints
=============

POST  /api/v1/jobs                 -- create a job (dispatcher, 201)
GET   /api/v1/jobs                 -- jobs visible to the caller
GET   /api/v1/jobs/{job_id}        -- one job
POST  /api/v1/jobs/{job_id}/assign -- assign to a driver (dispatcher)
POST  /api/v1/jobs/{job_id}/claim  -- take an unclaimed job (driver)
PATCH /api/v1/jobs/{job_id}/status -- status override (dispatcher)
WS    /api/v1/jobs/feed?user_id=   -- job list pushed on every change
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.dependencies import (
    ensure_ok,
    get_actor,
    get_change_feed,
    get_coordinator,
    get_session_factory,
    resolve_actor,
)
from src.api.middleware import limiter
from src.api.schemas import (
    AssignRequest,
    ClaimResponse,
    JobCreateRequest,
    JobResponse,
    StatusUpdateRequest,
)
from src.domain.entities import Actor
from src.infrastructure.change_feed import ChangeFeed
from src.services.board import JobBoard
from src.services.dispatch import DispatchCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "",
    status_code=201,
    response_model=JobResponse,
    summary="Create a job",
    description="Drivers are notified by SMS and push in the background.",
)
@limiter.limit("100/minute")
async def create_job(
    request: Request,
    body: JobCreateRequest,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    result = ensure_ok(
        await coordinator.create_job(actor, body.pickup, body.dropoff, body.notes)
    )
    return result.job


@router.get("", response_model=list[JobResponse], summary="List visible jobs")
@limiter.limit("100/minute")
async def list_jobs(
    request: Request,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.list_jobs(actor)).jobs


@router.get("/{job_id}", response_model=JobResponse, summary="Get one job")
@limiter.limit("100/minute")
async def get_job(
    request: Request,
    job_id: str,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.get_job(actor, job_id)).job


@router.post("/{job_id}/assign", response_model=JobResponse, summary="Assign a driver")
@limiter.limit("100/minute")
async def assign_job(
    request: Request,
    job_id: str,
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.assign_job(actor, job_id, body.driver_id)).job


@router.post(
    "/{job_id}/claim",
    response_model=ClaimResponse,
    summary="Claim an unassigned job",
    description=(
        "At most one driver wins.  Losing the race is not an error: "
        "``claimed`` is false and ``job`` shows the actual owner."
    ),
)
@limiter.limit("100/minute")
async def claim_job(
    request: Request,
    job_id: str,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    result = ensure_ok(await coordinator.claim_job(actor, job_id))
    return ClaimResponse(
        claimed=result.applied, job=JobResponse.model_validate(result.job)
    )


@router.patch("/{job_id}/status", response_model=JobResponse, summary="Override status")
@limiter.limit("100/minute")
async def set_status(
    request: Request,
    job_id: str,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return ensure_ok(await coordinator.set_status(actor, job_id, body.status)).job


@router.websocket("/feed")
async def job_feed(
    websocket: WebSocket,
    user_id: str = Query(...),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
):
    async with session_factory() as session:
        actor = await resolve_actor(session, user_id)
    if actor is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    updates = JobBoard(session_factory, actor).follow(feed)
    try:
        async for jobs in updates:
            await websocket.send_json(
                [JobResponse.model_validate(j).model_dump(mode="json") for j in jobs]
            )
    except WebSocketDisconnect:
        logger.info("Job feed for %s closed", actor.id)
    finally:
        await updates.aclose()
