"""
Admin / observability endpoints
===============================

GET /api/v1/admin/drivers -- drivers a dispatcher can assign jobs to
GET /api/v1/admin/health  -- simple health check
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_actor, get_db
from src.api.middleware import limiter
from src.api.schemas import DriverResponse, HealthResponse
from src.domain.entities import Actor
from src.infrastructure.repositories import UserRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/drivers",
    response_model=list[DriverResponse],
    summary="List drivers",
)
@limiter.limit("100/minute")
async def list_drivers(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    if not actor.is_dispatcher:
        raise HTTPException(status_code=403, detail="Dispatchers only")
    return await UserRepository(db).get_drivers()


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
