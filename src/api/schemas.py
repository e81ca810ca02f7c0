"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.enums import JobStatus, UserRole


# ── Requests ──────────────────────────────────────────────────────────


class JobCreateRequest(BaseModel):
    pickup: str = Field("", max_length=500)
    dropoff: str = Field("", max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)


class AssignRequest(BaseModel):
    driver_id: str = Field(..., max_length=64)


class StatusUpdateRequest(BaseModel):
    status: JobStatus


class PositionRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# ── Responses ─────────────────────────────────────────────────────────


class JobResponse(BaseModel):
    id: str
    status: JobStatus
    pickup: Optional[str] = None
    dropoff: Optional[str] = None
    notes: Optional[str] = None
    assigned_driver_id: Optional[str] = None
    distance_meters: Optional[int] = None
    duration_seconds: Optional[int] = None
    duration_minutes: Optional[int] = None
    fare: Optional[float] = None
    driver_payout: Optional[float] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ClaimResponse(BaseModel):
    claimed: bool = Field(
        ..., description="False when another driver got there first."
    )
    job: JobResponse


class PositionResponse(BaseModel):
    meters_added: float
    distance_meters: float


class TripResponse(BaseModel):
    active: bool
    job_id: Optional[str] = None
    start_time: Optional[datetime] = None
    distance_meters: float = 0.0
    elapsed_seconds: int = 0
    elapsed_minutes: float = 0.0
    estimated_fare: float = 0.0


class DriverResponse(BaseModel):
    id: str
    full_name: Optional[str] = None
    role: UserRole
    phone_number: Optional[str] = None
    sms_notifications_enabled: bool = False

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
