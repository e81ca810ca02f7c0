"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Job``: enforces valid lifecycle transitions
  (new -> assigned -> [enroute_pickup] -> in_progress -> completed | canceled).
- ``Job.claim`` encodes the single-claim rule: only an unclaimed job can be
  taken, and losing the race is a no-op rather than an error.
- ``TripSession`` is the per-driver timer / distance state between start
  and end of a trip.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .distance import DistanceTracker
from .enums import JOB_TRANSITIONS, TERMINAL_STATUSES, JobStatus, UserRole
from .fare import TripMetrics


class InvalidStateTransition(Exception):
    """Raised when a job status change violates the state machine."""


class NotJobOwner(Exception):
    """Raised when a driver acts on a job assigned to someone else."""


# ── Value Object ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole

    @property
    def is_dispatcher(self) -> bool:
        return self.role == UserRole.DISPATCHER


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Job:
    id: Optional[str] = None
    status: JobStatus = JobStatus.NEW
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

    @classmethod
    def from_record(cls, record: Any) -> "Job":
        """Build an entity from any object carrying the job columns."""
        return cls(
            id=record.id,
            status=JobStatus(record.status),
            pickup=record.pickup,
            dropoff=record.dropoff,
            notes=record.notes,
            assigned_driver_id=record.assigned_driver_id,
            distance_meters=record.distance_meters,
            duration_seconds=record.duration_seconds,
            duration_minutes=record.duration_minutes,
            fare=record.fare,
            driver_payout=record.driver_payout,
            started_at=record.started_at,
            ended_at=record.ended_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, new_status: JobStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = JOB_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def claim(self, driver_id: str) -> bool:
        """Take the job if nobody has it yet.  Returns False on a lost race."""
        if self.assigned_driver_id is not None or self.status != JobStatus.NEW:
            return False
        self.transition_to(JobStatus.ASSIGNED)
        self.assigned_driver_id = driver_id
        return True

    def assign(self, driver_id: str) -> None:
        """Dispatcher assignment; overrides any previous claim."""
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot assign a job that is {self.status.value}"
            )
        self.status = JobStatus.ASSIGNED
        self.assigned_driver_id = driver_id

    def start(self, driver_id: str, at: datetime) -> None:
        if self.status != JobStatus.ASSIGNED:
            raise InvalidStateTransition(
                f"Cannot start a job that is {self.status.value}"
            )
        self._ensure_owner(driver_id)
        self.transition_to(JobStatus.IN_PROGRESS)
        self.started_at = at

    def complete(self, driver_id: str, metrics: TripMetrics, at: datetime) -> None:
        self._ensure_owner(driver_id)
        self.transition_to(JobStatus.COMPLETED)
        self.duration_seconds = metrics.duration_seconds
        self.duration_minutes = metrics.duration_minutes
        self.distance_meters = metrics.distance_meters
        self.fare = metrics.fare
        self.driver_payout = metrics.driver_payout
        self.ended_at = at

    def override_status(self, new_status: JobStatus) -> None:
        """Dispatcher override: any status, no transition check."""
        self.status = new_status
        if new_status == JobStatus.NEW:
            self.assigned_driver_id = None

    def _ensure_owner(self, driver_id: str) -> None:
        if self.assigned_driver_id != driver_id:
            raise NotJobOwner("Job is not assigned to this driver")


@dataclass
class TripSession:
    job_id: str
    driver_id: str
    start_time: datetime
    tracker: DistanceTracker = field(default_factory=DistanceTracker)

    @property
    def accumulated_distance_meters(self) -> float:
        return self.tracker.total_meters

    @property
    def last_known_position(self) -> Optional[tuple[float, float]]:
        return self.tracker.last_position

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "driver_id": self.driver_id,
            "start_time": self.start_time.isoformat(),
            "accumulated_distance_meters": self.tracker.total_meters,
            "last_known_position": (
                list(self.tracker.last_position)
                if self.tracker.last_position
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TripSession":
        position = data.get("last_known_position")
        return cls(
            job_id=data["job_id"],
            driver_id=data["driver_id"],
            start_time=datetime.fromisoformat(data["start_time"]),
            tracker=DistanceTracker(
                total_meters=float(data.get("accumulated_distance_meters", 0.0)),
                last_position=tuple(position) if position else None,
            ),
        )
