"""
Dispatch Coordinator
====================

Single entry point for every job mutation, used by the HTTP routes.

Per-call context
----------------
The acting user (``Actor``) is passed into each operation; the coordinator
itself only holds collaborators (DB session, trip session store, change
feed, fare calculator, notification hook).  Domain rules run on a plain
``Job`` entity first, then the matching conditional UPDATE applies them to
the row.  The entity check gives precise messages, the UPDATE's WHERE
clause settles races.

Results
-------
Operations never raise for expected failures.  They return an
``OperationResult`` that is either ``ok`` (with the re-read job) or
carries a ``FailureKind`` and a human-readable message.  Store and Redis
errors roll the session back and come back as ``UNAVAILABLE``.

A lost claim race is ``ok`` with ``applied=False``: the returned job shows
who actually owns it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import (
    Actor,
    InvalidStateTransition,
    Job,
    NotJobOwner,
    TripSession,
)
from src.domain.enums import ChangeEvent, JobStatus, UserRole
from src.domain.fare import FareCalculator, LiveTripEstimate
from src.infrastructure.change_feed import ChangeFeed, JobChange
from src.infrastructure.models import JobModel
from src.infrastructure.repositories import JobRepository, UserRepository
from src.infrastructure.trip_sessions import TripSessionStore
from src.workers.notifier import NewJobNotice

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FailureKind(str, enum.Enum):
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


@dataclass
class OperationResult:
    ok: bool
    job: Optional[JobModel] = None
    jobs: list[JobModel] = field(default_factory=list)
    trip: Optional[TripSession] = None
    estimate: Optional[LiveTripEstimate] = None
    meters_added: Optional[float] = None
    applied: bool = True
    failure: Optional[FailureKind] = None
    message: Optional[str] = None


def _fail(kind: FailureKind, message: str) -> OperationResult:
    return OperationResult(ok=False, failure=kind, message=message)


class DispatchCoordinator:
    def __init__(
        self,
        session: AsyncSession,
        trips: TripSessionStore,
        feed: ChangeFeed,
        fares: FareCalculator,
        notify: Optional[Callable[[NewJobNotice], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.jobs = JobRepository(session)
        self.users = UserRepository(session)
        self.trips = trips
        self.feed = feed
        self.fares = fares
        self.notify = notify
        self.clock = clock

    # ── Dispatcher operations ─────────────────────────────────────

    async def create_job(
        self,
        actor: Actor,
        pickup: str,
        dropoff: str,
        notes: Optional[str] = None,
    ) -> OperationResult:
        return await self._guard("create_job", self._create_job(actor, pickup, dropoff, notes))

    async def assign_job(self, actor: Actor, job_id: str, driver_id: str) -> OperationResult:
        return await self._guard("assign_job", self._assign_job(actor, job_id, driver_id))

    async def set_status(self, actor: Actor, job_id: str, status: JobStatus) -> OperationResult:
        return await self._guard("set_status", self._set_status(actor, job_id, status))

    # ── Shared reads ──────────────────────────────────────────────

    async def list_jobs(self, actor: Actor) -> OperationResult:
        return await self._guard("list_jobs", self._list_jobs(actor))

    async def get_job(self, actor: Actor, job_id: str) -> OperationResult:
        return await self._guard("get_job", self._get_job(actor, job_id))

    # ── Driver operations ─────────────────────────────────────────

    async def claim_job(self, actor: Actor, job_id: str) -> OperationResult:
        return await self._guard("claim_job", self._claim_job(actor, job_id))

    async def start_trip(self, actor: Actor, job_id: str) -> OperationResult:
        return await self._guard("start_trip", self._start_trip(actor, job_id))

    async def record_position(
        self, actor: Actor, job_id: str, lat: float, lng: float
    ) -> OperationResult:
        return await self._guard(
            "record_position", self._record_position(actor, job_id, lat, lng)
        )

    async def end_trip(self, actor: Actor, job_id: str) -> OperationResult:
        return await self._guard("end_trip", self._end_trip(actor, job_id))

    async def current_trip(self, actor: Actor) -> OperationResult:
        return await self._guard("current_trip", self._current_trip(actor))

    # ── Internals ─────────────────────────────────────────────────

    async def _guard(
        self, action: str, operation: Awaitable[OperationResult]
    ) -> OperationResult:
        try:
            result = await operation
        except SQLAlchemyError as exc:
            await self.session.rollback()
            message = str(getattr(exc, "orig", None) or exc)
            logger.error("%s failed in the job store: %s", action, message)
            return _fail(FailureKind.UNAVAILABLE, message)
        except RedisError as exc:
            await self.session.rollback()
            logger.error("%s failed in the trip session store: %s", action, exc)
            return _fail(FailureKind.UNAVAILABLE, str(exc))
        if not result.ok:
            logger.info("%s rejected: %s", action, result.message)
        return result

    async def _announce(self, event: ChangeEvent, job: JobModel) -> None:
        await self.feed.publish(JobChange(event, job.id, JobStatus(job.status).value))

    async def _reload(self, job_id: str, event: ChangeEvent) -> OperationResult:
        """Commit, re-read the row and tell subscribers it changed."""
        await self.session.commit()
        job = await self.jobs.get_by_id(job_id)
        await self._announce(event, job)
        return OperationResult(ok=True, job=job)

    async def _create_job(
        self, actor: Actor, pickup: str, dropoff: str, notes: Optional[str]
    ) -> OperationResult:
        if not actor.is_dispatcher:
            return _fail(FailureKind.FORBIDDEN, "Only dispatchers can create jobs")
        pickup, dropoff = (pickup or "").strip(), (dropoff or "").strip()
        if not pickup or not dropoff:
            return _fail(FailureKind.VALIDATION, "Enter pickup and dropoff")

        job = await self.jobs.create_job(
            pickup=pickup,
            dropoff=dropoff,
            notes=(notes or "").strip() or None,
            created_by_user_id=actor.id,
        )
        result = await self._reload(job.id, ChangeEvent.INSERT)
        logger.info("Job %s created by %s", job.id, actor.id)

        if self.notify is not None:
            self.notify(NewJobNotice(job_id=job.id, pickup=pickup, dropoff=dropoff))
        return result

    async def _assign_job(self, actor: Actor, job_id: str, driver_id: str) -> OperationResult:
        if not actor.is_dispatcher:
            return _fail(FailureKind.FORBIDDEN, "Only dispatchers can assign jobs")
        if not driver_id:
            return _fail(FailureKind.VALIDATION, "Pick a driver first")
        driver = await self.users.get_by_id(driver_id)
        if driver is None or UserRole(driver.role) != UserRole.DRIVER:
            return _fail(FailureKind.VALIDATION, f"Unknown driver {driver_id}")

        job = await self.jobs.get_by_id(job_id)
        if job is None:
            return _fail(FailureKind.NOT_FOUND, "Job not found")
        try:
            Job.from_record(job).assign(driver_id)
        except InvalidStateTransition as exc:
            return _fail(FailureKind.CONFLICT, str(exc))

        if not await self.jobs.assign(job_id, driver_id):
            await self.session.commit()
            return _fail(FailureKind.CONFLICT, "Job changed before it could be assigned")
        return await self._reload(job_id, ChangeEvent.UPDATE)

    async def _set_status(self, actor: Actor, job_id: str, status: JobStatus) -> OperationResult:
        if not actor.is_dispatcher:
            return _fail(FailureKind.FORBIDDEN, "Only dispatchers can override status")
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            return _fail(FailureKind.NOT_FOUND, "Job not found")

        entity = Job.from_record(job)
        entity.override_status(status)
        if not await self.jobs.set_status(job_id, entity.status, entity.assigned_driver_id):
            await self.session.commit()
            return _fail(FailureKind.NOT_FOUND, "Job not found")
        return await self._reload(job_id, ChangeEvent.UPDATE)

    async def _list_jobs(self, actor: Actor) -> OperationResult:
        if actor.is_dispatcher:
            jobs = await self.jobs.list_all()
        else:
            jobs = await self.jobs.list_for_driver(actor.id)
        return OperationResult(ok=True, jobs=jobs)

    async def _get_job(self, actor: Actor, job_id: str) -> OperationResult:
        job = await self.jobs.get_by_id(job_id)
        visible = job is not None and (
            actor.is_dispatcher
            or job.assigned_driver_id is None
            or job.assigned_driver_id == actor.id
        )
        if not visible:
            return _fail(FailureKind.NOT_FOUND, "Job not found")
        return OperationResult(ok=True, job=job)

    async def _claim_job(self, actor: Actor, job_id: str) -> OperationResult:
        if actor.role != UserRole.DRIVER:
            return _fail(FailureKind.FORBIDDEN, "Only drivers can claim jobs")
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            return _fail(FailureKind.NOT_FOUND, "Job not found")

        won = False
        if Job.from_record(job).claim(actor.id):
            won = await self.jobs.claim(job_id, actor.id)
        await self.session.commit()

        # Re-read either way: a lost race must show the real owner
        job = await self.jobs.get_by_id(job_id)
        if won:
            await self._announce(ChangeEvent.UPDATE, job)
            logger.info("Job %s claimed by %s", job_id, actor.id)
        else:
            logger.info("Claim on job %s by %s did not apply", job_id, actor.id)
        return OperationResult(ok=True, job=job, applied=won)

    async def _start_trip(self, actor: Actor, job_id: str) -> OperationResult:
        if actor.role != UserRole.DRIVER:
            return _fail(FailureKind.FORBIDDEN, "Only drivers can start trips")
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            return _fail(FailureKind.NOT_FOUND, "Job not found")

        now = self.clock()
        try:
            Job.from_record(job).start(actor.id, now)
        except NotJobOwner as exc:
            return _fail(FailureKind.FORBIDDEN, str(exc))
        except InvalidStateTransition as exc:
            return _fail(FailureKind.CONFLICT, str(exc))

        active = await self.trips.get(actor.id)
        if active is not None and not await self._is_live(active):
            await self.trips.end(actor.id, active.job_id)
            active = None
        if active is not None:
            return _fail(
                FailureKind.CONFLICT,
                "Another trip is already in progress. End that one first.",
            )

        trip = TripSession(job_id=job_id, driver_id=actor.id, start_time=now)
        if not await self.trips.begin(trip):
            return _fail(
                FailureKind.CONFLICT,
                "Another trip is already in progress. End that one first.",
            )

        started = False
        try:
            if await self.jobs.start(job_id, actor.id, now):
                await self.session.commit()
                started = True
        finally:
            if not started:
                await self.trips.end(actor.id, job_id)
        if not started:
            return _fail(FailureKind.CONFLICT, "Job changed before the trip could start")

        result = await self._reload(job_id, ChangeEvent.UPDATE)
        result.trip = trip
        logger.info("Trip for job %s started by %s", job_id, actor.id)
        return result

    async def _is_live(self, trip: TripSession) -> bool:
        """A stored session is live while its job is still in progress."""
        job = await self.jobs.get_by_id(trip.job_id)
        return job is not None and JobStatus(job.status) == JobStatus.IN_PROGRESS

    async def _active_trip(self, actor: Actor, job_id: str) -> Optional[TripSession]:
        trip = await self.trips.get(actor.id)
        if trip is None or trip.job_id != job_id:
            return None
        return trip

    async def _record_position(
        self, actor: Actor, job_id: str, lat: float, lng: float
    ) -> OperationResult:
        trip = await self._active_trip(actor, job_id)
        if trip is None:
            return _fail(FailureKind.CONFLICT, "No active trip for this job.")
        added = trip.tracker.add_sample(lat, lng)
        await self.trips.save(trip)
        return OperationResult(ok=True, trip=trip, meters_added=added)

    async def _end_trip(self, actor: Actor, job_id: str) -> OperationResult:
        trip = await self._active_trip(actor, job_id)
        if trip is None:
            return _fail(FailureKind.CONFLICT, "No active trip to end.")
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            return _fail(FailureKind.NOT_FOUND, "Job not found")

        now = self.clock()
        metrics = self.fares.complete_trip(
            trip.start_time,
            now,
            trip.accumulated_distance_meters,
            stored_meters=job.distance_meters,
        )
        try:
            Job.from_record(job).complete(actor.id, metrics, now)
        except NotJobOwner as exc:
            return _fail(FailureKind.FORBIDDEN, str(exc))
        except InvalidStateTransition as exc:
            return _fail(FailureKind.CONFLICT, str(exc))

        if not await self.jobs.complete(job_id, actor.id, metrics, now):
            await self.session.commit()
            return _fail(FailureKind.CONFLICT, "Job changed before the trip could end")

        result = await self._reload(job_id, ChangeEvent.UPDATE)
        try:
            await self.trips.end(actor.id, job_id)
        except RedisError as exc:
            # the next start_trip discards it once the job is no longer live
            logger.warning("Trip session for job %s not cleared: %s", job_id, exc)
        logger.info(
            "Trip for job %s ended: %ss, %sm, fare %.2f",
            job_id, metrics.duration_seconds, metrics.distance_meters, metrics.fare,
        )
        return result

    async def _current_trip(self, actor: Actor) -> OperationResult:
        trip = await self.trips.get(actor.id)
        if trip is None:
            return OperationResult(ok=True)
        estimate = self.fares.live_estimate(trip.start_time, self.clock())
        return OperationResult(ok=True, trip=trip, estimate=estimate)
