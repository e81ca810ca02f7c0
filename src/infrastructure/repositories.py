"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.

Writes on ``jobs`` are conditional UPDATEs: the WHERE clause carries the
precondition (still unclaimed, still assigned to this driver, ...) and the
caller learns from the affected-row count whether it won.  Zero rows is the
race-loss case, not an error.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import JobModel, UserModel
from src.domain.enums import JobStatus, UserRole
from src.domain.fare import TripMetrics


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_job(
        self,
        *,
        pickup: str,
        dropoff: str,
        notes: str | None = None,
        created_by_user_id: str | None = None,
    ) -> JobModel:
        job = JobModel(
            pickup=pickup,
            dropoff=dropoff,
            notes=notes,
            created_by_user_id=created_by_user_id,
            status=JobStatus.NEW,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: str) -> Optional[JobModel]:
        # populate_existing: conditional UPDATEs bypass the identity map
        return await self.session.get(JobModel, job_id, populate_existing=True)

    async def list_all(self) -> list[JobModel]:
        result = await self.session.execute(
            select(JobModel).order_by(JobModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_driver(self, driver_id: str) -> list[JobModel]:
        """Unclaimed jobs plus the ones already assigned to *driver_id*."""
        result = await self.session.execute(
            select(JobModel)
            .where(
                or_(
                    JobModel.assigned_driver_id.is_(None),
                    JobModel.assigned_driver_id == driver_id,
                )
            )
            .order_by(JobModel.created_at.desc())
        )
        return list(result.scalars().all())

    # ── Conditional writes ────────────────────────────────────────

    async def _update(self, job_id: str, *conditions, **values) -> bool:
        result = await self.session.execute(
            update(JobModel)
            .where(JobModel.id == job_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim(self, job_id: str, driver_id: str) -> bool:
        """Compare-and-swap on ``assigned_driver_id IS NULL``."""
        return await self._update(
            job_id,
            JobModel.assigned_driver_id.is_(None),
            JobModel.status == JobStatus.NEW,
            assigned_driver_id=driver_id,
            status=JobStatus.ASSIGNED,
        )

    async def assign(self, job_id: str, driver_id: str) -> bool:
        return await self._update(
            job_id,
            JobModel.status.not_in([JobStatus.COMPLETED, JobStatus.CANCELED]),
            assigned_driver_id=driver_id,
            status=JobStatus.ASSIGNED,
        )

    async def start(self, job_id: str, driver_id: str, started_at: datetime) -> bool:
        return await self._update(
            job_id,
            JobModel.status == JobStatus.ASSIGNED,
            JobModel.assigned_driver_id == driver_id,
            status=JobStatus.IN_PROGRESS,
            started_at=started_at,
        )

    async def complete(
        self,
        job_id: str,
        driver_id: str,
        metrics: TripMetrics,
        ended_at: datetime,
    ) -> bool:
        return await self._update(
            job_id,
            JobModel.status == JobStatus.IN_PROGRESS,
            JobModel.assigned_driver_id == driver_id,
            status=JobStatus.COMPLETED,
            duration_seconds=metrics.duration_seconds,
            duration_minutes=metrics.duration_minutes,
            distance_meters=metrics.distance_meters,
            fare=metrics.fare,
            driver_payout=metrics.driver_payout,
            ended_at=ended_at,
        )

    async def set_status(
        self, job_id: str, status: JobStatus, driver_id: Optional[str]
    ) -> bool:
        """Unconditional dispatcher override."""
        return await self._update(job_id, status=status, assigned_driver_id=driver_id)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_drivers(self) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel)
            .where(UserModel.role == UserRole.DRIVER)
            .order_by(UserModel.full_name)
        )
        return list(result.scalars().all())

    async def get_sms_recipients(self) -> list[str]:
        """Phone numbers of drivers who opted into new-job texts."""
        result = await self.session.execute(
            select(UserModel.phone_number).where(
                UserModel.role == UserRole.DRIVER,
                UserModel.sms_notifications_enabled.is_(True),
                UserModel.phone_number.is_not(None),
                UserModel.phone_number != "",
            )
        )
        return list(result.scalars().all())

    async def get_push_tokens(self) -> list[str]:
        result = await self.session.execute(
            select(UserModel.expo_push_token).where(
                UserModel.expo_push_token.is_not(None)
            )
        )
        return list(result.scalars().all())
