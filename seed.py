"""
Seed script -- populates the database with sample data for local use.

Run after migrations:
    python seed.py

Creates:
  - 1 dispatcher
  - 4 drivers (two opted into SMS, one with a push token)
  - 5 sample jobs (mix of new, assigned, in_progress, completed, canceled)

Fare figures on the completed job come from ``FareCalculator`` so they
match what a real trip end would store.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from src.config import settings
from src.domain.enums import JobStatus, UserRole
from src.domain.fare import FareCalculator
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import JobModel, UserModel


USERS = [
    {"id": "dispatcher-1", "full_name": "Dana Ortiz", "role": UserRole.DISPATCHER},
    {"id": "driver-1", "full_name": "Sam Okafor", "role": UserRole.DRIVER,
     "phone_number": "+15555550101", "sms_notifications_enabled": True},
    {"id": "driver-2", "full_name": "Lee Park", "role": UserRole.DRIVER,
     "phone_number": "+15555550102", "sms_notifications_enabled": True,
     "expo_push_token": "ExponentPushToken[sample-driver-2]"},
    {"id": "driver-3", "full_name": "Ari Cohen", "role": UserRole.DRIVER,
     "phone_number": "+15555550103"},
    {"id": "driver-4", "full_name": "Robin Diaz", "role": UserRole.DRIVER},
]


def _jobs(now: datetime) -> list[JobModel]:
    fares = FareCalculator(settings.rate_per_minute, settings.payout_fraction)
    started = now - timedelta(minutes=40)
    ended = started + timedelta(minutes=17, seconds=20)
    done = fares.complete_trip(started, ended, accumulated_meters=8046.7)

    return [
        JobModel(pickup="Union Station", dropoff="City Hospital",
                 notes="Wheelchair accessible", status=JobStatus.NEW,
                 created_by_user_id="dispatcher-1"),
        JobModel(pickup="12 Harbor Rd", dropoff="Airport Terminal B",
                 status=JobStatus.ASSIGNED, assigned_driver_id="driver-1",
                 created_by_user_id="dispatcher-1"),
        JobModel(pickup="Main St Library", dropoff="Westfield Mall",
                 status=JobStatus.IN_PROGRESS, assigned_driver_id="driver-2",
                 started_at=now - timedelta(minutes=5),
                 created_by_user_id="dispatcher-1"),
        JobModel(pickup="Grand Hotel", dropoff="Convention Center",
                 status=JobStatus.COMPLETED, assigned_driver_id="driver-3",
                 started_at=started, ended_at=ended,
                 duration_seconds=done.duration_seconds,
                 duration_minutes=done.duration_minutes,
                 distance_meters=done.distance_meters,
                 fare=done.fare, driver_payout=done.driver_payout,
                 created_by_user_id="dispatcher-1"),
        JobModel(pickup="Pier 9", dropoff="Old Town",
                 status=JobStatus.CANCELED,
                 created_by_user_id="dispatcher-1"),
    ]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        session.add_all([UserModel(**u) for u in USERS])
        await session.flush()
        print(f"  Created {len(USERS)} users")

        # ── Jobs ──────────────────────────────────────────────────────
        jobs = _jobs(datetime.now(timezone.utc))
        session.add_all(jobs)
        await session.flush()
        print(f"  Created {len(jobs)} jobs")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
