"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users`` -- dispatchers and drivers, keyed by identity-provider id
* ``jobs``  -- ride jobs and, once completed, their trip figures

Indexes
-------
* **B-Tree** on ``status``, ``assigned_driver_id`` and ``created_at`` for
  the driver board query (unclaimed OR mine, newest first).
* **B-Tree** on ``role`` for the notification recipient look-ups.
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import JobStatus, UserRole


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(120), nullable=True)
    role = Column(
        Enum(UserRole, name="userrole", values_callable=_enum_values),
        default=UserRole.DRIVER,
        nullable=False,
    )
    phone_number = Column(String(32), nullable=True)
    sms_notifications_enabled = Column(Boolean, default=False, nullable=False)
    expo_push_token = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_users_role", "role"),)


class JobModel(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(
        Enum(JobStatus, name="jobstatus", values_callable=_enum_values),
        default=JobStatus.NEW,
        nullable=False,
    )
    pickup = Column(Text, nullable=True)
    dropoff = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    assigned_driver_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_by_user_id = Column(String(64), ForeignKey("users.id"), nullable=True)

    # Populated when the trip ends
    distance_meters = Column(Integer, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    fare = Column(Float, nullable=True)
    driver_payout = Column(Float, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_driver", "assigned_driver_id"),
        Index("idx_jobs_created", "created_at"),
    )
