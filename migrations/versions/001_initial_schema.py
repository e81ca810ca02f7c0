"""Initial schema: users and jobs.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

JOB_STATUSES = (
    "new",
    "assigned",
    "enroute_pickup",
    "in_progress",
    "completed",
    "canceled",
)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("full_name", sa.String(120), nullable=True),
        sa.Column(
            "role",
            sa.Enum("dispatcher", "driver", name="userrole"),
            nullable=False,
            server_default="driver",
        ),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column(
            "sms_notifications_enabled",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("expo_push_token", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ── jobs ──────────────────────────────────────────────────────────
    op.create_table(
        "jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="jobstatus"),
            nullable=False,
            server_default="new",
        ),
        sa.Column("pickup", sa.Text, nullable=True),
        sa.Column("dropoff", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column(
            "assigned_driver_id",
            sa.String(64),
            sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column(
            "created_by_user_id",
            sa.String(64),
            sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column("distance_meters", sa.Integer, nullable=True),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=True),
        sa.Column("fare", sa.Float, nullable=True),
        sa.Column("driver_payout", sa.Float, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_jobs_status", "jobs", ["status"])
    op.create_index("idx_jobs_driver", "jobs", ["assigned_driver_id"])
    op.create_index("idx_jobs_created", "jobs", ["created_at"])


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS jobstatus")
    op.execute("DROP TYPE IF EXISTS userrole")
