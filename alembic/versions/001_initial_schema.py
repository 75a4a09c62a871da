"""Initial schema with jobs, payments_accounts and tasks tables

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enums using raw SQL with IF NOT EXISTS
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE job_status AS ENUM ('queued', 'processing', 'done', 'failed');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    op.execute("""
        DO $$ BEGIN
            CREATE TYPE account_status AS ENUM ('pending', 'verified');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    op.create_table(
        "jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("queue", sa.String(64), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "status",
            postgresql.ENUM("queued", "processing", "done", "failed", name="job_status", create_type=False),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("lease_owner", sa.String(255), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "available_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("result", postgresql.JSONB, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_lease_owner", "jobs", ["lease_owner"])
    op.create_index("ix_jobs_lease_expires_at", "jobs", ["lease_expires_at"])

    # One job per idempotency key
    op.create_unique_constraint("uq_jobs_queue_key", "jobs", ["queue", "key"])

    # Partial index for FIFO queue polling
    op.execute("""
        CREATE INDEX ix_jobs_queue_poll
        ON jobs (status, available_at, created_at, key)
        WHERE status = 'queued'
    """)

    # Partial index for lease expiry
    op.execute("""
        CREATE INDEX ix_jobs_lease_expiry
        ON jobs (lease_expires_at)
        WHERE status = 'processing'
    """)

    op.create_table(
        "payments_accounts",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("box_id", sa.String(255), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM("pending", "verified", name="account_status", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("meta", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_accounts_box_id", "payments_accounts", ["box_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("box_id", sa.String(255), nullable=False),
        sa.Column("scenario_kind", sa.String(64), nullable=False),
        sa.Column("credits_earned", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_box_id", "tasks", ["box_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_box_id")
    op.drop_table("tasks")

    op.drop_index("ix_payments_accounts_box_id")
    op.drop_table("payments_accounts")

    op.execute("DROP INDEX IF EXISTS ix_jobs_lease_expiry")
    op.execute("DROP INDEX IF EXISTS ix_jobs_queue_poll")
    op.drop_index("ix_jobs_lease_expires_at")
    op.drop_index("ix_jobs_lease_owner")
    op.drop_index("ix_jobs_status")
    op.drop_constraint("uq_jobs_queue_key", "jobs")
    op.drop_table("jobs")

    op.execute("DROP TYPE IF EXISTS account_status")
    op.execute("DROP TYPE IF EXISTS job_status")
