"""
SQLAlchemy database models.
Defines the jobs, payments_accounts and tasks tables.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from boxsync.constants import AccountStatus, JobStatus

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite for local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls) -> list[str]:
    return [e.value for e in enum_cls]


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in a queue.

    This is the authoritative source of truth for job state.
    All job lifecycle transitions go through conditional updates on this table.

    Key constraints:
    - (queue, key) is unique: at most one job per idempotency key
    - status transitions follow JOB_TRANSITIONS
    - lease_owner and lease_expires_at track the exclusive processing lease
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    # Queue and idempotency
    queue: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)

    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", create_constraint=True, values_callable=_enum_values),
        nullable=False,
        default=JobStatus.QUEUED,
        index=True,
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Lease management
    lease_owner: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    # Backoff gate: a QUEUED job is acquirable once available_at has passed
    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        UniqueConstraint("queue", "key", name="uq_jobs_queue_key"),
        # FIFO polling order
        Index(
            "ix_jobs_queue_poll",
            "status",
            "available_at",
            "created_at",
            "key",
            postgresql_where=(Column("status") == JobStatus.QUEUED.value),
        ),
        Index(
            "ix_jobs_lease_expiry",
            "lease_expires_at",
            postgresql_where=(Column("status") == JobStatus.PROCESSING.value),
        ),
    )

    @property
    def is_retryable(self) -> bool:
        """Check if another attempt is allowed."""
        return self.attempts < self.max_attempts

    def __repr__(self) -> str:
        return (
            f"Job(queue={self.queue}, key={self.key}, "
            f"status={self.status}, attempts={self.attempts}/{self.max_attempts})"
        )


class PaymentsAccount(Base):
    """
    Payment account record registered by a box.

    Created PENDING by the registration job; the only later mutation is the
    PENDING -> VERIFIED transition.
    """

    __tablename__ = "payments_accounts"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    box_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[AccountStatus] = mapped_column(
        Enum(
            AccountStatus,
            name="account_status",
            create_constraint=True,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=AccountStatus.PENDING,
    )
    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"PaymentsAccount(id={self.id}, box={self.box_id}, status={self.status})"


class Task(Base):
    """Micro-task assigned to a box. Read-only for the sync engine."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    box_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    scenario_kind: Mapped[str] = mapped_column(String(64), nullable=False)
    credits_earned: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
