"""
Status store for database operations.

The single source of truth for "has this logical operation already
happened". Every state change goes through compare_and_transition, a
conditional UPDATE that only applies when the stored status still matches
the expected one.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from boxsync.config import get_settings
from boxsync.constants import (
    ACCOUNT_TRANSITIONS,
    JOB_TRANSITIONS,
    AccountStatus,
    JobStatus,
)
from boxsync.db.models import Base, Job, PaymentsAccount, Task
from boxsync.errors import InvalidArgument
from boxsync.utils.clock import utcnow

logger = logging.getLogger(__name__)

_LEGAL_TRANSITIONS: dict[type[Base], frozenset] = {
    Job: JOB_TRANSITIONS,
    PaymentsAccount: ACCOUNT_TRANSITIONS,
}

# How many QUEUED rows a worker looks at per acquisition attempt
ACQUIRE_CANDIDATES = 5


class StatusStore:
    """
    Repository for job, account and task state.

    Implements atomic operations for:
    - Job submission with idempotency (INSERT ... ON CONFLICT DO NOTHING)
    - Lease acquisition (FOR UPDATE SKIP LOCKED + conditional transition)
    - Status transitions guarded by the legal transition tables
    - Lease expiry handling
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the store with a database session.

        Args:
            session: The async database session.
        """
        self._session = session
        self._settings = get_settings()

    def _insert(self, model: type[Base]) -> Any:
        dialect = self._session.bind.dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise RuntimeError(f"Unsupported database dialect: {dialect}")

    # ------------------------------------------------------------------
    # Conditional transition
    # ------------------------------------------------------------------

    async def compare_and_transition(
        self,
        model: type[Job] | type[PaymentsAccount],
        ident: Any,
        expected: JobStatus | AccountStatus,
        new: JobStatus | AccountStatus,
        *conditions: Any,
        **values: Any,
    ) -> bool:
        """
        Move a record from ``expected`` to ``new`` status if it is still there.

        Args:
            model: Job or PaymentsAccount.
            ident: Primary key of the record.
            expected: Status the record must currently have.
            new: Status to move to.
            *conditions: Extra WHERE clauses (e.g. lease ownership).
            **values: Extra columns to set in the same UPDATE.

        Returns:
            True if the transition was applied, False on conflict (the record
            is missing or no longer in ``expected``).

        Raises:
            InvalidArgument: If expected -> new is not a legal transition.
        """
        if (expected, new) not in _LEGAL_TRANSITIONS[model]:
            raise InvalidArgument(
                f"Illegal {model.__tablename__} transition: {expected} -> {new}"
            )

        stmt = (
            update(model)
            .where(model.id == ident, model.status == expected, *conditions)
            .values(status=new, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        applied = result.rowcount == 1

        if not applied:
            logger.debug(
                "Conditional transition lost",
                extra={
                    "table": model.__tablename__,
                    "ident": str(ident),
                    "expected": str(expected),
                    "new": str(new),
                },
            )
        return applied

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self,
        queue: str,
        key: str,
        payload: dict,
        max_attempts: int | None = None,
    ) -> tuple[Job, bool]:
        """
        Create a new job unless one already exists for (queue, key).

        Args:
            queue: The queue (job category) name.
            key: Idempotency key, stable across client retries.
            payload: Opaque operation input.
            max_attempts: Maximum processing attempts.

        Returns:
            Tuple of (Job, created) where created is True if a new row was inserted.
        """
        now = utcnow()
        stmt = (
            self._insert(Job)
            .values(
                id=uuid4(),
                queue=queue,
                key=key,
                payload=payload,
                status=JobStatus.QUEUED,
                attempts=0,
                max_attempts=max_attempts or self._settings.default_max_attempts,
                available_at=now,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["queue", "key"])
        )
        result = await self._session.execute(stmt)
        created = result.rowcount == 1

        job = await self.get_job(queue, key)
        if job is None:
            raise RuntimeError("Job should exist after conflict")

        if created:
            logger.info("Created new job", extra={"queue": queue, "key": key})
        else:
            logger.info(
                "Returned existing job (idempotent)",
                extra={"queue": queue, "key": key, "status": str(job.status)},
            )
        return job, created

    async def get_job(self, queue: str, key: str) -> Job | None:
        """
        Get a job by queue and idempotency key.

        Args:
            queue: The queue name.
            key: The idempotency key.

        Returns:
            The Job or None if not found.
        """
        stmt = (
            select(Job)
            .where(and_(Job.queue == queue, Job.key == key))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_job_by_id(self, job_id: UUID) -> Job | None:
        stmt = select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def acquire_next_job(
        self,
        worker_id: str,
        lease_seconds: int | None = None,
    ) -> Job | None:
        """
        Acquire the oldest available QUEUED job under an exclusive lease.

        Candidates are read in FIFO order (created_at, then key). On
        PostgreSQL the read uses FOR UPDATE SKIP LOCKED so concurrent workers
        see disjoint rows; on every backend the QUEUED -> PROCESSING
        conditional transition is what decides ownership.

        Args:
            worker_id: The lease owner.
            lease_seconds: Lease duration. Defaults to the configured value.

        Returns:
            The leased Job, or None if nothing is acquirable.
        """
        if lease_seconds is None:
            lease_seconds = self._settings.worker_lease_duration_seconds

        now = utcnow()
        candidates = (
            select(Job.id)
            .where(Job.status == JobStatus.QUEUED, Job.available_at <= now)
            .order_by(Job.created_at.asc(), Job.key.asc())
            .limit(ACQUIRE_CANDIDATES)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(candidates)

        for job_id in result.scalars().all():
            acquired = await self.compare_and_transition(
                Job,
                job_id,
                JobStatus.QUEUED,
                JobStatus.PROCESSING,
                lease_owner=worker_id,
                lease_expires_at=now + timedelta(seconds=lease_seconds),
                attempts=Job.attempts + 1,
            )
            if acquired:
                job = await self.get_job_by_id(job_id)
                logger.info(
                    "Acquired job lease",
                    extra={"worker_id": worker_id, "key": job.key, "attempt": job.attempts},
                )
                return job

        return None

    async def complete_job(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict | None = None,
    ) -> Job | None:
        """
        Mark a job as DONE.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier (must still own the lease).
            result: Optional job result data.

        Returns:
            Updated Job or None if the lease was lost.
        """
        now = utcnow()
        applied = await self.compare_and_transition(
            Job,
            job_id,
            JobStatus.PROCESSING,
            JobStatus.DONE,
            Job.lease_owner == worker_id,
            completed_at=now,
            lease_owner=None,
            lease_expires_at=None,
            last_error=None,
            result=result,
        )
        if not applied:
            return None
        return await self.get_job_by_id(job_id)

    async def fail_job(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        retryable: bool = True,
        backoff_seconds: float = 0.0,
    ) -> Job | None:
        """
        Handle a failed attempt: requeue with backoff or mark FAILED.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier.
            error: Error message (kept internally, never returned to clients).
            retryable: False for non-transient failures, which fail immediately.
            backoff_seconds: Delay before the job becomes acquirable again.

        Returns:
            Updated Job or None if the worker no longer owns the lease.
        """
        job = await self.get_job_by_id(job_id)
        if job is None:
            return None

        if job.status != JobStatus.PROCESSING or job.lease_owner != worker_id:
            logger.warning(
                "Worker doesn't own job lease",
                extra={"key": job.key, "worker_id": worker_id},
            )
            return None

        now = utcnow()

        if retryable and job.is_retryable:
            new_status = JobStatus.QUEUED
            values: dict[str, Any] = {
                "available_at": now + timedelta(seconds=backoff_seconds),
                "completed_at": None,
            }
            logger.info(
                "Job queued for retry",
                extra={"key": job.key, "attempt": job.attempts, "backoff": backoff_seconds},
            )
        else:
            new_status = JobStatus.FAILED
            values = {"completed_at": now}
            logger.warning(
                f"Job failed after {job.attempts} attempts",
                extra={"key": job.key, "error": error, "retryable": retryable},
            )

        applied = await self.compare_and_transition(
            Job,
            job_id,
            JobStatus.PROCESSING,
            new_status,
            Job.lease_owner == worker_id,
            last_error=error,
            lease_owner=None,
            lease_expires_at=None,
            **values,
        )
        if not applied:
            return None
        return await self.get_job_by_id(job_id)

    async def extend_lease(
        self,
        job_id: UUID,
        worker_id: str,
        extension_seconds: int | None = None,
    ) -> bool:
        """
        Extend the lease on a job (heartbeat).

        A lease-only write: it moves ``lease_expires_at`` forward for a job
        still PROCESSING under ``worker_id`` and never touches the status,
        so it is not a transition.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier.
            extension_seconds: Lease extension duration.

        Returns:
            True if lease was extended, False otherwise.
        """
        if extension_seconds is None:
            extension_seconds = self._settings.worker_lease_duration_seconds

        now = utcnow()
        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.lease_owner == worker_id,
                Job.status == JobStatus.PROCESSING,
            )
            .values(
                lease_expires_at=now + timedelta(seconds=extension_seconds),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def recover_expired_leases(self) -> int:
        """
        Reclaim jobs whose worker stopped heartbeating.

        PROCESSING jobs with an expired lease go back to QUEUED, or to
        FAILED when the lost attempt was their last one. Each job moves
        through compare_and_transition, guarded by the lease still being
        expired, so a worker that heartbeats in between keeps its job.

        Returns:
            Number of reclaimed jobs.
        """
        now = utcnow()
        stmt = (
            select(Job.id, Job.attempts, Job.max_attempts)
            .where(Job.status == JobStatus.PROCESSING, Job.lease_expires_at < now)
            .order_by(Job.lease_expires_at)
        )
        expired = (await self._session.execute(stmt)).all()

        requeued = failed = 0
        for job_id, attempts, max_attempts in expired:
            if attempts < max_attempts:
                new_status = JobStatus.QUEUED
                values: dict[str, Any] = {"available_at": now}
            else:
                new_status = JobStatus.FAILED
                values = {"completed_at": now}

            applied = await self.compare_and_transition(
                Job,
                job_id,
                JobStatus.PROCESSING,
                new_status,
                Job.lease_expires_at < now,
                lease_owner=None,
                lease_expires_at=None,
                last_error="Lease expired",
                **values,
            )
            if not applied:
                continue
            if new_status == JobStatus.QUEUED:
                requeued += 1
            else:
                failed += 1

        count = requeued + failed
        if count > 0:
            logger.info(
                f"Recovered {count} jobs with expired leases",
                extra={"requeued": requeued, "failed": failed},
            )

        return count

    async def get_queue_depth(self, queue: str | None = None) -> int:
        """
        Get the number of queued jobs.

        Args:
            queue: Optional queue filter.

        Returns:
            Number of queued jobs.
        """
        filters = [Job.status == JobStatus.QUEUED]
        if queue is not None:
            filters.append(Job.queue == queue)

        stmt = select(func.count()).select_from(Job).where(and_(*filters))
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def get_queue_depths(self) -> dict[str, int]:
        """Number of queued jobs per queue."""
        stmt = (
            select(Job.queue, func.count())
            .where(Job.status == JobStatus.QUEUED)
            .group_by(Job.queue)
        )
        result = await self._session.execute(stmt)
        return {queue: count for queue, count in result.all()}

    async def get_job_stats(self, queue: str | None = None) -> dict[str, int]:
        """
        Get job counts by status.

        Args:
            queue: Optional queue filter.

        Returns:
            Dictionary of status -> count.
        """
        stmt = select(Job.status, func.count()).group_by(Job.status)
        if queue is not None:
            stmt = stmt.where(Job.queue == queue)

        result = await self._session.execute(stmt)
        return {status.value: count for status, count in result.all()}

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def create_account(
        self,
        account_id: str,
        box_id: str,
        meta: dict | None = None,
    ) -> tuple[PaymentsAccount, bool]:
        """
        Create a PENDING account unless it already exists.

        Args:
            account_id: Caller-assigned account id.
            box_id: Owning box.
            meta: Remaining fields of the posted record.

        Returns:
            Tuple of (PaymentsAccount, created).
        """
        now = utcnow()
        stmt = (
            self._insert(PaymentsAccount)
            .values(
                id=account_id,
                box_id=box_id,
                status=AccountStatus.PENDING,
                meta=meta or {},
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["id"])
        )
        result = await self._session.execute(stmt)
        created = result.rowcount == 1

        account = await self.get_account(account_id)
        if account is None:
            raise RuntimeError("Account should exist after conflict")
        return account, created

    async def get_account(self, account_id: str) -> PaymentsAccount | None:
        stmt = (
            select(PaymentsAccount)
            .where(PaymentsAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_accounts(self, box_id: str) -> Sequence[PaymentsAccount]:
        stmt = (
            select(PaymentsAccount)
            .where(PaymentsAccount.box_id == box_id)
            .order_by(PaymentsAccount.created_at.asc(), PaymentsAccount.id.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self, box_id: str) -> Sequence[Task]:
        stmt = select(Task).where(Task.box_id == box_id).order_by(Task.id.asc())
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def save_task(
        self,
        task_id: str,
        box_id: str,
        scenario_kind: str,
        credits_earned: float = 0.0,
    ) -> None:
        """
        Insert or replace a task row.

        Tasks are assigned outside the sync engine; this is the write side
        used by assignment tooling and fixtures.
        """
        now = utcnow()
        stmt = self._insert(Task).values(
            id=task_id,
            box_id=box_id,
            scenario_kind=scenario_kind,
            credits_earned=credits_earned,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "box_id": box_id,
                "scenario_kind": scenario_kind,
                "credits_earned": credits_earned,
                "updated_at": now,
            },
        )
        await self._session.execute(stmt)
