"""
Worker pool for executing queued jobs.

Each worker process runs ``concurrency`` slots. A slot acquires one job at
a time under an exclusive lease, executes it, and records the outcome.
Slots coordinate only through conditional transitions in the status store,
so any number of worker processes can share one database.
"""

import asyncio
import logging
import os
import signal
import time
from uuid import UUID

from boxsync.config import get_settings
from boxsync.constants import SPAN_ACQUIRE_LEASE, SPAN_EXECUTE_JOB, JobStatus
from boxsync.db import Job, StatusStore, close_db, get_session_context, init_db
from boxsync.errors import BoxSyncError, Conflict, MaxAttemptsExceeded, is_transient
from boxsync.observability.logging import job_log_context, setup_logging
from boxsync.observability.metrics import get_metrics
from boxsync.observability.tracing import get_tracer, job_span, setup_tracing
from boxsync.queue.job_queue import SessionFactory
from boxsync.types.job import JobContext, JobResult
from boxsync.utils.retry import backoff_delay
from boxsync.worker.handlers import execute_job

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Atomic QUEUED -> PROCESSING lease acquisition
    - Handler writes and the DONE transition committed together
    - Exponential backoff for transient failures, FAILED after max attempts
    - Heartbeat to extend leases for long-running jobs
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        worker_id: str | None = None,
        concurrency: int | None = None,
        poll_interval: float | None = None,
        session_factory: SessionFactory = get_session_context,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            concurrency: Number of slots processing jobs in parallel.
            poll_interval: Seconds between polls when the queue is empty.
            session_factory: Source of database sessions.
        """
        settings = get_settings()

        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.concurrency = concurrency or settings.worker_concurrency
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.heartbeat_interval = settings.worker_heartbeat_interval_seconds
        self.backoff_base = settings.retry_backoff_base_seconds
        self.backoff_max = settings.retry_backoff_max_seconds

        self._session_factory = session_factory
        self._running = False
        self._current_jobs: dict[UUID, str] = {}
        self._heartbeat_task: asyncio.Task | None = None
        self._metrics = get_metrics()

    def slot_id(self, index: int) -> str:
        """Lease owner name of a slot."""
        return f"{self.worker_id}:{index}"

    async def start(self) -> None:
        """Start the worker and run until stop() is called."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "concurrency": self.concurrency},
        )

        self._running = True
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        slots = [
            asyncio.create_task(self._slot_loop(self.slot_id(index)))
            for index in range(self.concurrency)
        ]
        await asyncio.gather(*slots)

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker gracefully. In-flight jobs finish first."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def _slot_loop(self, slot_id: str) -> None:
        while self._running:
            try:
                processed = await self.run_once(slot_id)
                if not processed:
                    await asyncio.sleep(self.poll_interval)
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": slot_id},
                )
                await asyncio.sleep(self.poll_interval)

    async def run_once(self, slot_id: str | None = None) -> bool:
        """
        Acquire and process at most one job.

        Args:
            slot_id: Lease owner name. Defaults to the first slot.

        Returns:
            True if a job was processed, False if none was acquirable.
        """
        slot_id = slot_id or self.slot_id(0)

        with get_tracer().start_as_current_span(SPAN_ACQUIRE_LEASE):
            async with self._session_factory() as session:
                job = await StatusStore(session).acquire_next_job(slot_id)

        if job is None:
            return False

        self._metrics.record_lease_acquired(self.worker_id)
        await self._execute_job(job, slot_id)
        return True

    async def run_until_empty(self, slot_id: str | None = None) -> int:
        """
        Process jobs until none is acquirable.

        Returns:
            Number of jobs processed.
        """
        processed = 0
        while await self.run_once(slot_id):
            processed += 1
        return processed

    async def _execute_job(self, job: Job, slot_id: str) -> None:
        """
        Execute a single leased job.

        Handles the full lifecycle:
        1. Run the handler inside a transaction
        2. Mark DONE in the same transaction, or roll back on failure
        3. Requeue with backoff or mark FAILED

        Args:
            job: The leased job.
            slot_id: The lease owner.
        """
        start_time = time.monotonic()
        context = JobContext(
            job_id=job.id,
            queue=job.queue,
            key=job.key,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            payload=job.payload,
            lease_owner=slot_id,
            lease_expires_at=job.lease_expires_at,
        )

        self._current_jobs[job.id] = slot_id
        try:
            with job_log_context(job.queue, job.key, slot_id, context.attempt):
                logger.info("Executing job", extra={"last_attempt": context.is_last_attempt})

                with job_span(SPAN_EXECUTE_JOB, job.queue, job.key, attempt=context.attempt):
                    result = await self._process(context, slot_id)

                if result is None:
                    return

                duration = time.monotonic() - start_time

                if result.success:
                    logger.info("Job completed successfully", extra={"duration": f"{duration:.3f}s"})
                    self._metrics.record_job_completed(
                        queue=job.queue,
                        status=JobStatus.DONE.value,
                        duration_seconds=duration,
                    )
                else:
                    await self._record_failure(context, slot_id, result, duration)
        finally:
            self._current_jobs.pop(job.id, None)

    async def _process(self, context: JobContext, slot_id: str) -> JobResult | None:
        """
        Run the handler and the DONE transition as one transaction.

        Returns:
            The handler result, or None if the lease was lost before commit.
        """
        try:
            async with self._session_factory() as session:
                store = StatusStore(session)
                result = await execute_job(context, store)

                if not result.success:
                    await session.rollback()
                    return result

                completed = await store.complete_job(context.job_id, slot_id, result.output)
                if completed is None:
                    raise Conflict(f"Lease on {context.key} lost before completion")
                return result

        except Conflict:
            logger.warning("Lease lost, discarding job result")
            return None
        except Exception as e:
            logger.exception("Exception executing job", extra={"error": str(e)})
            return JobResult(
                success=False,
                error=f"Worker exception: {e}",
                retryable=is_transient(e) or not isinstance(e, BoxSyncError),
            )

    async def _record_failure(
        self,
        context: JobContext,
        slot_id: str,
        result: JobResult,
        duration: float,
    ) -> None:
        backoff = backoff_delay(context.attempt, self.backoff_base, self.backoff_max)

        async with self._session_factory() as session:
            updated = await StatusStore(session).fail_job(
                job_id=context.job_id,
                worker_id=slot_id,
                error=result.error or "Unknown error",
                retryable=result.retryable,
                backoff_seconds=backoff,
            )

        if updated is None:
            logger.warning("Lease lost before recording failure")
            return

        if updated.status == JobStatus.FAILED and result.retryable:
            error = MaxAttemptsExceeded(f"{context.key} failed {updated.attempts} times")
            logger.error(str(error), extra={"error": result.error})
        else:
            logger.warning(
                "Job attempt failed",
                extra={"error": result.error, "status": str(updated.status)},
            )

        self._metrics.record_job_completed(
            queue=context.queue,
            status=updated.status.value,
            duration_seconds=duration,
        )

    async def _heartbeat_loop(self) -> None:
        """
        Periodically extend leases on running jobs.

        This prevents jobs from being reclaimed by the reaper
        while they're still being executed.
        """
        while self._running:
            try:
                await asyncio.sleep(self.heartbeat_interval)

                if not self._current_jobs:
                    continue

                async with self._session_factory() as session:
                    store = StatusStore(session)

                    for job_id, slot_id in list(self._current_jobs.items()):
                        extended = await store.extend_lease(job_id, slot_id)
                        if extended:
                            logger.debug("Extended lease", extra={"job_id": str(job_id)})

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in heartbeat loop: {e}")


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging("worker")
    setup_tracing("worker")
    await init_db()

    worker = Worker()

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
