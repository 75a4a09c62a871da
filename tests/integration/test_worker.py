"""
Integration tests for the worker pool and the lease reaper.
"""

import asyncio
from collections import Counter
from datetime import timedelta

from sqlalchemy import update

from boxsync.accounts import AccountService
from boxsync.constants import AccountStatus, JobStatus
from boxsync.db import Job, StatusStore, get_session_context
from boxsync.queue import JobQueue
from boxsync.reaper import Reaper
from boxsync.types.api import AccountResponse
from boxsync.types.job import JobResult
from boxsync.utils.clock import utcnow
from boxsync.worker import Worker


async def job_state(queue: str, key: str) -> Job:
    async with get_session_context() as session:
        return await StatusStore(session).get_job(queue, key)


class TestWorkerIntegration:
    """Integration tests for worker job processing."""

    async def test_registration_lifecycle(self, database):
        """Test enqueue -> lease -> handler -> DONE with the account created."""
        service = AccountService()

        pending = await service.register("acct-42", "box-1", {"upi": "a@bank"})
        processed = await Worker(worker_id="test-worker").run_until_empty()
        registered = await service.get("acct-42", "box-1")

        assert pending.status == JobStatus.QUEUED
        assert processed == 1
        assert isinstance(registered, AccountResponse)
        assert registered.status == AccountStatus.PENDING
        assert registered.meta == {"upi": "a@bank"}

        job = await job_state("registration", "acct-42")
        assert job.status == JobStatus.DONE
        assert job.attempts == 1
        assert job.lease_owner is None

    async def test_each_job_runs_once_across_slots(self, database, temporary_handler):
        """Test that concurrent slots never execute the same job twice."""
        executions: Counter[str] = Counter()

        async def count(context, store):
            executions[context.key] += 1
            await asyncio.sleep(0)
            return JobResult(success=True)

        temporary_handler("counting", count)
        queue = JobQueue("counting")
        keys = [f"job-{n}" for n in range(12)]
        for key in keys:
            await queue.enqueue(key, {})

        worker = Worker(worker_id="pool", concurrency=4)
        processed = await asyncio.gather(
            *(worker.run_until_empty(worker.slot_id(n)) for n in range(worker.concurrency))
        )

        assert sum(processed) == len(keys)
        assert executions == Counter({key: 1 for key in keys})
        for key in keys:
            assert (await job_state("counting", key)).status == JobStatus.DONE

    async def test_transient_failures_exhaust_attempts(self, database, temporary_handler):
        """Test that a job failing every attempt ends FAILED after max_attempts."""
        calls: list[int] = []

        async def flaky(context, store):
            calls.append(context.attempt)
            raise RuntimeError("downstream unavailable")

        temporary_handler("flaky", flaky)
        await JobQueue("flaky", max_attempts=3).enqueue("job-1", {})

        processed = await Worker(worker_id="test-worker").run_until_empty()

        job = await job_state("flaky", "job-1")
        assert processed == 3
        assert calls == [1, 2, 3]
        assert job.status == JobStatus.FAILED
        assert job.attempts == 3
        assert "downstream unavailable" in job.last_error

    async def test_retry_then_success(self, database, temporary_handler):
        """Test that a job recovers after a transient failure."""

        async def second_time_lucky(context, store):
            if context.attempt == 1:
                raise TimeoutError("slow storage")
            return JobResult(success=True, output={"attempt": context.attempt})

        temporary_handler("lucky", second_time_lucky)
        await JobQueue("lucky").enqueue("job-1", {})

        await Worker(worker_id="test-worker").run_until_empty()

        job = await job_state("lucky", "job-1")
        assert job.status == JobStatus.DONE
        assert job.attempts == 2
        assert job.result == {"attempt": 2}

    async def test_permanent_failure_not_retried(self, database, temporary_handler):
        """Test that a non-retryable result fails the job on the first attempt."""

        async def reject(context, store):
            return JobResult(success=False, error="bad input", retryable=False)

        temporary_handler("reject", reject)
        await JobQueue("reject").enqueue("job-1", {})

        processed = await Worker(worker_id="test-worker").run_until_empty()

        job = await job_state("reject", "job-1")
        assert processed == 1
        assert job.status == JobStatus.FAILED
        assert job.attempts == 1

    async def test_failed_handler_writes_are_rolled_back(self, database, temporary_handler):
        """Test that a failed attempt leaves no partial writes behind."""

        async def half_done(context, store):
            await store.create_account("acct-partial", "box-1")
            return JobResult(success=False, error="gave up", retryable=False)

        temporary_handler("half-done", half_done)
        await JobQueue("half-done").enqueue("job-1", {})

        await Worker(worker_id="test-worker").run_until_empty()

        async with get_session_context() as session:
            assert await StatusStore(session).get_account("acct-partial") is None

    async def test_start_and_stop(self, database):
        """Test the polling loop picks up work and stops cleanly."""
        worker = Worker(worker_id="looping", concurrency=2, poll_interval=0.02)
        running = asyncio.create_task(worker.start())

        await AccountService().register("acct-7", "box-1", {})
        snapshot = await JobQueue("registration").wait_for_terminal("acct-7", timeout=5.0)

        await worker.stop()
        await asyncio.wait_for(running, timeout=5.0)

        assert snapshot.status == JobStatus.DONE


class TestReaperIntegration:
    """Integration tests for lease recovery."""

    async def _crash_worker(self, queue: str, key: str) -> None:
        """Lease a job and abandon it with an expired lease."""
        async with get_session_context() as session:
            job = await StatusStore(session).acquire_next_job("crashed-worker")
            assert job.key == key
            await session.execute(
                update(Job)
                .where(Job.id == job.id)
                .values(lease_expires_at=utcnow() - timedelta(seconds=1))
            )

    async def test_expired_lease_is_requeued_and_completed(self, database):
        """Test that a job abandoned by a dead worker still reaches DONE."""
        await AccountService().register("acct-42", "box-1", {})
        await self._crash_worker("registration", "acct-42")

        recovered = await Reaper(interval_seconds=1).run_once()
        processed = await Worker(worker_id="survivor").run_until_empty()

        job = await job_state("registration", "acct-42")
        assert recovered == 1
        assert processed == 1
        assert job.status == JobStatus.DONE
        assert job.attempts == 2

    async def test_expired_last_attempt_fails(self, database):
        """Test that an expired lease on the final attempt is terminal."""
        await JobQueue("registration", max_attempts=1).enqueue(
            "acct-42", {"account": {"id": "acct-42", "box_id": "box-1"}}
        )
        await self._crash_worker("registration", "acct-42")

        await Reaper().run_once()

        job = await job_state("registration", "acct-42")
        assert job.status == JobStatus.FAILED

    async def test_nothing_to_recover(self, database):
        assert await Reaper().run_once() == 0

    async def test_start_sweeps_until_stopped(self, database):
        """Test that the loop sweeps immediately and stops without waiting out the interval."""
        await AccountService().register("acct-42", "box-1", {})
        await self._crash_worker("registration", "acct-42")

        reaper = Reaper(interval_seconds=60)
        task = asyncio.create_task(reaper.start())

        for _ in range(100):
            if (await job_state("registration", "acct-42")).status == JobStatus.QUEUED:
                break
            await asyncio.sleep(0.01)

        await reaper.stop()
        await asyncio.wait_for(task, timeout=5)

        assert (await job_state("registration", "acct-42")).status == JobStatus.QUEUED
