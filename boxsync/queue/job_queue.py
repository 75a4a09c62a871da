"""
Idempotent job queue.

Enqueue is safe to repeat: the first call for a key inserts a QUEUED job,
every later call returns the stored job as it is now. Workers see the row
as soon as enqueue returns.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from boxsync.config import get_settings
from boxsync.constants import MAX_KEY_LENGTH, SPAN_ENQUEUE_JOB
from boxsync.db import StatusStore, get_session_context
from boxsync.errors import InvalidArgument, QueueUnavailable, is_transient
from boxsync.observability.metrics import get_metrics
from boxsync.observability.tracing import job_span
from boxsync.types.job import JobSnapshot

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def validate_key(key: Any) -> str:
    """
    Check an idempotency key.

    Raises:
        InvalidArgument: If the key is not a non-empty, trimmed string of at
            most MAX_KEY_LENGTH characters.
    """
    if not isinstance(key, str) or not key:
        raise InvalidArgument("Job key must be a non-empty string")
    if key != key.strip():
        raise InvalidArgument("Job key must not have surrounding whitespace")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidArgument(f"Job key longer than {MAX_KEY_LENGTH} characters")
    return key


class JobQueue:
    """
    One logical queue (job category) backed by the status store.

    Each enqueue attempt runs in its own short transaction. Storage failures
    are retried ``retry_limit`` times before surfacing as QueueUnavailable.
    """

    def __init__(
        self,
        name: str,
        session_factory: SessionFactory = get_session_context,
        max_attempts: int | None = None,
        retry_limit: int | None = None,
    ):
        settings = get_settings()
        self.name = name
        self._session_factory = session_factory
        self._max_attempts = max_attempts or settings.default_max_attempts
        self._retry_limit = (
            settings.enqueue_retry_limit if retry_limit is None else retry_limit
        )
        self._poll_interval = settings.registration_poll_interval_seconds

    async def enqueue(self, key: str, payload: dict[str, Any]) -> JobSnapshot:
        """
        Enqueue a job, or return the existing one for this key.

        Args:
            key: Idempotency key, stable across caller retries.
            payload: Operation input, opaque to the queue.

        Returns:
            JobSnapshot of the stored job. Its status is authoritative.

        Raises:
            InvalidArgument: Malformed key or payload. Never retried.
            QueueUnavailable: Storage kept failing after the retry.
        """
        validate_key(key)
        if not isinstance(payload, dict):
            raise InvalidArgument("Job payload must be an object")

        last_error: BaseException | None = None

        for attempt in range(self._retry_limit + 1):
            try:
                with job_span(SPAN_ENQUEUE_JOB, self.name, key, attempt=attempt + 1):
                    snapshot = await self._enqueue_once(key, payload)
            except Exception as e:
                if not is_transient(e):
                    raise
                last_error = e
                logger.warning(
                    "Enqueue failed, storage unavailable",
                    extra={"queue": self.name, "key": key, "attempt": attempt + 1, "error": str(e)},
                )
                continue

            if snapshot.created:
                get_metrics().record_job_enqueued(self.name)
            return snapshot

        raise QueueUnavailable(f"Could not enqueue {self.name}/{key}") from last_error

    async def _enqueue_once(self, key: str, payload: dict[str, Any]) -> JobSnapshot:
        async with self._session_factory() as session:
            store = StatusStore(session)
            job, created = await store.create_job(
                queue=self.name,
                key=key,
                payload=payload,
                max_attempts=self._max_attempts,
            )
            snapshot = JobSnapshot.model_validate(job).model_copy(update={"created": created})
        return snapshot

    async def get(self, key: str) -> JobSnapshot | None:
        """Current snapshot of the job for ``key``, if any."""
        async with self._session_factory() as session:
            job = await StatusStore(session).get_job(self.name, key)
            return JobSnapshot.model_validate(job) if job is not None else None

    async def wait_for_terminal(
        self,
        key: str,
        timeout: float,
        poll_interval: float | None = None,
    ) -> JobSnapshot | None:
        """
        Poll until the job is DONE or FAILED, or the timeout elapses.

        Each poll is its own transaction so no lock is held while waiting.

        Returns:
            The last snapshot read (terminal or not), None if the job is unknown.
        """
        poll_interval = poll_interval or self._poll_interval
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            snapshot = await self.get(key)
            if snapshot is None or snapshot.is_terminal or loop.time() >= deadline:
                return snapshot
            await asyncio.sleep(poll_interval)
