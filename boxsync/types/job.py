"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from boxsync.constants import TERMINAL_JOB_STATUSES, JobStatus


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.

    ``retryable`` is only read on failure: False sends the job straight to
    FAILED (payload validation, unknown queue).
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    retryable: bool = True


class JobSnapshot(BaseModel):
    """
    Point-in-time view of a job as returned by the queue.

    ``created`` tells whether this enqueue call inserted the row; callers
    must not branch on it, the status is authoritative.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    queue: str
    key: str
    status: JobStatus
    attempts: int
    max_attempts: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    created: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and utilities for the handler.
    """

    job_id: UUID
    queue: str
    key: str
    attempt: int
    max_attempts: int
    payload: dict[str, Any]
    lease_owner: str
    lease_expires_at: datetime | None

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.max_attempts
