"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - QUEUED -> PROCESSING (lease acquired)
    - PROCESSING -> DONE (success)
    - PROCESSING -> QUEUED (transient failure, retry after backoff)
    - PROCESSING -> FAILED (max attempts exceeded or non-transient failure)

    DONE and FAILED are terminal.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class AccountStatus(StrEnum):
    """Payment account lifecycle. PENDING -> VERIFIED is the only transition."""

    PENDING = "pending"
    VERIFIED = "verified"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED})

JOB_TRANSITIONS: frozenset[tuple[JobStatus, JobStatus]] = frozenset(
    {
        (JobStatus.QUEUED, JobStatus.PROCESSING),
        (JobStatus.PROCESSING, JobStatus.DONE),
        (JobStatus.PROCESSING, JobStatus.QUEUED),
        (JobStatus.PROCESSING, JobStatus.FAILED),
    }
)

ACCOUNT_TRANSITIONS: frozenset[tuple[AccountStatus, AccountStatus]] = frozenset(
    {
        (AccountStatus.PENDING, AccountStatus.VERIFIED),
    }
)

# Queue names
REGISTRATION_QUEUE = "registration"

# Default values
MAX_KEY_LENGTH = 255

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "boxsync_queue_depth"
METRIC_JOBS_ENQUEUED = "boxsync_jobs_enqueued_total"
METRIC_JOBS_COMPLETED = "boxsync_jobs_completed_total"
METRIC_JOB_DURATION = "boxsync_job_duration_seconds"
METRIC_LEASE_EXPIRED = "boxsync_lease_expired_total"
METRIC_LEASE_ACQUIRED = "boxsync_lease_acquired_total"
METRIC_ACCOUNTS_VERIFIED = "boxsync_account_verifications_total"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_ACQUIRE_LEASE = "acquire_lease"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_VERIFY_ACCOUNT = "verify_account"
