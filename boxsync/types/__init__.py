"""
Type definitions for the sync service.
Contains input/output type definitions for all functions, grouped by module.
"""

from boxsync.types.api import (
    AccountResponse,
    AuthRequest,
    CreateAccountRequest,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    SyncResponse,
    TaskInfo,
    TokenResponse,
)
from boxsync.types.job import (
    JobContext,
    JobResult,
    JobSnapshot,
)

__all__ = [
    # API types
    "CreateAccountRequest",
    "AccountResponse",
    "JobResponse",
    "TaskInfo",
    "SyncResponse",
    "AuthRequest",
    "TokenResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobContext",
    "JobResult",
    "JobSnapshot",
]
