"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from boxsync.constants import MAX_KEY_LENGTH, AccountStatus, JobStatus


class CreateAccountRequest(BaseModel):
    """
    Request body for registering a payment account.

    ``id`` is assigned by the box and doubles as the idempotency key; all
    other fields are stored as-is. The owning box comes from the token.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, max_length=MAX_KEY_LENGTH, description="Account id")

    def record_fields(self) -> dict[str, Any]:
        """Fields other than the id, kept opaque."""
        return dict(self.model_extra or {})


class AccountResponse(BaseModel):
    """Payment account record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    box_id: str
    status: AccountStatus
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class JobResponse(BaseModel):
    """
    Public job status.

    Attempt counts and internal errors are deliberately absent.
    """

    model_config = ConfigDict(from_attributes=True)

    queue: str
    key: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class TaskInfo(BaseModel):
    """Read-only task projection consumed by the box dashboard."""

    model_config = ConfigDict(from_attributes=True)

    task_id: str = Field(validation_alias=AliasChoices("task_id", "id"))
    scenario_kind: str
    credits_earned: float = 0.0


class SyncResponse(BaseModel):
    """Everything a box needs to rebuild its local projection."""

    box_id: str
    tasks: list[TaskInfo]
    accounts: list[AccountResponse]
    total_credits: float
    synced_at: datetime


class AuthRequest(BaseModel):
    """Authentication request."""

    api_key: str = Field(..., description="API key for authentication")
    box_id: str = Field(..., description="Box identifier")


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    queue_depth: dict[str, int] = Field(default_factory=dict, description="QUEUED jobs per queue")
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Error body. Only a coarse, public message is ever returned."""

    detail: str
