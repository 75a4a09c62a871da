"""
Job handlers registry and implementations.

A handler runs inside the same transaction that marks its job DONE, so its
writes become visible together with the status change or not at all.
Handlers must still be idempotent: a job whose worker died mid-flight is
re-executed after its lease expires.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from boxsync.constants import MAX_KEY_LENGTH, REGISTRATION_QUEUE
from boxsync.db import StatusStore
from boxsync.errors import BoxSyncError, is_transient
from boxsync.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext, StatusStore], Awaitable[JobResult]]

# Handler registry, keyed by queue name
_handlers: dict[str, JobHandler] = {}


def register_handler(queue: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register the handler for a queue.

    Args:
        queue: The queue this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("registration")
        async def handle_registration(context: JobContext, store: StatusStore) -> JobResult:
            ...
    """

    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[queue] = handler
        logger.info(f"Registered handler for queue: {queue}")
        return handler

    return decorator


def get_handler(queue: str) -> JobHandler | None:
    """
    Get the handler for a queue.

    Args:
        queue: The queue name.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(queue)


def list_handlers() -> list[str]:
    """List all queues with a registered handler."""
    return list(_handlers.keys())


# ============================================================================
# Built-in job handlers
# ============================================================================


class AccountRegistration(BaseModel):
    """Payload of a registration job."""

    id: str = Field(..., min_length=1, max_length=MAX_KEY_LENGTH)
    box_id: str = Field(..., min_length=1, max_length=255)
    meta: dict[str, Any] = Field(default_factory=dict)


@register_handler(REGISTRATION_QUEUE)
async def handle_registration(context: JobContext, store: StatusStore) -> JobResult:
    """
    Create the payment account, PENDING and owned by the calling box.

    Payload validation failures are not retried.
    """
    try:
        registration = AccountRegistration.model_validate(context.payload.get("account"))
    except ValidationError as e:
        return JobResult(
            success=False,
            error=f"Invalid registration payload ({e.error_count()} errors)",
            retryable=False,
        )

    if registration.id != context.key:
        return JobResult(
            success=False,
            error="Registration payload id does not match job key",
            retryable=False,
        )

    account, created = await store.create_account(
        account_id=registration.id,
        box_id=registration.box_id,
        meta=registration.meta,
    )

    logger.info(
        "Account registered" if created else "Account already registered",
        extra={"account_id": account.id, "box_id": account.box_id},
    )

    return JobResult(
        success=True,
        output={"account_id": account.id, "status": account.status.value},
    )


async def execute_job(context: JobContext, store: StatusStore) -> JobResult:
    """
    Execute a job using the handler registered for its queue.

    Handler exceptions become failed results: non-retryable boxsync errors
    (e.g. InvalidArgument) fail the job, anything else is treated as
    transient and retried within the job's attempt budget.

    Args:
        context: The job context.
        store: Status store bound to the processing transaction.

    Returns:
        JobResult from the handler.
    """
    handler = get_handler(context.queue)

    if handler is None:
        logger.error(
            f"No handler for queue: {context.queue}",
            extra={"key": context.key},
        )
        return JobResult(
            success=False,
            error=f"No handler registered for queue: {context.queue}",
            retryable=False,
        )

    try:
        return await handler(context, store)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"key": context.key, "error": str(e)},
        )
        return JobResult(
            success=False,
            error=f"Handler exception: {e}",
            retryable=is_transient(e) or not isinstance(e, BoxSyncError),
        )
