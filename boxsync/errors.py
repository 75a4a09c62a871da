"""
Error taxonomy shared by the queue, the workers, the API and the client.

Every error carries a coarse ``public_message``. Internal causes (storage
exceptions, retry counts) are logged where they are caught and never
forwarded to callers.
"""

from sqlalchemy import exc as sa_exc


class BoxSyncError(Exception):
    """Base class for all boxsync errors."""

    public_message = "Something went wrong"
    retryable = False


class InvalidArgument(BoxSyncError):
    """Malformed key or payload. Never retried."""

    public_message = "Invalid request"


class QueueUnavailable(BoxSyncError):
    """Storage failure or timeout while talking to the queue. Transient."""

    public_message = "Could not enqueue task. Something went wrong"
    retryable = True


class Conflict(BoxSyncError):
    """A conditional transition lost a race."""

    public_message = "Conflicting update"


class JobFailed(BoxSyncError):
    """A job reached the terminal FAILED state."""

    public_message = "Could not complete the request. Something went wrong"


class MaxAttemptsExceeded(JobFailed):
    """A job exhausted its retries and is terminally FAILED."""


class NotFound(BoxSyncError):
    """The requested record does not exist."""

    public_message = "Not found"


class AccessDenied(BoxSyncError):
    """The record belongs to another box."""

    public_message = "Access denied"


class SyncFailed(BoxSyncError):
    """Client-side sync unit ended in a non-SUCCEEDED terminal state."""

    public_message = "Sync failed. Please try again"
    retryable = True


_TRANSIENT_STORAGE_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    TimeoutError,
    ConnectionError,
)


def is_transient(error: BaseException) -> bool:
    """
    Classify an exception as transient (worth retrying) or not.

    Args:
        error: The exception raised by a storage call or a handler.

    Returns:
        True for storage timeouts, dropped connections and retryable
        boxsync errors.
    """
    if isinstance(error, BoxSyncError):
        return error.retryable
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, _TRANSIENT_STORAGE_ERRORS)
