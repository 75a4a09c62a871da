"""
Mapping from boxsync errors to HTTP responses.

Responses carry only the error's public message. The cause is logged here
and nowhere else.
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from boxsync.errors import (
    AccessDenied,
    BoxSyncError,
    Conflict,
    InvalidArgument,
    JobFailed,
    NotFound,
    QueueUnavailable,
    SyncFailed,
)

logger = logging.getLogger(__name__)

# Checked in order, so subclasses come before their bases
_STATUS_CODES: list[tuple[type[BoxSyncError], int]] = [
    (InvalidArgument, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (AccessDenied, status.HTTP_403_FORBIDDEN),
    (Conflict, status.HTTP_409_CONFLICT),
    (QueueUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SyncFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (JobFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(error: BoxSyncError) -> int:
    """HTTP status for a boxsync error."""
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def boxsync_error_handler(request: Request, exc: BoxSyncError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc}",
            extra={"path": request.url.path, "status_code": code},
        )
    else:
        logger.info(
            f"{type(exc).__name__}: {exc}",
            extra={"path": request.url.path, "status_code": code},
        )
    return JSONResponse(status_code=code, content={"detail": exc.public_message})


def as_http_500(e: Exception) -> HTTPException:
    """Log an unexpected exception and return a generic 500."""
    logger.exception(f"Unhandled error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=BoxSyncError.public_message,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the boxsync error handler on an application."""
    app.add_exception_handler(BoxSyncError, boxsync_error_handler)
