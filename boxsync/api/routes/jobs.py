"""
Job status routes.

Only status and timestamps are exposed; attempt counts and internal error
text stay server-side.
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxsync.api.auth import CurrentBox
from boxsync.constants import API_V1_PREFIX
from boxsync.db import StatusStore, get_async_session
from boxsync.errors import NotFound
from boxsync.types.api import JobResponse

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


def _job_owner(payload: dict[str, Any]) -> str | None:
    """Box that submitted a job, when its payload records one."""
    if "box_id" in payload:
        return payload["box_id"]
    record = payload.get("account")
    if isinstance(record, dict):
        return record.get("box_id")
    return None


@router.get(
    "/stats/summary",
    summary="Get job statistics",
    description="Job counts by status and the number of queued jobs.",
)
async def get_job_stats(
    current_box: CurrentBox,
    queue: str | None = None,
    session: AsyncSession = Depends(get_async_session),
) -> dict:
    """
    Get job statistics.

    Args:
        current_box: Authenticated box context.
        queue: Optional queue filter.
        session: Database session.

    Returns:
        Dictionary of status -> count and the queue depth.
    """
    store = StatusStore(session)
    stats = await store.get_job_stats(queue=queue)
    queue_depth = await store.get_queue_depth(queue=queue)

    return {
        "stats": stats,
        "queue_depth": queue_depth,
    }


@router.get(
    "/{queue}/{key}",
    response_model=JobResponse,
    summary="Get job status",
)
async def get_job(
    queue: str,
    key: str,
    current_box: CurrentBox,
    session: AsyncSession = Depends(get_async_session),
) -> JobResponse:
    """
    Get the status of a job by its idempotency key.

    Jobs submitted by another box are reported as missing.

    Raises:
        NotFound: No such job for this box.
    """
    job = await StatusStore(session).get_job(queue, key)

    if job is None or _job_owner(job.payload) not in (None, current_box.box_id):
        raise NotFound(f"Job {queue}/{key} not found")

    return JobResponse.model_validate(job)
