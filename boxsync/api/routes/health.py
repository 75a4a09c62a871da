"""
Health, readiness and metrics routes.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from boxsync import __version__
from boxsync.db import StatusStore, get_async_session
from boxsync.observability.metrics import get_metrics
from boxsync.types.api import HealthResponse
from boxsync.utils.clock import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_healthy(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return False


async def _sample_queue_depths(session: AsyncSession) -> dict[str, int]:
    """Read per-queue backlog and publish it to the queue depth gauge."""
    depths = await StatusStore(session).get_queue_depths()
    metrics_collector = get_metrics()
    for queue, depth in depths.items():
        metrics_collector.update_queue_depth(queue, depth)
    return depths


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Database connectivity and the backlog of each job queue.",
)
async def health_check(
    session: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """
    Report service health.

    The service is ``degraded`` when the database is unreachable; queue
    depth is only reported while it is reachable.
    """
    healthy = await _database_healthy(session)

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        database="healthy" if healthy else "unhealthy",
        queue_depth=await _sample_queue_depths(session) if healthy else {},
        timestamp=utcnow(),
    )


@router.get("/ready", summary="Readiness check")
async def readiness_check(
    session: AsyncSession = Depends(get_async_session),
) -> dict:
    """Ready once the status store answers."""
    return {"ready": await _database_healthy(session)}


@router.get("/live", summary="Liveness check")
async def liveness_check() -> dict:
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics, refreshing queue depth first.",
)
async def metrics(
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    metrics_collector = get_metrics()

    try:
        await _sample_queue_depths(session)
    except Exception as e:
        logger.warning(f"Could not sample queue depth: {e}")

    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
