"""
Dashboard sync scheduling.
"""

from boxsync.client.api_client import BoxApiClient
from boxsync.client.projection import LocalProjection
from boxsync.client.scheduler import Constraints, WorkHandle, WorkRequest, WorkScheduler
from boxsync.config import get_settings
from boxsync.observability.logging import get_logger

logger = get_logger(__name__)


class DashboardSyncUnit:
    """Pulls the box state from the server into the local projection."""

    def __init__(self, api: BoxApiClient, projection: LocalProjection):
        self._api = api
        self._projection = projection

    async def run(self) -> None:
        snapshot = await self._api.sync()
        self._projection.replace(snapshot)
        logger.info(
            "Dashboard synced",
            tasks=len(snapshot.tasks),
            total_credits=snapshot.total_credits,
        )


class SyncScheduler:
    """
    Submits dashboard sync work.

    At most one sync is pending or running at a time: asking again while
    one is in flight returns the handle of the existing one.
    """

    def __init__(
        self,
        scheduler: WorkScheduler,
        unit: DashboardSyncUnit,
        unit_name: str | None = None,
    ):
        self._scheduler = scheduler
        self._unit = unit
        self.unit_name = unit_name or get_settings().client_sync_unit_name

    @property
    def scheduler(self) -> WorkScheduler:
        return self._scheduler

    def request_sync(self, constraints: Constraints | None = None) -> WorkHandle:
        """
        Request a dashboard sync.

        Args:
            constraints: Run constraints. By default the network is required.

        Returns:
            Handle of the new or already pending sync.
        """
        request = WorkRequest(unit=self._unit.run, constraints=constraints or Constraints())
        handle = self._scheduler.enqueue_unique(self.unit_name, request)
        if handle.id != request.id:
            logger.debug("Sync already pending", work_id=str(handle.id))
        return handle
