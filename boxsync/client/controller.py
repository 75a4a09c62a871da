"""
Dashboard-side sync wiring.

Pairs every sync request with the observer that reflects it on the
dashboard. A request coalesced into one already in flight reuses that
request's observer, so two quick taps still give one loading state and one
refresh.
"""

from boxsync.client.dashboard import DashboardViewModel
from boxsync.client.observer import SyncResultObserver, UiDispatcher
from boxsync.client.scheduler import Constraints, WorkHandle
from boxsync.client.sync import SyncScheduler
from boxsync.observability.logging import get_logger

logger = get_logger(__name__)


class DashboardSyncController:
    """
    Owns the dashboard's sync requests and their observer.

    At most one observer is attached at a time, to the handle of the sync
    currently pending or running. ``close()`` detaches it when the
    dashboard goes away.
    """

    def __init__(
        self,
        sync: SyncScheduler,
        view_model: DashboardViewModel,
        dispatcher: UiDispatcher,
    ):
        self._sync = sync
        self._view_model = view_model
        self._dispatcher = dispatcher
        self._observer: SyncResultObserver | None = None

    @property
    def observer(self) -> SyncResultObserver | None:
        return self._observer

    def sync_with_server(self, constraints: Constraints | None = None) -> WorkHandle:
        """
        Request a sync and make sure the dashboard observes it exactly once.

        Returns:
            Handle of the new or coalesced sync.
        """
        handle = self._sync.request_sync(constraints)

        observer = self._observer
        if observer is not None and observer.handle == handle and not observer.closed:
            logger.debug("Sync coalesced, keeping observer", work_id=str(handle.id))
            return handle

        if observer is not None:
            observer.close()
        self._observer = SyncResultObserver(
            self._sync.scheduler,
            handle,
            self._view_model,
            self._dispatcher,
        )
        return handle

    def close(self) -> None:
        """Detach from the current sync. Later state changes are ignored."""
        if self._observer is not None:
            self._observer.close()
            self._observer = None
