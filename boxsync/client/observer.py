"""
Bridges background sync state to the dashboard.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from boxsync.client.dashboard import DashboardViewModel
from boxsync.client.scheduler import Subscription, WorkHandle, WorkScheduler, WorkState
from boxsync.observability.logging import get_logger

logger = get_logger(__name__)


class UiDispatcher:
    """Posts callables to the UI's event loop, from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop or asyncio.get_running_loop()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._loop.call_soon_threadsafe(fn, *args)


class SyncResultObserver:
    """
    Reflects one sync request's state in the dashboard.

    - ENQUEUED or RUNNING: loading, once per request
    - SUCCEEDED: one list refresh
    - FAILED or CANCELLED: a sync error, the list is left untouched

    The subscription closes itself once the request is finished.
    """

    def __init__(
        self,
        scheduler: WorkScheduler,
        handle: WorkHandle,
        view_model: DashboardViewModel,
        dispatcher: UiDispatcher,
    ):
        self.handle = handle
        self._view_model = view_model
        self._dispatcher = dispatcher
        self._loading_posted = False
        self._finished = False
        self._subscription: Subscription = scheduler.subscribe(handle, self._on_state)

    @property
    def closed(self) -> bool:
        return not self._subscription.active

    def close(self) -> None:
        self._subscription.close()

    def _on_state(self, state: WorkState) -> None:
        if self._finished:
            return

        if state in (WorkState.ENQUEUED, WorkState.RUNNING):
            if not self._loading_posted:
                self._loading_posted = True
                self._dispatcher.post(self._view_model.set_loading)
            return

        self._finished = True
        if state == WorkState.SUCCEEDED:
            self._dispatcher.post(self._view_model.refresh_list)
        else:
            logger.warning("Sync did not succeed", state=str(state), work_id=str(self.handle.id))
            self._dispatcher.post(self._view_model.sync_failed)
        self.close()
