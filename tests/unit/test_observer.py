"""
Unit tests for the sync result observer.
"""

import asyncio
import threading
from uuid import uuid4

import pytest
import pytest_asyncio

from boxsync.client.observer import SyncResultObserver, UiDispatcher
from boxsync.client.scheduler import Subscription, WorkHandle, WorkState


class FakeScheduler:
    """Scheduler whose state changes are driven by the test."""

    def __init__(self) -> None:
        self.subscriptions: list[Subscription] = []

    def subscribe(self, handle: WorkHandle, callback) -> Subscription:
        subscription = Subscription(handle, callback, self.subscriptions.remove)
        self.subscriptions.append(subscription)
        return subscription

    def emit(self, *states: WorkState) -> None:
        for state in states:
            for subscription in list(self.subscriptions):
                subscription.deliver(state)


class RecordingViewModel:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.threads: set[int] = set()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        self.threads.add(threading.get_ident())

    def set_loading(self) -> None:
        self._record("set_loading")

    def refresh_list(self) -> None:
        self._record("refresh_list")

    def sync_failed(self) -> None:
        self._record("sync_failed")


async def flush() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


class TestSyncResultObserver:
    """Tests for SyncResultObserver."""

    @pytest.fixture
    def scheduler(self) -> FakeScheduler:
        return FakeScheduler()

    @pytest.fixture
    def view_model(self) -> RecordingViewModel:
        return RecordingViewModel()

    @pytest_asyncio.fixture
    async def observer(self, scheduler, view_model) -> SyncResultObserver:
        handle = WorkHandle(id=uuid4(), name="dashboard-sync")
        return SyncResultObserver(scheduler, handle, view_model, UiDispatcher())

    async def test_loading_collapses(self, scheduler, view_model, observer):
        scheduler.emit(WorkState.ENQUEUED, WorkState.ENQUEUED, WorkState.RUNNING)
        await flush()

        assert view_model.calls == ["set_loading"]

    async def test_success_refreshes_once(self, scheduler, view_model, observer):
        scheduler.emit(WorkState.ENQUEUED, WorkState.RUNNING, WorkState.SUCCEEDED, WorkState.SUCCEEDED)
        await flush()

        assert view_model.calls == ["set_loading", "refresh_list"]
        assert observer.closed is True
        assert scheduler.subscriptions == []

    @pytest.mark.parametrize("terminal", [WorkState.FAILED, WorkState.CANCELLED])
    async def test_failure_reports_error(self, scheduler, view_model, observer, terminal):
        scheduler.emit(WorkState.RUNNING, terminal)
        await flush()

        assert view_model.calls == ["set_loading", "sync_failed"]
        assert "refresh_list" not in view_model.calls

    async def test_close_stops_updates(self, scheduler, view_model, observer):
        observer.close()
        scheduler.emit(WorkState.RUNNING, WorkState.SUCCEEDED)
        await flush()

        assert view_model.calls == []

    async def test_updates_run_on_ui_loop(self, scheduler, view_model, observer):
        loop_thread = threading.get_ident()

        await asyncio.to_thread(scheduler.emit, WorkState.RUNNING, WorkState.SUCCEEDED)
        await flush()

        assert view_model.calls == ["set_loading", "refresh_list"]
        assert view_model.threads == {loop_thread}
