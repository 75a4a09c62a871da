"""
Unit tests for the asyncio work scheduler.
"""

import asyncio

import pytest

from boxsync.client.scheduler import (
    AsyncioWorkScheduler,
    Constraints,
    NetworkMonitor,
    WorkRequest,
    WorkState,
)


class Recorder:
    """Collects delivered states."""

    def __init__(self) -> None:
        self.states: list[WorkState] = []

    def __call__(self, state: WorkState) -> None:
        self.states.append(state)


async def noop() -> None:
    return None


class TestAsyncioWorkScheduler:
    """Tests for AsyncioWorkScheduler."""

    async def test_runs_to_success(self):
        scheduler = AsyncioWorkScheduler()
        recorder = Recorder()

        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        scheduler.subscribe(handle, recorder)

        assert await scheduler.join(handle) == WorkState.SUCCEEDED
        assert recorder.states == [WorkState.ENQUEUED, WorkState.RUNNING, WorkState.SUCCEEDED]

    async def test_failure(self):
        async def boom() -> None:
            raise RuntimeError("server said no")

        scheduler = AsyncioWorkScheduler()
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=boom))

        assert await scheduler.join(handle) == WorkState.FAILED

    async def test_keep_returns_existing_handle(self):
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        scheduler = AsyncioWorkScheduler()
        first = scheduler.enqueue_unique("sync", WorkRequest(unit=blocked))
        second = scheduler.enqueue_unique("sync", WorkRequest(unit=blocked))

        assert second == first

        gate.set()
        await scheduler.join(first)

        third = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        assert third != first
        assert await scheduler.join(third) == WorkState.SUCCEEDED

    async def test_waits_for_network(self):
        network = NetworkMonitor(connected=False)
        scheduler = AsyncioWorkScheduler(network)

        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        await asyncio.sleep(0.01)
        assert scheduler.state(handle) == WorkState.ENQUEUED

        network.set_connected(True)
        assert await scheduler.join(handle) == WorkState.SUCCEEDED

    async def test_offline_work_without_network_constraint(self):
        scheduler = AsyncioWorkScheduler(NetworkMonitor(connected=False))

        handle = scheduler.enqueue_unique(
            "local", WorkRequest(unit=noop, constraints=Constraints(requires_network=False))
        )

        assert await scheduler.join(handle) == WorkState.SUCCEEDED

    async def test_network_loss_cancels_running_work(self):
        started = asyncio.Event()

        async def long_pull() -> None:
            started.set()
            await asyncio.sleep(10)

        network = NetworkMonitor()
        scheduler = AsyncioWorkScheduler(network)
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=long_pull))
        await started.wait()

        network.set_connected(False)

        assert await scheduler.join(handle) == WorkState.CANCELLED

    async def test_cancel_enqueued_work(self):
        scheduler = AsyncioWorkScheduler(NetworkMonitor(connected=False))
        recorder = Recorder()
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        scheduler.subscribe(handle, recorder)

        scheduler.cancel(handle)

        assert await scheduler.join(handle) == WorkState.CANCELLED
        assert recorder.states == [WorkState.ENQUEUED, WorkState.CANCELLED]

    async def test_closed_subscription_gets_nothing(self):
        scheduler = AsyncioWorkScheduler()
        recorder = Recorder()
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))

        subscription = scheduler.subscribe(handle, recorder)
        subscription.close()
        subscription.close()
        await scheduler.join(handle)

        assert recorder.states == []
        assert subscription.active is False

    async def test_unknown_handle(self):
        scheduler = AsyncioWorkScheduler()
        other = AsyncioWorkScheduler()
        handle = other.enqueue_unique("sync", WorkRequest(unit=noop))

        assert scheduler.state(handle) is None
        with pytest.raises(KeyError):
            scheduler.subscribe(handle, Recorder())
        await other.join(handle)

    async def test_finished_work_is_discarded(self):
        scheduler = AsyncioWorkScheduler()
        handles = []

        for _ in range(50):
            handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
            assert await scheduler.join(handle) == WorkState.SUCCEEDED
            handles.append(handle)
            assert len(scheduler) <= 1

        await asyncio.sleep(0)

        assert len(scheduler) == 0
        assert all(scheduler.state(handle) is None for handle in handles)
        assert await scheduler.join(handles[0]) is None

    async def test_subscribers_see_final_state_before_discard(self):
        scheduler = AsyncioWorkScheduler()
        recorder = Recorder()
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        subscription = scheduler.subscribe(handle, recorder)

        await scheduler.join(handle)
        await asyncio.sleep(0)

        assert recorder.states[-1] == WorkState.SUCCEEDED
        assert scheduler.state(handle) is None
        subscription.close()
        assert subscription.active is False

    async def test_cancelled_before_start_is_discarded(self):
        scheduler = AsyncioWorkScheduler(NetworkMonitor(connected=False))
        handle = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))

        scheduler.cancel(handle)
        for _ in range(3):
            await asyncio.sleep(0)

        assert len(scheduler) == 0
        replacement = scheduler.enqueue_unique("sync", WorkRequest(unit=noop))
        assert replacement != handle
        scheduler.cancel(replacement)
        await scheduler.join(replacement)
