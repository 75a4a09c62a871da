"""
Background work scheduling for the box client.

The dashboard never talks to a platform scheduler directly. It is handed a
``WorkScheduler`` and only relies on the protocol below: unique work with
KEEP semantics, state subscriptions and cancellation.
``AsyncioWorkScheduler`` implements it on the client's event loop.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol
from uuid import UUID, uuid4

from boxsync.observability.logging import get_logger

logger = get_logger(__name__)


class WorkState(StrEnum):
    """Lifecycle of a unit of background work."""

    ENQUEUED = "enqueued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_finished(self) -> bool:
        return self in (WorkState.SUCCEEDED, WorkState.FAILED, WorkState.CANCELLED)


@dataclass(frozen=True)
class Constraints:
    """Conditions that must hold before a unit may run."""

    requires_network: bool = True


WorkUnit = Callable[[], Awaitable[None]]
WorkCallback = Callable[[WorkState], None]


@dataclass
class WorkRequest:
    """A unit of work and the constraints it runs under."""

    unit: WorkUnit
    constraints: Constraints = field(default_factory=Constraints)
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class WorkHandle:
    """Opaque reference to submitted work."""

    id: UUID
    name: str


class Subscription:
    """Registration of a state callback. ``close()`` is idempotent."""

    def __init__(self, handle: WorkHandle, callback: WorkCallback, on_close: Callable[["Subscription"], None]):
        self.handle = handle
        self.callback = callback
        self._on_close = on_close
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, state: WorkState) -> None:
        if self._active:
            self.callback(state)

    def close(self) -> None:
        if self._active:
            self._active = False
            self._on_close(self)


class WorkScheduler(Protocol):
    """What the client needs from a background work scheduler."""

    def enqueue_unique(self, name: str, request: WorkRequest) -> WorkHandle:
        """Submit work unless unfinished work with the same name exists (KEEP)."""
        ...

    def subscribe(self, handle: WorkHandle, callback: WorkCallback) -> Subscription:
        """Receive the current state and every later state change."""
        ...

    def state(self, handle: WorkHandle) -> WorkState | None:
        ...

    def cancel(self, handle: WorkHandle) -> None:
        ...


class NetworkMonitor:
    """Connectivity flag that work units can wait on."""

    def __init__(self, connected: bool = True):
        self._connected = connected
        self._event = asyncio.Event()
        if connected:
            self._event.set()
        self._listeners: list[Callable[[bool], None]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        if connected:
            self._event.set()
        else:
            self._event.clear()
        logger.info("Network state changed", connected=connected)
        for listener in list(self._listeners):
            listener(connected)

    async def wait_connected(self) -> None:
        await self._event.wait()

    def add_listener(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Register a connectivity listener. Returns a function removing it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)


@dataclass
class _WorkRecord:
    handle: WorkHandle
    request: WorkRequest
    state: WorkState = WorkState.ENQUEUED
    subscriptions: list[Subscription] = field(default_factory=list)
    task: asyncio.Task | None = None


class AsyncioWorkScheduler:
    """
    In-process WorkScheduler running units as asyncio tasks.

    A unit waits in ENQUEUED until its constraints hold, then runs to
    SUCCEEDED or FAILED. Units that need the network are CANCELLED when
    connectivity drops while they run. State callbacks are scheduled on
    the loop, never invoked inline.

    Finished units are discarded once their final callbacks have run;
    ``state()`` then returns None for their handles.
    """

    def __init__(self, network: NetworkMonitor | None = None):
        self.network = network or NetworkMonitor()
        self._records: dict[UUID, _WorkRecord] = {}
        self._unique: dict[str, UUID] = {}
        self.network.add_listener(self._on_network_change)

    def enqueue_unique(self, name: str, request: WorkRequest) -> WorkHandle:
        existing = self._records.get(self._unique.get(name))
        if existing is not None and not existing.state.is_finished:
            logger.debug("Keeping existing work", name=name, state=str(existing.state))
            return existing.handle

        record = _WorkRecord(handle=WorkHandle(id=request.id, name=name), request=request)
        self._records[request.id] = record
        self._unique[name] = request.id
        record.task = asyncio.get_running_loop().create_task(self._run(record))
        record.task.add_done_callback(lambda _: self._discard(record))

        logger.info("Work enqueued", name=name, work_id=str(request.id))
        return record.handle

    def __len__(self) -> int:
        """Number of units not yet discarded."""
        return len(self._records)

    def subscribe(self, handle: WorkHandle, callback: WorkCallback) -> Subscription:
        record = self._records[handle.id]
        subscription = Subscription(handle, callback, record.subscriptions.remove)
        record.subscriptions.append(subscription)
        asyncio.get_running_loop().call_soon(subscription.deliver, record.state)
        return subscription

    def state(self, handle: WorkHandle) -> WorkState | None:
        record = self._records.get(handle.id)
        return record.state if record else None

    def cancel(self, handle: WorkHandle) -> None:
        record = self._records.get(handle.id)
        if record is None or record.state.is_finished:
            return
        self._set_state(record, WorkState.CANCELLED)
        if record.task is not None:
            record.task.cancel()

    async def join(self, handle: WorkHandle) -> WorkState | None:
        """
        Wait until the work is finished and its callbacks have been scheduled.

        Returns:
            The final state, or None if the unit was already discarded.
        """
        record = self._records.get(handle.id)
        if record is None:
            return None
        if record.task is not None:
            await asyncio.wait({record.task})
        # Let callbacks queued by the final transition run
        await asyncio.sleep(0)
        return record.state

    async def _run(self, record: _WorkRecord) -> None:
        name = record.handle.name
        try:
            if record.request.constraints.requires_network:
                await self.network.wait_connected()
            self._set_state(record, WorkState.RUNNING)
            await record.request.unit()
        except asyncio.CancelledError:
            logger.info("Work cancelled", name=name)
            self._set_state(record, WorkState.CANCELLED)
        except Exception as e:
            logger.warning("Work failed", name=name, error=str(e))
            self._set_state(record, WorkState.FAILED)
        else:
            self._set_state(record, WorkState.SUCCEEDED)

    def _set_state(self, record: _WorkRecord, state: WorkState) -> None:
        if record.state.is_finished or record.state == state:
            return
        record.state = state
        loop = asyncio.get_running_loop()
        for subscription in list(record.subscriptions):
            loop.call_soon(subscription.deliver, state)

    def _on_network_change(self, connected: bool) -> None:
        if connected:
            return
        for record in list(self._records.values()):
            if record.state == WorkState.RUNNING and record.request.constraints.requires_network:
                logger.info("Network lost, cancelling work", name=record.handle.name)
                self.cancel(record.handle)

    def _discard(self, record: _WorkRecord) -> None:
        # Runs as a task done callback, after the deliveries of the final state
        self._records.pop(record.handle.id, None)
        if self._unique.get(record.handle.name) == record.handle.id:
            del self._unique[record.handle.name]
