"""
Dashboard view state.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from boxsync.client.projection import LocalProjection
from boxsync.errors import SyncFailed
from boxsync.types.api import TaskInfo


@dataclass(frozen=True)
class DashboardData:
    tasks: list[TaskInfo] = field(default_factory=list)
    total_credits: float = 0.0


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Success:
    data: DashboardData


@dataclass(frozen=True)
class Error:
    error: Exception


DashboardUiState = Loading | Success | Error

StateListener = Callable[[DashboardUiState], None]


class DashboardViewModel:
    """
    Holds the dashboard state and notifies listeners when it changes.

    Must only be mutated from the UI dispatcher.
    """

    def __init__(self, projection: LocalProjection):
        self._projection = projection
        self._state: DashboardUiState = Loading()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> DashboardUiState:
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def set_loading(self) -> None:
        self._set_state(Loading())

    def refresh_list(self) -> None:
        """Rebuild the task list from the local projection."""
        tasks = self._projection.tasks
        self._set_state(
            Success(
                DashboardData(
                    tasks=tasks,
                    total_credits=sum(task.credits_earned for task in tasks),
                )
            )
        )

    def sync_failed(self, error: Exception | None = None) -> None:
        self._set_state(Error(error or SyncFailed("Dashboard sync did not succeed")))

    def _set_state(self, state: DashboardUiState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)
