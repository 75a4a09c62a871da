"""
Box-side client: API access, background sync and dashboard state.
"""

from boxsync.client.api_client import BoxApiClient
from boxsync.client.controller import DashboardSyncController
from boxsync.client.dashboard import DashboardViewModel, DashboardUiState, Error, Loading, Success
from boxsync.client.observer import SyncResultObserver, UiDispatcher
from boxsync.client.projection import LocalProjection
from boxsync.client.scenarios import ScenarioKind, TaskRoute, route_task
from boxsync.client.scheduler import (
    AsyncioWorkScheduler,
    Constraints,
    NetworkMonitor,
    WorkHandle,
    WorkRequest,
    WorkScheduler,
    WorkState,
)
from boxsync.client.sync import DashboardSyncUnit, SyncScheduler

__all__ = [
    "AsyncioWorkScheduler",
    "BoxApiClient",
    "Constraints",
    "DashboardSyncController",
    "DashboardSyncUnit",
    "DashboardUiState",
    "DashboardViewModel",
    "Error",
    "Loading",
    "LocalProjection",
    "NetworkMonitor",
    "ScenarioKind",
    "Success",
    "SyncResultObserver",
    "SyncScheduler",
    "TaskRoute",
    "UiDispatcher",
    "WorkHandle",
    "WorkRequest",
    "WorkScheduler",
    "WorkState",
]
