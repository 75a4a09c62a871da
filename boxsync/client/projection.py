"""
Local read model of the box's server state.
"""

from datetime import datetime

from boxsync.types.api import AccountResponse, SyncResponse, TaskInfo


class LocalProjection:
    """
    In-memory copy of the last successful sync.

    A sync replaces the projection wholesale, so readers see either the
    previous snapshot or the new one, never a mix.
    """

    def __init__(self) -> None:
        self._snapshot: SyncResponse | None = None

    @property
    def tasks(self) -> list[TaskInfo]:
        return list(self._snapshot.tasks) if self._snapshot else []

    @property
    def accounts(self) -> list[AccountResponse]:
        return list(self._snapshot.accounts) if self._snapshot else []

    @property
    def total_credits(self) -> float:
        return self._snapshot.total_credits if self._snapshot else 0.0

    @property
    def synced_at(self) -> datetime | None:
        return self._snapshot.synced_at if self._snapshot else None

    def replace(self, snapshot: SyncResponse) -> None:
        self._snapshot = snapshot
