"""
Scenario dispatch for dashboard tasks.
"""

from dataclasses import dataclass
from enum import StrEnum

from boxsync.observability.logging import get_logger
from boxsync.types.api import TaskInfo

logger = get_logger(__name__)


class ScenarioKind(StrEnum):
    """Kinds of task a box knows how to open."""

    SPEECH_DATA = "SPEECH_DATA"
    SPEECH_VERIFICATION = "SPEECH_VERIFICATION"
    TEXT_TRANSLATION = "TEXT_TRANSLATION"
    UNSUPPORTED = "UNSUPPORTED"

    @classmethod
    def from_tag(cls, tag: str | None) -> "ScenarioKind":
        """Scenario for a server tag. Unknown or missing tags are UNSUPPORTED."""
        if not tag:
            return cls.UNSUPPORTED
        try:
            return cls(tag.strip().upper())
        except ValueError:
            return cls.UNSUPPORTED


@dataclass(frozen=True)
class TaskRoute:
    task_id: str
    kind: ScenarioKind

    @property
    def supported(self) -> bool:
        return self.kind != ScenarioKind.UNSUPPORTED


def route_task(task: TaskInfo) -> TaskRoute:
    """Where a dashboard tap on ``task`` should lead."""
    kind = ScenarioKind.from_tag(task.scenario_kind)
    if kind == ScenarioKind.UNSUPPORTED:
        logger.warning("Unsupported scenario", task_id=task.task_id, scenario_kind=task.scenario_kind)
    return TaskRoute(task_id=task.task_id, kind=kind)
