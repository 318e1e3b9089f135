import enum
import json
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from learnflow.db.models.plan import Plan, Task, AITaskCompletion

logger = logging.getLogger(__name__)

TASK_KEY_PATTERN = re.compile(r"^week-(\d+)-day-(\d+)-(\d+)$")


class TaskSource(str, enum.Enum):
    """
    The task universes a plan can be measured against.

    PERSISTED: Task rows the user created and manipulates directly.
    VIRTUAL_CATALOG: every entry of Plan.content, completed via the overlay.
    VIRTUAL_OVERLAY: only the content entries that already have an
    AITaskCompletion row (touched at least once).
    """
    PERSISTED = "persisted"
    VIRTUAL_CATALOG = "virtual_catalog"
    VIRTUAL_OVERLAY = "virtual_overlay"


# Plan/goal progress is measured against the full generated catalog.
AGGREGATION_SOURCES = (TaskSource.VIRTUAL_CATALOG,)
# Pace analysis sums persisted tasks and touched virtual tasks.
PACE_SOURCES = (TaskSource.PERSISTED, TaskSource.VIRTUAL_OVERLAY)


@dataclass(frozen=True)
class TaskTally:
    total: int = 0
    completed: int = 0

    def __add__(self, other: "TaskTally") -> "TaskTally":
        return TaskTally(self.total + other.total, self.completed + other.completed)

    @property
    def percent(self) -> Optional[float]:
        """Unrounded completion percentage, None when there is nothing to count."""
        if self.total <= 0:
            return None
        return min(100.0, self.completed / self.total * 100)


def build_task_key(week: int, day: int, index: int) -> str:
    return f"week-{week}-day-{day}-{index}"


def is_valid_task_key(task_key: str) -> bool:
    return bool(task_key) and TASK_KEY_PATTERN.match(task_key) is not None


def count_virtual_tasks(content: Optional[str]) -> int:
    """Sums the task lists of every week entry in a plan's serialized content."""
    if not content:
        return 0
    try:
        weekly_plans = json.loads(content)
    except (TypeError, ValueError):
        logger.warning("Could not parse plan content; treating it as having no tasks")
        return 0
    if not isinstance(weekly_plans, list):
        return 0

    total = 0
    for week_entry in weekly_plans:
        if isinstance(week_entry, dict) and isinstance(week_entry.get("tasks"), list):
            total += len(week_entry["tasks"])
    return total


def _overlay_count(db: Session, plan_id: int, user_id: int, completed_only: bool) -> int:
    query = db.query(func.count(AITaskCompletion.id)).filter(
        AITaskCompletion.plan_id == plan_id,
        AITaskCompletion.user_id == user_id,
    )
    if completed_only:
        query = query.filter(AITaskCompletion.completed.is_(True))
    return query.scalar() or 0


def _tally_persisted(db: Session, plan: Plan, user_id: int) -> TaskTally:
    base = db.query(func.count(Task.id)).filter(Task.plan_id == plan.id, Task.user_id == user_id)
    total = base.scalar() or 0
    completed = base.filter(Task.completed.is_(True)).scalar() or 0
    return TaskTally(total=total, completed=completed)


def _tally_virtual_catalog(db: Session, plan: Plan, user_id: int) -> TaskTally:
    total = count_virtual_tasks(plan.content)
    if total == 0:
        return TaskTally()
    return TaskTally(total=total, completed=_overlay_count(db, plan.id, user_id, completed_only=True))


def _tally_virtual_overlay(db: Session, plan: Plan, user_id: int) -> TaskTally:
    return TaskTally(
        total=_overlay_count(db, plan.id, user_id, completed_only=False),
        completed=_overlay_count(db, plan.id, user_id, completed_only=True),
    )


_TALLIES = {
    TaskSource.PERSISTED: _tally_persisted,
    TaskSource.VIRTUAL_CATALOG: _tally_virtual_catalog,
    TaskSource.VIRTUAL_OVERLAY: _tally_virtual_overlay,
}


def tally_plan(db: Session, plan: Plan, user_id: int, sources: Iterable[TaskSource]) -> TaskTally:
    """Sums the plan's task counts across the requested sources."""
    tally = TaskTally()
    for source in sources:
        tally = tally + _TALLIES[source](db, plan, user_id)
    return tally
