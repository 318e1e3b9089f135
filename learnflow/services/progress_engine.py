import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from learnflow.core.config import settings
from learnflow.core.errors import NotFoundError, ValidationError
from learnflow.core.utils import round_half_up, clamp_percent
from learnflow.db.models.goal import Goal, GoalStatus
from learnflow.db.models.plan import Plan, Task, AITaskCompletion
from learnflow.services.task_sources import AGGREGATION_SOURCES, is_valid_task_key, tally_plan

logger = logging.getLogger(__name__)


class ProgressEngine:
    """
    Keeps Plan.progress and Goal.progress in sync with task completions.

    Responsibility:
    1. Plan progress from the virtual task catalog and its completion overlay.
    2. Goal progress as the unweighted mean of its tracked plans.
    3. Completion toggles, with the recompute as a best-effort side effect.

    Plan and Goal carry a version column; a recompute that raced another
    writer fails with StaleDataError and is replayed from a fresh read.
    """

    def __init__(self, retry_attempts: Optional[int] = None):
        self.retry_attempts = max(1, retry_attempts or settings.PROGRESS_RETRY_ATTEMPTS)

    # --- Recompute ---

    def recalc_plan_progress(self, db: Session, plan_id: int, user_id: int) -> Optional[int]:
        """
        Recomputes a plan and cascades to its goal in one transaction.
        Returns the new plan progress, or None when the plan is missing or
        has no virtual tasks (nothing is written in that case).
        """
        return self._run_serialized(db, lambda: self._recalc_plan(db, plan_id, user_id))

    def recalc_goal_progress(self, db: Session, goal_id: int, user_id: int) -> Optional[int]:
        """Returns the new goal progress, or None when no plan qualifies."""
        return self._run_serialized(db, lambda: self._recalc_goal(db, goal_id, user_id))

    def _run_serialized(self, db: Session, work: Callable[[], Optional[int]]) -> Optional[int]:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                result = work()
                db.commit()
                return result
            except StaleDataError:
                db.rollback()
                if attempt == self.retry_attempts:
                    raise
                logger.warning(f"Progress recompute lost a race (attempt {attempt}), retrying")
        return None

    def _recalc_plan(self, db: Session, plan_id: int, user_id: int) -> Optional[int]:
        plan = db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()
        if not plan:
            return None

        percent = tally_plan(db, plan, user_id, AGGREGATION_SOURCES).percent
        if percent is None:
            return None

        plan.progress = clamp_percent(round_half_up(percent))
        db.flush()

        self._recalc_goal(db, plan.goal_id, user_id)
        return plan.progress

    def _recalc_goal(self, db: Session, goal_id: int, user_id: int) -> Optional[int]:
        goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first()
        if not goal:
            return None

        plans = db.query(Plan).filter(Plan.goal_id == goal_id, Plan.user_id == user_id).all()

        # Recomputed from the overlay rather than read from plan.progress,
        # which may be stale. Plans without virtual tasks are left out.
        percents = []
        for plan in plans:
            percent = tally_plan(db, plan, user_id, AGGREGATION_SOURCES).percent
            if percent is not None:
                percents.append(percent)

        if not percents:
            return None

        goal.progress = clamp_percent(round_half_up(sum(percents) / len(percents)))

        # One-way: a later drop in progress does not reopen the goal.
        if goal.progress >= 100:
            goal.status = GoalStatus.COMPLETED.value

        db.flush()
        return goal.progress

    # --- Completion toggles ---

    def _get_owned_plan(self, db: Session, plan_id: int, user_id: int) -> Plan:
        plan = db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan")
        return plan

    def _cascade_after_toggle(self, db: Session, plan_id: int, user_id: int) -> None:
        # The toggle is already committed; a failed recompute must not undo it.
        try:
            self.recalc_plan_progress(db, plan_id, user_id)
        except Exception:
            db.rollback()
            logger.exception(f"Progress recompute failed for plan {plan_id} (user {user_id})")

    def _apply_completions(self, db: Session, plan_id: int, user_id: int, completions: Dict[str, bool]) -> None:
        existing = {
            row.task_key: row
            for row in db.query(AITaskCompletion).filter(
                AITaskCompletion.plan_id == plan_id,
                AITaskCompletion.user_id == user_id,
                AITaskCompletion.task_key.in_(list(completions.keys())),
            ).all()
        }
        for task_key, completed in completions.items():
            row = existing.get(task_key)
            if row:
                row.completed = bool(completed)
            else:
                db.add(AITaskCompletion(
                    plan_id=plan_id,
                    user_id=user_id,
                    task_key=task_key,
                    completed=bool(completed),
                ))

    def _upsert_completions(self, db: Session, plan_id: int, user_id: int, completions: Dict[str, bool]) -> None:
        invalid = [key for key in completions if not is_valid_task_key(key)]
        if invalid:
            raise ValidationError(f"Invalid task key: {invalid[0]}")

        self._apply_completions(db, plan_id, user_id, completions)
        try:
            db.commit()
        except IntegrityError:
            # Another request inserted one of the rows first; update it instead.
            db.rollback()
            self._apply_completions(db, plan_id, user_id, completions)
            db.commit()

    def toggle_ai_task(self, db: Session, user_id: int, plan_id: int, task_key: str, completed: bool) -> AITaskCompletion:
        """Marks one virtual task as (un)completed and recomputes progress."""
        plan = self._get_owned_plan(db, plan_id, user_id)
        self._upsert_completions(db, plan.id, user_id, {task_key: completed})

        self._cascade_after_toggle(db, plan_id, user_id)

        return db.query(AITaskCompletion).filter(
            AITaskCompletion.plan_id == plan_id,
            AITaskCompletion.user_id == user_id,
            AITaskCompletion.task_key == task_key,
        ).one()

    def toggle_ai_tasks_batch(self, db: Session, user_id: int, plan_id: int, completions: Dict[str, bool]) -> int:
        """Applies many overlay updates in one commit. Returns how many keys were written."""
        plan = self._get_owned_plan(db, plan_id, user_id)
        if not completions:
            return 0
        self._upsert_completions(db, plan.id, user_id, completions)

        self._cascade_after_toggle(db, plan_id, user_id)
        return len(completions)

    def toggle_task(self, db: Session, user_id: int, task_id: int, completed: bool) -> Task:
        """Marks a persisted task as (un)completed and recomputes its plan."""
        task = db.query(Task).filter(Task.id == task_id, Task.user_id == user_id).first()
        if not task:
            raise NotFoundError("Task")

        task.completed = bool(completed)
        db.commit()
        plan_id = task.plan_id

        self._cascade_after_toggle(db, plan_id, user_id)

        db.refresh(task)
        return task

    def get_ai_task_completions(self, db: Session, user_id: int, plan_id: int) -> Dict[str, bool]:
        plan = self._get_owned_plan(db, plan_id, user_id)
        rows = db.query(AITaskCompletion).filter(
            AITaskCompletion.plan_id == plan.id,
            AITaskCompletion.user_id == user_id,
        ).all()
        return {row.task_key: row.completed for row in rows}


progress_engine = ProgressEngine()
