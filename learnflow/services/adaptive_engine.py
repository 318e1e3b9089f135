import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from learnflow.ai.coach import CoachService, coach_service
from learnflow.ai.prompts import LEARNING_COACH_SYSTEM_PROMPT, ADAPTIVE_SUGGESTION_PROMPT
from learnflow.core.errors import CollaboratorError, NotFoundError
from learnflow.core.utils import round_half_up
from learnflow.db.models.plan import Plan
from learnflow.schemas.adaptive import AdaptiveSuggestion, Adjustment
from learnflow.services.task_sources import PACE_SOURCES, tally_plan

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)

ACTION_BY_STATUS = {
    "falling_behind": "reduce",
    "ahead": "increase",
    "on_track": "keep",
}

REASON_BY_ACTION = {
    "reduce": "Behind schedule: trim the weekly workload and focus on the core material",
    "increase": "Ahead of schedule: add advanced material to deepen the learning",
    "keep": "On track: keep the current plan",
}

LAST_WEEK_REASON = "plan already at its last week"


@dataclass(frozen=True)
class PaceSnapshot:
    plan_title: str
    duration_weeks: int
    elapsed_weeks: int
    completion_rate: int
    expected_rate: int
    status: str
    completed_total: int
    total_tasks: int

    @property
    def remaining_weeks(self) -> List[int]:
        return list(range(self.elapsed_weeks + 1, self.duration_weeks + 1))


def classify_pace(completion_rate: int, expected_rate: int) -> str:
    if completion_rate >= expected_rate * 0.9:
        return "ahead" if completion_rate > expected_rate * 1.1 else "on_track"
    return "falling_behind"


def compute_pace(db: Session, plan: Plan, user_id: int, now: Optional[datetime] = None) -> PaceSnapshot:
    now = now or datetime.utcnow()

    tally = tally_plan(db, plan, user_id, PACE_SOURCES)
    completion_rate = round_half_up(tally.completed / tally.total * 100) if tally.total > 0 else 0
    completion_rate = min(100, completion_rate)

    created_at = plan.created_at or now
    elapsed_weeks = max(1, math.ceil((now - created_at) / WEEK))
    duration_weeks = max(1, plan.duration_weeks or 1)
    expected_rate = min(100, round_half_up(elapsed_weeks / duration_weeks * 100))

    return PaceSnapshot(
        plan_title=plan.title,
        duration_weeks=duration_weeks,
        elapsed_weeks=elapsed_weeks,
        completion_rate=completion_rate,
        expected_rate=expected_rate,
        status=classify_pace(completion_rate, expected_rate),
        completed_total=tally.completed,
        total_tasks=tally.total,
    )


class SuggestionGenerator(ABC):
    @abstractmethod
    async def generate(self, pace: PaceSnapshot) -> AdaptiveSuggestion:
        ...


class RuleSuggestionGenerator(SuggestionGenerator):
    """Deterministic wording and adjustments derived from the pace status alone."""

    def build(self, pace: PaceSnapshot) -> AdaptiveSuggestion:
        action = ACTION_BY_STATUS[pace.status]
        adjustments = [
            Adjustment(week=week, action=action, reason=REASON_BY_ACTION[action])
            for week in pace.remaining_weeks
        ]
        if not adjustments:
            adjustments = [Adjustment(week=pace.duration_weeks, action="keep", reason=LAST_WEEK_REASON)]

        if pace.status == "falling_behind":
            suggestion = (
                f"You have completed {pace.completion_rate}% of the plan, below the expected "
                f"{pace.expected_rate}%. Lighten the upcoming weeks and focus on the core topics."
            )
        elif pace.status == "ahead":
            suggestion = (
                f"You have completed {pace.completion_rate}% of the plan, ahead of the expected "
                f"{pace.expected_rate}%. Consider adding more challenging material or speeding up."
            )
        else:
            suggestion = (
                f"You have completed {pace.completion_rate}% of the plan, in line with the expected "
                f"{pace.expected_rate}%. Keep up the current rhythm."
            )

        return AdaptiveSuggestion(
            status=pace.status,
            completion_rate=pace.completion_rate,
            expected_rate=pace.expected_rate,
            elapsed_weeks=pace.elapsed_weeks,
            suggestion=suggestion,
            adjustments=adjustments,
            source="rules",
        )

    async def generate(self, pace: PaceSnapshot) -> AdaptiveSuggestion:
        return self.build(pace)


class AiSuggestionGenerator(SuggestionGenerator):
    """Asks the coach model for wording; raises CollaboratorError on any unusable reply."""

    def __init__(self, coach: CoachService):
        self.coach = coach

    def _prompt(self, pace: PaceSnapshot) -> str:
        return ADAPTIVE_SUGGESTION_PROMPT.format(
            plan_title=pace.plan_title,
            duration_weeks=pace.duration_weeks,
            elapsed_weeks=pace.elapsed_weeks,
            completion_rate=pace.completion_rate,
            expected_rate=pace.expected_rate,
            completed_total=pace.completed_total,
            total_tasks=pace.total_tasks,
            status=pace.status,
            first_week=min(pace.elapsed_weeks + 1, pace.duration_weeks),
        )

    async def generate(self, pace: PaceSnapshot) -> AdaptiveSuggestion:
        parsed = await self.coach.complete_json(LEARNING_COACH_SYSTEM_PROMPT, self._prompt(pace))

        suggestion = parsed.get("suggestion")
        adjustments = parsed.get("adjustments")
        if not isinstance(suggestion, str) or not suggestion.strip():
            raise CollaboratorError("AI response is missing 'suggestion'")
        if not isinstance(adjustments, list):
            raise CollaboratorError("AI response 'adjustments' is not an array")

        try:
            # Status and rate are ours; the model only supplies the wording.
            return AdaptiveSuggestion(
                status=pace.status,
                completion_rate=pace.completion_rate,
                expected_rate=pace.expected_rate,
                elapsed_weeks=pace.elapsed_weeks,
                suggestion=suggestion.strip(),
                adjustments=[Adjustment.model_validate(item) for item in adjustments],
                source="ai",
            )
        except SchemaValidationError as e:
            raise CollaboratorError(f"AI adjustments are malformed: {e}") from e


class FallbackSuggestionGenerator(SuggestionGenerator):
    def __init__(self, primary: SuggestionGenerator, fallback: RuleSuggestionGenerator):
        self.primary = primary
        self.fallback = fallback

    async def generate(self, pace: PaceSnapshot) -> AdaptiveSuggestion:
        try:
            return await self.primary.generate(pace)
        except CollaboratorError as e:
            logger.warning(f"AI suggestion unavailable, using rule-based fallback: {e}")
        except Exception:
            logger.exception("AI suggestion failed unexpectedly, using rule-based fallback")
        return self.fallback.build(pace)


class AdaptiveEngine:
    def __init__(self, generator: Optional[SuggestionGenerator] = None):
        self.generator = generator or FallbackSuggestionGenerator(
            AiSuggestionGenerator(coach_service),
            RuleSuggestionGenerator(),
        )

    def _load_pace_sync(self, db: Session, user_id: int, plan_id: int, now: Optional[datetime]) -> PaceSnapshot:
        plan = db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan")
        return compute_pace(db, plan, user_id, now)

    async def analyze_and_suggest(self, db: Session, user_id: int, plan_id: int, now: Optional[datetime] = None) -> AdaptiveSuggestion:
        """
        Compares actual completion with the time-elapsed expectation and proposes
        per-week adjustments. Raises NotFoundError when the plan is not the user's.
        The plan lookup and task counts run in a worker thread so the event loop
        is only held by the AI call.
        """
        pace = await asyncio.to_thread(self._load_pace_sync, db, user_id, plan_id, now)
        return await self.generator.generate(pace)


adaptive_engine = AdaptiveEngine()
