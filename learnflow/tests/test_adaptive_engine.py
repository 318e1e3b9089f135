import json
import threading
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from learnflow.ai.coach import CoachService, parse_json_reply
from learnflow.core.errors import CollaboratorError, NotFoundError
from learnflow.db.models.plan import AITaskCompletion
from learnflow.services.adaptive_engine import (
    AdaptiveEngine,
    AiSuggestionGenerator,
    FallbackSuggestionGenerator,
    RuleSuggestionGenerator,
    classify_pace,
    compute_pace,
)
from learnflow.services.task_sources import build_task_key
from learnflow.tests.factories import create_user, create_goal, create_plan, create_task

NOW = datetime(2026, 3, 16, 12, 0, 0)


def rules_engine():
    return AdaptiveEngine(generator=RuleSuggestionGenerator())


def mocked_coach(content=None, error=None):
    coach = CoachService()
    coach.simulated = False
    coach.async_client = AsyncMock()
    if error is not None:
        coach.async_client.chat.completions.create.side_effect = error
    else:
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content=content))]
        coach.async_client.chat.completions.create.return_value = response
    return coach


def ai_engine(coach):
    return AdaptiveEngine(generator=FallbackSuggestionGenerator(AiSuggestionGenerator(coach), RuleSuggestionGenerator()))


def make_plan_with_rate(db, completed, total, weeks_ago_days=13, duration_weeks=4):
    """Plan whose persisted tasks give `completed`/`total`."""
    user = create_user(db)
    goal = create_goal(db, user)
    plan = create_plan(db, user, goal, duration_weeks=duration_weeks, created_at=NOW - timedelta(days=weeks_ago_days))
    for i in range(total):
        create_task(db, user, plan, completed=i < completed)
    return user, plan


def test_classify_pace_thresholds():
    assert classify_pace(20, 50) == "falling_behind"
    assert classify_pace(45, 50) == "on_track"
    assert classify_pace(55, 50) == "on_track"
    assert classify_pace(56, 50) == "ahead"
    assert classify_pace(0, 0) == "on_track"


@pytest.mark.asyncio
async def test_falling_behind_reduces_remaining_weeks(db):
    user, plan = make_plan_with_rate(db, completed=1, total=5)

    result = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.completion_rate == 20
    assert result.expected_rate == 50
    assert result.elapsed_weeks == 2
    assert result.status == "falling_behind"
    assert [(a.week, a.action) for a in result.adjustments] == [(3, "reduce"), (4, "reduce")]
    assert result.source == "rules"


@pytest.mark.asyncio
async def test_ahead_and_on_track_actions(db):
    user, plan = make_plan_with_rate(db, completed=4, total=5)
    ahead = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)
    assert ahead.status == "ahead"
    assert {a.action for a in ahead.adjustments} == {"increase"}

    user, plan = make_plan_with_rate(db, completed=1, total=2)
    on_track = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)
    assert on_track.status == "on_track"
    assert {a.action for a in on_track.adjustments} == {"keep"}


@pytest.mark.asyncio
async def test_finished_plan_gets_single_keep_adjustment(db):
    user, plan = make_plan_with_rate(db, completed=1, total=4, weeks_ago_days=60, duration_weeks=4)

    result = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.expected_rate == 100
    assert len(result.adjustments) == 1
    assert result.adjustments[0].week == 4
    assert result.adjustments[0].action == "keep"
    assert result.adjustments[0].reason == "plan already at its last week"


@pytest.mark.asyncio
async def test_pace_sums_persisted_and_overlay_tasks(db):
    user, plan = make_plan_with_rate(db, completed=1, total=2)
    db.add(AITaskCompletion(plan_id=plan.id, user_id=user.id, task_key=build_task_key(1, 1, 0), completed=True))
    db.add(AITaskCompletion(plan_id=plan.id, user_id=user.id, task_key=build_task_key(1, 2, 1), completed=False))
    db.commit()

    result = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.completion_rate == 50


@pytest.mark.asyncio
async def test_plan_without_tasks_has_zero_rate(db):
    user, plan = make_plan_with_rate(db, completed=0, total=0, weeks_ago_days=0)

    result = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.completion_rate == 0
    assert result.elapsed_weeks == 1
    assert result.expected_rate == 25
    assert result.status == "falling_behind"


@pytest.mark.asyncio
async def test_missing_or_foreign_plan_raises_not_found(db):
    user, plan = make_plan_with_rate(db, completed=0, total=1)
    stranger = create_user(db)

    with pytest.raises(NotFoundError):
        await rules_engine().analyze_and_suggest(db, stranger.id, plan.id, now=NOW)
    with pytest.raises(NotFoundError):
        await rules_engine().analyze_and_suggest(db, user.id, 4242, now=NOW)


@pytest.mark.asyncio
async def test_ai_reply_is_used_with_computed_status(db):
    user, plan = make_plan_with_rate(db, completed=1, total=5)
    reply = "```json\n" + json.dumps({
        "status": "ahead",
        "completionRate": 99,
        "suggestion": "Slow down and revisit the basics.",
        "adjustments": [
            {"week": 3, "action": "reduce", "reason": "Catch up"},
            {"week": 4, "action": "keep", "reason": "Consolidate"},
        ],
    }) + "\n```"
    coach = mocked_coach(content=reply)

    result = await ai_engine(coach).analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.source == "ai"
    assert result.status == "falling_behind"
    assert result.completion_rate == 20
    assert result.suggestion == "Slow down and revisit the basics."
    assert [(a.week, a.action) for a in result.adjustments] == [(3, "reduce"), (4, "keep")]
    assert coach.async_client.chat.completions.create.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [
    "I think you are doing great!",
    json.dumps({"suggestion": "ok"}),
    json.dumps({"suggestion": "ok", "adjustments": "none"}),
    json.dumps({"suggestion": "ok", "adjustments": [{"week": 3, "action": "panic", "reason": "?"}]}),
    "",
])
async def test_unusable_ai_reply_falls_back_to_rules(db, content):
    user, plan = make_plan_with_rate(db, completed=1, total=5)

    result = await ai_engine(mocked_coach(content=content)).analyze_and_suggest(db, user.id, plan.id, now=NOW)

    expected = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)
    assert result == expected


@pytest.mark.asyncio
async def test_ai_timeout_falls_back_with_same_shape(db):
    user, plan = make_plan_with_rate(db, completed=1, total=5)
    coach = mocked_coach(error=TimeoutError("simulated timeout"))

    result = await ai_engine(coach).analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.source == "rules"
    assert set(result.model_dump().keys()) == {
        "status", "completion_rate", "expected_rate", "elapsed_weeks", "suggestion", "adjustments", "source",
    }
    assert result.status == "falling_behind"
    assert result.suggestion


@pytest.mark.asyncio
async def test_unconfigured_coach_uses_rules(db):
    user, plan = make_plan_with_rate(db, completed=1, total=5)
    coach = CoachService()
    coach.simulated = True

    result = await ai_engine(coach).analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.source == "rules"


def test_parse_json_reply_strips_fences():
    assert parse_json_reply('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_reply('```\n{"a": 2}```') == {"a": 2}
    with pytest.raises(CollaboratorError):
        parse_json_reply("[1, 2]")
    with pytest.raises(CollaboratorError):
        parse_json_reply("   ")


@pytest.mark.asyncio
async def test_pace_queries_run_off_the_event_loop(db):
    user, plan = make_plan_with_rate(db, completed=1, total=5)
    loop_thread = threading.get_ident()
    seen_threads = []

    def recording_compute_pace(*args, **kwargs):
        seen_threads.append(threading.get_ident())
        return compute_pace(*args, **kwargs)

    with patch("learnflow.services.adaptive_engine.compute_pace", side_effect=recording_compute_pace):
        result = await rules_engine().analyze_and_suggest(db, user.id, plan.id, now=NOW)

    assert result.completion_rate == 20
    assert len(seen_threads) == 1
    assert seen_threads[0] != loop_thread
