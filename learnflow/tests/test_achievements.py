from datetime import datetime, date, timedelta

from learnflow.db.models.achievement import Achievement, UserAchievement
from learnflow.db.models.goal import GoalStatus
from learnflow.services.achievements import (
    ACHIEVEMENTS,
    AchievementDefinition,
    check_and_unlock,
    current_streak,
    has_streak,
    list_achievements,
    seed_achievements,
)
from learnflow.tests.factories import create_user, create_goal, create_plan, create_task, create_checkin

TODAY = date(2026, 3, 16)


def at(day, hour=9):
    return datetime.combine(day, datetime.min.time()) + timedelta(hours=hour)


def checkin_days(db, user, offsets, duration=30):
    for offset in offsets:
        create_checkin(db, user, at(TODAY - timedelta(days=offset)), duration=duration)


def test_seed_is_idempotent_and_refreshes_definitions(db):
    seed_achievements(db)
    seed_achievements(db)
    assert db.query(Achievement).count() == len(ACHIEVEMENTS)

    row = db.query(Achievement).filter(Achievement.key == "streak_7").one()
    row.title = "Outdated title"
    db.commit()

    seed_achievements(db)
    db.refresh(row)
    assert row.title == "Steady Star"


def test_catalog_keys_are_unique_and_categorized():
    keys = [d.key for d in ACHIEVEMENTS]
    assert len(keys) == len(set(keys))
    assert set(keys) == {
        "first_goal", "first_checkin", "streak_7", "streak_30", "complete_goal",
        "task_10", "task_50", "study_10h", "study_100h", "plan_3",
    }
    assert {d.category for d in ACHIEVEMENTS} == {"milestone", "streak", "effort"}


def test_seven_day_streak(db):
    user = create_user(db)
    checkin_days(db, user, range(7))

    assert has_streak(db, user.id, 7, today=TODAY)
    assert not has_streak(db, user.id, 8, today=TODAY)


def test_streak_broken_by_missing_day(db):
    user = create_user(db)
    checkin_days(db, user, [0, 1, 2, 4, 5, 6])

    assert not has_streak(db, user.id, 7, today=TODAY)


def test_streak_window_counts_checkin_rows_not_days(db):
    user = create_user(db)
    checkin_days(db, user, range(7))
    assert has_streak(db, user.id, 7, today=TODAY)

    # One duplicate still fits in the days + 1 window
    create_checkin(db, user, at(TODAY, hour=12))
    assert has_streak(db, user.id, 7, today=TODAY)

    create_checkin(db, user, at(TODAY, hour=18))
    assert not has_streak(db, user.id, 7, today=TODAY)


def test_streak_must_end_today(db):
    user = create_user(db)
    checkin_days(db, user, range(1, 8))

    assert not has_streak(db, user.id, 7, today=TODAY)


def test_current_streak_counts_back_from_today(db):
    user = create_user(db)
    checkin_days(db, user, [0, 1, 2, 5])
    assert current_streak(db, user.id, today=TODAY) == 3

    other = create_user(db)
    checkin_days(db, other, [1, 2])
    assert current_streak(db, other.id, today=TODAY) == 0


def test_check_and_unlock_reports_each_unlock_once(db):
    seed_achievements(db)
    user = create_user(db)
    goal = create_goal(db, user)
    create_checkin(db, user, datetime.utcnow(), duration=45)

    first = check_and_unlock(db, user.id)
    second = check_and_unlock(db, user.id)

    assert {item["key"] for item in first} == {"first_goal", "first_checkin"}
    assert all(set(item.keys()) == {"key", "title", "icon"} for item in first)
    assert second == []

    goal.status = GoalStatus.COMPLETED.value
    db.commit()
    third = check_and_unlock(db, user.id)
    assert [item["key"] for item in third] == ["complete_goal"]


def test_effort_and_count_thresholds(db):
    seed_achievements(db)
    user = create_user(db)
    goal = create_goal(db, user)
    plans = [create_plan(db, user, goal, title=f"Plan {i}") for i in range(3)]
    for _ in range(10):
        create_task(db, user, plans[0], completed=True)
    create_checkin(db, user, at(TODAY - timedelta(days=40)), duration=600)

    unlocked = {item["key"] for item in check_and_unlock(db, user.id)}

    assert {"plan_3", "task_10", "study_10h"} <= unlocked
    assert "task_50" not in unlocked
    assert "study_100h" not in unlocked


def test_unlocks_are_never_revoked(db):
    seed_achievements(db)
    user = create_user(db)
    today = datetime.utcnow().date()
    checkins = [create_checkin(db, user, at(today - timedelta(days=i))) for i in range(7)]

    first = check_and_unlock(db, user.id)
    assert "streak_7" in {item["key"] for item in first}

    db.delete(checkins[3])
    db.commit()
    assert not has_streak(db, user.id, 7)

    assert check_and_unlock(db, user.id) == []
    achievement = db.query(Achievement).filter(Achievement.key == "streak_7").one()
    assert db.query(UserAchievement).filter(
        UserAchievement.user_id == user.id,
        UserAchievement.achievement_id == achievement.id,
    ).count() == 1


def test_failing_predicate_does_not_abort_batch(db):
    def explode(db, user_id):
        raise RuntimeError("broken predicate")

    catalog = (
        AchievementDefinition(key="broken", title="Broken", description="-", icon="x",
                              condition="-", category="milestone", check=explode),
        AchievementDefinition(key="always", title="Always", description="-", icon="y",
                              condition="-", category="milestone", check=lambda db, user_id: True),
    )
    seed_achievements(db, catalog)
    user = create_user(db)

    unlocked = check_and_unlock(db, user.id, catalog)

    assert unlocked == [{"key": "always", "title": "Always", "icon": "y"}]


def test_list_achievements_marks_unlocked(db):
    seed_achievements(db)
    user = create_user(db)
    create_goal(db, user)
    check_and_unlock(db, user.id)

    listing = list_achievements(db, user.id)

    assert listing["total_count"] == len(ACHIEVEMENTS)
    assert listing["unlocked_count"] == 1
    first_goal = next(a for a in listing["achievements"] if a["key"] == "first_goal")
    assert first_goal["unlocked"] is True
    assert first_goal["unlocked_at"] is not None
    categories = [a["category"] for a in listing["achievements"]]
    assert categories == sorted(categories)
