import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnflow.db.models.achievement import Achievement, UserAchievement
from learnflow.db.models.checkin import Checkin
from learnflow.db.models.goal import Goal, GoalStatus
from learnflow.db.models.plan import Plan, Task

logger = logging.getLogger(__name__)

Predicate = Callable[[Session, int], bool]


@dataclass(frozen=True)
class AchievementDefinition:
    key: str
    title: str
    description: str
    icon: str
    condition: str
    category: str # milestone | streak | effort
    check: Predicate


def _to_day(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def has_streak(db: Session, user_id: int, days: int, today: Optional[date] = None) -> bool:
    """
    True when the user checked in on each of the last `days` calendar days,
    today included.

    Only the latest `days + 1` checkin rows are looked at, so this is a strict
    calendar-day test: two or more extra checkins on one day push the oldest
    required day out of the window and the streak fails.
    """
    today = today or datetime.utcnow().date()

    rows = (
        db.query(Checkin.date)
        .filter(Checkin.user_id == user_id)
        .order_by(Checkin.date.desc())
        .limit(days + 1)
        .all()
    )
    if len(rows) < days:
        return False

    checkin_days = {_to_day(checkin_date) for checkin_date, in rows}
    return all(today - timedelta(days=i) in checkin_days for i in range(days))


def current_streak(db: Session, user_id: int, today: Optional[date] = None, max_days: int = 365) -> int:
    """Length of the run of consecutive checkin days ending today (0 without a checkin today)."""
    today = today or datetime.utcnow().date()
    since = datetime.combine(today - timedelta(days=max_days), datetime.min.time())

    checkin_days = {
        _to_day(checkin_date)
        for checkin_date, in db.query(Checkin.date).filter(
            Checkin.user_id == user_id,
            Checkin.date >= since,
        ).all()
    }

    streak = 0
    while streak < max_days and today - timedelta(days=streak) in checkin_days:
        streak += 1
    return streak


def _count_at_least(model, threshold: int, *criteria) -> Predicate:
    def check(db: Session, user_id: int) -> bool:
        count = db.query(func.count(model.id)).filter(model.user_id == user_id, *criteria).scalar() or 0
        return count >= threshold
    return check


def _study_minutes_at_least(minutes: int) -> Predicate:
    def check(db: Session, user_id: int) -> bool:
        total = db.query(func.sum(Checkin.duration)).filter(Checkin.user_id == user_id).scalar()
        return (total or 0) >= minutes
    return check


def _streak_of(days: int) -> Predicate:
    def check(db: Session, user_id: int) -> bool:
        return has_streak(db, user_id, days)
    return check


ACHIEVEMENTS = (
    AchievementDefinition(
        key="first_goal", title="First Sprout", description="Create your first learning goal",
        icon="🌱", condition="Create 1 goal", category="milestone",
        check=_count_at_least(Goal, 1),
    ),
    AchievementDefinition(
        key="first_checkin", title="Checked In", description="Complete your first study check-in",
        icon="✅", condition="Check in once", category="milestone",
        check=_count_at_least(Checkin, 1),
    ),
    AchievementDefinition(
        key="streak_7", title="Steady Star", description="Check in 7 days in a row",
        icon="🔥", condition="Check in 7 consecutive days", category="streak",
        check=_streak_of(7),
    ),
    AchievementDefinition(
        key="streak_30", title="Learning Master", description="Check in 30 days in a row",
        icon="🏆", condition="Check in 30 consecutive days", category="streak",
        check=_streak_of(30),
    ),
    AchievementDefinition(
        key="complete_goal", title="Goal Achieved", description="Complete your first learning goal",
        icon="🎯", condition="Complete 1 goal", category="milestone",
        check=_count_at_least(Goal, 1, Goal.status == GoalStatus.COMPLETED.value),
    ),
    AchievementDefinition(
        key="task_10", title="Doer", description="Complete 10 learning tasks",
        icon="⚡", condition="Complete 10 tasks", category="milestone",
        check=_count_at_least(Task, 10, Task.completed.is_(True)),
    ),
    AchievementDefinition(
        key="task_50", title="Task Harvester", description="Complete 50 learning tasks",
        icon="🚀", condition="Complete 50 tasks", category="milestone",
        check=_count_at_least(Task, 50, Task.completed.is_(True)),
    ),
    AchievementDefinition(
        key="study_10h", title="Ten Hour Breakthrough", description="Study for 10 hours in total",
        icon="📚", condition="Log 10 hours of study", category="effort",
        check=_study_minutes_at_least(600),
    ),
    AchievementDefinition(
        key="study_100h", title="Hundred Hour Milestone", description="Study for 100 hours in total",
        icon="💎", condition="Log 100 hours of study", category="effort",
        check=_study_minutes_at_least(6000),
    ),
    AchievementDefinition(
        key="plan_3", title="Master Planner", description="Create 3 learning plans",
        icon="📋", condition="Create 3 plans", category="milestone",
        check=_count_at_least(Plan, 3),
    ),
)


def seed_achievements(db: Session, catalog=ACHIEVEMENTS) -> None:
    """Upserts every catalog entry by key. Cheap enough to call on every request."""
    existing = {a.key: a for a in db.query(Achievement).all()}

    for definition in catalog:
        row = existing.get(definition.key)
        if row is None:
            row = Achievement(key=definition.key)
            db.add(row)
        row.title = definition.title
        row.description = definition.description
        row.icon = definition.icon
        row.condition = definition.condition
        row.category = definition.category

    try:
        db.commit()
    except IntegrityError:
        # A concurrent request seeded the same keys first.
        db.rollback()
        logger.warning("Achievement seeding raced another request; keeping the stored catalog")


def check_and_unlock(db: Session, user_id: int, catalog=ACHIEVEMENTS) -> List[Dict[str, str]]:
    """
    Evaluates every achievement the user has not unlocked yet and records the
    ones now satisfied. Returns [{key, title, icon}] for the new unlocks only.
    Unlocks are never revoked.
    """
    unlocked_keys = {
        key for key, in db.query(Achievement.key)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .filter(UserAchievement.user_id == user_id)
        .all()
    }
    stored = {a.key: a.id for a in db.query(Achievement).all()}

    newly_unlocked = []
    for definition in catalog:
        if definition.key in unlocked_keys:
            continue

        try:
            met = definition.check(db, user_id)
        except Exception as e:
            db.rollback()
            logger.warning(f"Achievement check failed: {definition.key} ({e})")
            continue

        if not met:
            continue

        achievement_id = stored.get(definition.key)
        if achievement_id is None:
            logger.warning(f"Achievement {definition.key} is not seeded; skipping unlock")
            continue

        db.add(UserAchievement(user_id=user_id, achievement_id=achievement_id))
        try:
            db.commit()
        except IntegrityError:
            # Unlocked by a concurrent request in the meantime.
            db.rollback()
            continue

        newly_unlocked.append({"key": definition.key, "title": definition.title, "icon": definition.icon})
        logger.info(f"Achievement unlocked: {definition.title} (user {user_id})")

    return newly_unlocked


def list_achievements(db: Session, user_id: int) -> Dict:
    """The full catalog with the user's unlock state, ordered by category."""
    achievements = db.query(Achievement).order_by(Achievement.category, Achievement.id).all()
    unlocked = dict(
        db.query(UserAchievement.achievement_id, UserAchievement.unlocked_at)
        .filter(UserAchievement.user_id == user_id)
        .all()
    )

    items = [
        {
            "id": a.id,
            "key": a.key,
            "title": a.title,
            "description": a.description,
            "icon": a.icon,
            "condition": a.condition,
            "category": a.category,
            "unlocked": a.id in unlocked,
            "unlocked_at": unlocked.get(a.id),
        }
        for a in achievements
    ]
    return {"achievements": items, "unlocked_count": len(unlocked), "total_count": len(achievements)}
