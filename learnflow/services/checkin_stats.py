from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from learnflow.core.errors import ValidationError
from learnflow.db.models.checkin import Checkin
from learnflow.services.achievements import current_streak

PERIOD_WINDOWS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}
DEFAULT_PERIOD = "month"


def longest_streak(days: Iterable[date]) -> int:
    """Longest run of consecutive calendar days in `days`."""
    best = run = 0
    previous = None
    for day in sorted(set(days)):
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def _overall_stats(db: Session, user_id: int) -> dict:
    count, minutes, avg_rating, avg_duration = (
        db.query(
            func.count(Checkin.id),
            func.sum(Checkin.duration),
            func.avg(Checkin.rating),
            func.avg(Checkin.duration),
        )
        .filter(Checkin.user_id == user_id)
        .one()
    )
    minutes = int(minutes or 0)
    return {
        "total_checkins": count or 0,
        "total_minutes": minutes,
        "total_hours": round(minutes / 60, 1),
        "average_rating": round(float(avg_rating or 0), 2),
        "average_duration": round(float(avg_duration or 0), 1),
    }


def _period_stats(checkins) -> dict:
    total_minutes = sum(c.duration or 0 for c in checkins)
    count = len(checkins)
    # Unrated checkins count as 0, like the review page always did
    average_rating = sum(c.rating or 0 for c in checkins) / count if count else 0
    average_duration = total_minutes / count if count else 0
    return {
        "total_days": count,
        "total_minutes": total_minutes,
        "total_hours": round(total_minutes / 60, 1),
        "average_rating": round(average_rating, 2),
        "average_hours": round(average_duration / 60, 1),
    }


def get_checkin_stats(
    db: Session,
    user_id: int,
    period: str = DEFAULT_PERIOD,
    now: Optional[datetime] = None,
) -> dict:
    """
    Checkin statistics for the review page: the chosen period window
    (week, month or year, ending now), all-time totals, and streaks.
    """
    if period not in PERIOD_WINDOWS:
        raise ValidationError(f"period must be one of: {', '.join(PERIOD_WINDOWS)}")

    now = now or datetime.utcnow()
    start = now - PERIOD_WINDOWS[period]

    checkins = (
        db.query(Checkin)
        .filter(Checkin.user_id == user_id, Checkin.date >= start, Checkin.date <= now)
        .order_by(Checkin.date.asc())
        .all()
    )
    all_days = [checkin_date.date() for checkin_date, in db.query(Checkin.date).filter(Checkin.user_id == user_id).all()]

    return {
        "period": period,
        "period_stats": _period_stats(checkins),
        "overall_stats": _overall_stats(db, user_id),
        "streaks": {
            "current": current_streak(db, user_id, today=now.date()),
            "max": longest_streak(all_days),
        },
        "checkins": [
            {"date": c.date.isoformat(), "duration": c.duration, "rating": c.rating}
            for c in checkins
        ],
    }
