from datetime import date, datetime, timedelta

import pytest

from learnflow.core.errors import ValidationError
from learnflow.services.checkin_stats import get_checkin_stats, longest_streak
from learnflow.tests.factories import create_user, create_checkin

NOW = datetime(2026, 3, 16, 20, 0, 0)


def test_longest_streak_finds_best_run():
    base = date(2026, 1, 1)
    days = [base, base + timedelta(days=1), base + timedelta(days=1),
            base + timedelta(days=5), base + timedelta(days=6), base + timedelta(days=7)]

    assert longest_streak(days) == 3
    assert longest_streak([]) == 0


def test_period_window_and_streaks(db):
    user = create_user(db)
    # Old four-day run, then a two-day run ending today
    for offset in (40, 41, 42, 43, 1, 0):
        create_checkin(db, user, NOW - timedelta(days=offset), duration=60, rating=3)

    week = get_checkin_stats(db, user.id, period="week", now=NOW)
    year = get_checkin_stats(db, user.id, period="year", now=NOW)

    assert week["period_stats"]["total_days"] == 2
    assert year["period_stats"]["total_days"] == 6
    assert week["overall_stats"]["total_checkins"] == 6
    assert week["streaks"] == {"current": 2, "max": 4}
    assert [c["date"] for c in week["checkins"]] == sorted(c["date"] for c in week["checkins"])


def test_empty_history(db):
    user = create_user(db)

    stats = get_checkin_stats(db, user.id, now=NOW)

    assert stats["period"] == "month"
    assert stats["period_stats"]["total_days"] == 0
    assert stats["period_stats"]["average_rating"] == 0
    assert stats["streaks"] == {"current": 0, "max": 0}
    assert stats["checkins"] == []


def test_unknown_period_is_rejected(db):
    user = create_user(db)
    with pytest.raises(ValidationError):
        get_checkin_stats(db, user.id, period="decade", now=NOW)
