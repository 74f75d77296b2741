"""Tests for streak and velocity metrics."""
from datetime import date, datetime, timedelta, timezone

import pytest

from app.schemas.activity import ActivitySample
from app.services.reading_stats import active_days, compute_streak, compute_velocity

TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 18, 0, tzinfo=timezone.utc)


def _on(day: date, pages=10, minutes=0, hour=9) -> ActivitySample:
    return ActivitySample(
        id=f"s-{day.isoformat()}-{hour}-{pages}-{minutes}",
        user_book_id="ub-1",
        recorded_at=datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc),
        pages=pages,
        minutes=minutes,
    )


def test_three_consecutive_days_ending_today():
    """Activity on each of the last three days is a streak of three."""
    samples = [_on(TODAY - timedelta(days=d)) for d in range(3)]

    streak = compute_streak(samples, TODAY)

    assert streak.current == 3
    assert streak.best == 3
    assert streak.last_active_date == TODAY


def test_gap_resets_current_streak():
    """A missed day breaks the streak even if earlier days were active."""
    samples = [
        _on(TODAY),
        _on(TODAY - timedelta(days=2)),
        _on(TODAY - timedelta(days=3)),
        _on(TODAY - timedelta(days=4)),
    ]

    streak = compute_streak(samples, TODAY)

    assert streak.current == 1
    assert streak.best == 3


def test_streak_still_alive_when_today_not_logged_yet():
    samples = [_on(TODAY - timedelta(days=1)), _on(TODAY - timedelta(days=2))]

    assert compute_streak(samples, TODAY).current == 2


def test_streak_broken_after_two_idle_days():
    samples = [_on(TODAY - timedelta(days=2)), _on(TODAY - timedelta(days=3))]

    streak = compute_streak(samples, TODAY)

    assert streak.current == 0
    assert streak.best == 2


def test_zero_progress_samples_do_not_count():
    samples = [_on(TODAY, pages=0, minutes=0), _on(TODAY - timedelta(days=1))]

    assert active_days(samples) == {TODAY - timedelta(days=1)}
    assert compute_streak(samples, TODAY).current == 1


def test_multiple_samples_per_day_count_once():
    samples = [_on(TODAY, hour=8), _on(TODAY, hour=20), _on(TODAY - timedelta(days=1))]

    assert compute_streak(samples, TODAY).current == 2


def test_empty_ledger():
    streak = compute_streak([], TODAY)

    assert streak.current == 0
    assert streak.best == 0
    assert streak.last_active_date is None


def test_velocity_averages_over_calendar_window():
    """Idle days in the window still count in the denominator."""
    samples = [
        _on(TODAY, pages=30, minutes=20),
        _on(TODAY - timedelta(days=5), pages=60, minutes=40),
        _on(TODAY - timedelta(days=40), pages=1000, minutes=1000),
    ]

    velocity = compute_velocity(samples, NOW, window_days=30)

    assert velocity.total_pages == 90
    assert velocity.total_minutes == 60
    assert velocity.pages_per_day == 3.0
    assert velocity.minutes_per_day == 2.0
    assert velocity.active_days == 2


def test_velocity_window_must_be_positive():
    with pytest.raises(ValueError):
        compute_velocity([], NOW, window_days=0)
