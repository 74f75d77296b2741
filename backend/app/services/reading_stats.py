"""Streak and velocity metrics derived from the activity ledger."""
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence, Set

from app.schemas.activity import ActivitySample
from app.schemas.base import as_utc
from app.schemas.stats import StreakSummary, VelocitySummary


def active_days(samples: Iterable[ActivitySample]) -> Set[date]:
    """UTC calendar days with at least one sample that recorded progress."""
    return {
        s.recorded_at.date()
        for s in samples
        if s.pages > 0 or s.minutes > 0
    }


def compute_streak(samples: Sequence[ActivitySample], today: date) -> StreakSummary:
    """
    Current streak: consecutive active days ending today, or ending yesterday
    when nothing has been logged yet today. Any gap day breaks it.
    Best streak: the longest run anywhere in the ledger.
    """
    days = active_days(samples)
    if not days:
        return StreakSummary(current=0, best=0)

    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        cursor = None

    current = 0
    while cursor is not None and cursor in days:
        current += 1
        cursor -= timedelta(days=1)

    best = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(days):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        best = max(best, run)
        previous = day

    return StreakSummary(current=current, best=max(best, current), last_active_date=max(days))


def compute_velocity(
    samples: Sequence[ActivitySample],
    now: datetime,
    window_days: int,
) -> VelocitySummary:
    """
    Average pages and minutes per calendar day over the trailing window
    (now - window_days, now]. Days without activity count as zero.
    """
    if window_days < 1:
        raise ValueError("window_days must be at least 1")

    now = as_utc(now)
    window_start = now - timedelta(days=window_days)
    in_window = [s for s in samples if window_start < s.recorded_at <= now]

    total_pages = sum(s.pages for s in in_window)
    total_minutes = sum(s.minutes for s in in_window)

    return VelocitySummary(
        window_days=window_days,
        pages_per_day=round(total_pages / window_days, 2),
        minutes_per_day=round(total_minutes / window_days, 2),
        total_pages=total_pages,
        total_minutes=total_minutes,
        active_days=len(active_days(in_window)),
    )
