"""
Goal normalizer: converts a stored goal plus the user's activity ledger and
completed books into a UI-ready progress view.

Pure and deterministic for fixed inputs. The stored goal is never mutated;
every call returns a new ViewGoal.

Pacing model:
    elapsed_fraction = (now - start) / (end - start), clamped to [0, 1]
    expected_value   = target * elapsed_fraction
    on_track        <=> accumulated >= expected_value * tolerance
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.config import settings
from app.core.errors import ValidationError
from app.models import GoalStatus, GoalType, ReadingStatus
from app.schemas.activity import ActivitySample
from app.schemas.base import as_utc
from app.schemas.goal import GoalFailure, StoredGoal, ViewGoal
from app.schemas.user_book import UserBook

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

# (goal, samples, completed_books, window_start, window_end) -> accumulated value
Accumulator = Callable[
    [StoredGoal, Sequence[ActivitySample], Sequence[UserBook], datetime, datetime],
    float,
]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _in_window(ts: Optional[datetime], start: datetime, end: datetime) -> bool:
    return ts is not None and start <= ts <= end


def _finished_in_window(books: Sequence[UserBook], start: datetime, end: datetime) -> List[UserBook]:
    return [
        b for b in books
        if b.status == ReadingStatus.COMPLETED and _in_window(b.finished_at, start, end)
    ]


def _accumulate_books(goal, samples, books, start, end) -> float:
    return float(len({b.id for b in _finished_in_window(books, start, end)}))


def _accumulate_genres(goal, samples, books, start, end) -> float:
    wanted = {g.strip().lower() for g in (goal.genres or []) if g and g.strip()}
    seen = set()
    for book in _finished_in_window(books, start, end):
        for genre in book.genres:
            key = genre.strip().lower()
            if key and (not wanted or key in wanted):
                seen.add(key)
    return float(len(seen))


def _accumulate_pages(goal, samples, books, start, end) -> float:
    return float(sum(s.pages for s in samples if _in_window(s.recorded_at, start, end)))


def _accumulate_minutes(goal, samples, books, start, end) -> float:
    return float(sum(s.minutes for s in samples if _in_window(s.recorded_at, start, end)))


ACCUMULATORS: Dict[GoalType, Accumulator] = {
    GoalType.BOOK_COUNT: _accumulate_books,
    GoalType.GENRE_COUNT: _accumulate_genres,
    GoalType.PAGE_COUNT: _accumulate_pages,
    GoalType.MINUTE_COUNT: _accumulate_minutes,
}

# Which fetched source each goal type accumulates from
BOOK_SOURCED_TYPES = frozenset({GoalType.BOOK_COUNT, GoalType.GENRE_COUNT})
LEDGER_SOURCED_TYPES = frozenset({GoalType.PAGE_COUNT, GoalType.MINUTE_COUNT})


def validate_goal(goal: StoredGoal) -> None:
    """Raise ValidationError if the stored goal cannot be normalized."""
    if goal.target <= 0:
        raise ValidationError(
            f"Goal {goal.id} has a non-positive target ({goal.target})", field="target"
        )
    if goal.end_date is not None and goal.end_date < goal.start_date:
        raise ValidationError(
            f"Goal {goal.id} ends ({goal.end_date.isoformat()}) before it starts "
            f"({goal.start_date.isoformat()})",
            field="end_date",
        )
    if goal.goal_type not in ACCUMULATORS:
        raise ValidationError(
            f"Goal {goal.id} has unsupported type {goal.goal_type!r}", field="goal_type"
        )


def accumulate(
    goal: StoredGoal,
    samples: Sequence[ActivitySample],
    completed_books: Sequence[UserBook],
    now: datetime,
) -> float:
    """
    Accumulated value from records inside [start_date, min(end_date, now)].
    Zero when the window has not started yet.
    """
    if now < goal.start_date:
        return 0.0
    window_end = now if goal.end_date is None else min(goal.end_date, now)
    return ACCUMULATORS[goal.goal_type](goal, samples, completed_books, goal.start_date, window_end)


def _goal_fields(goal: StoredGoal) -> dict:
    return {
        "id": goal.id,
        "user_id": goal.user_id,
        "goal_type": goal.goal_type,
        "target": goal.target,
        "start_date": goal.start_date,
        "end_date": goal.end_date,
        "genres": goal.genres,
    }


def normalize(
    goal: StoredGoal,
    samples: Sequence[ActivitySample],
    completed_books: Sequence[UserBook],
    now: datetime,
    tolerance: Optional[float] = None,
) -> ViewGoal:
    """
    Build the progress view for one goal.

    Args:
        goal: Stored goal definition
        samples: The user's activity samples (anything outside the window is ignored)
        completed_books: The user's UserBook records (non-completed ones are ignored)
        now: Reference time; naive values are taken as UTC
        tolerance: Pace tolerance factor, defaults to settings.PACE_TOLERANCE

    Returns:
        A new ViewGoal

    Raises:
        ValidationError: If the goal has a non-positive target, ends before it
            starts, or has an unknown type, or if tolerance is out of (0, 1]
    """
    validate_goal(goal)
    if tolerance is None:
        tolerance = settings.PACE_TOLERANCE
    if not 0.0 < tolerance <= 1.0:
        raise ValidationError(f"Pace tolerance must be in (0, 1], got {tolerance}", field="tolerance")

    now = as_utc(now)
    start, end, target = goal.start_date, goal.end_date, goal.target

    accumulated = accumulate(goal, samples, completed_books, now)
    percent_complete = round(_clamp(accumulated / target * 100.0, 0.0, 100.0), 2)
    remaining = max(0.0, target - accumulated)

    elapsed_end = now if end is None else min(now, end)
    elapsed_days = max(0.0, (elapsed_end - start).total_seconds() / SECONDS_PER_DAY)
    actual_daily_pace = round(accumulated / elapsed_days, 2) if elapsed_days > 0 else None

    elapsed_fraction: Optional[float] = None
    expected_value: Optional[float] = None
    days_remaining: Optional[int] = None
    required_daily_pace: Optional[float] = None

    if end is not None:
        window_seconds = (end - start).total_seconds()
        if window_seconds <= 0:
            elapsed_fraction = 1.0 if now >= start else 0.0
        else:
            elapsed_fraction = _clamp((now - start).total_seconds() / window_seconds, 0.0, 1.0)
        expected_value = target * elapsed_fraction
        days_remaining = max(0, math.ceil((end - now).total_seconds() / SECONDS_PER_DAY))
        if remaining == 0:
            required_daily_pace = 0.0
        elif days_remaining > 0:
            required_daily_pace = round(remaining / days_remaining, 2)

    if accumulated >= target:
        status = GoalStatus.COMPLETED
    elif end is not None and now > end:
        status = GoalStatus.EXPIRED
    elif expected_value is None or accumulated >= expected_value * tolerance:
        status = GoalStatus.ON_TRACK
    else:
        status = GoalStatus.BEHIND

    catch_up_rate = None
    if status == GoalStatus.BEHIND and days_remaining:
        catch_up_rate = math.ceil(remaining / days_remaining)

    return ViewGoal(
        **_goal_fields(goal),
        current_value=accumulated,
        percent_complete=percent_complete,
        expected_value=round(expected_value, 2) if expected_value is not None else None,
        elapsed_fraction=round(elapsed_fraction, 4) if elapsed_fraction is not None else None,
        days_remaining=days_remaining,
        required_daily_pace=required_daily_pace,
        actual_daily_pace=actual_daily_pace,
        catch_up_rate=catch_up_rate,
        status=status,
    )


def unavailable_view(goal: StoredGoal, reason: str) -> ViewGoal:
    """View with all computed fields left null because a data source failed."""
    return ViewGoal(**_goal_fields(goal), unavailable_reason=reason)


def normalize_all(
    goals: Sequence[StoredGoal],
    samples: Optional[Sequence[ActivitySample]],
    books: Optional[Sequence[UserBook]],
    now: datetime,
    tolerance: Optional[float] = None,
    samples_error: Optional[str] = None,
    books_error: Optional[str] = None,
) -> Tuple[List[ViewGoal], List[GoalFailure]]:
    """
    Normalize every goal independently.

    A goal whose accumulation source is missing (samples/books is None) gets an
    unavailable_view carrying the source's error. A goal that fails validation
    is reported in the failures list. One goal failing never affects another.
    """
    views: List[ViewGoal] = []
    failures: List[GoalFailure] = []

    for goal in goals:
        try:
            validate_goal(goal)
            if goal.goal_type in LEDGER_SOURCED_TYPES and samples is None:
                views.append(unavailable_view(goal, samples_error or "activity unavailable"))
                continue
            if goal.goal_type in BOOK_SOURCED_TYPES and books is None:
                views.append(unavailable_view(goal, books_error or "books unavailable"))
                continue
            views.append(normalize(goal, samples or [], books or [], now, tolerance))
        except ValidationError as e:
            logger.warning("Excluding goal %s: %s", goal.id, e)
            failures.append(GoalFailure(goal_id=goal.id, reason=str(e), field=e.field))
        except Exception as e:
            logger.exception("Failed to normalize goal %s", goal.id)
            failures.append(GoalFailure(goal_id=goal.id, reason=f"{type(e).__name__}: {e}"))

    return views, failures


def ledger_start(
    goals: Iterable[StoredGoal],
    now: datetime,
    lookback_days: Optional[int] = None,
) -> datetime:
    """
    Earliest instant the activity ledger and completed books must cover.

    The trailing lookback (Settings.LEDGER_LOOKBACK_DAYS) feeds streaks and
    velocity; any goal that started earlier extends the window back to its
    start_date so accumulated progress never loses old samples.
    """
    if lookback_days is None:
        lookback_days = settings.LEDGER_LOOKBACK_DAYS
    start = as_utc(now) - timedelta(days=lookback_days)
    for goal in goals:
        goal_start = as_utc(goal.start_date)
        if goal_start < start:
            start = goal_start
    return start
