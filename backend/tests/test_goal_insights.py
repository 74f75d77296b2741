"""Tests for goal success rate and pace alerts."""
from datetime import datetime, timedelta, timezone

from app.models import GoalStatus, GoalType
from app.schemas.goal import GoalFailure, ViewGoal
from app.services.goal_insights import build_pace_alert, summarize_goal_insights

START = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _view(goal_id="g1", status=GoalStatus.ON_TRACK, percent=50.0, elapsed=0.5, **kwargs) -> ViewGoal:
    fields = dict(
        id=goal_id,
        user_id="user-1",
        goal_type=GoalType.PAGE_COUNT,
        target=300,
        start_date=START,
        end_date=START + timedelta(days=30),
        current_value=300 * percent / 100 if percent is not None else None,
        percent_complete=percent,
        elapsed_fraction=elapsed,
        days_remaining=15,
        required_daily_pace=12.0,
        status=status,
    )
    fields.update(kwargs)
    return ViewGoal(**fields)


def test_small_gap_is_a_warning():
    alert = build_pace_alert(_view(status=GoalStatus.BEHIND, percent=40.0, elapsed=0.5))

    assert alert is not None
    assert alert.severity == "warning"
    assert "12.0 pages per day" in alert.message


def test_large_gap_is_critical():
    """Trailing elapsed time by more than 20 points escalates the alert."""
    alert = build_pace_alert(_view(status=GoalStatus.BEHIND, percent=20.0, elapsed=0.5))

    assert alert.severity == "critical"
    assert alert.goal_id == "g1"
    assert alert.current_value == 60.0


def test_no_alert_for_on_track_or_finished_window():
    assert build_pace_alert(_view(status=GoalStatus.ON_TRACK)) is None
    assert build_pace_alert(_view(status=GoalStatus.BEHIND, days_remaining=0)) is None


def test_success_rate_counts_completed_over_rated_goals():
    views = [
        _view("a", status=GoalStatus.COMPLETED, percent=100.0),
        _view("b", status=GoalStatus.EXPIRED, percent=40.0, elapsed=1.0),
        _view("c", status=GoalStatus.BEHIND, percent=10.0),
        _view("d", status=None, percent=None, unavailable_reason="activity timed out"),
    ]
    excluded = [GoalFailure(goal_id="e", reason="bad dates", field="end_date")]

    insights = summarize_goal_insights(views, excluded)

    assert insights.success_rate == 33
    assert [a.goal_id for a in insights.pace_alerts] == ["c"]
    assert insights.pace_alerts[0].severity == "critical"
    assert len(insights.goals) == 4
    assert insights.excluded_goals == excluded


def test_success_rate_without_goals_is_zero():
    assert summarize_goal_insights([]).success_rate == 0
