"""Goal success rate and pace alerts built on top of normalized goal views."""
from typing import List, Optional, Sequence

from app.models import GoalStatus, GoalType
from app.schemas.goal import GoalFailure, GoalInsights, PaceAlert, ViewGoal

# Alerts escalate to critical once progress trails elapsed time by this many points
CRITICAL_GAP_POINTS = 20.0

GOAL_UNIT_LABELS = {
    GoalType.BOOK_COUNT: "books",
    GoalType.PAGE_COUNT: "pages",
    GoalType.MINUTE_COUNT: "minutes",
    GoalType.GENRE_COUNT: "genres",
}


def build_pace_alert(view: ViewGoal) -> Optional[PaceAlert]:
    """Return an alert for a goal that is behind with time left, else None."""
    if view.status != GoalStatus.BEHIND or not view.days_remaining:
        return None

    elapsed_percent = (view.elapsed_fraction or 0.0) * 100.0
    gap = elapsed_percent - (view.percent_complete or 0.0)
    severity = "critical" if gap > CRITICAL_GAP_POINTS else "warning"
    unit = GOAL_UNIT_LABELS[view.goal_type]
    pace = view.required_daily_pace

    if severity == "critical":
        message = (
            f"You're significantly behind on your {unit} goal. "
            f"You need {pace} {unit} per day to catch up."
        )
    else:
        message = f"You're slightly behind on your {unit} goal. Aim for {pace} {unit} per day to stay on track."

    return PaceAlert(
        goal_id=view.id,
        goal_type=view.goal_type,
        severity=severity,
        message=message,
        required_daily_pace=pace,
        current_value=view.current_value or 0.0,
        target=view.target,
    )


def summarize_goal_insights(
    views: Sequence[ViewGoal],
    excluded: Sequence[GoalFailure] = (),
) -> GoalInsights:
    """
    Success rate is completed goals over all goals that have a status, as an
    integer percentage. Unavailable views are listed but not counted.
    """
    rated = [v for v in views if v.status is not None]
    completed = sum(1 for v in rated if v.status == GoalStatus.COMPLETED)
    success_rate = round(completed / len(rated) * 100) if rated else 0

    alerts: List[PaceAlert] = []
    for view in views:
        alert = build_pace_alert(view)
        if alert is not None:
            alerts.append(alert)

    return GoalInsights(
        success_rate=success_rate,
        goals=list(views),
        pace_alerts=alerts,
        excluded_goals=list(excluded),
    )
