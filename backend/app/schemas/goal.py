from typing import Optional

from pydantic import BaseModel, Field

from app.models import GoalStatus, GoalType
from app.schemas.base import Snapshot, UtcDatetime


class StoredGoal(Snapshot):
    """A goal as persisted: the target definition only, no progress."""
    id: str
    user_id: str
    goal_type: GoalType
    target: int
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    genres: Optional[list[str]] = None
    is_active: bool = True
    created_at: Optional[UtcDatetime] = None


class ViewGoal(Snapshot):
    """
    Derived, never persisted. Recomputed from the ledger on every read.

    Pace fields are None for open-ended goals. Every computed field is None
    when the goal's data source was unavailable (see unavailable_reason).
    """
    id: str
    user_id: str
    goal_type: GoalType
    target: int
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    genres: Optional[list[str]] = None

    current_value: Optional[float] = None
    percent_complete: Optional[float] = None
    expected_value: Optional[float] = None
    elapsed_fraction: Optional[float] = None
    days_remaining: Optional[int] = None
    required_daily_pace: Optional[float] = None
    actual_daily_pace: Optional[float] = None
    catch_up_rate: Optional[int] = None
    status: Optional[GoalStatus] = None
    unavailable_reason: Optional[str] = None


class GoalFailure(BaseModel):
    """A goal excluded from a payload, with the reason it could not be normalized."""
    goal_id: str
    reason: str
    field: Optional[str] = None


class GoalCreate(BaseModel):
    goal_type: GoalType
    target: int = Field(gt=0)
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    genres: Optional[list[str]] = None


class GoalUpdate(BaseModel):
    target: Optional[int] = Field(default=None, gt=0)
    end_date: Optional[UtcDatetime] = None
    genres: Optional[list[str]] = None
    is_active: Optional[bool] = None


class PaceAlert(BaseModel):
    goal_id: str
    goal_type: GoalType
    severity: str  # warning | critical
    message: str
    required_daily_pace: Optional[float] = None
    current_value: float
    target: int


class GoalInsights(BaseModel):
    success_rate: int
    goals: list[ViewGoal]
    pace_alerts: list[PaceAlert]
    excluded_goals: list[GoalFailure] = Field(default_factory=list)
