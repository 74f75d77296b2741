import enum
from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from app.schemas.goal import GoalFailure, ViewGoal
from app.schemas.profile import Profile
from app.schemas.user_book import UserBook
from app.schemas.stats import StreakSummary, VelocitySummary

T = TypeVar("T")


class FailureKind(str, enum.Enum):
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class SectionError(BaseModel):
    kind: FailureKind
    reason: str


class Section(BaseModel, Generic[T]):
    """One independently nullable slice of the dashboard."""
    data: Optional[T] = None
    error: Optional[SectionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DashboardPayload(BaseModel):
    user_id: str
    generated_at: datetime
    profile: Section[Profile]
    goals: Section[List[ViewGoal]]
    recent_books: Section[List[UserBook]]
    streak: Section[StreakSummary]
    velocity: Section[VelocitySummary]
    excluded_goals: List[GoalFailure] = Field(default_factory=list)
    # Failures of the underlying fetch stages (profile, goals, activity, books)
    fetch_errors: Dict[str, SectionError] = Field(default_factory=dict)
    # Diagnostics only
    timings_ms: Dict[str, float] = Field(default_factory=dict)
