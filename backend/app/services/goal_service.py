"""
Write side of reading goals: creation and edits, with subscription tier rules.

Free accounts may only track book_count goals; both tiers are capped on the
number of active goals (Settings.FREE_TIER_GOAL_LIMIT / PREMIUM_TIER_GOAL_LIMIT).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import GoalArchivedError, GoalLimitError, NotFoundError, ValidationError
from app.models import GoalType, Profile, ReadingGoal, SubscriptionTier
from app.schemas.base import as_utc
from app.schemas.goal import GoalCreate, GoalUpdate, StoredGoal

logger = logging.getLogger(__name__)

FREE_TIER_GOAL_TYPES = frozenset({GoalType.BOOK_COUNT})


def _tier_value(tier) -> str:
    return tier.value if isinstance(tier, SubscriptionTier) else str(tier)


def _get_profile(db: Session, user_id: str) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).one_or_none()
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found")
    return profile


def count_active_goals(db: Session, user_id: str) -> int:
    return (
        db.query(ReadingGoal)
        .filter(ReadingGoal.user_id == user_id, ReadingGoal.is_active.is_(True))
        .count()
    )


def ensure_can_activate(db: Session, user_id: str, goal_type: GoalType) -> str:
    """
    Check that one more active goal of goal_type fits the user's tier.

    Returns the tier value. Raises NotFoundError or GoalLimitError.
    """
    profile = _get_profile(db, user_id)
    tier = _tier_value(profile.subscription_tier)

    if tier == SubscriptionTier.FREE.value and goal_type not in FREE_TIER_GOAL_TYPES:
        raise GoalLimitError(f"{goal_type.value} goals require a premium subscription")

    limit = settings.goal_limit_for(tier)
    active = count_active_goals(db, user_id)
    if active >= limit:
        raise GoalLimitError(
            f"Active goal limit reached ({active}/{limit}) for the {tier} tier"
        )
    return tier


def create_goal(db: Session, user_id: str, payload: GoalCreate) -> StoredGoal:
    """
    Persist a new goal.

    Raises:
        NotFoundError: the user has no profile
        ValidationError: end_date precedes start_date
        GoalLimitError: the goal type or count is not allowed on the user's tier
    """
    if payload.end_date is not None and payload.end_date < payload.start_date:
        raise ValidationError("end_date must not precede start_date", field="end_date")

    tier = ensure_can_activate(db, user_id, payload.goal_type)

    genres = None
    if payload.goal_type == GoalType.GENRE_COUNT and payload.genres:
        genres = sorted({g.strip().lower() for g in payload.genres if g and g.strip()})

    goal = ReadingGoal(
        user_id=user_id,
        goal_type=payload.goal_type,
        target=payload.target,
        start_date=payload.start_date,
        end_date=payload.end_date,
        genres=genres,
        is_active=True,
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)

    logger.info(
        "Created %s goal %s for user %s (target=%d, tier=%s)",
        payload.goal_type.value, goal.id, user_id, payload.target, tier,
    )
    return StoredGoal.model_validate(goal)


def update_goal(
    db: Session,
    user_id: str,
    goal_id: str,
    payload: GoalUpdate,
    now: Optional[datetime] = None,
) -> StoredGoal:
    """
    Apply a partial update to a goal the user owns.

    Raises:
        NotFoundError: no such goal for this user
        GoalArchivedError: the goal's end date has already passed
        ValidationError: the new end_date precedes start_date
        GoalLimitError: re-activating the goal would exceed the user's tier
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)

    goal = (
        db.query(ReadingGoal)
        .filter(ReadingGoal.id == goal_id, ReadingGoal.user_id == user_id)
        .one_or_none()
    )
    if goal is None:
        raise NotFoundError(f"Goal {goal_id} not found")

    if goal.end_date is not None and as_utc(goal.end_date) < now:
        raise GoalArchivedError(f"Goal {goal_id} ended on {as_utc(goal.end_date).date()} and can no longer be edited")

    changes = payload.model_dump(exclude_unset=True)
    if "end_date" in changes and changes["end_date"] is not None:
        if changes["end_date"] < as_utc(goal.start_date):
            raise ValidationError("end_date must not precede start_date", field="end_date")
    if "genres" in changes and changes["genres"] is not None:
        changes["genres"] = sorted({g.strip().lower() for g in changes["genres"] if g and g.strip()})
    if changes.get("is_active") is True and not goal.is_active:
        ensure_can_activate(db, user_id, goal.goal_type)

    for field, value in changes.items():
        setattr(goal, field, value)

    db.commit()
    db.refresh(goal)
    logger.info("Updated goal %s for user %s: %s", goal_id, user_id, sorted(changes))
    return StoredGoal.model_validate(goal)
