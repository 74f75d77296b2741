import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_id
from app.core.config import settings
from app.core.errors import ReadingCoreError, to_http_exception
from app.database import get_db
from app.models import ReadingStatus
from app.schemas.activity import ActivityWindow
from app.schemas.goal import GoalCreate, GoalFailure, GoalInsights, GoalUpdate, StoredGoal, ViewGoal
from app.schemas.user_book import UserBookFilter
from app.services import goal_service
from app.services.goal_insights import summarize_goal_insights
from app.services.goal_normalizer import ledger_start, normalize_all
from app.services.storage import ReadingStore, get_reading_store
from app.utils.instrumentation import log_event_best_effort

logger = logging.getLogger(__name__)

router = APIRouter(tags=["goals"])


class GoalList(BaseModel):
    goals: List[ViewGoal]
    excluded_goals: List[GoalFailure] = []


async def _load_views(
    store: ReadingStore,
    user_id: str,
    ended_since: datetime,
    now: datetime,
) -> Tuple[List[ViewGoal], List[GoalFailure]]:
    def _ledger(start: datetime):
        return asyncio.gather(
            store.get_activity_samples(user_id, ActivityWindow(start=start, end=now)),
            store.get_user_books(
                user_id,
                UserBookFilter(statuses={ReadingStatus.COMPLETED}, touched_since=start),
            ),
        )

    lookback = ledger_start((), now)
    goals, (samples, books) = await asyncio.gather(
        store.get_goals(user_id, ended_since=ended_since),
        _ledger(lookback),
    )
    window_start = ledger_start(goals, now)
    if window_start < lookback:
        samples, books = await _ledger(window_start)
    return normalize_all(goals, samples, books, now)


@router.get("/goals", response_model=GoalList)
async def list_goals(
    user_id: str = Depends(get_current_user_id),
    store: ReadingStore = Depends(get_reading_store),
):
    now = datetime.now(timezone.utc)
    try:
        views, excluded = await _load_views(
            store, user_id, now - timedelta(days=settings.RECENT_GOAL_DAYS), now
        )
    except ReadingCoreError as e:
        logger.warning("Listing goals failed for user %s: %s", user_id, e)
        raise to_http_exception(e)
    return GoalList(goals=views, excluded_goals=excluded)


@router.get("/goals/insights", response_model=GoalInsights)
async def goal_insights(
    user_id: str = Depends(get_current_user_id),
    store: ReadingStore = Depends(get_reading_store),
):
    now = datetime.now(timezone.utc)
    try:
        views, excluded = await _load_views(
            store, user_id, now - timedelta(days=settings.LEDGER_LOOKBACK_DAYS), now
        )
    except ReadingCoreError as e:
        logger.warning("Goal insights failed for user %s: %s", user_id, e)
        raise to_http_exception(e)
    return summarize_goal_insights(views, excluded)


@router.post("/goals", response_model=StoredGoal, status_code=201)
def create_goal(
    payload: GoalCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = goal_service.create_goal(db, user_id, payload)
    except ReadingCoreError as e:
        logger.info("Goal creation rejected for user %s: %s", user_id, e)
        raise to_http_exception(e)

    log_event_best_effort(
        event_name="goal_created",
        user_id=user_id,
        properties={"goal_id": goal.id, "goal_type": goal.goal_type.value, "target": goal.target},
    )
    return goal


@router.patch("/goals/{goal_id}", response_model=StoredGoal)
def update_goal(
    goal_id: str,
    payload: GoalUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not payload.model_dump(exclude_unset=True):
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        return goal_service.update_goal(db, user_id, goal_id, payload)
    except ReadingCoreError as e:
        logger.info("Goal update rejected for user %s goal %s: %s", user_id, goal_id, e)
        raise to_http_exception(e)
