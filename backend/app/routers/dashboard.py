import logging
import uuid as uuid_lib

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth import get_current_user_id
from app.core.errors import NotFoundError, to_http_exception
from app.schemas.dashboard import DashboardPayload
from app.services.dashboard import DashboardAggregator
from app.services.storage import ReadingStore, get_reading_store
from app.utils.instrumentation import log_event_best_effort

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dashboard"])


def get_dashboard_aggregator(store: ReadingStore = Depends(get_reading_store)) -> DashboardAggregator:
    return DashboardAggregator(store)


@router.get("/dashboard", response_model=DashboardPayload)
async def get_dashboard(
    user_id: str = Depends(get_current_user_id),
    aggregator: DashboardAggregator = Depends(get_dashboard_aggregator),
):
    request_id = str(uuid_lib.uuid4())
    try:
        payload = await aggregator.build_dashboard(user_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Dashboard failed for user %s (req_id=%s)", user_id, request_id)
        raise HTTPException(
            status_code=500,
            detail={"detail": "internal_error", "error_type": type(e).__name__},
        )

    log_event_best_effort(
        event_name="dashboard_viewed",
        user_id=user_id,
        properties={
            "failed_fetches": sorted(payload.fetch_errors),
            "excluded_goals": len(payload.excluded_goals),
            "total_ms": payload.timings_ms.get("total"),
        },
        request_id=request_id,
    )
    return payload
