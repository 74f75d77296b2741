"""
Server-side event logging helper.

Logs events to both the database (for querying) and structured logs (for immediate visibility).
"""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.models import EventLog

logger = logging.getLogger(__name__)


def log_event_best_effort(
    event_name: str,
    user_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> None:
    """
    Log an event using a separate database session.

    The event commits independently, so it never breaks the request that
    emitted it (e.g. "dashboard_viewed", "goal_created", "recommendations_impression").

    This function never raises exceptions - failures are logged as warnings.
    """
    db = None
    try:
        db = session_factory()
        event = EventLog(
            event_name=event_name,
            user_id=user_id,
            properties=properties,
            request_id=request_id,
        )
        db.add(event)
        db.commit()

        # Also emit structured log
        log_data = {
            "event_name": event_name,
            "user_id": user_id,
            "request_id": request_id,
            "properties": properties,
        }
        logger.info("event_logged", extra=log_data)
    except (OperationalError, ProgrammingError) as e:
        error_str = str(e).lower()
        if "no such table" in error_str or "does not exist" in error_str:
            logger.warning("event_logs table missing. Event logging disabled until init_db() has run.")
        else:
            logger.warning(
                "Failed to log event (database error): event_name=%s, user_id=%s, error=%s",
                event_name,
                user_id,
                str(e),
                exc_info=True,
            )
        if db:
            db.rollback()
    except Exception as e:
        # Never break the request path
        logger.warning(
            "Failed to log event: event_name=%s, user_id=%s, error=%s",
            event_name,
            user_id,
            str(e),
            exc_info=True,
        )
        if db:
            db.rollback()
    finally:
        if db:
            db.close()
