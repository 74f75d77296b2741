"""
Storage collaborator.

ReadingStore is the narrow read interface the core consumes. SqlReadingStore
implements it over SQLAlchemy: each call runs its blocking query in the
threadpool with its own short-lived session, so concurrent fetches never share
a session. Connection-level failures surface as TransientFetchError.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func, or_
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, joinedload

from app import models
from app.core.errors import NotFoundError, TransientFetchError
from app.database import SessionLocal
from app.schemas.activity import ActivitySample, ActivityWindow
from app.schemas.book import Book, CandidateFilter
from app.schemas.goal import StoredGoal
from app.schemas.profile import Profile
from app.schemas.user_book import UserBook, UserBookFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReadingStore(ABC):
    """Read-side contract of the storage collaborator."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile:
        """Raises NotFoundError if the profile does not exist."""
        ...

    @abstractmethod
    async def get_goals(self, user_id: str, ended_since: Optional[datetime] = None) -> List[StoredGoal]:
        """Active goals, plus goals whose end date is on or after ended_since."""
        ...

    @abstractmethod
    async def get_activity_samples(self, user_id: str, window: ActivityWindow) -> List[ActivitySample]:
        ...

    @abstractmethod
    async def get_user_books(self, user_id: str, filter: Optional[UserBookFilter] = None) -> List[UserBook]:
        ...

    @abstractmethod
    async def get_candidate_books(self, filter: Optional[CandidateFilter] = None) -> List[Book]:
        ...


def _book_snapshot(book: models.Book) -> Book:
    return Book(
        id=book.id,
        external_id=book.external_id,
        title=book.title,
        authors=book.authors or [],
        page_count=book.page_count,
        genres=book.genres or [],
        mood_tags=book.mood_tags or [],
        average_rating=book.average_rating,
        ratings_count=book.ratings_count,
        published_year=book.published_year,
    )


def _user_book_snapshot(user_book: models.UserBook) -> UserBook:
    book = user_book.book
    return UserBook(
        id=user_book.id,
        user_id=user_book.user_id,
        book_id=user_book.book_id,
        status=user_book.status,
        started_at=user_book.started_at,
        finished_at=user_book.finished_at,
        current_page=user_book.current_page,
        progress_percent=user_book.progress_percent,
        title=book.title if book else "",
        authors=(book.authors or []) if book else [],
        genres=(book.genres or []) if book else [],
        page_count=book.page_count if book else None,
        mood_tags=(book.mood_tags or []) if book else [],
    )


class SqlReadingStore(ReadingStore):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    async def _run(self, label: str, fn: Callable[[Session], T]) -> T:
        def _call() -> T:
            db = self._session_factory()
            try:
                return fn(db)
            finally:
                db.close()

        try:
            return await run_in_threadpool(_call)
        except (OperationalError, PoolTimeoutError) as e:
            logger.warning("Storage unavailable during %s: %s", label, e)
            raise TransientFetchError(f"{label} failed: storage unavailable") from e

    async def get_profile(self, user_id: str) -> Profile:
        def _query(db: Session) -> Profile:
            row = db.query(models.Profile).filter(models.Profile.id == user_id).one_or_none()
            if row is None:
                raise NotFoundError(f"Profile {user_id} not found")
            return Profile.model_validate(row)

        return await self._run("get_profile", _query)

    async def get_goals(self, user_id: str, ended_since: Optional[datetime] = None) -> List[StoredGoal]:
        def _query(db: Session) -> List[StoredGoal]:
            q = db.query(models.ReadingGoal).filter(models.ReadingGoal.user_id == user_id)
            if ended_since is not None:
                q = q.filter(
                    or_(
                        models.ReadingGoal.is_active.is_(True),
                        models.ReadingGoal.end_date >= ended_since,
                    )
                )
            else:
                q = q.filter(models.ReadingGoal.is_active.is_(True))
            rows = q.order_by(models.ReadingGoal.created_at.desc(), models.ReadingGoal.id).all()
            return [StoredGoal.model_validate(r) for r in rows]

        return await self._run("get_goals", _query)

    async def get_activity_samples(self, user_id: str, window: ActivityWindow) -> List[ActivitySample]:
        def _query(db: Session) -> List[ActivitySample]:
            q = (
                db.query(models.ReadingActivity)
                .filter(models.ReadingActivity.user_id == user_id)
                .filter(models.ReadingActivity.recorded_at >= window.start)
            )
            if window.end is not None:
                q = q.filter(models.ReadingActivity.recorded_at <= window.end)
            rows = q.order_by(models.ReadingActivity.recorded_at.asc()).all()
            return [ActivitySample.model_validate(r) for r in rows]

        return await self._run("get_activity_samples", _query)

    async def get_user_books(self, user_id: str, filter: Optional[UserBookFilter] = None) -> List[UserBook]:
        def _query(db: Session) -> List[UserBook]:
            q = (
                db.query(models.UserBook)
                .options(joinedload(models.UserBook.book))
                .filter(models.UserBook.user_id == user_id)
            )
            if filter is not None and filter.statuses:
                q = q.filter(models.UserBook.status.in_(list(filter.statuses)))
            if filter is not None and filter.touched_since is not None:
                q = q.filter(
                    or_(
                        models.UserBook.finished_at >= filter.touched_since,
                        models.UserBook.started_at >= filter.touched_since,
                        models.UserBook.status == models.ReadingStatus.IN_PROGRESS,
                    )
                )
            rows = q.order_by(models.UserBook.id).all()
            return [_user_book_snapshot(r) for r in rows]

        return await self._run("get_user_books", _query)

    async def get_candidate_books(self, filter: Optional[CandidateFilter] = None) -> List[Book]:
        filter = filter or CandidateFilter()

        def _query(db: Session) -> List[Book]:
            q = db.query(models.Book)
            if filter.exclude_ids:
                q = q.filter(models.Book.id.notin_(list(filter.exclude_ids)))
            # Most-rated first so the limit keeps the strongest popularity signal
            rows = q.order_by(
                func.coalesce(models.Book.ratings_count, 0).desc(),
                func.coalesce(models.Book.average_rating, 0).desc(),
                models.Book.id,
            ).all()
            books = [_book_snapshot(r) for r in rows]
            if filter.genres:
                # JSON containment is backend-specific, so genre filtering happens here
                wanted = {g.lower() for g in filter.genres}
                books = [b for b in books if wanted & {g.lower() for g in b.genres}]
            return books[: filter.limit]

        return await self._run("get_candidate_books", _query)


def get_reading_store() -> ReadingStore:
    """FastAPI dependency; overridden in tests."""
    return SqlReadingStore()
