"""Pytest configuration for backend tests."""
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time; never touch a developer's local database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

# Import database components
from app.database import Base

# Import the entire models module to ensure all models are registered with Base.metadata
# This must happen before create_all() so that all table definitions are available
import app.models  # noqa: F401
from app import models
from app.core.errors import NotFoundError
from app.schemas.book import CandidateFilter
from app.services.storage import ReadingStore, SqlReadingStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    File-backed SQLite engine, one database per test.

    Store reads run concurrently in the threadpool, so each thread needs its
    own connection; an in-memory database would not be shared between them.
    """
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )

    # Debug assertion: verify tables are registered
    if not Base.metadata.tables:
        raise RuntimeError(
            "No tables registered in Base.metadata. "
            "Did you import app.models? All model classes must be imported before create_all()."
        )

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Database session for each test. The database file is discarded afterwards."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def store(session_factory) -> SqlReadingStore:
    return SqlReadingStore(session_factory=session_factory)


@pytest.fixture
def make_profile(db):
    def _make(user_id="user-1", tier=models.SubscriptionTier.FREE, email=None):
        profile = models.Profile(
            id=user_id,
            email=email or f"{user_id}@example.com",
            display_name=user_id,
            subscription_tier=tier,
            created_at=NOW - timedelta(days=365),
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def make_book(db):
    counter = {"n": 0}

    def _make(book_id=None, **kwargs):
        counter["n"] += 1
        book = models.Book(
            id=book_id or f"book-{counter['n']:03d}",
            title=kwargs.pop("title", f"Book {counter['n']}"),
            authors=kwargs.pop("authors", ["Test Author"]),
            genres=kwargs.pop("genres", []),
            mood_tags=kwargs.pop("mood_tags", []),
            **kwargs,
        )
        db.add(book)
        db.commit()
        return book

    return _make


@pytest.fixture
def make_user_book(db):
    def _make(user_id, book_id, status=models.ReadingStatus.COMPLETED, **kwargs):
        user_book = models.UserBook(user_id=user_id, book_id=book_id, status=status, **kwargs)
        db.add(user_book)
        db.commit()
        return user_book

    return _make


@pytest.fixture
def make_activity(db):
    def _make(user_id, user_book_id, recorded_at, pages=0, minutes=0):
        row = models.ReadingActivity(
            user_id=user_id,
            user_book_id=user_book_id,
            recorded_at=recorded_at,
            pages=pages,
            minutes=minutes,
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def make_goal(db):
    def _make(user_id, goal_type=models.GoalType.BOOK_COUNT, target=10, **kwargs):
        goal = models.ReadingGoal(
            user_id=user_id,
            goal_type=goal_type,
            target=target,
            start_date=kwargs.pop("start_date", NOW - timedelta(days=10)),
            end_date=kwargs.pop("end_date", NOW + timedelta(days=20)),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db.add(goal)
        db.commit()
        return goal

    return _make


class FakeReadingStore(ReadingStore):
    """
    In-memory ReadingStore. Any method can be made to fail (raise) or hang
    (delay seconds) by name, to exercise partial-failure handling.
    """

    def __init__(self, profile=None, goals=(), samples=(), user_books=(), candidates=()):
        self.profile = profile
        self.goals = list(goals)
        self.samples = list(samples)
        self.user_books = list(user_books)
        self.candidates = list(candidates)
        self.failures = {}
        self.delays = {}
        self.calls = []
        self.windows = []

    async def _maybe_fail(self, name):
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]

    async def get_profile(self, user_id):
        await self._maybe_fail("get_profile")
        if self.profile is None or self.profile.id != user_id:
            raise NotFoundError(f"Profile {user_id} not found")
        return self.profile

    async def get_goals(self, user_id, ended_since=None):
        await self._maybe_fail("get_goals")
        return [g for g in self.goals if g.user_id == user_id]

    async def get_activity_samples(self, user_id, window):
        await self._maybe_fail("get_activity_samples")
        self.windows.append(window)
        return [
            s for s in self.samples
            if s.recorded_at >= window.start and (window.end is None or s.recorded_at <= window.end)
        ]

    async def get_user_books(self, user_id, filter=None):
        await self._maybe_fail("get_user_books")
        books = [b for b in self.user_books if b.user_id == user_id]
        if filter is not None and filter.statuses:
            books = [b for b in books if b.status in filter.statuses]
        if filter is not None and filter.touched_since is not None:
            since = filter.touched_since
            books = [
                b for b in books
                if b.status == models.ReadingStatus.IN_PROGRESS
                or (b.finished_at is not None and b.finished_at >= since)
                or (b.started_at is not None and b.started_at >= since)
            ]
        return books

    async def get_candidate_books(self, filter=None):
        await self._maybe_fail("get_candidate_books")
        filter = filter or CandidateFilter()
        books = [b for b in self.candidates if b.id not in filter.exclude_ids]
        if filter.genres:
            wanted = {g.lower() for g in filter.genres}
            books = [b for b in books if wanted & {g.lower() for g in b.genres}]
        return books[: filter.limit]


@pytest.fixture
def fake_store():
    return FakeReadingStore
