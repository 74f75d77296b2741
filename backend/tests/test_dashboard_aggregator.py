"""Tests for dashboard aggregation and partial-failure handling."""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import NotFoundError, TransientFetchError
from app.models import GoalStatus, GoalType, ReadingStatus, SubscriptionTier
from app.schemas.activity import ActivitySample
from app.schemas.dashboard import FailureKind
from app.schemas.goal import StoredGoal
from app.schemas.profile import Profile
from app.schemas.user_book import UserBook
from app.services.dashboard import DashboardAggregator

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
USER = "user-1"


def _profile() -> Profile:
    return Profile(
        id=USER,
        email="reader@example.com",
        display_name="Reader",
        subscription_tier=SubscriptionTier.PREMIUM,
        created_at=NOW - timedelta(days=300),
    )


def _goals():
    start = NOW - timedelta(days=15)
    return [
        StoredGoal(
            id="pages",
            user_id=USER,
            goal_type=GoalType.PAGE_COUNT,
            target=300,
            start_date=start,
            end_date=start + timedelta(days=30),
        ),
        StoredGoal(
            id="books",
            user_id=USER,
            goal_type=GoalType.BOOK_COUNT,
            target=2,
            start_date=start,
            end_date=start + timedelta(days=30),
        ),
    ]


def _samples():
    return [
        ActivitySample(
            id=f"s{d}",
            user_book_id="ub-1",
            recorded_at=NOW - timedelta(days=d, hours=2),
            pages=30,
            minutes=25,
        )
        for d in range(5)
    ]


def _user_books():
    return [
        UserBook(
            id=f"ub-{i}",
            user_id=USER,
            book_id=f"b{i}",
            status=ReadingStatus.COMPLETED if i < 2 else ReadingStatus.IN_PROGRESS,
            started_at=NOW - timedelta(days=20 - i),
            finished_at=NOW - timedelta(days=10 - i) if i < 2 else None,
            title=f"Book {i}",
        )
        for i in range(3)
    ]


@pytest.fixture
def full_store(fake_store):
    return fake_store(
        profile=_profile(),
        goals=_goals(),
        samples=_samples(),
        user_books=_user_books(),
    )


def _aggregator(store, timeout=1.0):
    return DashboardAggregator(store, clock=lambda: NOW, timeout_seconds=timeout)


@pytest.mark.asyncio
async def test_full_dashboard(full_store):
    """All fetches succeed: every section is populated and nothing is excluded."""
    payload = await _aggregator(full_store).build_dashboard(USER)

    assert payload.user_id == USER
    assert payload.generated_at == NOW
    assert payload.profile.data.email == "reader@example.com"
    assert payload.fetch_errors == {}
    assert payload.excluded_goals == []

    goals = {g.id: g for g in payload.goals.data}
    assert goals["pages"].current_value == 150
    assert goals["pages"].status == GoalStatus.ON_TRACK
    assert goals["books"].current_value == 2
    assert goals["books"].status == GoalStatus.COMPLETED

    assert payload.streak.data.current == 5
    assert payload.velocity.data.total_pages == 150
    assert [b.id for b in payload.recent_books.data][0] == "ub-1"
    assert {"fetch_profile", "fetch_goals", "fetch_activity", "fetch_books", "total"} <= set(payload.timings_ms)
    assert len(full_store.windows) == 1


@pytest.mark.asyncio
async def test_fetches_run_concurrently(full_store):
    """Four half-second fetches finish well under the two seconds a sequential run would take."""
    full_store.delays = {
        "get_profile": 0.5,
        "get_goals": 0.5,
        "get_activity_samples": 0.5,
        "get_user_books": 0.5,
    }

    payload = await _aggregator(full_store, timeout=3.0).build_dashboard(USER)

    assert payload.fetch_errors == {}
    assert payload.timings_ms["total"] < 1500


@pytest.mark.asyncio
async def test_activity_failure_yields_partial_payload(full_store):
    """A failed activity fetch nulls only the sections that depend on it."""
    full_store.failures["get_activity_samples"] = TransientFetchError("activity store unavailable")

    payload = await _aggregator(full_store).build_dashboard(USER)

    assert payload.fetch_errors["activity"].kind == FailureKind.TRANSIENT
    assert payload.streak.data is None
    assert payload.streak.error.kind == FailureKind.TRANSIENT
    assert payload.velocity.error is not None
    assert payload.profile.ok
    assert payload.recent_books.ok

    goals = {g.id: g for g in payload.goals.data}
    assert goals["pages"].status is None
    assert goals["pages"].unavailable_reason == "activity store unavailable"
    assert goals["books"].status == GoalStatus.COMPLETED


@pytest.mark.asyncio
async def test_slow_fetch_times_out(full_store):
    full_store.delays["get_user_books"] = 1.0

    payload = await _aggregator(full_store, timeout=0.1).build_dashboard(USER)

    assert payload.fetch_errors["books"].kind == FailureKind.TIMEOUT
    assert payload.recent_books.error.kind == FailureKind.TIMEOUT
    goals = {g.id: g for g in payload.goals.data}
    assert goals["books"].status is None
    assert goals["pages"].status == GoalStatus.ON_TRACK


@pytest.mark.asyncio
async def test_goals_failure_keeps_other_sections(full_store):
    full_store.failures["get_goals"] = RuntimeError("boom")

    payload = await _aggregator(full_store).build_dashboard(USER)

    assert payload.goals.error.kind == FailureKind.UNEXPECTED
    assert "RuntimeError" in payload.goals.error.reason
    assert payload.streak.ok
    assert payload.recent_books.ok


@pytest.mark.asyncio
async def test_profile_failure_is_reported_not_raised(full_store):
    full_store.failures["get_profile"] = TransientFetchError("profile store down")

    payload = await _aggregator(full_store).build_dashboard(USER)

    assert payload.profile.data is None
    assert payload.profile.error.kind == FailureKind.TRANSIENT
    assert payload.goals.ok


@pytest.mark.asyncio
async def test_missing_profile_propagates(fake_store):
    store = fake_store(profile=None)

    with pytest.raises(NotFoundError):
        await _aggregator(store).build_dashboard(USER)


@pytest.mark.asyncio
async def test_invalid_goal_is_excluded(full_store):
    """A goal that ends before it starts is listed as excluded, not crashed on."""
    full_store.goals.append(
        StoredGoal(
            id="broken",
            user_id=USER,
            goal_type=GoalType.PAGE_COUNT,
            target=100,
            start_date=NOW,
            end_date=NOW - timedelta(days=3),
        )
    )

    payload = await _aggregator(full_store).build_dashboard(USER)

    assert [f.goal_id for f in payload.excluded_goals] == ["broken"]
    assert {g.id for g in payload.goals.data} == {"pages", "books"}


@pytest.mark.asyncio
async def test_new_user_gets_empty_sections(fake_store):
    store = fake_store(profile=_profile())

    payload = await _aggregator(store).build_dashboard(USER)

    assert payload.goals.data == []
    assert payload.recent_books.data == []
    assert payload.streak.data.current == 0
    assert payload.velocity.data.pages_per_day == 0.0


@pytest.mark.asyncio
async def test_ledger_window_reaches_back_to_oldest_goal(full_store):
    """A goal older than the lookback widens the activity window to its start."""
    old_start = NOW - timedelta(days=500)
    full_store.goals.append(
        StoredGoal(
            id="lifetime",
            user_id=USER,
            goal_type=GoalType.PAGE_COUNT,
            target=1000,
            start_date=old_start,
        )
    )
    full_store.samples.append(
        ActivitySample(id="old", user_book_id="ub-1", recorded_at=NOW - timedelta(days=450), pages=200)
    )

    payload = await _aggregator(full_store).build_dashboard(USER)

    assert full_store.windows[1].start == old_start
    assert full_store.windows[1].end == full_store.windows[0].start
    assert "fetch_activity_backfill" in payload.timings_ms
    goals = {g.id: g for g in payload.goals.data}
    assert goals["lifetime"].current_value == 350
    assert goals["pages"].current_value == 150


@pytest.mark.asyncio
async def test_open_ended_goal_keeps_old_progress_from_database(
    store, make_profile, make_book, make_user_book, make_activity, make_goal
):
    """Samples recorded before the lookback still count toward a goal that started earlier."""
    make_profile(USER)
    book = make_book()
    user_book = make_user_book(
        USER, book.id, status=ReadingStatus.IN_PROGRESS, started_at=NOW - timedelta(days=480)
    )
    make_activity(USER, user_book.id, NOW - timedelta(days=450), pages=200)
    make_activity(USER, user_book.id, NOW - timedelta(days=5), pages=50)
    make_goal(USER, goal_type=GoalType.PAGE_COUNT, target=1000, start_date=NOW - timedelta(days=500), end_date=None)

    payload = await DashboardAggregator(store, clock=lambda: NOW).build_dashboard(USER)

    assert payload.goals.data[0].current_value == 250


def test_explicit_zero_timeout_is_kept(fake_store):
    assert DashboardAggregator(fake_store(), timeout_seconds=0).timeout_seconds == 0
