"""
Dashboard aggregation.

build_dashboard fans out the four storage reads (profile, goals, activity,
books) concurrently, each under its own timeout. When a goal started before
the trailing lookback, activity and books are backfilled to its start. It
assembles whatever came
back into a DashboardPayload. A failed read only nulls out the sections that
depend on it; a missing profile is the one failure that propagates.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from app.core.config import settings
from app.core.errors import NotFoundError, TransientFetchError
from app.models import ReadingStatus
from app.schemas.activity import ActivitySample, ActivityWindow
from app.schemas.dashboard import DashboardPayload, FailureKind, Section, SectionError
from app.schemas.goal import ViewGoal
from app.schemas.profile import Profile
from app.schemas.stats import StreakSummary, VelocitySummary
from app.schemas.user_book import UserBook
from app.schemas.user_book import UserBookFilter
from app.services.goal_normalizer import ledger_start, normalize_all
from app.services.reading_stats import compute_streak, compute_velocity
from app.services.storage import ReadingStore
from app.utils.timing import now_ms, time_stage

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FetchOutcome(Generic[T]):
    data: Optional[T] = None
    error: Optional[SectionError] = None
    exception: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _failed(section_type, outcome: FetchOutcome) -> Section:
    return section_type(error=outcome.error)


class DashboardAggregator:
    def __init__(
        self,
        store: ReadingStore,
        clock: Callable[[], datetime] = utcnow,
        timeout_seconds: Optional[float] = None,
        tolerance: Optional[float] = None,
    ):
        self.store = store
        self.clock = clock
        if timeout_seconds is None:
            timeout_seconds = settings.FETCH_TIMEOUT_SECONDS
        self.timeout_seconds = timeout_seconds
        self.tolerance = tolerance

    async def _fetch(
        self,
        name: str,
        coro: Awaitable[T],
        timings: Dict[str, float],
    ) -> FetchOutcome[T]:
        try:
            with time_stage(f"fetch_{name}", timings):
                data = await asyncio.wait_for(coro, timeout=self.timeout_seconds)
            return FetchOutcome(data=data)
        except asyncio.TimeoutError as e:
            logger.warning("Dashboard fetch %s timed out after %.1fs", name, self.timeout_seconds)
            return FetchOutcome(
                error=SectionError(kind=FailureKind.TIMEOUT, reason=f"{name} timed out"),
                exception=e,
            )
        except TransientFetchError as e:
            logger.warning("Dashboard fetch %s unavailable: %s", name, e)
            return FetchOutcome(error=SectionError(kind=FailureKind.TRANSIENT, reason=str(e)), exception=e)
        except NotFoundError as e:
            return FetchOutcome(error=SectionError(kind=FailureKind.NOT_FOUND, reason=str(e)), exception=e)
        except Exception as e:
            logger.exception("Dashboard fetch %s failed", name)
            return FetchOutcome(
                error=SectionError(kind=FailureKind.UNEXPECTED, reason=f"{type(e).__name__}: {e}"),
                exception=e,
            )

    async def _backfill(
        self,
        user_id: str,
        window_start: datetime,
        lookback: datetime,
        activity: FetchOutcome[List[ActivitySample]],
        books: FetchOutcome[List[UserBook]],
        timings: Dict[str, float],
    ) -> Tuple[FetchOutcome[List[ActivitySample]], FetchOutcome[List[UserBook]]]:
        """
        Extend the activity and books reads back to window_start, for goals
        that started before the lookback. A failed backfill fails its whole
        source: partial history would understate progress.
        """
        logger.info("Backfilling ledger for user %s from %s", user_id, window_start.date())
        fetches = {}
        if activity.ok:
            fetches["activity"] = self._fetch(
                "activity_backfill",
                self.store.get_activity_samples(user_id, ActivityWindow(start=window_start, end=lookback)),
                timings,
            )
        if books.ok:
            book_filter = UserBookFilter(
                statuses={ReadingStatus.IN_PROGRESS, ReadingStatus.COMPLETED},
                touched_since=window_start,
            )
            fetches["books"] = self._fetch(
                "books_backfill", self.store.get_user_books(user_id, book_filter), timings
            )
        results = dict(zip(fetches, await asyncio.gather(*fetches.values())))

        older = results.get("activity")
        if older is not None:
            if older.ok:
                # Both windows include the lookback instant
                seen = {s.id for s in activity.data}
                activity = FetchOutcome(data=[s for s in older.data if s.id not in seen] + list(activity.data))
            else:
                activity = older
        books = results.get("books", books)
        return activity, books

    async def build_dashboard(self, user_id: str) -> DashboardPayload:
        """
        Assemble the dashboard for one user.

        Raises NotFoundError if the user's profile does not exist. Every other
        failure is reported inside the payload.
        """
        start = now_ms()
        now = self.clock()
        timings: Dict[str, float] = {}

        lookback = ledger_start((), now)
        book_filter = UserBookFilter(
            statuses={ReadingStatus.IN_PROGRESS, ReadingStatus.COMPLETED},
            touched_since=lookback,
        )

        profile, goals, activity, books = await asyncio.gather(
            self._fetch("profile", self.store.get_profile(user_id), timings),
            self._fetch(
                "goals",
                self.store.get_goals(user_id, ended_since=now - timedelta(days=settings.RECENT_GOAL_DAYS)),
                timings,
            ),
            self._fetch(
                "activity",
                self.store.get_activity_samples(user_id, ActivityWindow(start=lookback, end=now)),
                timings,
            ),
            self._fetch("books", self.store.get_user_books(user_id, book_filter), timings),
        )

        if isinstance(profile.exception, NotFoundError):
            raise profile.exception

        if goals.ok:
            window_start = ledger_start(goals.data, now)
            if window_start < lookback:
                activity, books = await self._backfill(user_id, window_start, lookback, activity, books, timings)

        fetches = {"profile": profile, "goals": goals, "activity": activity, "books": books}
        fetch_errors = {name: o.error for name, o in fetches.items() if o.error is not None}

        excluded = []
        if goals.ok:
            with time_stage("normalize_goals", timings):
                views, excluded = normalize_all(
                    goals.data,
                    activity.data if activity.ok else None,
                    books.data if books.ok else None,
                    now,
                    tolerance=self.tolerance,
                    samples_error=activity.error.reason if activity.error else None,
                    books_error=books.error.reason if books.error else None,
                )
            goals_section = Section[List[ViewGoal]](data=views)
        else:
            goals_section = _failed(Section[List[ViewGoal]], goals)

        if books.ok:
            never = datetime.min.replace(tzinfo=timezone.utc)
            recent = sorted(books.data, key=lambda b: (b.last_touched_at or never, b.id), reverse=True)
            recent_section = Section[List[UserBook]](data=recent[: settings.RECENT_BOOKS_LIMIT])
        else:
            recent_section = _failed(Section[List[UserBook]], books)

        if activity.ok:
            with time_stage("stats", timings):
                streak_section = Section[StreakSummary](data=compute_streak(activity.data, now.date()))
                velocity_section = Section[VelocitySummary](
                    data=compute_velocity(activity.data, now, settings.VELOCITY_WINDOW_DAYS)
                )
        else:
            streak_section = _failed(Section[StreakSummary], activity)
            velocity_section = _failed(Section[VelocitySummary], activity)

        timings["total"] = round(now_ms() - start, 2)

        payload = DashboardPayload(
            user_id=user_id,
            generated_at=now,
            profile=Section[Profile](data=profile.data, error=profile.error),
            goals=goals_section,
            recent_books=recent_section,
            streak=streak_section,
            velocity=velocity_section,
            excluded_goals=excluded,
            fetch_errors=fetch_errors,
            timings_ms=timings,
        )

        logger.info(
            "Dashboard built for user %s in %.2fms (failed fetches: %s, excluded goals: %d)",
            user_id,
            timings["total"],
            ",".join(sorted(fetch_errors)) or "none",
            len(excluded),
        )
        return payload
