"""
Reading DNA: a compact summary of what a reader tends to finish.

The recommendation generator only consumes ReadingDNA. LibraryReadingDNAProvider
derives it from the user's completed books; any other provider (for example a
precomputed profile) can be plugged in behind the same interface.
"""
import logging
from abc import ABC, abstractmethod
from collections import Counter
from statistics import median
from typing import Optional, Sequence

from app.models import ReadingStatus
from app.schemas.recommendation import LengthBucket, ReadingDNA
from app.schemas.user_book import UserBook, UserBookFilter
from app.services.storage import ReadingStore, get_reading_store

logger = logging.getLogger(__name__)

SHORT_BOOK_MAX_PAGES = 200
LONG_BOOK_MIN_PAGES = 400
MAX_DOMINANT_GENRES = 5


def length_bucket(page_count: Optional[int]) -> Optional[LengthBucket]:
    if page_count is None or page_count <= 0:
        return None
    if page_count < SHORT_BOOK_MAX_PAGES:
        return LengthBucket.SHORT
    if page_count > LONG_BOOK_MIN_PAGES:
        return LengthBucket.LONG
    return LengthBucket.MEDIUM


def rank_genres(books: Sequence[UserBook], max_genres: int = MAX_DOMINANT_GENRES) -> list[str]:
    """Genres by how many books carry them, ties broken alphabetically."""
    counts = Counter()
    for book in books:
        # A book counts once per genre even if the catalog repeats a tag
        counts.update({g.strip().lower() for g in book.genres if g and g.strip()})
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [genre for genre, _ in ranked[:max_genres]]


def completion_velocity(books: Sequence[UserBook]) -> Optional[float]:
    """Pages per day across completed books that have both a start and a finish."""
    pages = 0
    days = 0.0
    for book in books:
        if not book.page_count or book.started_at is None or book.finished_at is None:
            continue
        elapsed = (book.finished_at - book.started_at).total_seconds() / 86400.0
        pages += book.page_count
        # Same-day finishes count as one day
        days += max(elapsed, 1.0)
    if days == 0:
        return None
    return round(pages / days, 2)


def mood_affinities(books: Sequence[UserBook]) -> dict[str, float]:
    """Share of completed books carrying each mood tag."""
    if not books:
        return {}
    counts = Counter()
    for book in books:
        counts.update({m.strip().lower() for m in book.mood_tags if m and m.strip()})
    return {mood: round(count / len(books), 4) for mood, count in sorted(counts.items())}


def summarize(completed: Sequence[UserBook]) -> ReadingDNA:
    if not completed:
        return ReadingDNA()

    page_counts = [b.page_count for b in completed if b.page_count]
    preferred = length_bucket(int(median(page_counts))) if page_counts else None

    return ReadingDNA(
        dominant_genres=rank_genres(completed),
        preferred_length=preferred,
        completion_velocity=completion_velocity(completed),
        mood_affinities=mood_affinities(completed),
    )


class ReadingDNAProvider(ABC):
    @abstractmethod
    async def get_reading_dna(self, user_id: str) -> ReadingDNA:
        """Never fails for a user with no history: returns an empty ReadingDNA."""
        ...


class LibraryReadingDNAProvider(ReadingDNAProvider):
    def __init__(self, store: ReadingStore):
        self.store = store

    async def get_reading_dna(self, user_id: str) -> ReadingDNA:
        completed = await self.store.get_user_books(
            user_id, UserBookFilter(statuses={ReadingStatus.COMPLETED})
        )
        dna = summarize(completed)
        logger.debug(
            "Reading DNA for user %s: %d completed books, genres=%s, length=%s",
            user_id,
            len(completed),
            dna.dominant_genres,
            dna.preferred_length.value if dna.preferred_length else None,
        )
        return dna


def get_dna_provider() -> ReadingDNAProvider:
    """FastAPI dependency; overridden in tests."""
    return LibraryReadingDNAProvider(get_reading_store())
