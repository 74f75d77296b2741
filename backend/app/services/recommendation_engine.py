"""
Recommendation generator.

Ranks a candidate pool of catalog books against a reader's ReadingDNA. Pure
and deterministic: identical inputs always produce an identical ordering,
with ties broken by book id.
"""
import logging
import math
import warnings
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from app.core.config import settings
from app.core.errors import DegradedInputWarning, ValidationError
from app.schemas.book import Book
from app.schemas.recommendation import LengthBucket, ReadingDNA, ScoreFactors

logger = logging.getLogger(__name__)

# Default weight constants for the scoring factors
W_GENRE = 0.6
W_LENGTH = 0.3
W_POPULARITY = 0.1

# Inclusive page ranges per length bucket (upper None = unbounded)
LENGTH_BUCKET_RANGES = {
    LengthBucket.SHORT: (1, 199),
    LengthBucket.MEDIUM: (200, 400),
    LengthBucket.LONG: (401, None),
}
# Length fit falls from 1 to 0 over this many pages outside the preferred bucket
LENGTH_DECAY_PAGES = 300.0

MAX_RATING = 5.0
# log10(1 + ratings_count) at which rating confidence saturates (one million ratings)
RATINGS_CONFIDENCE_LOG = 6.0

GENRE_BLEND = 0.75
MOOD_BLEND = 0.25


@dataclass(frozen=True)
class RecommendationWeights:
    genre: float = W_GENRE
    length: float = W_LENGTH
    popularity: float = W_POPULARITY

    def __post_init__(self):
        values = (self.genre, self.length, self.popularity)
        if any(w < 0 for w in values) or sum(values) <= 0:
            raise ValidationError(
                f"weights must be non-negative with a positive sum, got {values}",
                field="weights",
            )

    @classmethod
    def from_settings(cls) -> "RecommendationWeights":
        return cls(
            genre=settings.REC_WEIGHT_GENRE,
            length=settings.REC_WEIGHT_LENGTH,
            popularity=settings.REC_WEIGHT_POPULARITY,
        )


POPULARITY_ONLY = RecommendationWeights(genre=0.0, length=0.0, popularity=1.0)


@dataclass(frozen=True)
class ScoredBook:
    book: Book
    score: float
    factors: ScoreFactors


def genre_affinity(book: Book, dna: ReadingDNA) -> float:
    """
    Rank-weighted overlap between the book's genres and the DNA's dominant
    genres. The genre at rank r of n weighs (n - r) / n, so the top genre
    counts most; the result is normalized to [0, 1].
    """
    n = len(dna.dominant_genres)
    if n == 0:
        return 0.0
    book_genres = {g.lower() for g in book.genres}
    total = 0.0
    matched = 0.0
    for rank, genre in enumerate(dna.dominant_genres):
        weight = (n - rank) / n
        total += weight
        if genre.lower() in book_genres:
            matched += weight
    affinity = matched / total if total else 0.0

    if dna.mood_affinities and book.mood_tags:
        moods = {k.lower(): v for k, v in dna.mood_affinities.items()}
        hits = [moods[m.lower()] for m in book.mood_tags if m.lower() in moods]
        # A book whose tags all miss scores like an untagged one
        if hits:
            affinity = GENRE_BLEND * affinity + MOOD_BLEND * (sum(hits) / len(hits))

    return max(0.0, min(1.0, affinity))


def length_fit(book: Book, preferred: Optional[LengthBucket]) -> float:
    if preferred is None or not book.page_count or book.page_count <= 0:
        return 0.0
    low, high = LENGTH_BUCKET_RANGES[preferred]
    pages = book.page_count
    if pages < low:
        distance = low - pages
    elif high is not None and pages > high:
        distance = pages - high
    else:
        return 1.0
    return max(0.0, 1.0 - distance / LENGTH_DECAY_PAGES)


def popularity(book: Book) -> float:
    """Average rating scaled by how many ratings back it up."""
    if not book.average_rating or not book.ratings_count or book.ratings_count <= 0:
        return 0.0
    rating = max(0.0, min(MAX_RATING, book.average_rating)) / MAX_RATING
    confidence = min(1.0, math.log10(1 + book.ratings_count) / RATINGS_CONFIDENCE_LOG)
    return rating * confidence


def _dedupe(candidates: Iterable[Book], exclude: Set[str]) -> List[Book]:
    seen: Set[str] = set()
    unique: List[Book] = []
    for book in candidates:
        key = str(book.id)
        if key in seen or key in exclude:
            continue
        seen.add(key)
        unique.append(book)
    return unique


def score_candidates(
    dna: Optional[ReadingDNA],
    candidate_pool: Sequence[Book],
    already_owned: Iterable[str] = (),
    weights: Optional[RecommendationWeights] = None,
) -> List[ScoredBook]:
    """
    Score every eligible candidate and return them best first.

    Owned books and duplicate ids are dropped before scoring. An empty or
    missing DNA emits DegradedInputWarning and ranks by popularity alone.
    """
    if dna is None or dna.is_empty:
        warnings.warn(
            "Reading DNA is empty; ranking candidates by popularity only",
            DegradedInputWarning,
            stacklevel=2,
        )
        logger.warning("Empty Reading DNA, falling back to popularity-only ranking")
        dna = ReadingDNA()
        weights = POPULARITY_ONLY
    elif weights is None:
        weights = RecommendationWeights.from_settings()

    exclude = {str(book_id) for book_id in already_owned}
    eligible = _dedupe(candidate_pool, exclude)

    scored: List[ScoredBook] = []
    for book in eligible:
        factors = ScoreFactors(
            genre_affinity=genre_affinity(book, dna),
            length_fit=length_fit(book, dna.preferred_length),
            popularity=popularity(book),
        )
        score = (
            weights.genre * factors.genre_affinity
            + weights.length * factors.length_fit
            + weights.popularity * factors.popularity
        )
        scored.append(ScoredBook(book=book, score=score, factors=factors))

    scored.sort(key=lambda s: (-s.score, str(s.book.id)))
    return scored


def recommend(
    dna: Optional[ReadingDNA],
    candidate_pool: Sequence[Book],
    already_owned: Iterable[str],
    limit: int,
    weights: Optional[RecommendationWeights] = None,
) -> List[Book]:
    """
    Return up to `limit` books from the pool, best match first.

    Never pads: a pool smaller than `limit` yields fewer results.
    Raises ValidationError if limit is not positive.
    """
    if limit <= 0:
        raise ValidationError(f"limit must be positive, got {limit}", field="limit")

    scored = score_candidates(dna, candidate_pool, already_owned, weights)
    return [s.book for s in scored[:limit]]


def top_scored(
    dna: Optional[ReadingDNA],
    candidate_pool: Sequence[Book],
    already_owned: Iterable[str],
    limit: int,
    weights: Optional[RecommendationWeights] = None,
) -> List[Tuple[Book, float, ScoreFactors]]:
    """Same ranking as recommend(), keeping scores for the HTTP layer."""
    if limit <= 0:
        raise ValidationError(f"limit must be positive, got {limit}", field="limit")
    scored = score_candidates(dna, candidate_pool, already_owned, weights)
    return [(s.book, s.score, s.factors) for s in scored[:limit]]
