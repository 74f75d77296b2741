import enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class LengthBucket(str, enum.Enum):
    SHORT = "short"    # < 200 pages
    MEDIUM = "medium"  # 200-400 pages
    LONG = "long"      # > 400 pages


class ReadingDNA(BaseModel):
    """Summary of a reader's taste, derived from what they have finished."""
    dominant_genres: List[str] = Field(default_factory=list)  # ordered, strongest first
    preferred_length: Optional[LengthBucket] = None
    completion_velocity: Optional[float] = None  # pages per day
    mood_affinities: Dict[str, float] = Field(default_factory=dict)  # tag -> [0, 1]

    @property
    def is_empty(self) -> bool:
        return not self.dominant_genres and self.preferred_length is None and not self.mood_affinities


class ScoreFactors(BaseModel):
    """Per-factor contributions to a candidate's score, before weighting."""
    genre_affinity: float = 0.0
    length_fit: float = 0.0
    popularity: float = 0.0


class RecommendationItem(BaseModel):
    book_id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    page_count: Optional[int] = None
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    published_year: Optional[int] = None
    score: float
    # Debug fields (only included when debug=true)
    score_factors: Optional[ScoreFactors] = None


class RecommendationsResponse(BaseModel):
    """Response wrapper for recommendations that includes request_id for event tracking."""
    request_id: str
    items: List[RecommendationItem]
    degraded: bool = False  # True when ranking fell back to popularity only
    dna: Optional[ReadingDNA] = None
