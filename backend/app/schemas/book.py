from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.base import Snapshot


class Book(Snapshot):
    """Catalog entry. Shared and read-only to the core."""
    id: str
    external_id: Optional[str] = None
    title: str
    authors: list[str] = Field(default_factory=list)
    page_count: Optional[int] = None
    genres: list[str] = Field(default_factory=list)
    mood_tags: list[str] = Field(default_factory=list)
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    published_year: Optional[int] = None


class CandidateFilter(BaseModel):
    exclude_ids: set[str] = Field(default_factory=set)
    genres: Optional[list[str]] = None  # any-of match, case-insensitive
    limit: int = 500
