from typing import Optional

from pydantic import BaseModel, Field

from app.models import ReadingStatus
from app.schemas.base import Snapshot, UtcDatetime


class UserBook(Snapshot):
    """
    A user's copy of a book. Title, genres and page count are denormalized
    from the catalog so progress can be derived without further lookups.
    """
    id: str
    user_id: str
    book_id: str
    status: ReadingStatus
    started_at: Optional[UtcDatetime] = None
    finished_at: Optional[UtcDatetime] = None
    current_page: Optional[int] = None
    progress_percent: Optional[float] = None
    title: str = ""
    authors: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    page_count: Optional[int] = None
    mood_tags: list[str] = Field(default_factory=list)

    @property
    def last_touched_at(self) -> Optional[UtcDatetime]:
        """Most recent of finished_at / started_at."""
        stamps = [s for s in (self.finished_at, self.started_at) if s is not None]
        return max(stamps) if stamps else None


class UserBookFilter(BaseModel):
    statuses: Optional[set[ReadingStatus]] = None
    touched_since: Optional[UtcDatetime] = None
