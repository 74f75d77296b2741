from typing import Optional

from pydantic import BaseModel, field_validator

from app.schemas.base import Snapshot, UtcDatetime


class ActivitySample(Snapshot):
    """One append-only entry of the activity ledger."""
    id: str
    user_book_id: str
    recorded_at: UtcDatetime
    pages: int = 0
    minutes: int = 0

    @field_validator("pages", "minutes", mode="before")
    @classmethod
    def _non_negative(cls, value: Optional[int]) -> int:
        # Ledger deltas never subtract progress
        if value is None:
            return 0
        return max(0, int(value))


class ActivityWindow(BaseModel):
    start: UtcDatetime
    end: Optional[UtcDatetime] = None
