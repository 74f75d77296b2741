from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class Snapshot(BaseModel):
    """Immutable, serializable view of a stored record."""

    class Config:
        from_attributes = True
        frozen = True
