"""
Error taxonomy for the goal progress and recommendation core.

Pure computations only ever raise ValidationError. I/O-facing failures
(NotFoundError, TransientFetchError) are raised by the storage and Reading DNA
boundaries and converted into structured results by the aggregator.
"""
from fastapi import HTTPException, status


class ReadingCoreError(Exception):
    """Base class for all errors raised by this service."""
    pass


class ValidationError(ReadingCoreError):
    """Raised when a stored goal or a call argument is malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(ReadingCoreError):
    """Raised when a requested user, profile, goal or book does not exist."""
    pass


class TransientFetchError(ReadingCoreError):
    """Raised when the storage collaborator times out or is unavailable."""
    pass


class GoalLimitError(ReadingCoreError):
    """Raised when creating a goal would exceed the subscription tier limits."""
    pass


class GoalArchivedError(ReadingCoreError):
    """Raised when editing a goal whose end date has already passed."""
    pass


class DegradedInputWarning(UserWarning):
    """Non-fatal: an input (usually Reading DNA) is empty or partial."""
    pass


def to_http_exception(exc: ReadingCoreError) -> HTTPException:
    """Map a core error onto the HTTP status the routers return for it."""
    if isinstance(exc, ValidationError):
        detail = {"detail": "validation_error", "error": str(exc), "field": exc.field}
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TransientFetchError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, GoalLimitError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, GoalArchivedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal_error")
