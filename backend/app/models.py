from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Enum as SQLEnum, JSON, Float, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
import sqlalchemy as sa
from app.database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class ReadingStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class GoalType(str, enum.Enum):
    BOOK_COUNT = "book_count"
    PAGE_COUNT = "page_count"
    MINUTE_COUNT = "minute_count"
    GENRE_COUNT = "genre_count"


class GoalStatus(str, enum.Enum):
    ON_TRACK = "on_track"
    BEHIND = "behind"
    COMPLETED = "completed"
    EXPIRED = "expired"


def _enum_column(enum_cls, name: str, **kwargs) -> Column:
    return Column(
        SQLEnum(
            enum_cls,
            name=name,
            values_callable=lambda e: [m.value for m in e],
        ),
        **kwargs,
    )


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String, unique=True, index=True, nullable=True)
    display_name = Column(String, nullable=True)
    subscription_tier = _enum_column(
        SubscriptionTier, "subscriptiontier", nullable=False, default=SubscriptionTier.FREE
    )
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user_books = relationship("UserBook", back_populates="profile")
    goals = relationship("ReadingGoal", back_populates="profile")


class Book(Base):
    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    external_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    page_count = Column(Integer, nullable=True)
    genres = Column(JSON, nullable=False, default=list)
    mood_tags = Column(JSON, nullable=False, default=list)
    average_rating = Column(Float, nullable=True)
    ratings_count = Column(Integer, nullable=True)
    published_year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    # Relationships
    user_books = relationship("UserBook", back_populates="book")


class UserBook(Base):
    """
    Join between a profile and a book. Never hard-deleted: removal is a
    status transition (usually to abandoned).
    """
    __tablename__ = "user_books"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False, index=True)
    status = _enum_column(
        ReadingStatus, "readingstatus", nullable=False, default=ReadingStatus.NOT_STARTED
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True, index=True)
    current_page = Column(Integer, nullable=True)
    progress_percent = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    profile = relationship("Profile", back_populates="user_books")
    book = relationship("Book", back_populates="user_books")
    activity = relationship("ReadingActivity", back_populates="user_book")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_books_user_book"),
    )


class ReadingActivity(Base):
    """Append-only ledger of reading progress deltas."""
    __tablename__ = "reading_activity"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    user_book_id = Column(String(36), ForeignKey("user_books.id"), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)
    pages = Column(Integer, nullable=False, default=0)
    minutes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=sa.func.now(), nullable=False)

    # Relationships
    user_book = relationship("UserBook", back_populates="activity")


class ReadingGoal(Base):
    __tablename__ = "reading_goals"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    goal_type = _enum_column(GoalType, "goaltype", nullable=False)
    target = Column(Integer, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)  # NULL = open-ended
    genres = Column(JSON, nullable=True)  # genre filter for genre_count goals
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    profile = relationship("Profile", back_populates="goals")


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    created_at = Column(DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    event_name = Column(String, nullable=False, index=True)
    properties = Column(JSON, nullable=True)
    request_id = Column(String, nullable=True)
