"""SQLAlchemy models for LeetCode streak tracking."""

from datetime import UTC, date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base

# LeetCode's statusDisplay for an accepted submission
ACCEPTED_STATUS = "Accepted"


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class User(TimestampMixin, Base):
    """A tracked LeetCode user and their current streak state."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("leetcode_username", name="uq_users_leetcode_username"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    leetcode_username: Mapped[str] = mapped_column(String(255), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_problem_solved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Either a UTC offset ("+05:00") or an IANA name ("Europe/Madrid").
    # Normalized with get_iana_timezone() before any day bucketing.
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    submissions: Mapped[list["UserSubmission"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    streak_history: Mapped[list["StreakHistory"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )


class UserSubmission(TimestampMixin, Base):
    """First accepted submission of a problem by a user.

    Immutable once recorded. A problem counts toward the streak the first
    time it is solved; later re-submissions never produce another row.
    """

    __tablename__ = "user_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "title_slug", name="uq_user_submission_slug"),
        Index("ix_user_submissions_user_submitted", "user_id", "submitted_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    title_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    status_display: Mapped[str] = mapped_column(String(50), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    language: Mapped[str] = mapped_column(String(50), default="unknown")

    user: Mapped["User"] = relationship(back_populates="submissions")


class StreakHistory(TimestampMixin, Base):
    """Per-user, per-local-day solved-problem count.

    problems_solved accumulates across an unbroken streak and resets
    when consecutive-day continuity breaks.
    """

    __tablename__ = "streak_history"
    __table_args__ = (
        UniqueConstraint("user_id", "local_date", name="uq_streak_history_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Calendar day in the user's timezone
    local_date: Mapped[date] = mapped_column(Date, nullable=False)
    problems_solved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_problem_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    user: Mapped["User"] = relationship(back_populates="streak_history")
