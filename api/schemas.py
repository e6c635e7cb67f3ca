"""Pydantic schemas for API request/response validation."""

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import ACCEPTED_STATUS
from services.timezone_service import is_known_timezone

_WHITESPACE_RE = re.compile(r"\s+")


def slugify_title(title: str) -> str:
    """Derive a stable problem slug from its title ("Two Sum" -> "two-sum")."""
    return _WHITESPACE_RE.sub("-", title.strip().lower())


class LeetCodeSubmission(BaseModel):
    """One entry of LeetCode's ``recentAcSubmissionList``.

    Field aliases match the GraphQL payload; ``timestamp`` arrives as a
    string of Unix seconds and is coerced to int.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str
    title_slug: str = Field(default="", alias="titleSlug")
    timestamp: int
    status_display: str = Field(default=ACCEPTED_STATUS, alias="statusDisplay")
    lang: str = "unknown"

    @model_validator(mode="after")
    def fill_slug(self) -> "LeetCodeSubmission":
        if not self.title_slug:
            self.title_slug = slugify_title(self.title)
        return self

    @property
    def is_accepted(self) -> bool:
        return self.status_display == ACCEPTED_STATUS


class HistoryRecord(BaseModel):
    """A per-day streak history row as written by the engine."""

    user_id: str
    local_date: date
    problems_solved: int
    first_problem_at: datetime


class StreakResponse(BaseModel):
    """Current streak state for a user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    current_streak: int
    longest_streak: int
    last_problem_solved_at: datetime | None = None
    timezone: str | None = None


def _check_timezone(value: str | None) -> str | None:
    if value is not None and not is_known_timezone(value):
        raise ValueError(f"Unknown timezone: {value}")
    return value


class UserRegisterRequest(BaseModel):
    """Request to start tracking a LeetCode account."""

    id: str = Field(min_length=1, max_length=255)
    leetcode_username: str = Field(min_length=1, max_length=255)
    timezone: str | None = Field(default=None, max_length=64)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        return _check_timezone(v)


class TimezoneUpdateRequest(BaseModel):
    """IANA zone (e.g. "America/Bogota") or whole-hour UTC offset."""

    timezone: str = Field(max_length=64)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_timezone(v)


class UserResponse(BaseModel):
    """A tracked user with their solved-problem count."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    leetcode_username: str
    timezone: str | None = None
    current_streak: int
    longest_streak: int
    last_problem_solved_at: datetime | None = None
    solved_problems: int = 0
    created_at: datetime | None = None


class StreakUpdateResponse(BaseModel):
    user_id: str
    streak: int
    last_activity_timestamp: int | None = None


class RebuildStreakRequest(BaseModel):
    """Body of the full-rebuild endpoint. Missing timezone uses the stored one."""

    timezone: str | None = None


class RebuildStreakResponse(BaseModel):
    user_id: str
    streak: int


class StreakHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    local_date: date
    problems_solved: int
    first_problem_at: datetime


class StreakHistoryResponse(BaseModel):
    user_id: str
    entries: list[StreakHistoryEntry]


class BatchUpdateSummary(BaseModel):
    """Result of updating every user's streak in one pass."""

    total_users: int = 0
    updated: int = 0
    errors: int = 0


class ReconciliationSummary(BaseModel):
    """Result of replaying stored submissions into streak_history."""

    total_users: int = 0
    processed: int = 0
    updated: int = 0
    errors: int = 0
    error_messages: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    service: str
