"""User registration, profile reads and timezone updates.

Timezones are stored the way streak updates read them back: as the zone's
current UTC offset ("+05:00"), which get_iana_timezone maps to a
representative IANA zone at calculation time.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from models import User
from repositories.submission_repository import SubmissionRepository
from repositories.user_repository import UserRepository
from schemas import UserResponse
from services.streaks_service import UserNotFoundError, user_update_lock
from services.timezone_service import (
    get_iana_timezone,
    get_utc_offset,
    is_known_timezone,
)

logger = get_logger(__name__)


class UserAlreadyExistsError(Exception):
    """The id or LeetCode username is already tracked."""


class LeetCodeUsernameNotFoundError(Exception):
    """No tracked user has this LeetCode username."""

    def __init__(self, username: str):
        super().__init__(f"No user with LeetCode username {username}")
        self.username = username


class InvalidTimezoneError(ValueError):
    def __init__(self, timezone: str):
        super().__init__(f"Unknown timezone: {timezone}")
        self.timezone = timezone


def stored_timezone(timezone: str) -> str:
    """UTC offset to persist for an IANA zone or offset string."""
    if not is_known_timezone(timezone):
        raise InvalidTimezoneError(timezone)
    return get_utc_offset(get_iana_timezone(timezone))


async def _to_user_response(db: AsyncSession, user: User) -> UserResponse:
    response = UserResponse.model_validate(user)
    response.solved_problems = await SubmissionRepository(db).count_by_user(user.id)
    return response


async def register_user(
    db: AsyncSession,
    user_id: str,
    leetcode_username: str,
    timezone: str | None = None,
) -> UserResponse:
    """Start tracking a LeetCode account under ``user_id``.

    Raises:
        UserAlreadyExistsError: the id or the username is taken.
        InvalidTimezoneError: ``timezone`` is not a known zone or offset.
    """
    repo = UserRepository(db)
    offset = stored_timezone(timezone) if timezone else None

    if await repo.get_by_id(user_id) is not None:
        raise UserAlreadyExistsError(f"User with id {user_id} already exists")
    if await repo.get_by_leetcode_username(leetcode_username) is not None:
        raise UserAlreadyExistsError(
            f"LeetCode username {leetcode_username} is already tracked"
        )

    user = await repo.create(user_id, leetcode_username, timezone=offset)
    set_wide_event_fields(streak_user_id=user.id)
    logger.info(
        "user.registered",
        user_id=user.id,
        leetcode_username=leetcode_username,
        timezone=offset,
    )
    return UserResponse.model_validate(user)


async def get_user_profile(db: AsyncSession, user_id: str) -> UserResponse:
    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return await _to_user_response(db, user)


async def update_timezone(
    db: AsyncSession, leetcode_username: str, timezone: str
) -> UserResponse:
    """Store the UTC offset of ``timezone`` for the user with this username.

    Day boundaries move with the zone, so the write runs under the same
    per-user lock as streak updates and is committed before it is released.
    """
    offset = stored_timezone(timezone)
    repo = UserRepository(db)
    user = await repo.get_by_leetcode_username(leetcode_username)
    if user is None:
        raise LeetCodeUsernameNotFoundError(leetcode_username)

    async with user_update_lock(user.id):
        await repo.update_timezone(user, offset)
        await db.commit()

    set_wide_event_fields(streak_user_id=user.id)
    logger.info("user.timezone_updated", user_id=user.id, timezone=offset)
    return await _to_user_response(db, user)
