"""User endpoints: registration, profile and timezone."""

from fastapi import APIRouter, HTTPException, Request

from core.database import DbSession
from core.ratelimit import limiter
from schemas import TimezoneUpdateRequest, UserRegisterRequest, UserResponse
from services.streaks_service import UserNotFoundError
from services.users_service import (
    LeetCodeUsernameNotFoundError,
    UserAlreadyExistsError,
    get_user_profile,
    register_user,
    update_timezone,
)

router = APIRouter(prefix="/api/user", tags=["users"])


@router.post(
    "/register",
    status_code=201,
    response_model=UserResponse,
    responses={409: {"description": "User id or LeetCode username already tracked"}},
)
@limiter.limit("30/minute")
async def register_user_endpoint(
    request: Request, body: UserRegisterRequest, db: DbSession
) -> UserResponse:
    """Start tracking a LeetCode account."""
    try:
        return await register_user(
            db, body.id, body.leetcode_username, timezone=body.timezone
        )
    except UserAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get(
    "/profile/{user_id}",
    response_model=UserResponse,
    responses={404: {"description": "User not found"}},
)
async def get_profile_endpoint(user_id: str, db: DbSession) -> UserResponse:
    try:
        return await get_user_profile(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="User not found") from e


@router.patch(
    "/update/{username}",
    response_model=UserResponse,
    responses={404: {"description": "User not found"}},
)
@limiter.limit("30/minute")
async def update_timezone_endpoint(
    request: Request, username: str, body: TimezoneUpdateRequest, db: DbSession
) -> UserResponse:
    """Set the timezone used for a user's day boundaries, by LeetCode username."""
    try:
        return await update_timezone(db, username, body.timezone)
    except LeetCodeUsernameNotFoundError as e:
        raise HTTPException(status_code=404, detail="User not found") from e
