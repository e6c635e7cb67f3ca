"""Streak endpoints."""

from typing import NoReturn

from fastapi import APIRouter, HTTPException, Query, Request

from core.database import DbSession
from core.ratelimit import (
    BATCH_JOB_LIMIT,
    STREAK_UPDATE_LIMIT,
    limiter,
    streak_target_key,
)
from core.wide_event import set_wide_event_fields
from schemas import (
    BatchUpdateSummary,
    RebuildStreakRequest,
    RebuildStreakResponse,
    ReconciliationSummary,
    StreakHistoryEntry,
    StreakHistoryResponse,
    StreakResponse,
    StreakUpdateResponse,
)
from services.leetcode_service import (
    LeetCodeUnavailableError,
    LeetCodeUserNotFoundError,
)
from services.reconciliation_service import reconcile_all_histories
from services.streaks_service import (
    UserNotFoundError,
    get_history,
    get_streak,
    rebuild_streak,
    rebuild_streak_from_store,
    reset_streak,
    update_all_streaks,
    update_streak,
)

router = APIRouter(prefix="/api/streak", tags=["streak"])

_NOT_FOUND = {404: {"description": "User not found"}}
_UPSTREAM = {
    404: {"description": "User or LeetCode account not found"},
    503: {"description": "LeetCode unavailable"},
}


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, UserNotFoundError):
        raise HTTPException(status_code=404, detail="User not found") from exc
    if isinstance(exc, LeetCodeUserNotFoundError):
        raise HTTPException(
            status_code=404, detail="LeetCode account not found"
        ) from exc
    if isinstance(exc, LeetCodeUnavailableError):
        raise HTTPException(
            status_code=503, detail="LeetCode is temporarily unavailable"
        ) from exc
    raise exc


@router.patch("/updateallusers", response_model=BatchUpdateSummary)
@limiter.limit(BATCH_JOB_LIMIT)
async def update_all_users_endpoint(request: Request) -> BatchUpdateSummary:
    """Update every user's streak sequentially."""
    summary = await update_all_streaks(request.app.state.session_maker)
    set_wide_event_fields(batch_total=summary.total_users, batch_errors=summary.errors)
    return summary


@router.post("/reconcile", response_model=ReconciliationSummary)
@limiter.limit(BATCH_JOB_LIMIT)
async def reconcile_endpoint(request: Request) -> ReconciliationSummary:
    """Recompute every user's streak history from stored submissions."""
    summary = await reconcile_all_histories(request.app.state.session_maker)
    set_wide_event_fields(
        reconcile_updated=summary.updated, reconcile_errors=summary.errors
    )
    return summary


@router.patch(
    "/update/{user_id}", response_model=StreakUpdateResponse, responses=_UPSTREAM
)
@limiter.limit(STREAK_UPDATE_LIMIT, key_func=streak_target_key)
async def update_streak_endpoint(
    request: Request, user_id: str, db: DbSession
) -> StreakUpdateResponse:
    """Fetch the user's recent LeetCode activity and update their streak."""
    set_wide_event_fields(streak_user_id=user_id)
    try:
        return await update_streak(db, user_id)
    except (
        UserNotFoundError,
        LeetCodeUserNotFoundError,
        LeetCodeUnavailableError,
    ) as e:
        _raise_http(e)


@router.patch(
    "/updateall/{user_id}", response_model=RebuildStreakResponse, responses=_UPSTREAM
)
@limiter.limit(STREAK_UPDATE_LIMIT, key_func=streak_target_key)
async def rebuild_streak_endpoint(
    request: Request,
    user_id: str,
    body: RebuildStreakRequest,
    db: DbSession,
) -> RebuildStreakResponse:
    """Rebuild the streak from the whole fetched window, optionally in another zone."""
    set_wide_event_fields(streak_user_id=user_id)
    try:
        streak = await rebuild_streak(db, user_id, timezone=body.timezone)
    except (
        UserNotFoundError,
        LeetCodeUserNotFoundError,
        LeetCodeUnavailableError,
    ) as e:
        _raise_http(e)
    return RebuildStreakResponse(user_id=user_id, streak=streak)


@router.post(
    "/updatebd/{user_id}", response_model=RebuildStreakResponse, responses=_NOT_FOUND
)
@limiter.limit(STREAK_UPDATE_LIMIT, key_func=streak_target_key)
async def rebuild_from_store_endpoint(
    request: Request, user_id: str, db: DbSession
) -> RebuildStreakResponse:
    """Rebuild the streak from submissions already stored (no LeetCode call)."""
    set_wide_event_fields(streak_user_id=user_id)
    try:
        streak = await rebuild_streak_from_store(db, user_id)
    except UserNotFoundError as e:
        _raise_http(e)
    return RebuildStreakResponse(user_id=user_id, streak=streak)


@router.get("/{user_id}", response_model=StreakResponse, responses=_NOT_FOUND)
async def get_streak_endpoint(user_id: str, db: DbSession) -> StreakResponse:
    try:
        user = await get_streak(db, user_id)
    except UserNotFoundError as e:
        _raise_http(e)
    return StreakResponse.model_validate(user)


@router.post("/{user_id}/reset", response_model=StreakResponse, responses=_NOT_FOUND)
async def reset_streak_endpoint(user_id: str, db: DbSession) -> StreakResponse:
    """Set the streak back to 0 and clear the last activity."""
    set_wide_event_fields(streak_user_id=user_id)
    try:
        user = await reset_streak(db, user_id)
    except UserNotFoundError as e:
        _raise_http(e)
    return StreakResponse.model_validate(user)


@router.get(
    "/{user_id}/history", response_model=StreakHistoryResponse, responses=_NOT_FOUND
)
async def get_history_endpoint(
    user_id: str,
    db: DbSession,
    limit: int | None = Query(default=None, ge=1, le=366),
) -> StreakHistoryResponse:
    """Per-day history rows, newest first."""
    try:
        rows = await get_history(db, user_id, limit=limit)
    except UserNotFoundError as e:
        _raise_http(e)
    return StreakHistoryResponse(
        user_id=user_id,
        entries=[StreakHistoryEntry.model_validate(row) for row in rows],
    )
