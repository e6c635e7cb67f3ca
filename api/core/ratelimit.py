"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- Production MUST use Redis: set RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage keeps separate counters per worker/replica
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if (
    settings.environment != "development"
    and settings.ratelimit_storage_uri == "memory://"
):
    logger.warning(
        "Using in-memory rate limiting in %s environment. "
        "Set RATELIMIT_STORAGE_URI to a Redis URL for distributed rate limiting.",
        settings.environment,
    )


def streak_target_key(request: Request) -> str:
    """Key streak refreshes by the user being refreshed.

    Every refresh of a user costs one LeetCode call, so the budget is shared
    by all clients asking for that user. Routes without a ``user_id`` path
    parameter fall back to the client address.
    """
    user_id = request.path_params.get("user_id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    # Degrade to per-process counters while Redis is unreachable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="streak:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 with a Retry-After header."""
    logger.warning(
        "Rate limit exceeded for %s on %s: %s",
        streak_target_key(request),
        request.url.path,
        exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


# Per target user; each refresh triggers an upstream LeetCode fetch
STREAK_UPDATE_LIMIT = "10/minute"

# Whole-user-base jobs, per client address
BATCH_JOB_LIMIT = "2/minute"
