"""LeetCode GraphQL client for recent accepted submissions.

SCALABILITY:
- Circuit breaker fails fast when LeetCode is unavailable (5 failures -> 60s recovery)
- Retry with exponential backoff for transient failures (3 attempts)
- Connection pooling via shared httpx.AsyncClient
- Endpoint URL comes from Settings.leetcode_graphql_url (explicit configuration)
"""

import asyncio
from typing import Any

import httpx
from circuitbreaker import CircuitBreakerError, circuit
from pydantic import ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.config import get_settings
from core.logger import get_logger
from core.telemetry import track_dependency
from schemas import LeetCodeSubmission

logger = get_logger(__name__)

RECENT_AC_SUBMISSIONS_QUERY = """
query getACSubmissions($username: String!, $limit: Int) {
  recentAcSubmissionList(username: $username, limit: $limit) {
    title
    titleSlug
    timestamp
    statusDisplay
    lang
  }
}
"""

_http_client: httpx.AsyncClient | None = None
_http_client_lock = asyncio.Lock()


class LeetCodeUnavailableError(Exception):
    """LeetCode could not be reached or kept failing after retries."""


class LeetCodeUserNotFoundError(Exception):
    """LeetCode returned no data for the requested username."""

    def __init__(self, username: str):
        super().__init__(f"LeetCode user {username!r} not found")
        self.username = username


class LeetCodeServerError(Exception):
    """Raised when LeetCode returns a 5xx error or 429 (retriable)."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


def _parse_retry_after(header_value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not header_value:
        return None
    try:
        return float(header_value)
    except ValueError:
        return None


def _wait_with_retry_after(retry_state: RetryCallState) -> float:
    """Respect Retry-After (capped at 60s), else exponential backoff with jitter."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, LeetCodeServerError) and exc.retry_after:
        return min(exc.retry_after, 60.0)
    return wait_exponential_jitter(initial=0.5, max=4)(retry_state)


# Exceptions that should trigger retry and circuit breaker
RETRIABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.RequestError,
    httpx.TimeoutException,
    LeetCodeServerError,
)


async def get_http_client() -> httpx.AsyncClient:
    """Get or create the shared LeetCode HTTP client."""
    global _http_client

    if _http_client is not None and not _http_client.is_closed:
        return _http_client

    async with _http_client_lock:
        if _http_client is not None and not _http_client.is_closed:
            return _http_client

        settings = get_settings()
        _http_client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={"Content-Type": "application/json"},
        )
        return _http_client


async def close_http_client() -> None:
    """Close the shared client (called on application shutdown)."""
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


@track_dependency("leetcode_graphql", "HTTP")
@circuit(
    failure_threshold=5,
    recovery_timeout=60,
    expected_exception=RETRIABLE_EXCEPTIONS,
    name="leetcode_circuit",
)
@retry(
    retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
    stop=stop_after_attempt(3),
    wait=_wait_with_retry_after,
    reraise=True,
)
async def _execute_query(url: str, query: str, variables: dict[str, Any]) -> dict:
    """Internal: POST a GraphQL query with retries. Returns the ``data`` object."""
    client = await get_http_client()
    response = await client.post(url, json={"query": query, "variables": variables})

    if response.status_code >= 500:
        raise LeetCodeServerError(f"LeetCode API returned {response.status_code}")

    if response.status_code == 429:
        raise LeetCodeServerError(
            "LeetCode API rate limited (429)",
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )

    # 4xx errors (except 429) are not retriable
    if response.status_code != 200:
        raise LeetCodeUnavailableError(
            f"LeetCode API request failed with status {response.status_code}"
        )

    try:
        payload = response.json()
    except ValueError as e:
        raise LeetCodeUnavailableError("LeetCode returned a non-JSON response") from e

    if not isinstance(payload, dict):
        raise LeetCodeUnavailableError("LeetCode returned an unexpected payload")
    data = payload.get("data")
    if data is not None and not isinstance(data, dict):
        raise LeetCodeUnavailableError("LeetCode returned an unexpected payload")
    return data or {}


async def get_recent_ac_submissions(
    username: str,
    limit: int | None = None,
    *,
    url: str | None = None,
) -> list[LeetCodeSubmission]:
    """Fetch up to ``limit`` most recent accepted submissions for a user.

    RETRY: 3 attempts with exponential backoff for transient failures.
    CIRCUIT BREAKER: Opens after 5 consecutive failures, recovers after 60 seconds.

    Raises:
        LeetCodeUnavailableError: upstream down, retries exhausted, or circuit open.
        LeetCodeUserNotFoundError: no submission list for this username.
    """
    settings = get_settings()
    endpoint = url or settings.leetcode_graphql_url
    variables = {
        "username": username,
        "limit": limit or settings.recent_submissions_limit,
    }

    try:
        data = await _execute_query(endpoint, RECENT_AC_SUBMISSIONS_QUERY, variables)
    except CircuitBreakerError as e:
        logger.warning("leetcode.circuit_open", username=username)
        raise LeetCodeUnavailableError("LeetCode circuit breaker is open") from e
    except RETRIABLE_EXCEPTIONS as e:
        logger.warning("leetcode.retries_exhausted", username=username, error=str(e))
        raise LeetCodeUnavailableError(f"LeetCode API unavailable: {e}") from e

    raw = data.get("recentAcSubmissionList")
    if raw is None:
        raise LeetCodeUserNotFoundError(username)

    try:
        return [LeetCodeSubmission.model_validate(item) for item in raw]
    except ValidationError as e:
        logger.warning("leetcode.payload_invalid", username=username, error=str(e))
        raise LeetCodeUnavailableError("LeetCode returned malformed submissions") from e
