"""Unit tests for core.ratelimit module."""

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import Request
from slowapi.errors import RateLimitExceeded

from core.ratelimit import limiter, rate_limit_exceeded_handler, streak_target_key


def _make_rate_limit_exc(
    detail: str = "10 per 1 minute", retry_after: int = 30
) -> RateLimitExceeded:
    """Create a RateLimitExceeded with a mock Limit object."""
    mock_limit = MagicMock()
    mock_limit.error_message = None
    mock_limit.limit = detail
    exc = RateLimitExceeded(mock_limit)
    object.__setattr__(exc, "retry_after", retry_after)
    return exc


def _make_request(path_params: dict | None = None) -> MagicMock:
    request = MagicMock(spec=Request)
    request.client.host = "10.0.0.1"
    request.path_params = path_params or {}
    return request


@pytest.mark.unit
class TestStreakTargetKey:
    def test_keys_by_target_user(self):
        assert streak_target_key(_make_request({"user_id": "u1"})) == "user:u1"

    @patch("core.ratelimit.get_remote_address", autospec=True)
    def test_falls_back_to_client_address(self, mock_get_remote):
        mock_get_remote.return_value = "10.0.0.1"
        request = _make_request()

        assert streak_target_key(request) == "10.0.0.1"
        mock_get_remote.assert_called_once_with(request)


@pytest.mark.unit
class TestRateLimitExceededHandler:
    def test_returns_429_with_retry_after(self):
        response = rate_limit_exceeded_handler(
            _make_request(), _make_rate_limit_exc(retry_after=30)
        )

        assert response.status_code == 429
        assert response.headers.get("Retry-After") == "30"

    def test_response_body_contains_detail(self):
        response = rate_limit_exceeded_handler(
            _make_request(), _make_rate_limit_exc(detail="2 per 1 minute")
        )

        body = json.loads(response.body)
        assert "Rate limit exceeded" in body["detail"]
        assert "retry_after" in body


@pytest.mark.unit
def test_limiter_keys_are_namespaced():
    assert limiter._key_prefix == "streak:"
