"""Unit tests for core.config module.

Tests cover:
- Settings model_validator checks
- is_postgres property
- get_settings / clear_settings_cache lru_cache behavior
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings


@pytest.fixture(autouse=True)
def _clear_settings():
    """Clear lru_cache between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ---------------------------------------------------------------------------
# Settings validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSettingsValidation:
    def test_defaults(self):
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")

        assert settings.leetcode_graphql_url == "https://leetcode.com/graphql"
        assert settings.recent_submissions_limit == 20
        assert settings.streak_refresh_interval_seconds == 10800

    def test_requires_database_config(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(database_url="")

    @pytest.mark.parametrize("limit", [0, -5])
    def test_rejects_non_positive_submission_limit(self, limit):
        with pytest.raises(ValidationError, match="RECENT_SUBMISSIONS_LIMIT"):
            Settings(database_url="sqlite://", recent_submissions_limit=limit)

    def test_rejects_non_positive_refresh_interval(self):
        with pytest.raises(ValidationError, match="STREAK_REFRESH_INTERVAL"):
            Settings(database_url="sqlite://", streak_refresh_interval_seconds=0)

    def test_settings_are_frozen(self):
        settings = Settings(database_url="sqlite://")
        with pytest.raises(ValidationError):
            settings.debug = True  # type: ignore[misc]


@pytest.mark.unit
class TestIsPostgres:
    def test_asyncpg_url(self):
        assert Settings(database_url="postgresql+asyncpg://localhost/db").is_postgres

    def test_sqlite_url(self):
        assert not Settings(database_url="sqlite+aiosqlite:///:memory:").is_postgres


# ---------------------------------------------------------------------------
# get_settings / clear_settings_cache
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestGetSettings:
    def test_returns_same_instance(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://localhost/test")
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2

    def test_clear_cache_resets(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://localhost/test")
        s1 = get_settings()
        clear_settings_cache()
        s2 = get_settings()
        assert s1 is not s2

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://localhost/test")
        monkeypatch.setenv("LEETCODE_GRAPHQL_URL", "http://leetcode.test/graphql")
        monkeypatch.setenv("RECENT_SUBMISSIONS_LIMIT", "50")

        settings = get_settings()

        assert settings.leetcode_graphql_url == "http://leetcode.test/graphql"
        assert settings.recent_submissions_limit == 50
