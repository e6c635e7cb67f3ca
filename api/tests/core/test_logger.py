"""Unit tests for core.logger module."""

import json
import logging

import pytest

from core.logger import bound_contextvars, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _clean_root_logger():
    """Save and restore root logger state around each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)


def _last_json_line(captured: str) -> dict:
    lines = [line for line in captured.splitlines() if line.strip()]
    return json.loads(lines[-1])


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_format_renders_structlog_events(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        get_logger("tests.logger.json").info("streak.updated", user_id="u1", streak=4)

        parsed = _last_json_line(capsys.readouterr().out)
        assert parsed["event"] == "streak.updated"
        assert parsed["user_id"] == "u1"
        assert parsed["streak"] == 4
        assert parsed["level"] == "info"
        assert "timestamp" in parsed

    def test_stdlib_logs_share_the_renderer(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        logging.getLogger("tests.logger.stdlib").warning("db.rollback.failed")

        parsed = _last_json_line(capsys.readouterr().out)
        assert parsed["event"] == "db.rollback.failed"
        assert parsed["logger"] == "tests.logger.stdlib"

    def test_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        configure_logging()

        assert logging.getLogger().level == logging.WARNING

    def test_quiets_noisy_loggers(self):
        configure_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_bound_context_is_added_and_removed(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()
        logger = get_logger("tests.logger.context")

        with bound_contextvars(batch_user_id="u7"):
            logger.info("streak.batch.user_failed")
        logger.info("streak.batch.completed")

        lines = [
            json.loads(line)
            for line in capsys.readouterr().out.splitlines()
            if line.strip()
        ]
        assert lines[-2]["batch_user_id"] == "u7"
        assert "batch_user_id" not in lines[-1]
