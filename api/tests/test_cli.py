"""Tests for the management CLI argument handling and exit codes."""

import pytest

import cli
from schemas import BatchUpdateSummary, ReconciliationSummary

pytestmark = pytest.mark.unit


def _fake_runner(result):
    async def run(job):
        return result

    return run


def test_rebuild_user_accepts_timezone():
    args = cli.build_parser().parse_args(
        ["rebuild-user", "user_1", "--timezone", "+05:00"]
    )

    assert args.command == "rebuild-user"
    assert args.user_id == "user_1"
    assert args.timezone == "+05:00"


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "update-user" in capsys.readouterr().out


@pytest.mark.parametrize(("errors", "exit_code"), [(0, 0), (2, 1)])
def test_update_all_exit_code_reflects_failures(monkeypatch, errors, exit_code):
    monkeypatch.setattr(
        cli,
        "_with_session_maker",
        _fake_runner(BatchUpdateSummary(total_users=3, updated=3 - errors, errors=errors)),
    )

    assert cli.main(["update-all"]) == exit_code


def test_reconcile_exit_code(monkeypatch):
    monkeypatch.setattr(
        cli,
        "_with_session_maker",
        _fake_runner(ReconciliationSummary(total_users=1, processed=4, updated=1)),
    )

    assert cli.main(["reconcile"]) == 0


def test_rebuild_user_reports_streak(monkeypatch):
    monkeypatch.setattr(cli, "_with_session_maker", _fake_runner(5))

    assert cli.main(["rebuild-user", "user_1"]) == 0


def test_add_user_accepts_timezone():
    args = cli.build_parser().parse_args(
        ["add-user", "user_1", "leet_1", "--timezone", "America/Bogota"]
    )

    assert args.command == "add-user"
    assert (args.user_id, args.leetcode_username) == ("user_1", "leet_1")
    assert args.timezone == "America/Bogota"


def test_add_user_rejected_exits_nonzero(monkeypatch):
    from services.users_service import UserAlreadyExistsError

    async def run(job):
        raise UserAlreadyExistsError("LeetCode username leet_1 is already tracked")

    monkeypatch.setattr(cli, "_with_session_maker", run)

    assert cli.main(["add-user", "user_1", "leet_1"]) == 1
