#!/usr/bin/env python3
"""CLI for Streak Sync API management tasks.

Usage:
    python -m cli <command>

Commands:
    update-user <user_id>                  Fetch LeetCode activity and update one streak
    update-all                             Update every user's streak
    rebuild-user <user_id> [--timezone TZ] Rebuild one streak from the fetched window
    reconcile                              Recompute streak history from stored submissions
    add-user <user_id> <leetcode_username> [--timezone TZ]
                                           Start tracking a LeetCode account
    migrate                                Run database migrations
"""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logger import configure_logging, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def _with_session_maker(
    job: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
) -> T:
    from core.database import create_engine, create_session_maker, dispose_engine
    from services.leetcode_service import close_http_client

    engine = create_engine()
    try:
        return await job(create_session_maker(engine))
    finally:
        await close_http_client()
        await dispose_engine(engine)


def cmd_update_user(user_id: str) -> int:
    from services.streaks_service import update_streak

    async def job(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            return await update_streak(session, user_id)

    result = asyncio.run(_with_session_maker(job))
    logger.info(
        "cli.update_user.complete",
        user_id=result.user_id,
        streak=result.streak,
        last_activity_timestamp=result.last_activity_timestamp,
    )
    return 0


def cmd_update_all() -> int:
    from services.streaks_service import update_all_streaks

    summary = asyncio.run(_with_session_maker(update_all_streaks))
    logger.info("cli.update_all.complete", **summary.model_dump())
    return 0 if summary.errors == 0 else 1


def cmd_rebuild_user(user_id: str, timezone: str | None) -> int:
    from services.streaks_service import rebuild_streak

    async def job(session_maker: async_sessionmaker[AsyncSession]) -> int:
        async with session_maker() as session:
            return await rebuild_streak(session, user_id, timezone=timezone)

    streak = asyncio.run(_with_session_maker(job))
    logger.info("cli.rebuild_user.complete", user_id=user_id, streak=streak)
    return 0


def cmd_reconcile() -> int:
    from services.reconciliation_service import reconcile_all_histories

    summary = asyncio.run(_with_session_maker(reconcile_all_histories))
    logger.info("cli.reconcile.complete", **summary.model_dump())
    return 0 if summary.errors == 0 else 1


def cmd_add_user(user_id: str, leetcode_username: str, timezone: str | None) -> int:
    from services.users_service import (
        InvalidTimezoneError,
        UserAlreadyExistsError,
        register_user,
    )

    async def job(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            user = await register_user(
                session, user_id, leetcode_username, timezone=timezone
            )
            await session.commit()
            return user

    try:
        user = asyncio.run(_with_session_maker(job))
    except (UserAlreadyExistsError, InvalidTimezoneError) as e:
        logger.error("cli.add_user.rejected", error=str(e))
        return 1
    logger.info("cli.add_user.complete", user_id=user.id, timezone=user.timezone)
    return 0


def cmd_migrate() -> int:
    """Run database migrations."""
    from alembic import command
    from scripts.migrate import _get_alembic_config

    logger.info("cli.migrate.started")
    command.upgrade(_get_alembic_config(), "head")
    logger.info("cli.migrate.complete")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Streak Sync API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    update_user = subparsers.add_parser(
        "update-user", help="Fetch LeetCode activity and update one user's streak"
    )
    update_user.add_argument("user_id")

    subparsers.add_parser("update-all", help="Update every user's streak")

    rebuild_user = subparsers.add_parser(
        "rebuild-user", help="Rebuild one user's streak from the fetched window"
    )
    rebuild_user.add_argument("user_id")
    rebuild_user.add_argument(
        "--timezone",
        default=None,
        help="IANA zone or UTC offset to use instead of the stored one",
    )

    subparsers.add_parser(
        "reconcile", help="Recompute streak history from stored submissions"
    )
    add_user = subparsers.add_parser("add-user", help="Start tracking a LeetCode account")
    add_user.add_argument("user_id")
    add_user.add_argument("leetcode_username")
    add_user.add_argument(
        "--timezone",
        default=None,
        help="IANA zone or whole-hour UTC offset; stored as its current UTC offset",
    )

    subparsers.add_parser("migrate", help="Run database migrations")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "update-user":
        return cmd_update_user(args.user_id)
    elif args.command == "update-all":
        return cmd_update_all()
    elif args.command == "rebuild-user":
        return cmd_rebuild_user(args.user_id, args.timezone)
    elif args.command == "reconcile":
        return cmd_reconcile()
    elif args.command == "add-user":
        return cmd_add_user(args.user_id, args.leetcode_username, args.timezone)
    elif args.command == "migrate":
        return cmd_migrate()
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
