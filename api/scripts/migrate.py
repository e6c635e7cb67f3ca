#!/usr/bin/env python3
"""Apply or inspect Alembic migrations for the configured DATABASE_URL.

Usage:
    cd api
    python -m scripts.migrate upgrade [target]
    python -m scripts.migrate downgrade [target]
    python -m scripts.migrate current
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

_API_DIR = Path(__file__).resolve().parents[1]


def _get_alembic_config() -> Config:
    """Alembic config that works from any working directory."""
    sys.path.insert(0, str(_API_DIR))
    cfg = Config(str(_API_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(_API_DIR / "alembic"))
    return cfg


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run streak schema migrations")
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("upgrade").add_argument("target", nargs="?", default="head")
    sub.add_parser("downgrade").add_argument("target", nargs="?", default="-1")
    sub.add_parser("current")
    args = parser.parse_args(argv)

    cfg = _get_alembic_config()
    match args.cmd:
        case "upgrade":
            command.upgrade(cfg, args.target)
        case "downgrade":
            command.downgrade(cfg, args.target)
        case "current":
            command.current(cfg)


if __name__ == "__main__":
    main()
