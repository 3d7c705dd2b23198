from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from pickem.config import settings
from pickem.connection import sqlite_url
from pickem.db import check_db_connection, close_db, get_db, init_db
from pickem.logging_utils import configure_logging

logger = logging.getLogger("pickem.migrate")


def run_migrations(database_url: str | None = None, revision: str = "head") -> None:
    root = Path(__file__).resolve().parent
    alembic_cfg = Config(str(root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root / "alembic"))
    if database_url:
        alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    command.upgrade(alembic_cfg, revision)


async def bootstrap_database() -> None:
    db = await get_db()
    try:
        await init_db(db)
        await check_db_connection(db)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create or upgrade the pick'em SQLite database")
    parser.add_argument(
        "--alembic",
        action="store_true",
        help="Apply versioned Alembic revisions instead of the runtime bootstrap",
    )
    parser.add_argument("--revision", default="head", help="Alembic target revision (with --alembic)")
    args = parser.parse_args(argv)

    configure_logging()
    if args.alembic:
        run_migrations(sqlite_url(settings.sqlite_db_path), revision=args.revision)
        logger.info(
            "Alembic upgrade complete",
            extra={"event": "migrate", "revision": args.revision, "db_path": settings.sqlite_db_path},
        )
    else:
        asyncio.run(bootstrap_database())
        logger.info(
            "Database bootstrap complete",
            extra={"event": "migrate", "db_path": settings.sqlite_db_path},
        )
    print(f"Database ready at {settings.sqlite_db_path}")


if __name__ == "__main__":
    main()
