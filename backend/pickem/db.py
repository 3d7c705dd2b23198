from __future__ import annotations

import logging
from pathlib import Path

from .config import settings
from .connection import Database, open_database
from .migrations import ensure_points_ledger_schema
from .models import Base, utc_now_iso
from .security import hash_password

logger = logging.getLogger("pickem.db")


def ensure_db_directory(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


DB_FILE_PATH = ensure_db_directory(settings.sqlite_db_path)

_DB: Database | None = None


async def get_db() -> Database:
    global _DB
    if _DB is None or _DB.closed:
        _DB = open_database(settings.sqlite_db_path)
    return _DB


async def close_db() -> None:
    global _DB
    db, _DB = _DB, None
    if db is not None and not db.closed:
        await db.close()


async def reset_database(db_path: Path | str | None = None) -> None:
    await close_db()
    if db_path:
        object.__setattr__(settings, "sqlite_db_path", Path(db_path).resolve())
    ensure_db_directory(settings.sqlite_db_path)


async def check_db_connection(db: Database | None = None) -> None:
    db = db or await get_db()
    await db.get("SELECT 1 AS ok")


async def bootstrap_admin(db: Database) -> str | None:
    """Create the first admin account when the user table is empty.

    Returns the bootstrapped username, or ``None`` when users already exist.
    """
    row = await db.get("SELECT COUNT(*) AS c FROM users")
    if row and row["c"]:
        return None

    username = settings.bootstrap_admin_username
    password_hash = await hash_password(settings.bootstrap_admin_password)
    await db.run(
        "INSERT INTO users (username, password_hash, display_name, is_admin, created_at) VALUES (?,?,?,?,?)",
        (username, password_hash, settings.bootstrap_admin_display_name, 1, utc_now_iso()),
    )
    logger.info(
        "Bootstrapped admin user: %s",
        username,
        extra={"event": "bootstrap_admin", "username": username},
    )
    return username


async def init_db(db: Database | None = None) -> None:
    db = db or await get_db()
    await db.exec("PRAGMA foreign_keys = ON;")
    await db.run_sync(Base.metadata.create_all)

    async with db.transaction():
        await bootstrap_admin(db)

    async with db.transaction():
        await ensure_points_ledger_schema(db)
