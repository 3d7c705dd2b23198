import asyncio
import logging
import sqlite3
from pathlib import Path

import pytest

from pickem.config import DEFAULT_ADMIN_PASSWORD, settings
from pickem.connection import DatabaseError
from pickem.db import bootstrap_admin, check_db_connection, get_db, init_db, reset_database
from pickem.security import verify_password


@pytest.fixture
def isolated_db(tmp_path: Path):
    original_db_path = settings.sqlite_db_path
    test_db = tmp_path / "pickem-test.sqlite"

    asyncio.run(reset_database(test_db))
    db = asyncio.run(get_db())

    try:
        yield db
    finally:
        asyncio.run(reset_database(original_db_path))


@pytest.fixture
def override_settings():
    originals = {}

    def _override(**values):
        for key, value in values.items():
            originals.setdefault(key, getattr(settings, key))
            object.__setattr__(settings, key, value)

    try:
        yield _override
    finally:
        for key, value in originals.items():
            object.__setattr__(settings, key, value)


EXPECTED_TABLES = {"users", "series", "series_members", "matches", "predictions", "points_ledger"}


async def _seed_series(db, *, with_ledger: bool = False) -> None:
    await db.run(
        "INSERT INTO series (id, name, start_date_utc, created_by, created_at) VALUES (?,?,?,?,?)",
        (1, "World Cup", "2026-06-01T00:00:00.000Z", 1, "2026-05-01T00:00:00.000Z"),
    )
    await db.run(
        "INSERT INTO series_members (series_id, user_id, joined_at) VALUES (?,?,?)",
        (1, 1, "2026-05-02T00:00:00.000Z"),
    )
    await db.run(
        """
        INSERT INTO matches (id, series_id, name, sport, team_a, team_b, start_time_utc)
        VALUES (?,?,?,?,?,?,?)
        """,
        (10, 1, "Opener", "cricket", "India", "Australia", "2026-06-02T14:00:00.000Z"),
    )
    await db.run(
        "INSERT INTO predictions (match_id, user_id, predicted_team, predicted_at_utc) VALUES (?,?,?,?)",
        (10, 1, "A", "2026-06-02T10:00:00.000Z"),
    )
    if with_ledger:
        await db.run(
            """
            INSERT INTO points_ledger (user_id, match_id, series_id, points, reason, created_at)
            VALUES (?,?,?,?,?,?)
            """,
            (1, 10, 1, 50, "correct_prediction", "2026-06-02T18:00:00.000Z"),
        )


async def _count(db, table: str) -> int:
    row = await db.get(f"SELECT COUNT(*) AS c FROM {table}")
    return row["c"]


def test_init_db_creates_schema_and_bootstraps_admin(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        tables = await isolated_db.all("SELECT name FROM sqlite_master WHERE type = 'table'")
        admin = await isolated_db.get("SELECT * FROM users")
        return {row["name"] for row in tables}, admin, await _count(isolated_db, "users")

    tables, admin, user_count = asyncio.run(scenario())

    assert EXPECTED_TABLES <= tables
    assert user_count == 1
    assert admin["username"] == "admin"
    assert admin["display_name"] == "Admin"
    assert admin["is_admin"] == 1
    assert admin["created_at"].endswith("Z")
    assert verify_password(DEFAULT_ADMIN_PASSWORD, admin["password_hash"])
    assert admin["password_hash"].startswith("$2b$10$")


def test_init_db_uses_the_singleton_when_no_handle_given(isolated_db):
    async def scenario():
        await init_db()
        await check_db_connection()
        return await _count(isolated_db, "users")

    assert asyncio.run(scenario()) == 1


def test_init_db_twice_is_idempotent(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await init_db(isolated_db)
        tables = await isolated_db.all("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
        indexes = await isolated_db.all(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'points_ledger'"
        )
        columns = await isolated_db.all("PRAGMA table_info(points_ledger)")
        return tables, indexes, columns, await _count(isolated_db, "users")

    tables, indexes, columns, user_count = asyncio.run(scenario())

    names = [row["name"] for row in tables]
    assert len(names) == len(set(names))
    assert user_count == 1
    assert sorted(row["name"] for row in indexes) == ["idx_points_ledger_match", "idx_points_ledger_series_user"]
    column_names = [row["name"] for row in columns]
    assert column_names.count("series_id") == 1
    assert column_names.count("match_id") == 1


def test_bootstrap_uses_configured_credentials(isolated_db, override_settings):
    override_settings(
        bootstrap_admin_username="commissioner",
        bootstrap_admin_password="s3cret-pass",
        bootstrap_admin_display_name="The Commissioner",
        bcrypt_rounds=4,
    )

    async def scenario():
        await init_db(isolated_db)
        return await isolated_db.get("SELECT username, display_name, password_hash FROM users")

    admin = asyncio.run(scenario())

    assert admin["username"] == "commissioner"
    assert admin["display_name"] == "The Commissioner"
    assert verify_password("s3cret-pass", admin["password_hash"])
    assert not verify_password(DEFAULT_ADMIN_PASSWORD, admin["password_hash"])


def test_bootstrap_skipped_when_users_exist(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await isolated_db.run("UPDATE users SET username = ?", ["renamed"])
        created = await bootstrap_admin(isolated_db)
        await init_db(isolated_db)
        rows = await isolated_db.all("SELECT username FROM users")
        return created, rows

    created, rows = asyncio.run(scenario())

    assert created is None
    assert rows == [{"username": "renamed"}]


def test_bootstrap_logs_username(isolated_db, caplog):
    with caplog.at_level(logging.INFO, logger="pickem.db"):
        asyncio.run(init_db(isolated_db))

    assert "Bootstrapped admin user: admin" in caplog.text
    record = next(r for r in caplog.records if r.name == "pickem.db")
    assert record.username == "admin"


def test_column_defaults_match_schema(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await _seed_series(isolated_db)
        match = await isolated_db.get("SELECT * FROM matches WHERE id = 10")
        series = await isolated_db.get("SELECT is_locked FROM series WHERE id = 1")
        prediction = await isolated_db.get("SELECT locked FROM predictions")
        return match, series, prediction

    match, series, prediction = asyncio.run(scenario())

    assert match["status"] == "scheduled"
    assert match["cutoff_minutes_before"] == 30
    assert match["entry_points"] == 50.0
    assert match["winner"] is None
    assert series["is_locked"] == 0
    assert prediction["locked"] == 0


def test_duplicate_username_is_a_driver_error(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await isolated_db.run(
            "INSERT INTO users (username, password_hash, display_name, created_at) VALUES (?,?,?,?)",
            ("admin", "x", "Imposter", "2026-01-01T00:00:00.000Z"),
        )

    with pytest.raises(DatabaseError) as excinfo:
        asyncio.run(scenario())

    assert isinstance(excinfo.value.cause, sqlite3.IntegrityError)


def test_foreign_keys_reject_unknown_series(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await isolated_db.run(
            """
            INSERT INTO matches (series_id, name, sport, team_a, team_b, start_time_utc)
            VALUES (?,?,?,?,?,?)
            """,
            (404, "Ghost", "cricket", "A", "B", "2026-06-02T14:00:00.000Z"),
        )

    with pytest.raises(DatabaseError) as excinfo:
        asyncio.run(scenario())

    assert isinstance(excinfo.value.cause, sqlite3.IntegrityError)


def test_deleting_series_cascades_members_matches_and_predictions(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await _seed_series(isolated_db)
        await isolated_db.run("DELETE FROM series WHERE id = ?", [1])
        return {
            table: await _count(isolated_db, table)
            for table in ("series", "series_members", "matches", "predictions", "users")
        }

    counts = asyncio.run(scenario())
    assert counts == {"series": 0, "series_members": 0, "matches": 0, "predictions": 0, "users": 1}


def test_deleting_series_never_removes_ledger_rows(isolated_db):
    async def scenario():
        await init_db(isolated_db)
        await _seed_series(isolated_db, with_ledger=True)
        with pytest.raises(DatabaseError) as excinfo:
            await isolated_db.run("DELETE FROM series WHERE id = ?", [1])
        return excinfo.value, await _count(isolated_db, "points_ledger"), await _count(isolated_db, "series_members")

    error, ledger_rows, members = asyncio.run(scenario())

    assert isinstance(error.cause, sqlite3.IntegrityError)
    assert ledger_rows == 1
    assert members == 1
