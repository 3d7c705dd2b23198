from __future__ import annotations

import logging

from .connection import Database

logger = logging.getLogger("pickem.migrations")

LEDGER_TABLE = "points_ledger"
LEDGER_SCOPE_COLUMNS = ("series_id", "match_id")
LEDGER_INDEXES = (
    ("idx_points_ledger_series_user", "series_id, user_id"),
    ("idx_points_ledger_match", "match_id"),
)

# Rows pointing at a match that no longer exists are left alone.
_BACKFILL_SERIES_SQL = """
UPDATE points_ledger
   SET series_id = (
     SELECT m.series_id
       FROM matches m
      WHERE m.id = points_ledger.match_id
   )
 WHERE (series_id IS NULL OR series_id = '')
   AND match_id IS NOT NULL
   AND EXISTS (SELECT 1 FROM matches m WHERE m.id = points_ledger.match_id)
"""


async def table_columns(db: Database, table: str) -> list[str]:
    rows = await db.all(f"PRAGMA table_info({table})")
    return [row["name"] for row in rows]


async def ensure_points_ledger_schema(db: Database) -> int:
    """Bring ``points_ledger`` up to the series-scoped layout.

    Adds the nullable ``series_id`` / ``match_id`` columns when missing, copies
    ``series_id`` over from ``matches`` for rows that only know their match, and
    makes sure the leaderboard indexes exist. Safe to run repeatedly.

    Returns the number of rows whose ``series_id`` was backfilled.
    """
    present = set(await table_columns(db, LEDGER_TABLE))

    for column in LEDGER_SCOPE_COLUMNS:
        if column in present:
            continue
        await db.run(f"ALTER TABLE {LEDGER_TABLE} ADD COLUMN {column} INTEGER")
        logger.info(
            "Added %s.%s",
            LEDGER_TABLE,
            column,
            extra={"event": "migration", "table": LEDGER_TABLE, "column": column},
        )

    backfill = await db.run(_BACKFILL_SERIES_SQL)

    for index_name, columns in LEDGER_INDEXES:
        await db.run(f"CREATE INDEX IF NOT EXISTS {index_name} ON {LEDGER_TABLE}({columns})")

    logger.info(
        "points_ledger schema ensured and backfilled",
        extra={"event": "migration", "table": LEDGER_TABLE, "rows": backfill.changes},
    )
    return backfill.changes
