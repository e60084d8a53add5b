"""Schema creation and one-time import of the legacy JSON history file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from grid_watch.db.models import SCHEMA_VERSION, TABLES
from grid_watch.db.repository import normalise_timestamp

logger = logging.getLogger(__name__)

# Written by earlier releases into DATA_DIR:
#   {"history": [{"timestamp", "status", "scheduleRef": {"dateKey", "fetchedAt"}, "manual"}]}
LEGACY_HISTORY_FILENAME = "grid-status.json"
_VALID_STATUSES = ("unknown", "offline", "online")


async def run_migrations(db: aiosqlite.Connection) -> None:
    current = await _get_current_version(db)
    if current >= SCHEMA_VERSION:
        logger.debug("Database schema is up to date (version %d)", current)
        return

    logger.info("Creating database schema (version %d)", SCHEMA_VERSION)
    for statement in TABLES:
        await db.execute(statement)
    await db.execute(
        "INSERT OR REPLACE INTO schema_version (id, version) VALUES (1, ?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()


async def _get_current_version(db: aiosqlite.Connection) -> int:
    """Get current schema version, returns 0 if table doesn't exist."""
    try:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0
    except aiosqlite.OperationalError:
        return 0


async def import_legacy_history(db: aiosqlite.Connection, path: Path) -> int:
    """Import ``grid-status.json`` into an empty history table.

    Runs only while the table is empty, so a restart never duplicates rows.
    Entries with an unknown status or no timestamp are skipped.  On success
    the file is renamed to ``*.imported`` and left beside the database.

    Returns:
        Number of rows imported.
    """
    if not path.exists():
        return 0

    async with db.execute("SELECT COUNT(*) FROM grid_status_history") as cursor:
        (existing,) = await cursor.fetchone()
    if existing:
        logger.info("Legacy history %s ignored: database already has history", path)
        return 0

    try:
        entries = json.loads(path.read_text(encoding="utf-8")).get("history", [])
    except (OSError, ValueError, AttributeError) as e:
        logger.error("Cannot read legacy history %s: %s", path, e)
        return 0

    rows = [row for row in map(_legacy_row, entries) if row is not None]
    skipped = len(entries) - len(rows)
    await db.executemany(
        """INSERT INTO grid_status_history
           (recorded_at, status, schedule_date_key, schedule_fetched_at, manual)
           VALUES (?, ?, ?, ?, ?)""",
        rows,
    )
    await db.commit()

    path.rename(path.with_name(path.name + ".imported"))
    logger.info(
        "Imported %d grid status record(s) from %s (%d skipped)", len(rows), path, skipped,
    )
    return len(rows)


def _legacy_row(entry: Any) -> tuple[str, str, str | None, str | None, int] | None:
    if not isinstance(entry, dict) or entry.get("status") not in _VALID_STATUSES:
        return None
    try:
        timestamp = normalise_timestamp(entry["timestamp"])
    except (AttributeError, KeyError, TypeError, ValueError):
        return None

    ref = entry.get("scheduleRef")
    if not isinstance(ref, dict):
        ref = {}
    return (
        timestamp,
        entry["status"],
        ref.get("dateKey"),
        ref.get("fetchedAt"),
        1 if entry.get("manual") else 0,
    )
