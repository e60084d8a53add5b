"""SQLite database engine with WAL mode for concurrent reads."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from grid_watch.db.migrations import import_legacy_history, run_migrations

logger = logging.getLogger(__name__)

HISTORY_TABLE = "grid_status_history"
_HISTORY_COLUMNS = (
    "recorded_at", "status", "schedule_date_key", "schedule_fetched_at", "manual",
)


async def _check_integrity(db: aiosqlite.Connection) -> bool:
    """Run PRAGMA integrity_check and return True if the database is healthy."""
    try:
        async with db.execute("PRAGMA integrity_check") as cursor:
            rows = await cursor.fetchall()
        if len(rows) == 1 and str(rows[0][0]).lower() == "ok":
            return True
        problems = [str(r[0]) for r in rows[:10]]
        logger.error("Database integrity check failed: %s", "; ".join(problems))
        return False
    except Exception:
        logger.error("Database integrity check raised an exception", exc_info=True)
        return False


async def _recover_history(corrupt_path: Path, new_path: Path) -> int:
    """Copy readable history rows from a corrupt database into a fresh one.

    Returns the number of rows recovered.
    """
    new_db = await aiosqlite.connect(str(new_path))
    await run_migrations(new_db)

    try:
        corrupt_db = await aiosqlite.connect(f"file:{corrupt_path}?mode=ro", uri=True)
    except Exception:
        logger.error("Cannot open corrupt database for recovery", exc_info=True)
        await new_db.close()
        return 0

    col_list = ", ".join(_HISTORY_COLUMNS)
    placeholders = ", ".join("?" * len(_HISTORY_COLUMNS))
    recovered = 0
    try:
        async with corrupt_db.execute(
            f"SELECT {col_list} FROM {HISTORY_TABLE} ORDER BY recorded_at"
        ) as cur:
            rows = await cur.fetchall()
        if rows:
            await new_db.executemany(
                f"INSERT INTO {HISTORY_TABLE} ({col_list}) VALUES ({placeholders})",
                rows,
            )
            await new_db.commit()
            recovered = len(rows)
    except Exception:
        logger.warning("Could not recover %s (corrupt pages)", HISTORY_TABLE)
    finally:
        await corrupt_db.close()
        await new_db.close()
    return recovered


async def _replace_corrupt(db_path: Path) -> None:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    backup = db_path.with_suffix(f".corrupt-{stamp}.db")
    logger.warning("Database corruption detected, attempting recovery...")

    recovered_path = db_path.with_suffix(".recovered.db")
    rows = await _recover_history(db_path, recovered_path)
    if rows:
        logger.info("Recovered %d grid status history rows", rows)
    else:
        logger.warning("No data could be recovered from corrupt database")

    for suffix in ("", "-wal", "-shm"):
        src = db_path.parent / (db_path.name + suffix)
        if src.exists():
            shutil.move(str(src), str(db_path.parent / (backup.name + suffix)))

    if recovered_path.exists():
        shutil.move(str(recovered_path), str(db_path))


async def init_db(
    db_path: str | Path,
    legacy_history: Path | None = None,
) -> aiosqlite.Connection:
    """Open the database in WAL mode and run migrations.

    A corrupt database is moved aside as a timestamped backup and replaced
    by a fresh one holding whatever history rows could still be read.
    When ``legacy_history`` names a JSON history file from an earlier
    release, it is imported into an empty history table.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if db_path.exists():
        try:
            test_db = await aiosqlite.connect(str(db_path))
            healthy = await _check_integrity(test_db)
            await test_db.close()
        except Exception:
            healthy = False
        if not healthy:
            await _replace_corrupt(db_path)

    db = await aiosqlite.connect(str(db_path))
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA synchronous=FULL")
    await db.execute("PRAGMA busy_timeout=5000")
    db.row_factory = aiosqlite.Row

    await run_migrations(db)
    if legacy_history is not None:
        await import_legacy_history(db, legacy_history)
    logger.info("Database initialised at %s (WAL mode, synchronous=FULL)", db_path)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Checkpoint the WAL and close the connection."""
    try:
        await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
    except aiosqlite.Error:
        logger.warning("WAL checkpoint failed on close", exc_info=True)
    await db.close()
    logger.info("Database connection closed")
