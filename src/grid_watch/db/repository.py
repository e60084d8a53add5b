"""Data access layer for grid status history."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from grid_watch.status.model import GridStatus, ScheduleReference, StatusRecord

logger = logging.getLogger(__name__)


def normalise_timestamp(value: datetime | str) -> str:
    """Return ``value`` as an ISO-8601 UTC string.

    Naive datetimes and strings without an offset are taken as UTC.

    Raises:
        ValueError: If a string is not ISO-8601.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _row_to_record(row: Any) -> StatusRecord:
    schedule_ref = None
    if row["schedule_date_key"]:
        schedule_ref = ScheduleReference(
            date_key=row["schedule_date_key"],
            fetched_at=row["schedule_fetched_at"],
        )
    return StatusRecord(
        timestamp=row["recorded_at"],
        status=GridStatus(row["status"]),
        schedule_ref=schedule_ref,
        manual=bool(row["manual"]),
    )


class Repository:
    """Append-only grid status history with administrative corrections."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def append_status_record(
        self,
        timestamp: datetime | str,
        status: GridStatus | str,
        schedule_ref: ScheduleReference | None = None,
    ) -> StatusRecord:
        record = StatusRecord(
            timestamp=normalise_timestamp(timestamp),
            status=GridStatus(status),
            schedule_ref=schedule_ref,
        )
        await self._insert(record)
        logger.info("Recorded grid status %s at %s", record.status.value, record.timestamp)
        return record

    async def add_manual_status_record(
        self, timestamp: datetime | str, status: GridStatus | str,
    ) -> StatusRecord:
        """Insert a correction with a caller-chosen timestamp."""
        record = StatusRecord(
            timestamp=normalise_timestamp(timestamp),
            status=GridStatus(status),
            manual=True,
        )
        await self._insert(record)
        logger.info("Manual grid status record: %s at %s", record.status.value, record.timestamp)
        return record

    async def delete_status_record(self, timestamp: datetime | str) -> bool:
        """Delete every record at ``timestamp``.  Returns False if none matched."""
        key = normalise_timestamp(timestamp)
        async with self.db.execute(
            "DELETE FROM grid_status_history WHERE recorded_at = ?", (key,),
        ) as cursor:
            deleted = cursor.rowcount
        await self.db.commit()
        if deleted:
            logger.info("Deleted %d grid status record(s) at %s", deleted, key)
        return deleted > 0

    async def get_recent_status_history(self, limit: int = 50) -> list[StatusRecord]:
        """Most recent ``limit`` records, oldest first."""
        async with self.db.execute(
            """SELECT * FROM (
                   SELECT * FROM grid_status_history
                   ORDER BY recorded_at DESC, id DESC LIMIT ?
               ) ORDER BY recorded_at, id""",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [_row_to_record(r) for r in rows]

    async def get_full_status_history(self) -> list[StatusRecord]:
        async with self.db.execute(
            "SELECT * FROM grid_status_history ORDER BY recorded_at, id"
        ) as cursor:
            rows = await cursor.fetchall()
            return [_row_to_record(r) for r in rows]

    async def get_latest_status_record(self) -> StatusRecord | None:
        async with self.db.execute(
            "SELECT * FROM grid_status_history ORDER BY recorded_at DESC, id DESC LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def _insert(self, record: StatusRecord) -> None:
        ref = record.schedule_ref
        await self.db.execute(
            """INSERT INTO grid_status_history
               (recorded_at, status, schedule_date_key, schedule_fetched_at, manual)
               VALUES (?, ?, ?, ?, ?)""",
            (
                record.timestamp,
                record.status.value,
                ref.date_key if ref else None,
                ref.fetched_at if ref else None,
                1 if record.manual else 0,
            ),
        )
        await self.db.commit()
