"""Tests for database engine and repository."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import pytest

from grid_watch.db.engine import close_db, init_db
from grid_watch.db.models import SCHEMA_VERSION
from grid_watch.db.repository import Repository, normalise_timestamp
from grid_watch.status.model import GridStatus, ScheduleReference

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class TestNormaliseTimestamp:
    def test_aware_datetime(self) -> None:
        kyiv = timezone(timedelta(hours=2))
        value = datetime(2026, 3, 1, 10, 0, tzinfo=kyiv)
        assert normalise_timestamp(value) == "2026-03-01T08:00:00+00:00"

    def test_naive_is_utc(self) -> None:
        assert normalise_timestamp(datetime(2026, 3, 1, 8, 0)) == "2026-03-01T08:00:00+00:00"

    def test_zulu_string(self) -> None:
        assert normalise_timestamp("2026-03-01T08:00:00Z") == "2026-03-01T08:00:00+00:00"

    def test_offset_string(self) -> None:
        assert normalise_timestamp("2026-03-01T10:00:00+02:00") == "2026-03-01T08:00:00+00:00"

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            normalise_timestamp("yesterday")


@pytest.mark.asyncio
class TestRepository:
    async def test_append_and_read(self, repo: Repository) -> None:
        ref = ScheduleReference(date_key="2026-03-01", fetched_at="2026-03-01T06:00:00+00:00")
        record = await repo.append_status_record(T0, GridStatus.ONLINE, ref)
        assert record.timestamp == "2026-03-01T08:00:00+00:00"
        assert not record.manual

        latest = await repo.get_latest_status_record()
        assert latest == record
        assert latest.schedule_ref == ref

    async def test_history_oldest_first(self, repo: Repository) -> None:
        await repo.append_status_record(T0 + timedelta(hours=2), GridStatus.UNKNOWN)
        await repo.append_status_record(T0, GridStatus.ONLINE)
        await repo.append_status_record(T0 + timedelta(hours=4), GridStatus.ONLINE)

        history = await repo.get_full_status_history()
        assert [r.status for r in history] == [
            GridStatus.ONLINE, GridStatus.UNKNOWN, GridStatus.ONLINE,
        ]

    async def test_recent_history_limit(self, repo: Repository) -> None:
        for i in range(5):
            status = GridStatus.ONLINE if i % 2 == 0 else GridStatus.UNKNOWN
            await repo.append_status_record(T0 + timedelta(minutes=i), status)

        recent = await repo.get_recent_status_history(limit=2)
        assert [r.timestamp for r in recent] == [
            normalise_timestamp(T0 + timedelta(minutes=3)),
            normalise_timestamp(T0 + timedelta(minutes=4)),
        ]

    async def test_manual_record_sorted_into_place(self, repo: Repository) -> None:
        await repo.append_status_record(T0, GridStatus.ONLINE)
        await repo.append_status_record(T0 + timedelta(hours=3), GridStatus.ONLINE)
        manual = await repo.add_manual_status_record("2026-03-01T09:30:00Z", "offline")

        assert manual.manual
        history = await repo.get_full_status_history()
        assert [r.status for r in history] == [
            GridStatus.ONLINE, GridStatus.OFFLINE, GridStatus.ONLINE,
        ]
        assert history[1].timestamp == "2026-03-01T09:30:00+00:00"

    async def test_invalid_status_rejected(self, repo: Repository) -> None:
        with pytest.raises(ValueError):
            await repo.add_manual_status_record(T0, "flickering")

    async def test_delete(self, repo: Repository) -> None:
        await repo.append_status_record(T0, GridStatus.ONLINE)
        assert await repo.delete_status_record("2026-03-01T10:00:00+02:00")
        assert await repo.get_full_status_history() == []

    async def test_delete_missing(self, repo: Repository) -> None:
        await repo.append_status_record(T0, GridStatus.ONLINE)
        assert not await repo.delete_status_record(T0 + timedelta(seconds=1))
        assert len(await repo.get_full_status_history()) == 1

    async def test_empty(self, repo: Repository) -> None:
        assert await repo.get_latest_status_record() is None
        assert await repo.get_recent_status_history() == []


@pytest.mark.asyncio
class TestEngine:
    async def test_schema_version(self, db: aiosqlite.Connection) -> None:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        assert row[0] == SCHEMA_VERSION

    async def test_reopen_keeps_history(self, tmp_path: Path) -> None:
        path = tmp_path / "grid.db"
        db = await init_db(path)
        await Repository(db).append_status_record(T0, GridStatus.ONLINE)
        await close_db(db)

        db = await init_db(path)
        history = await Repository(db).get_full_status_history()
        await close_db(db)
        assert len(history) == 1

    async def test_corrupt_file_replaced(self, tmp_path: Path) -> None:
        path = tmp_path / "grid.db"
        path.write_bytes(b"this is not a sqlite database" * 100)

        db = await init_db(path)
        assert await Repository(db).get_full_status_history() == []
        await close_db(db)

        backups = list(tmp_path.glob("grid.corrupt-*.db"))
        assert len(backups) == 1

    async def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db = await init_db(tmp_path / "nested" / "data" / "grid.db")
        await close_db(db)
        assert (tmp_path / "nested" / "data" / "grid.db").exists()


@pytest.mark.asyncio
class TestLegacyImport:
    async def test_imports_json_history(self, tmp_path: Path) -> None:
        legacy = tmp_path / "grid-status.json"
        legacy.write_text(json.dumps({"history": [
            {
                "timestamp": "2026-01-10T06:00:00.000Z",
                "status": "online",
                "scheduleRef": {"dateKey": "2026-01-10", "fetchedAt": "2026-01-10T05:00:00.000Z"},
            },
            {"timestamp": "2026-01-10T09:15:00.000Z", "status": "offline", "scheduleRef": None, "manual": True},
            {"timestamp": "2026-01-10T10:00:00.000Z", "status": "flickering"},
            {"status": "online"},
        ]}))

        db = await init_db(tmp_path / "grid.db", legacy_history=legacy)
        history = await Repository(db).get_full_status_history()
        await close_db(db)

        assert [r.status for r in history] == [GridStatus.ONLINE, GridStatus.OFFLINE]
        assert history[0].timestamp == "2026-01-10T06:00:00+00:00"
        assert history[0].schedule_ref == ScheduleReference(
            date_key="2026-01-10", fetched_at="2026-01-10T05:00:00.000Z",
        )
        assert history[1].manual
        assert not legacy.exists()
        assert (tmp_path / "grid-status.json.imported").exists()

    async def test_skipped_when_history_exists(self, tmp_path: Path) -> None:
        db = await init_db(tmp_path / "grid.db")
        await Repository(db).append_status_record(T0, GridStatus.ONLINE)
        await close_db(db)

        legacy = tmp_path / "grid-status.json"
        legacy.write_text(json.dumps({"history": [
            {"timestamp": "2026-01-10T06:00:00Z", "status": "offline"},
        ]}))
        db = await init_db(tmp_path / "grid.db", legacy_history=legacy)
        history = await Repository(db).get_full_status_history()
        await close_db(db)

        assert len(history) == 1
        assert legacy.exists()

    async def test_unreadable_file(self, tmp_path: Path) -> None:
        legacy = tmp_path / "grid-status.json"
        legacy.write_text("{not json")
        db = await init_db(tmp_path / "grid.db", legacy_history=legacy)
        assert await Repository(db).get_full_status_history() == []
        await close_db(db)
        assert legacy.exists()

    async def test_missing_file(self, tmp_path: Path) -> None:
        db = await init_db(tmp_path / "grid.db", legacy_history=tmp_path / "grid-status.json")
        assert await Repository(db).get_full_status_history() == []
        await close_db(db)
