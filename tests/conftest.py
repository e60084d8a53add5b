"""Shared test fixtures for Grid Watch."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from grid_watch.config.manager import ConfigManager
from grid_watch.config.schema import AppConfig
from grid_watch.db.engine import init_db
from grid_watch.db.repository import Repository
from grid_watch.status.model import GridStatus, ScheduleReference
from grid_watch.wire.encoder import encode_message
from grid_watch.wire.envelope import Envelope, HeaderEntry, encode_envelope
from grid_watch.wire.obfuscation import apply_xor


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths and no environment overrides."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("db:\n  path: ':memory:'\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user, environ={})
    mgr.load()
    return mgr


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def repo(db: aiosqlite.Connection) -> Repository:
    """Provide a repository with a fresh database."""
    return Repository(db)


class RecordingSink:
    """History sink that keeps every call in memory."""

    def __init__(self) -> None:
        self.records: list[tuple[object, GridStatus, ScheduleReference | None]] = []

    def __call__(self, timestamp, status, schedule_ref) -> None:
        self.records.append((timestamp, status, schedule_ref))

    @property
    def statuses(self) -> list[GridStatus]:
        return [status for _, status, _ in self.records]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


def build_heartbeat(
    power_source: int,
    battery_pct: int = 85,
    key: int = 0x5A,
    command_function: int = 1,
    command_id: int = 1,
) -> bytes:
    """Build a full MQTT payload carrying one obfuscated heartbeat entry."""
    inner = encode_message({1: {1: power_source, 9: battery_pct}, 2: {4: 1, 5: 300}})
    entry = HeaderEntry(
        payload=apply_xor(inner, key),
        source=32,
        destination=32,
        command_function=command_function,
        command_id=command_id,
        encryption_type=1,
        sequence=1234,
    )
    return encode_envelope(Envelope(headers=[entry]))


@pytest.fixture
def make_heartbeat():
    """Factory for heartbeat payloads, see :func:`build_heartbeat`."""
    return build_heartbeat
