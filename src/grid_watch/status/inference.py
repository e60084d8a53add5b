"""Grid status inference from decoded heartbeat telemetry.

Trust policy (RIVER 3):

  HeartbeatPack (cmd_func=1, cmd_id=1)
    f1.f1 = 2  → AC charging → grid ONLINE
    f1.f1 = 1  → battery mode → ambiguous, ignored

f1.f1 = 1 is emitted when the grid is down, but also when the grid is up
and the battery is full or charging is paused, so it cannot signal an
outage.  Fields that were tried and produced false positives on ordinary
charging-mode changes, and are therefore not consulted:

  - f2.f4 from HeartbeatPack (inverter/flow state)
  - DisplayPropertyUpload AC input flags (fields 61, 47, 54, 202)

Nothing here can report OFFLINE.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from grid_watch.status.model import GridStatus, Signal
from grid_watch.wire.envelope import HeaderEntry
from grid_watch.wire.fields import FieldMap

logger = logging.getLogger(__name__)

HEARTBEAT_COMMAND_FUNCTION = 1
HEARTBEAT_COMMAND_ID = 1

POWER_SOURCE_PATH = "f1.f1"
BATTERY_LEVEL_PATH = "f1.f9"  # Logged only
POWER_SOURCE_AC_CHARGING = 2

AC_CHARGING_SOURCE = "heartbeat.f1.f1=2 (AC charging)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_heartbeat(entry: HeaderEntry) -> bool:
    return (
        entry.command_function == HEARTBEAT_COMMAND_FUNCTION
        and entry.command_id == HEARTBEAT_COMMAND_ID
    )


class StatusInference:
    """Turns a header entry and its decoded fields into at most one signal."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._last_heartbeat: datetime | None = None
        self._heartbeats = 0

    @property
    def last_heartbeat(self) -> datetime | None:
        """When the last heartbeat was accepted, signal or not."""
        return self._last_heartbeat

    @property
    def heartbeat_count(self) -> int:
        return self._heartbeats

    def infer(self, entry: HeaderEntry, fields: FieldMap) -> Signal | None:
        if not is_heartbeat(entry):
            return None

        self._last_heartbeat = self._clock()
        self._heartbeats += 1

        power_source = fields.get_int(POWER_SOURCE_PATH)
        logger.debug(
            "Heartbeat: f1.f1=%s battery=%s%%",
            power_source, fields.get(BATTERY_LEVEL_PATH),
        )

        if power_source == POWER_SOURCE_AC_CHARGING:
            return Signal(status=GridStatus.ONLINE, source=AC_CHARGING_SOURCE)
        return None
