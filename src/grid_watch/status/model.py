"""Grid status data model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class GridStatus(str, Enum):
    """Mains power availability as inferred from device telemetry."""

    UNKNOWN = "unknown"
    OFFLINE = "offline"
    ONLINE = "online"


@dataclass(frozen=True)
class ScheduleReference:
    """Identity of the outage schedule active when a status change happened."""

    date_key: str
    fetched_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"date_key": self.date_key, "fetched_at": self.fetched_at}


@dataclass(frozen=True)
class Signal:
    """A status request emitted by the inference engine."""

    status: GridStatus
    source: str


@dataclass(frozen=True)
class StatusRecord:
    """One row of grid status history."""

    timestamp: str  # ISO-8601, UTC
    status: GridStatus
    schedule_ref: ScheduleReference | None = None
    manual: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "status": self.status.value,
            "schedule_ref": self.schedule_ref.to_dict() if self.schedule_ref else None,
            "manual": self.manual,
        }


@dataclass(frozen=True)
class GridStatusSnapshot:
    """Consistent read-only view of the tracker state."""

    status: GridStatus
    last_update: datetime | None
    connected: bool
    device_group: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "connected": self.connected,
            "device_group": self.device_group,
        }
