"""Recent log entries kept in memory for the ``/api/logs`` endpoint."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class BufferedLogEntry:
    timestamp: str
    level: str
    logger: str
    message: str

    def matches(self, level: str | None, logger_prefix: str | None) -> bool:
        if level and self.level != level.upper():
            return False
        return not logger_prefix or self.logger.startswith(logger_prefix)


class RingBufferHandler(logging.Handler):
    """Keeps the last ``capacity`` formatted records, oldest dropped first."""

    def __init__(self, capacity: int = 500) -> None:
        super().__init__()
        self._entries: deque[BufferedLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        with self._lock:
            self._entries.append(
                BufferedLogEntry(created.isoformat(), record.levelname, record.name, message)
            )

    def get_records(
        self,
        limit: int = 200,
        level: str | None = None,
        logger_prefix: str | None = None,
    ) -> list[dict]:
        """Newest first, optionally filtered by exact level and logger prefix."""
        with self._lock:
            snapshot = list(self._entries)
        selected = [e for e in reversed(snapshot) if e.matches(level, logger_prefix)]
        return [asdict(e) for e in selected[:limit]]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


log_buffer = RingBufferHandler(capacity=1000)
log_buffer.setFormatter(logging.Formatter("%(message)s"))
