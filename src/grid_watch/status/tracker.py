"""Current grid status, transition detection and notification."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from grid_watch.status.model import GridStatus, GridStatusSnapshot, ScheduleReference, Signal

logger = logging.getLogger(__name__)

# (timestamp, new status, schedule reference) -> None or awaitable
HistorySink = Callable[[datetime, GridStatus, "ScheduleReference | None"], Any]
ScheduleAccessor = Callable[[], "ScheduleReference | None"]
OnlineCallback = Callable[[], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GridStatusTracker:
    """Owns the grid status value for one device.

    The only transition payload content can request is to ONLINE.  The
    transport layer drives the status back to UNKNOWN on disconnect.
    Every realised transition is appended to history; arriving at ONLINE
    from OFFLINE or UNKNOWN also fires the online callback.  Failures in
    either side effect are logged and never undo the status change.
    """

    def __init__(
        self,
        history_sink: HistorySink | None = None,
        schedule_accessor: ScheduleAccessor | None = None,
        on_online: OnlineCallback | None = None,
        device_group: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._history_sink = history_sink
        self._schedule_accessor = schedule_accessor
        self._on_online = on_online
        self._device_group = device_group
        self._clock = clock

        self._lock = threading.RLock()
        self._status = GridStatus.UNKNOWN
        self._last_update: datetime | None = None
        self._connected = False

    @property
    def status(self) -> GridStatus:
        with self._lock:
            return self._status

    def snapshot(self) -> GridStatusSnapshot:
        with self._lock:
            return GridStatusSnapshot(
                status=self._status,
                last_update=self._last_update,
                connected=self._connected,
                device_group=self._device_group,
            )

    # ── Inputs ────────────────────────────────────────

    def apply_signal(self, signal: Signal) -> bool:
        """Apply a signal from the inference engine.

        Returns True if the status changed.
        """
        if signal.status is not GridStatus.ONLINE:
            logger.warning(
                "Ignoring %s signal from %s: payload can only report online",
                signal.status.value, signal.source,
            )
            return False
        return self._transition(GridStatus.ONLINE, signal.source)

    def touch(self) -> None:
        """Record that telemetry arrived without changing the status."""
        with self._lock:
            self._last_update = self._clock()

    def transport_connected(self) -> None:
        with self._lock:
            self._connected = True

    def transport_disconnected(self) -> bool:
        """Mark the transport down and reset the status to UNKNOWN."""
        with self._lock:
            self._connected = False
        return self._transition(GridStatus.UNKNOWN, "transport disconnected")

    # ── Transitions ───────────────────────────────────

    def _transition(self, new_status: GridStatus, source: str) -> bool:
        # History and callback run outside the lock
        with self._lock:
            previous = self._status
            now = self._clock()
            self._last_update = now
            if new_status == previous:
                return False
            self._status = new_status

        logger.info(
            "Grid status changed: %s -> %s (%s)",
            previous.value, new_status.value, source,
        )
        self._record(now, new_status)

        if new_status is GridStatus.ONLINE and previous in (
            GridStatus.OFFLINE, GridStatus.UNKNOWN,
        ):
            self._notify_online()
        return True

    def _record(self, timestamp: datetime, status: GridStatus) -> None:
        schedule_ref: ScheduleReference | None = None
        if self._schedule_accessor is not None:
            try:
                schedule_ref = self._schedule_accessor()
            except Exception:
                logger.warning("Schedule reference lookup failed", exc_info=True)

        if self._history_sink is None:
            return
        try:
            self._history_sink(timestamp, status, schedule_ref)
        except Exception:
            logger.exception("Failed to record grid status change to %s", status.value)

    def _notify_online(self) -> None:
        if self._on_online is None:
            return
        try:
            self._on_online()
        except Exception:
            logger.exception("Error in grid online callback")
