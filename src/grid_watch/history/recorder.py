"""Fire-and-forget bridge from the status tracker to the history repository."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from datetime import datetime

from grid_watch.db.repository import Repository
from grid_watch.status.model import GridStatus, ScheduleReference

logger = logging.getLogger(__name__)

PendingWrite = asyncio.Task | concurrent.futures.Future


class HistoryRecorder:
    """History sink for :class:`GridStatusTracker`.

    The tracker calls this synchronously from the message pipeline.  Each
    call schedules the database write on the recorder's loop and returns
    immediately: as a task when called on that loop, through
    ``run_coroutine_threadsafe`` when called from another thread.  Write
    failures are logged from the done callback.

    The loop is the one running when the recorder is created, or else the
    first one it is called on.
    """

    def __init__(
        self,
        repo: Repository,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._repo = repo
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        self._loop = loop
        self._pending: set[PendingWrite] = set()
        self._pending_lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def __call__(
        self,
        timestamp: datetime,
        status: GridStatus,
        schedule_ref: ScheduleReference | None,
    ) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None:
            self._loop = running

        if self._loop is None or self._loop.is_closed():
            logger.warning(
                "No event loop for history writes; grid status %s at %s not recorded",
                status.value, timestamp.isoformat(),
            )
            return

        write = self._repo.append_status_record(timestamp, status, schedule_ref)
        pending: PendingWrite
        if running is self._loop:
            pending = self._loop.create_task(write, name="grid_status_history_write")
        else:
            pending = asyncio.run_coroutine_threadsafe(write, self._loop)
        with self._pending_lock:
            self._pending.add(pending)
        pending.add_done_callback(self._on_done)

    def _on_done(self, pending: PendingWrite) -> None:
        with self._pending_lock:
            self._pending.discard(pending)
        if pending.cancelled():
            logger.warning("Grid status history write cancelled")
            return
        exc = pending.exception()
        if exc is not None:
            logger.error("Grid status history write failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for all scheduled writes to finish.  Call on the recorder's loop."""
        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return
            await asyncio.gather(
                *(asyncio.wrap_future(p) if isinstance(p, concurrent.futures.Future) else p
                  for p in pending),
                return_exceptions=True,
            )
