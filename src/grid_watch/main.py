"""Grid Watch application entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → SQLite → history recorder → status tracker →
  monitor → EcoFlow credentials → MQTT listener → API server
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path

from grid_watch import __version__
from grid_watch.config.manager import ConfigManager
from grid_watch.config.schema import AppConfig
from grid_watch.db.engine import close_db, init_db
from grid_watch.db.migrations import LEGACY_HISTORY_FILENAME
from grid_watch.db.repository import Repository
from grid_watch.ecoflow.credentials import CredentialError, EcoFlowAuthClient
from grid_watch.ecoflow.monitor import GridMonitor
from grid_watch.ecoflow.topics import mask_serial
from grid_watch.history.recorder import HistoryRecorder
from grid_watch.logging.structured import DEVICE_DEBUG_LOGGERS, setup_logging
from grid_watch.status.tracker import GridStatusTracker, OnlineCallback, ScheduleAccessor

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires all modules together and manages startup/shutdown ordering.
    ``schedule_accessor`` and ``on_grid_online`` are the hooks for the
    outage-schedule and notification subsystems of the host.
    """

    def __init__(
        self,
        config: AppConfig,
        schedule_accessor: ScheduleAccessor | None = None,
        on_grid_online: OnlineCallback | None = None,
    ) -> None:
        self.config = config
        self._schedule_accessor = schedule_accessor
        self._on_grid_online = on_grid_online
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

        self._db = None
        self._recorder: HistoryRecorder | None = None
        self._mqtt_client = None
        self._server = None
        self.monitor: GridMonitor | None = None

    async def start(self) -> None:
        """Start all application components in dependency order."""
        logger.info("Starting Grid Watch v%s", __version__)
        self._running = True
        self._stop_event.clear()

        # ── 1. Database ──────────────────────────────────────
        db_path = Path(self.config.db.path)
        self._db = await init_db(
            db_path, legacy_history=db_path.parent / LEGACY_HISTORY_FILENAME,
        )
        repo = Repository(self._db)
        last = await repo.get_latest_status_record()
        if last is not None:
            logger.info("Last recorded grid status: %s at %s", last.status.value, last.timestamp)

        # ── 2. Status tracking ───────────────────────────────
        self._recorder = HistoryRecorder(repo)
        tracker = GridStatusTracker(
            history_sink=self._recorder,
            schedule_accessor=self._schedule_accessor,
            on_online=self._handle_grid_online,
            device_group=self.config.ecoflow.device_group or None,
        )
        self.monitor = GridMonitor(tracker)

        # ── 3. Device connection ─────────────────────────────
        ecoflow = self.config.ecoflow
        if ecoflow.enabled:
            await self._start_device_listener()
        else:
            logger.info("EcoFlow integration disabled (missing credentials)")

        # ── 4. API server ────────────────────────────────────
        if self.config.dashboard.enabled:
            await self._serve_api(repo)
        else:
            await self._stop_event.wait()

    async def _start_device_listener(self) -> None:
        from grid_watch.mqtt.client import DeviceMQTTClient

        ecoflow = self.config.ecoflow
        logger.info("Initialising device %s", mask_serial(ecoflow.device_sn))
        auth = EcoFlowAuthClient(ecoflow)
        try:
            credentials = await auth.fetch_credentials()
        except CredentialError as e:
            logger.error("EcoFlow initialisation failed: %s", e)
            return
        finally:
            await auth.close()

        self._mqtt_client = DeviceMQTTClient(
            credentials,
            ecoflow.device_sn,
            self.monitor,
            self.config.mqtt,
            request_status_on_connect=ecoflow.request_status_on_connect,
        )
        self._tasks.append(asyncio.create_task(
            self._mqtt_client.run(), name="mqtt_listener",
        ))

    async def _serve_api(self, repo: Repository) -> None:
        import uvicorn

        from grid_watch.dashboard.app import create_app

        app = create_app(self.config, repo, monitor=self.monitor)

        uvi_config = uvicorn.Config(
            app,
            host=self.config.dashboard.host,
            port=self.config.dashboard.port,
            log_level="warning",
        )
        server = uvicorn.Server(uvi_config)
        # Keep process signal handling in main() so Ctrl+C behaviour is predictable.
        server.install_signal_handlers = lambda: None
        self._server = server

        logger.info(
            "API available at http://%s:%d",
            self.config.dashboard.host,
            self.config.dashboard.port,
        )
        await server.serve()

    def _handle_grid_online(self) -> None:
        logger.info("Grid power restored")
        if self._on_grid_online is not None:
            self._on_grid_online()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse order."""
        if not self._running:
            return

        logger.info("Shutting down Grid Watch")
        self._running = False
        self._stop_event.set()

        if self._server is not None:
            self._server.should_exit = True

        if self._mqtt_client is not None:
            self._mqtt_client.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        # Disconnect may have queued a final history write
        if self._recorder is not None:
            await self._recorder.drain()

        if self._db is not None:
            await close_db(self._db)
            self._db = None
        self._server = None
        logger.info("Shutdown complete")


def main() -> None:
    """Entry point for the application."""
    config_manager = ConfigManager(Path("config.defaults.yaml"), Path("config.yaml"))
    config = config_manager.load()

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
        debug_loggers=DEVICE_DEBUG_LOGGERS if config.ecoflow.debug else (),
    )

    app = Application(config)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
        finally:
            if app._running:
                with contextlib.suppress(Exception):
                    await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
