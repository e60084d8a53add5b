"""Structured logging setup using structlog.

All modules log through stdlib ``logging``; structlog renders every record
(JSON in production, coloured console in development) and merges the
task-local context bound with :func:`grid_watch.logging.context.bound_context`.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable

import structlog

from grid_watch.dashboard.log_buffer import log_buffer

# Loggers raised to DEBUG when device debugging is switched on
DEVICE_DEBUG_LOGGERS = ("grid_watch.ecoflow", "grid_watch.status", "grid_watch.mqtt")

QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "httpx")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: str = "",
    debug_loggers: Iterable[str] = (),
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Output format - "json" for production, "console" for development.
        log_file: Optional file path for log output. Empty = stdout only.
        debug_loggers: Logger names forced to DEBUG regardless of ``level``.
    """
    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(fmt),
        ],
    )
    outputs: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        outputs.append(logging.FileHandler(log_file))
    for handler in outputs:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    # The API log view keeps its own plain message formatter
    for handler in (*outputs, log_buffer):
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in debug_loggers:
        logging.getLogger(name).setLevel(logging.DEBUG)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
