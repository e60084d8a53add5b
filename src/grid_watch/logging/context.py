"""Log context enrichment utilities."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog


@contextmanager
def bound_context(**kwargs: object) -> Iterator[None]:
    """Bind keys to the task-local logging context for the duration of a block."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
