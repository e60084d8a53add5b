"""Grid status inference and state tracking."""

from grid_watch.status.inference import StatusInference
from grid_watch.status.model import (
    GridStatus,
    GridStatusSnapshot,
    ScheduleReference,
    Signal,
    StatusRecord,
)
from grid_watch.status.tracker import GridStatusTracker

__all__ = [
    "GridStatus",
    "GridStatusSnapshot",
    "GridStatusTracker",
    "ScheduleReference",
    "Signal",
    "StatusInference",
    "StatusRecord",
]
