"""REST API endpoints returning JSON data."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from grid_watch.dashboard.log_buffer import log_buffer
from grid_watch.status.model import GridStatus

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Request models ───────────────────────────────────

class ManualRecordRequest(BaseModel):
    timestamp: str
    status: Literal["online", "offline"]


# ── Grid status ──────────────────────────────────────

@router.get("/grid-status")
async def grid_status(request: Request) -> dict:
    """Current grid status snapshot."""
    monitor = request.app.state.monitor
    config = request.app.state.config
    if monitor is None:
        return {
            "status": GridStatus.UNKNOWN.value,
            "last_update": None,
            "connected": False,
            "device_group": config.ecoflow.device_group or None,
            "enabled": False,
        }
    return {**monitor.get_grid_status().to_dict(), "enabled": True}


# ── History ──────────────────────────────────────────

@router.get("/grid-history")
async def grid_history(
    request: Request,
    limit: int = Query(50, ge=1, le=10000),
) -> dict:
    """Most recent status records, oldest first."""
    repo = request.app.state.repo
    records = await repo.get_recent_status_history(limit)
    return {"history": [r.to_dict() for r in records]}


@router.post("/grid-history", status_code=201)
async def add_grid_history(request: Request, body: ManualRecordRequest) -> dict:
    """Insert a manual correction with a custom timestamp."""
    repo = request.app.state.repo
    try:
        record = await repo.add_manual_status_record(body.timestamp, body.status)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid timestamp: {e}") from e
    return record.to_dict()


@router.delete("/grid-history/{timestamp}")
async def delete_grid_history(request: Request, timestamp: str) -> dict:
    """Delete the record(s) at an exact timestamp."""
    repo = request.app.state.repo
    try:
        deleted = await repo.delete_status_record(timestamp)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid timestamp: {e}") from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"deleted": True, "timestamp": timestamp}


# ── Logs ─────────────────────────────────────────────

@router.get("/logs")
async def recent_logs(
    limit: int = Query(200, ge=1, le=1000),
    level: str | None = None,
    logger_prefix: str | None = None,
) -> dict:
    return {"logs": log_buffer.get_records(limit=limit, level=level, logger_prefix=logger_prefix)}
