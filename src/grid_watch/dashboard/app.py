"""FastAPI application factory for the Grid Watch API."""

from __future__ import annotations

from fastapi import FastAPI, Request

from grid_watch import __version__
from grid_watch.config.schema import AppConfig
from grid_watch.db.repository import Repository
from grid_watch.ecoflow.monitor import GridMonitor


def create_app(
    config: AppConfig,
    repo: Repository,
    monitor: GridMonitor | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Grid Watch",
        description="Mains power availability from battery station telemetry",
        version=__version__,
    )

    @app.middleware("http")
    async def disable_browser_cache(request: Request, call_next):
        response = await call_next(request)
        if request.method in {"GET", "HEAD"}:
            # Status changes must be visible on the next poll.
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    app.state.config = config
    app.state.repo = repo
    app.state.monitor = monitor

    from grid_watch.dashboard.routes.api import router as api_router

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
