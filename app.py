"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires settings and the calendar store, registers routers, and runs
startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from meeting_scheduler.controllers.schedule_controller import router as schedule_router
from meeting_scheduler.repository.calendar_repository import CalendarRepository
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    The scheduler itself is created per request; only the settings and the
    calendar store live on app.state.
    """
    settings = settings or get_settings()
    calendar_repository = CalendarRepository(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the calendar schema before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.include_router(schedule_router)

    app.state.settings = settings
    app.state.calendar_repository = calendar_repository

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: CalendarRepository = app.state.calendar_repository

    logger.info("Startup: initializing calendar store schema")
    repository.initialize_database()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
