"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from meeting_scheduler.repository.calendar_repository import CalendarRepository
from meeting_scheduler.utils.config import Settings, get_settings


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_calendar_repository(request: Request) -> CalendarRepository:
    repository = getattr(request.app.state, "calendar_repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar store is not initialized",
        )
    return repository
