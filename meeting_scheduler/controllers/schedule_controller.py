"""HTTP controller layer translating meeting requests in and events out."""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from meeting_scheduler.controllers.dependencies import get_app_settings, get_calendar_repository
from meeting_scheduler.domain.models import (
    Attendee,
    Room,
    ScheduleRequest,
    TimeInterval,
    is_aware,
)
from meeting_scheduler.repository.calendar_repository import (
    CalendarRepository,
    CalendarStoreError,
    OwnerKind,
)
from meeting_scheduler.services.placement_service import PlacementNonConvergenceError
from meeting_scheduler.services.scheduling_service import (
    MeetingScheduler,
    SchedulingValidationError,
)
from meeting_scheduler.utils.config import Settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["scheduling"])


class CalendarEventRequest(BaseModel):
    owner_kind: OwnerKind
    owner_id: str = Field(min_length=1)
    start: datetime
    end: datetime
    summary: str = ""

    @model_validator(mode="after")
    def validate_interval(self) -> "CalendarEventRequest":
        if is_aware(self.start) != is_aware(self.end):
            raise ValueError("start and end must both carry a UTC offset or neither")
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self


class CalendarEventResponse(BaseModel):
    event_id: int = Field(gt=0)


class AttendeePayload(BaseModel):
    attendee_id: str = Field(min_length=1)
    preferred_pause_minutes: int = Field(default=0, ge=0)


class MeetingRequestPayload(BaseModel):
    title: str = ""
    duration_minutes: int = Field(gt=0)
    attendees: list[AttendeePayload] = Field(default_factory=list)
    room_ids: list[str] = Field(min_length=1)


class ScheduleMeetingsRequest(BaseModel):
    earliest: datetime
    requests: list[MeetingRequestPayload]
    generations: int | None = Field(default=None, ge=0)
    random_seed: int | None = Field(default=None, ge=0)


class ScheduledEventResponse(BaseModel):
    title: str
    start: datetime
    end: datetime
    room_id: str
    attendee_ids: list[str]


class ScheduleMeetingsResponse(BaseModel):
    events: list[ScheduledEventResponse]
    cost_seconds: float
    generations_run: int = Field(ge=0)
    cancelled: bool


def _build_requests(
    payload: ScheduleMeetingsRequest,
    repository: CalendarRepository,
) -> list[ScheduleRequest]:
    attendees: dict[tuple[str, int], Attendee] = {}
    rooms: dict[str, Room] = {}
    requests: list[ScheduleRequest] = []
    for item in payload.requests:
        request_attendees = []
        for attendee in item.attendees:
            key = (attendee.attendee_id, attendee.preferred_pause_minutes)
            if key not in attendees:
                attendees[key] = Attendee(
                    attendee_id=attendee.attendee_id,
                    calendar=repository.calendar_for(OwnerKind.ATTENDEE, attendee.attendee_id),
                    preferred_pause=timedelta(minutes=attendee.preferred_pause_minutes),
                )
            request_attendees.append(attendees[key])
        request_rooms = []
        for room_id in item.room_ids:
            if room_id not in rooms:
                rooms[room_id] = Room(
                    room_id=room_id,
                    calendar=repository.calendar_for(OwnerKind.ROOM, room_id),
                )
            request_rooms.append(rooms[room_id])
        requests.append(
            ScheduleRequest(
                duration=timedelta(minutes=item.duration_minutes),
                attendees=tuple(request_attendees),
                possible_rooms=tuple(request_rooms),
                title=item.title,
            )
        )
    return requests


@router.post(
    "/calendar_events",
    response_model=CalendarEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_calendar_event(
    payload: CalendarEventRequest,
    repository: CalendarRepository = Depends(get_calendar_repository),
) -> CalendarEventResponse:
    """Register a pre-existing busy interval for an attendee or room."""
    try:
        event_id = repository.add_event(
            payload.owner_kind,
            payload.owner_id,
            TimeInterval(start=payload.start, end=payload.end),
            payload.summary,
        )
        return CalendarEventResponse(event_id=event_id)
    except CalendarStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.post(
    "/schedule",
    response_model=ScheduleMeetingsResponse,
    status_code=status.HTTP_200_OK,
)
def schedule_meetings(
    payload: ScheduleMeetingsRequest,
    repository: CalendarRepository = Depends(get_calendar_repository),
    settings: Settings = Depends(get_app_settings),
) -> ScheduleMeetingsResponse:
    """Run the scheduler against calendars from the calendar store."""
    try:
        requests = _build_requests(payload, repository)
        scheduler = MeetingScheduler(
            payload.earliest,
            requests,
            settings=settings,
            generations=payload.generations,
            random_seed=payload.random_seed,
        )
        result = scheduler.run_detailed()
        return ScheduleMeetingsResponse(
            events=[
                ScheduledEventResponse(
                    title=event.request.title,
                    start=event.start,
                    end=event.end,
                    room_id=event.room.room_id,
                    attendee_ids=[attendee.attendee_id for attendee in event.attendees],
                )
                for event in result.events
            ],
            cost_seconds=result.cost,
            generations_run=result.generations_run,
            cancelled=result.cancelled,
        )
    except SchedulingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PlacementNonConvergenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except CalendarStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected scheduling failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to schedule meetings",
        ) from exc
