"""Domain models for meeting requests, calendars, and scheduled events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable


def is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() is not None


def to_utc_naive(value: datetime) -> datetime:
    """Return `value` as a naive UTC instant. Naive values are taken as UTC."""
    if not is_aware(value):
        return value.replace(tzinfo=None)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_utc_naive(value: datetime, reference: datetime) -> datetime:
    """Express a naive UTC instant with the same awareness as `reference`."""
    if is_aware(reference):
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval: `start` is inclusive, `end` is exclusive."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if is_aware(self.start) != is_aware(self.end):
            raise ValueError(
                "TimeInterval start and end must both be naive or both be timezone-aware"
            )
        if not self.start < self.end:
            raise ValueError(
                f"TimeInterval start must be before end (start={self.start}, end={self.end})"
            )

    @classmethod
    def starting_at(cls, start: datetime, duration: timedelta) -> TimeInterval:
        return cls(start=start, end=start + duration)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def timezone_aware(self) -> bool:
        return is_aware(self.start)

    def to_utc_naive(self) -> TimeInterval:
        return TimeInterval(start=to_utc_naive(self.start), end=to_utc_naive(self.end))

    def overlaps(self, other: TimeInterval) -> bool:
        # Touching endpoints do not overlap.
        if self.end <= other.start:
            return False
        if other.end <= self.start:
            return False
        return True

    def widened(self, padding: timedelta) -> TimeInterval:
        """Return the interval grown by `padding` on both sides."""
        if not padding:
            return self
        return TimeInterval(start=self.start - padding, end=self.end + padding)


@dataclass(frozen=True)
class CalendarEvent:
    """A pre-existing busy interval reported by a calendar."""

    interval: TimeInterval
    summary: str = ""

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


@runtime_checkable
class Calendar(Protocol):
    """External calendar capability implemented by attendees' and rooms' sources.

    `overlap` returns a conflicting event, or None when the interval is free.
    Failures are raised and must not be swallowed by callers. Implementations
    must tolerate concurrent calls. The bundled sources take naive instants as
    UTC and answer in the awareness of the queried interval.
    """

    def overlap(self, interval: TimeInterval) -> Optional[CalendarEvent]:
        ...


@dataclass(frozen=True)
class Attendee:
    attendee_id: str
    calendar: Calendar = field(compare=False)
    preferred_pause: timedelta = timedelta(0)


@dataclass(frozen=True)
class Room:
    room_id: str
    calendar: Calendar = field(compare=False)


@dataclass(frozen=True, eq=False)
class ScheduleRequest:
    """A meeting to be placed.

    Equality is identity: two requests with the same shape are still distinct
    meetings and each gets its own event.
    """

    duration: timedelta
    attendees: tuple[Attendee, ...] = ()
    possible_rooms: tuple[Room, ...] = ()
    title: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "attendees", tuple(self.attendees))
        object.__setattr__(self, "possible_rooms", tuple(self.possible_rooms))


@dataclass(frozen=True)
class ScheduledEvent:
    """A request resolved to a concrete time and room."""

    interval: TimeInterval
    room: Room
    attendees: tuple[Attendee, ...]
    request: ScheduleRequest

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end
