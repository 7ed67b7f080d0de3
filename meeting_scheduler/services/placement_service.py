"""Greedy placement of ordered meeting requests and schedule fitness.

An `Ordering` is a permutation of request indices. Applying it lays out each
request, in that order, at the earliest time no earlier than the anchor where
every attendee is free and some candidate room is free. The resulting
`ConstructedSchedule` is scored by `ConstructedSchedule.evaluate`.
"""

from __future__ import annotations

from bisect import insort
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from meeting_scheduler.domain.models import (
    Attendee,
    Room,
    ScheduledEvent,
    ScheduleRequest,
    TimeInterval,
)
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

# Retries allowed while placing one request before it is declared unschedulable.
MAX_PLACEMENT_ITERATIONS = 1000


class PlacementError(Exception):
    """Base exception for schedule construction failures."""


class PlacementNonConvergenceError(PlacementError):
    """Raised when a request cannot be placed within the iteration ceiling."""

    def __init__(self, request: ScheduleRequest, iterations: int, reason: str) -> None:
        self.request = request
        self.iterations = iterations
        self.reason = reason
        label = request.title or f"duration={request.duration}"
        super().__init__(
            f"Could not place request '{label}' after {iterations} iterations: {reason}"
        )


@dataclass
class AttendeeEvents:
    attendee: Attendee
    # Sorted by start; never empty once created.
    scheduled: list[ScheduledEvent] = field(default_factory=list)


@dataclass(frozen=True)
class _Conflict:
    end: datetime
    pause: timedelta


class ConstructedSchedule:
    """Events produced by one ordering, grouped per attendee for scoring."""

    def __init__(
        self,
        earliest: datetime,
        max_iterations: int = MAX_PLACEMENT_ITERATIONS,
    ) -> None:
        self.earliest = earliest
        self.events: list[ScheduledEvent] = []
        self.events_by_attendee: dict[str, AttendeeEvents] = {}
        self._max_iterations = max_iterations

    def add(self, request: ScheduleRequest) -> ScheduledEvent:
        """Place `request` at the earliest feasible time and room."""
        candidate = TimeInterval.starting_at(self.earliest, request.duration)
        iterations = 0
        while True:
            iterations += 1
            if iterations > self._max_iterations:
                logger.warning(
                    "Placement did not converge | title=%s | iterations=%s",
                    request.title,
                    self._max_iterations,
                )
                raise PlacementNonConvergenceError(
                    request,
                    self._max_iterations,
                    "too many iterations",
                )

            conflict = self._find_attendee_conflict(request, candidate)
            if conflict is not None:
                next_start = conflict.end + conflict.pause
                if next_start > candidate.start:
                    candidate = TimeInterval.starting_at(next_start, request.duration)
                continue

            busy_room_ids, next_start = self._find_busy_rooms(candidate)
            room, calendar_retry = self._find_available_room(request, candidate, busy_room_ids)
            if room is not None:
                break

            if calendar_retry is not None and (next_start is None or calendar_retry < next_start):
                next_start = calendar_retry
            if next_start is None:
                logger.warning(
                    "Placement cannot progress | title=%s | iterations=%s | rooms=%s",
                    request.title,
                    iterations,
                    len(request.possible_rooms),
                )
                raise PlacementNonConvergenceError(
                    request,
                    iterations,
                    "no candidate room can become available",
                )
            candidate = TimeInterval.starting_at(next_start, request.duration)

        event = ScheduledEvent(
            interval=candidate,
            room=room,
            attendees=request.attendees,
            request=request,
        )
        self.events.append(event)
        for attendee in request.attendees:
            entry = self.events_by_attendee.get(attendee.attendee_id)
            if entry is None:
                entry = AttendeeEvents(attendee=attendee)
                self.events_by_attendee[attendee.attendee_id] = entry
            insort(entry.scheduled, event, key=lambda item: item.start)
        return event

    def _find_attendee_conflict(
        self,
        request: ScheduleRequest,
        candidate: TimeInterval,
    ) -> Optional[_Conflict]:
        for attendee in request.attendees:
            external = attendee.calendar.overlap(candidate)
            if external is not None:
                return _Conflict(end=external.end, pause=attendee.preferred_pause)

            entry = self.events_by_attendee.get(attendee.attendee_id)
            if entry is None:
                continue
            for scheduled in entry.scheduled:
                # The pause is kept free on both sides of every placed event.
                if scheduled.interval.widened(attendee.preferred_pause).overlaps(candidate):
                    return _Conflict(end=scheduled.end, pause=attendee.preferred_pause)
        return None

    def _find_busy_rooms(
        self,
        candidate: TimeInterval,
    ) -> tuple[set[str], Optional[datetime]]:
        """Return rooms already booked over `candidate` and their earliest end."""
        busy_room_ids: set[str] = set()
        earliest_end: Optional[datetime] = None
        for event in self.events:
            if not event.interval.overlaps(candidate):
                continue
            busy_room_ids.add(event.room.room_id)
            if earliest_end is None or event.end < earliest_end:
                earliest_end = event.end
        return busy_room_ids, earliest_end

    def _find_available_room(
        self,
        request: ScheduleRequest,
        candidate: TimeInterval,
        busy_room_ids: set[str],
    ) -> tuple[Optional[Room], Optional[datetime]]:
        """Return the first free candidate room in listed order.

        When none is free, also return the earliest end among the room
        calendar conflicts that lie after the candidate start.
        """
        earliest_end: Optional[datetime] = None
        for room in request.possible_rooms:
            if room.room_id in busy_room_ids:
                continue
            conflict = room.calendar.overlap(candidate)
            if conflict is None:
                return room, None
            if conflict.end > candidate.start and (
                earliest_end is None or conflict.end < earliest_end
            ):
                earliest_end = conflict.end
        return None, earliest_end

    def evaluate(self) -> float:
        """Cost in seconds; lower is better.

        Every attendee pays for how late their first meeting starts after the
        anchor plus every gap between consecutive meetings beyond their
        preferred pause.
        """
        score = timedelta(0)
        for entry in self.events_by_attendee.values():
            scheduled = entry.scheduled
            score += scheduled[0].start - self.earliest
            pause = entry.attendee.preferred_pause
            for previous, current in zip(scheduled, scheduled[1:]):
                score += current.start - previous.end - pause
        return score.total_seconds()

    def pause_violations(self) -> list[tuple[str, ScheduledEvent, ScheduledEvent]]:
        """Consecutive attendee events closer than the attendee's preferred pause."""
        violations: list[tuple[str, ScheduledEvent, ScheduledEvent]] = []
        for attendee_id, entry in self.events_by_attendee.items():
            pause = entry.attendee.preferred_pause
            for previous, current in zip(entry.scheduled, entry.scheduled[1:]):
                if current.start - previous.end < pause:
                    violations.append((attendee_id, previous, current))
        return violations


@dataclass(frozen=True)
class Ordering:
    """Genome of the search: a permutation of indices into `requests`."""

    earliest: datetime
    requests: Sequence[ScheduleRequest] = field(repr=False, compare=False)
    order: tuple[int, ...]
    max_iterations: int = field(default=MAX_PLACEMENT_ITERATIONS, compare=False)

    def with_order(self, order: Sequence[int]) -> Ordering:
        return Ordering(
            earliest=self.earliest,
            requests=self.requests,
            order=tuple(order),
            max_iterations=self.max_iterations,
        )

    def schedule(self) -> ConstructedSchedule:
        """Lay out every request in this ordering's order."""
        constructed = ConstructedSchedule(self.earliest, max_iterations=self.max_iterations)
        for index in self.order:
            constructed.add(self.requests[index])
        return constructed

    def evaluate(self) -> float:
        return self.schedule().evaluate()
