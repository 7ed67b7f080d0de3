from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from meeting_scheduler.domain.models import Calendar, ScheduleRequest, TimeInterval
from meeting_scheduler.repository.calendar_repository import InMemoryCalendar


MONDAY_9 = datetime(2019, 12, 2, 9, 0)


def _interval(start_minutes: int, end_minutes: int) -> TimeInterval:
    return TimeInterval(
        start=MONDAY_9 + timedelta(minutes=start_minutes),
        end=MONDAY_9 + timedelta(minutes=end_minutes),
    )


def test_partially_overlapping_intervals_overlap():
    first = _interval(0, 60)
    second = _interval(30, 90)

    assert first.overlaps(second)
    assert second.overlaps(first)


def test_touching_intervals_do_not_overlap():
    first = _interval(0, 60)
    touching = _interval(60, 90)

    assert not first.overlaps(touching)
    assert not touching.overlaps(first)


def test_contained_interval_overlaps():
    outer = _interval(0, 120)
    inner = _interval(30, 45)

    assert outer.overlaps(inner)
    assert inner.overlaps(outer)


def test_overlap_is_symmetric_for_mixed_pairs():
    intervals = [
        _interval(0, 60),
        _interval(30, 90),
        _interval(60, 90),
        _interval(90, 120),
        _interval(-30, 200),
    ]
    for first in intervals:
        for second in intervals:
            assert first.overlaps(second) == second.overlaps(first)


def test_interval_requires_start_before_end():
    with pytest.raises(ValueError):
        TimeInterval(start=MONDAY_9, end=MONDAY_9)


def test_widened_interval_pads_both_sides():
    widened = _interval(60, 120).widened(timedelta(minutes=15))

    assert widened == _interval(45, 135)
    assert _interval(60, 120).widened(timedelta(0)) == _interval(60, 120)


def test_requests_with_same_shape_are_distinct():
    first = ScheduleRequest(duration=timedelta(minutes=30))
    second = ScheduleRequest(duration=timedelta(minutes=30))

    assert first != second
    assert len({first, second}) == 2


def test_in_memory_calendar_satisfies_calendar_protocol():
    calendar = InMemoryCalendar([_interval(0, 60)])

    assert isinstance(calendar, Calendar)
    assert calendar.overlap(_interval(30, 45)).interval == _interval(0, 60)
    assert calendar.overlap(_interval(60, 90)) is None


def test_interval_rejects_mixed_naive_and_aware_endpoints():
    with pytest.raises(ValueError, match="naive"):
        TimeInterval(start=MONDAY_9, end=datetime(2019, 12, 2, 10, 0, tzinfo=timezone.utc))


def test_in_memory_calendar_answers_in_the_query_awareness():
    plus_one = timezone(timedelta(hours=1))
    calendar = InMemoryCalendar(
        [
            TimeInterval(
                start=datetime(2019, 12, 2, 10, 0, tzinfo=plus_one),
                end=datetime(2019, 12, 2, 11, 0, tzinfo=plus_one),
            )
        ]
    )

    naive_hit = calendar.overlap(_interval(30, 45))
    aware_hit = calendar.overlap(
        TimeInterval(
            start=datetime(2019, 12, 2, 9, 30, tzinfo=timezone.utc),
            end=datetime(2019, 12, 2, 9, 45, tzinfo=timezone.utc),
        )
    )

    assert naive_hit.interval == _interval(0, 60)
    assert aware_hit.start == datetime(2019, 12, 2, 9, 0, tzinfo=timezone.utc)
    assert calendar.overlap(_interval(60, 90)) is None
