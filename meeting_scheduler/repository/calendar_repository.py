"""Calendar data sources implementing the `Calendar` capability."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional

from meeting_scheduler.domain.models import (
    CalendarEvent,
    TimeInterval,
    from_utc_naive,
    to_utc_naive,
)
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


class CalendarStoreError(Exception):
    """Raised when the calendar store cannot be read or written."""


class OwnerKind(str, Enum):
    ATTENDEE = "attendee"
    ROOM = "room"


def _event_for_query(
    event: CalendarEvent,
    start_utc: datetime,
    end_utc: datetime,
    query: TimeInterval,
) -> CalendarEvent:
    if event.interval.timezone_aware == query.timezone_aware:
        return event
    return CalendarEvent(
        interval=TimeInterval(
            start=from_utc_naive(start_utc, query.start),
            end=from_utc_naive(end_utc, query.start),
        ),
        summary=event.summary,
    )


class InMemoryCalendar:
    """Read-only calendar over a fixed list of busy intervals."""

    def __init__(self, busy: Iterable[TimeInterval | CalendarEvent] = ()) -> None:
        events = [
            item if isinstance(item, CalendarEvent) else CalendarEvent(interval=item)
            for item in busy
        ]
        # (utc start, utc end, original event), ordered on UTC instants.
        self._entries = sorted(
            (
                (to_utc_naive(event.start), to_utc_naive(event.end), event)
                for event in events
            ),
            key=lambda entry: (entry[0], entry[1]),
        )

    @property
    def events(self) -> list[CalendarEvent]:
        return [event for _, _, event in self._entries]

    def overlap(self, interval: TimeInterval) -> Optional[CalendarEvent]:
        query = interval.to_utc_naive()
        for start_utc, end_utc, event in self._entries:
            if start_utc < query.end and query.start < end_utc:
                return _event_for_query(event, start_utc, end_utc, interval)
        return None


class StoredCalendar:
    """Calendar capability backed by one owner's rows in `CalendarRepository`."""

    def __init__(self, repository: CalendarRepository, owner_kind: OwnerKind, owner_id: str) -> None:
        self._repository = repository
        self.owner_kind = owner_kind
        self.owner_id = owner_id

    def overlap(self, interval: TimeInterval) -> Optional[CalendarEvent]:
        return self._repository.find_overlap(self.owner_kind, self.owner_id, interval)


class CalendarRepository:
    """SQLite store of pre-existing busy intervals for attendees and rooms.

    Instants are written as naive UTC ISO-8601 text with a fixed precision, so
    lexical comparison in SQL orders them chronologically whatever offset the
    caller used. Naive instants are taken as UTC.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # One connection per call keeps concurrent evaluations independent.
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def initialize_database(self) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS CalendarEvents (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_kind TEXT NOT NULL CHECK (owner_kind IN ('attendee', 'room')),
                        owner_id TEXT NOT NULL,
                        start_at TEXT NOT NULL,
                        end_at TEXT NOT NULL,
                        summary TEXT NOT NULL DEFAULT '',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (start_at < end_at)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_calendar_owner_window
                    ON CalendarEvents(owner_kind, owner_id, start_at, end_at);
                    """
                )
            logger.info("Calendar store initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise CalendarStoreError(f"Calendar store initialization failed: {exc}") from exc

    def calendar_for(self, owner_kind: OwnerKind, owner_id: str) -> StoredCalendar:
        return StoredCalendar(self, OwnerKind(owner_kind), owner_id)

    def add_event(
        self,
        owner_kind: OwnerKind,
        owner_id: str,
        interval: TimeInterval,
        summary: str = "",
    ) -> int:
        """Insert a busy interval and return its id."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO CalendarEvents (owner_kind, owner_id, start_at, end_at, summary)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (
                        OwnerKind(owner_kind).value,
                        owner_id,
                        _to_column(interval.start),
                        _to_column(interval.end),
                        summary,
                    ),
                )
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise CalendarStoreError(f"Calendar event insert failed: {exc}") from exc

    def find_overlap(
        self,
        owner_kind: OwnerKind,
        owner_id: str,
        interval: TimeInterval,
    ) -> Optional[CalendarEvent]:
        """Return the earliest stored event of the owner overlapping `interval`.

        The event is expressed in UTC, aware when `interval` is aware.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT start_at, end_at, summary
                    FROM CalendarEvents
                    WHERE owner_kind = ?
                      AND owner_id = ?
                      AND start_at < ?
                      AND end_at > ?
                    ORDER BY start_at ASC, end_at ASC
                    LIMIT 1;
                    """,
                    (
                        OwnerKind(owner_kind).value,
                        owner_id,
                        _to_column(interval.end),
                        _to_column(interval.start),
                    ),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise CalendarStoreError(f"Calendar lookup failed: {exc}") from exc
        if row is None:
            return None
        return _row_to_event(row, reference=interval.start)

    def list_events(self, owner_kind: OwnerKind, owner_id: str) -> list[CalendarEvent]:
        """Return the owner's events in chronological order as naive UTC."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT start_at, end_at, summary
                    FROM CalendarEvents
                    WHERE owner_kind = ? AND owner_id = ?
                    ORDER BY start_at ASC, end_at ASC;
                    """,
                    (OwnerKind(owner_kind).value, owner_id),
                )
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise CalendarStoreError(f"Calendar listing failed: {exc}") from exc
        return [_row_to_event(row) for row in rows]

    def count_events(self) -> int:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM CalendarEvents;")
                return int(cursor.fetchone()["count"])
        except sqlite3.Error as exc:
            raise CalendarStoreError(f"Calendar count failed: {exc}") from exc


def _to_column(value: datetime) -> str:
    return to_utc_naive(value).isoformat(timespec="microseconds")


def _row_to_event(row: sqlite3.Row, reference: Optional[datetime] = None) -> CalendarEvent:
    start = datetime.fromisoformat(str(row["start_at"]))
    end = datetime.fromisoformat(str(row["end_at"]))
    if reference is not None:
        start = from_utc_naive(start, reference)
        end = from_utc_naive(end, reference)
    return CalendarEvent(
        interval=TimeInterval(start=start, end=end),
        summary=str(row["summary"]),
    )
