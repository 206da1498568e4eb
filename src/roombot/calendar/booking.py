"""
Room bookings.

A Booking is the local, validated form of a provider event.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Dict, Any

from roombot.calendar.providers.base import CalendarEvent
from roombot.core.errors import ParseError


@dataclass(frozen=True)
class Booking:
    """A single booking of the room."""

    id: str
    calendar_id: str
    title: str
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Booking {self.id} must start before it ends")

    def is_within(self, start_range: datetime, end_range: datetime) -> bool:
        """True if the booking starts in [start_range, end_range)."""
        return start_range <= self.start < end_range

    def is_active(self, now: datetime) -> bool:
        """True while the booking has not yet ended."""
        return self.end > now

    def time_label(self, now: datetime, tz: tzinfo) -> str:
        """
        Human-friendly time, relative to ``now``.

        Examples: "Today from 1:00 to 2:00pm",
        "Tomorrow from 9:30 to 10:00am", "Sat Mar 7 from 3:00 to 4:30pm".
        """
        start = self.start.astimezone(tz)
        end = self.end.astimezone(tz)
        today = now.astimezone(tz).date()

        if start.date() == today:
            day = "Today"
        elif start.date() == today + timedelta(days=1):
            day = "Tomorrow"
        else:
            day = f"{start:%a %b} {start.day}"

        meridiem = "am" if end.hour < 12 else "pm"
        return f"{day} from {_clock(start)} to {_clock(end)}{meridiem}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "calendar_id": self.calendar_id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }


def _clock(value: datetime) -> str:
    """12-hour clock without leading zero, e.g. 3:04."""
    return f"{value.hour % 12 or 12}:{value.minute:02d}"


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse a provider timestamp (date + time + offset) to an aware datetime."""
    if not value:
        raise ValueError("missing timestamp")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value}")
    return parsed


def booking_from_event(event: CalendarEvent, calendar_id: str) -> Optional[Booking]:
    """
    Create a booking from a provider event.

    Returns:
        The booking, or None if the event is cancelled.

    Raises:
        ParseError: If the start/end timestamps are missing or invalid.
    """
    if event.is_cancelled:
        return None

    try:
        return Booking(
            id=event.id,
            calendar_id=calendar_id,
            title=event.summary,
            start=parse_timestamp(event.start),
            end=parse_timestamp(event.end),
        )
    except ValueError as e:
        raise ParseError(f"Invalid event {event.id}: {e}", event_id=event.id)
