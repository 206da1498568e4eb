"""Calendar provider implementations."""

from roombot.calendar.providers.base import CalendarProvider, CalendarEvent, EventFeed
from roombot.calendar.providers.google import GoogleCalendarProvider

__all__ = [
    "CalendarProvider",
    "CalendarEvent",
    "EventFeed",
    "GoogleCalendarProvider",
]
