"""
Calendar side of RoomBot.

Provides the booking model, the calendar providers and the reconciler
that keeps the local booking store in step with the calendar.
"""

from roombot.calendar.booking import Booking
from roombot.calendar.reconciler import BookingStore, Reconciler, StoreSnapshot, SyncResult
from roombot.calendar.providers.base import CalendarProvider, CalendarEvent, EventFeed
from roombot.calendar.providers.google import GoogleCalendarProvider

__all__ = [
    "Booking",
    "BookingStore",
    "Reconciler",
    "StoreSnapshot",
    "SyncResult",
    "CalendarProvider",
    "CalendarEvent",
    "EventFeed",
    "GoogleCalendarProvider",
]
