"""
Abstract base class for calendar providers.

All calendar providers must implement this interface. Providers hand
back raw events; turning them into bookings is the caller's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List


@dataclass(frozen=True)
class CalendarEvent:
    """A raw event as reported by the provider feed."""

    id: str
    status: str = "confirmed"  # confirmed, tentative, cancelled
    summary: str = ""
    start: Optional[str] = None  # timestamp with offset, e.g. 2024-01-01T10:00:00+01:00
    end: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "status": self.status,
            "summary": self.summary,
            "start": self.start,
            "end": self.end,
        }


@dataclass
class EventFeed:
    """One fetched batch of events plus the cursor for the next fetch."""

    events: List[CalendarEvent] = field(default_factory=list)
    cursor: Optional[str] = None


class CalendarProvider(ABC):
    """
    Abstract base class for calendar providers.

    Each provider handles authentication, fetching the event feed and
    submitting quick-add bookings for a specific calendar service.
    """

    def __init__(self):
        self._authenticated = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return provider name (e.g., 'google')."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Return human-readable provider name."""
        pass

    @property
    def is_authenticated(self) -> bool:
        """Check if provider is authenticated."""
        return self._authenticated

    @abstractmethod
    async def authenticate(self, credentials: Dict[str, Any]) -> None:
        """
        Authenticate with the calendar service.

        Args:
            credentials: Provider-specific credentials

        Raises:
            ProviderError: If authentication fails
        """
        pass

    @abstractmethod
    async def fetch_events(
        self,
        calendar_id: str,
        cursor: Optional[str] = None,
        time_min: Optional[datetime] = None,
    ) -> EventFeed:
        """
        Fetch one batch of events.

        With a cursor the provider returns only what changed since the
        cursor was issued. Without one it returns every non-cancelled
        event ending after ``time_min``, recurring events expanded.

        Args:
            calendar_id: Calendar ID to fetch from
            cursor: Sync cursor from the previous fetch
            time_min: Lower bound for a full fetch

        Returns:
            Event feed with the cursor to use next time

        Raises:
            CursorExpiredError: If the cursor is no longer accepted
            ProviderError: If the fetch fails
        """
        pass

    @abstractmethod
    async def quick_add(self, calendar_id: str, text: str) -> CalendarEvent:
        """
        Create an event from free text ("1pm meeting").

        Date and time parsing is entirely the provider's.

        Raises:
            ProviderError: If the provider rejects the request
        """
        pass
