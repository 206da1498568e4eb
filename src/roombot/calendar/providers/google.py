"""
Google Calendar provider.

Uses the Google Calendar API to mirror a room calendar incrementally
(sync tokens) and to submit quick-add bookings.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from roombot.calendar.providers.base import CalendarProvider, CalendarEvent, EventFeed
from roombot.core.errors import CursorExpiredError, ProviderError

logger = logging.getLogger(__name__)

# HTTP status Google returns for an expired or invalid sync token
SYNC_TOKEN_GONE = 410


class GoogleCalendarProvider(CalendarProvider):
    """
    Google Calendar provider.

    Supports service account (optionally delegated) and authorized-user
    OAuth2 credentials.
    """

    # Quick-add needs write access to events
    SCOPES = [
        'https://www.googleapis.com/auth/calendar.events',
    ]

    PAGE_SIZE = 250

    def __init__(self):
        super().__init__()
        self._service = None
        self._creds = None

    @property
    def name(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google Calendar"

    async def authenticate(self, credentials: Dict[str, Any]) -> None:
        """
        Authenticate with Google Calendar API.

        Args:
            credentials: Dict with one of:
                - 'service_account_file': Path to service account JSON
                  (optional 'delegate_email' to act as the room account)
                - 'authorized_user_file': Path to a saved OAuth2 token JSON

        Raises:
            ProviderError: If the credentials cannot be loaded
        """
        try:
            if 'service_account_file' in credentials:
                self._creds = ServiceAccountCredentials.from_service_account_file(
                    credentials['service_account_file'],
                    scopes=self.SCOPES
                )
                if credentials.get('delegate_email'):
                    self._creds = self._creds.with_subject(credentials['delegate_email'])

            elif 'authorized_user_file' in credentials:
                self._creds = Credentials.from_authorized_user_file(
                    credentials['authorized_user_file'],
                    scopes=self.SCOPES
                )
            else:
                raise ProviderError("No valid Google credentials provided")

            self._service = build('calendar', 'v3', credentials=self._creds, cache_discovery=False)

        except (OSError, ValueError, GoogleAuthError) as e:
            self._authenticated = False
            raise ProviderError(f"Google Calendar authentication failed: {e}")

        self._authenticated = True
        logger.info("Google Calendar authentication successful")

    def _require_service(self):
        if not self._authenticated or self._service is None:
            raise ProviderError("Google Calendar provider is not authenticated")
        return self._service

    async def _execute(self, request) -> Dict[str, Any]:
        """Run a blocking API request in a worker thread, mapping failures."""
        try:
            return await asyncio.to_thread(request.execute, num_retries=0)
        except HttpError as e:
            status = e.resp.status if e.resp is not None else None
            if status == SYNC_TOKEN_GONE:
                raise CursorExpiredError("Sync token is no longer valid", status_code=status)
            raise ProviderError(f"Google Calendar API error: {e}", status_code=status)
        except (httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
            raise ProviderError(f"Unable to reach Google Calendar: {e}")

    async def fetch_events(
        self,
        calendar_id: str,
        cursor: Optional[str] = None,
        time_min: Optional[datetime] = None,
    ) -> EventFeed:
        """Fetch all pages of the event feed."""
        service = self._require_service()

        params: Dict[str, Any] = {
            'calendarId': calendar_id,
            'maxResults': self.PAGE_SIZE,
            # Follow-up syncs must repeat the first request's expansion
            'singleEvents': True,
        }
        if cursor:
            params['syncToken'] = cursor
        else:
            if time_min is None:
                time_min = datetime.now(timezone.utc)
            # Ensure timezone-aware
            if time_min.tzinfo is None:
                time_min = time_min.replace(tzinfo=timezone.utc)
            params.update(
                timeMin=time_min.isoformat(),
                showDeleted=False,
            )

        events: List[CalendarEvent] = []
        page_token = None
        while True:
            if page_token:
                params['pageToken'] = page_token
            result = await self._execute(service.events().list(**params))
            events.extend(self._parse_event(item) for item in result.get('items', []))
            page_token = result.get('nextPageToken')
            if not page_token:
                break

        logger.debug(f"Fetched {len(events)} events from {calendar_id}")
        return EventFeed(events=events, cursor=result.get('nextSyncToken'))

    async def quick_add(self, calendar_id: str, text: str) -> CalendarEvent:
        """Create an event from free text."""
        service = self._require_service()
        item = await self._execute(
            service.events().quickAdd(calendarId=calendar_id, text=text)
        )
        return self._parse_event(item)

    @staticmethod
    def _parse_event(item: Dict[str, Any]) -> CalendarEvent:
        """Convert a Google API event resource to a raw CalendarEvent."""
        # Deleted events in an incremental feed carry only id and status
        return CalendarEvent(
            id=item.get('id', ''),
            status=item.get('status', 'confirmed'),
            summary=item.get('summary', ''),
            start=(item.get('start') or {}).get('dateTime'),
            end=(item.get('end') or {}).get('dateTime'),
        )
