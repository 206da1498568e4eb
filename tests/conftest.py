"""
Pytest configuration and shared fixtures for RoomBot tests.
"""

import asyncio
import os
import sys
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, List, Optional, Union
from zoneinfo import ZoneInfo

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from roombot.calendar.providers.base import CalendarEvent, CalendarProvider, EventFeed
from roombot.calendar.reconciler import BookingStore, Reconciler
from roombot.chat.gateway import ChatGateway, GatewayEvent
from roombot.chat.messages import Message
from roombot.core.errors import ChatDeliveryError, ProviderError


# ============================================================================
# Time Fixtures
# ============================================================================

class FakeClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def tz() -> ZoneInfo:
    """Display timezone used throughout the tests."""
    return ZoneInfo("America/New_York")


@pytest.fixture
def now(tz) -> datetime:
    """Monday 4 March 2024, 10:00 local time."""
    return datetime(2024, 3, 4, 10, 0, tzinfo=tz)


@pytest.fixture
def clock(now) -> FakeClock:
    return FakeClock(now)


# ============================================================================
# Calendar Fixtures
# ============================================================================

@pytest.fixture
def make_event(now):
    """Factory for provider events relative to ``now``."""
    def _make(
        event_id: str,
        start_hours: float = 1,
        start_minutes: int = 0,
        duration_hours: float = 1,
        summary: str = "",
        status: str = "confirmed",
    ) -> CalendarEvent:
        if status == "cancelled":
            return CalendarEvent(id=event_id, status="cancelled")
        start = now + timedelta(hours=start_hours, minutes=start_minutes)
        end = start + timedelta(hours=duration_hours)
        return CalendarEvent(
            id=event_id,
            status=status,
            summary=summary or f"Meeting {event_id}",
            start=start.isoformat(),
            end=end.isoformat(),
        )
    return _make


class FakeProvider(CalendarProvider):
    """
    Scripted calendar provider.

    Each fetch consumes the next scripted response: an EventFeed is
    returned, an exception is raised. Calls are recorded.
    """

    def __init__(self):
        super().__init__()
        self._authenticated = True
        self.responses: List[Union[EventFeed, Exception]] = []
        self.fetch_calls: List[dict] = []
        self.quick_add_calls: List[str] = []
        self.quick_add_result: Union[CalendarEvent, Exception, None] = None
        self.fetch_delay = 0.0

    @property
    def name(self) -> str:
        return "fake"

    @property
    def display_name(self) -> str:
        return "Fake Calendar"

    def script(self, *responses: Union[EventFeed, Exception]) -> None:
        self.responses.extend(responses)

    async def authenticate(self, credentials):
        self._authenticated = True

    async def fetch_events(self, calendar_id, cursor=None, time_min=None) -> EventFeed:
        self.fetch_calls.append({"calendar_id": calendar_id, "cursor": cursor, "time_min": time_min})
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if not self.responses:
            return EventFeed(events=[], cursor=cursor or "empty")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def quick_add(self, calendar_id, text) -> CalendarEvent:
        self.quick_add_calls.append(text)
        if isinstance(self.quick_add_result, Exception):
            raise self.quick_add_result
        if self.quick_add_result is None:
            raise ProviderError("nothing scripted")
        return self.quick_add_result


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store() -> BookingStore:
    return BookingStore()


@pytest.fixture
def reconciler(provider, store, clock) -> Reconciler:
    return Reconciler(provider, store, "room@example.com", fetch_timeout=1.0, clock=clock)


# ============================================================================
# Chat Fixtures
# ============================================================================

class FakeGateway(ChatGateway):
    """Chat gateway that records everything it is asked to send."""

    def __init__(self, channels: Optional[List[str]] = None):
        self.channels = channels if channels is not None else ["C1", "C2"]
        self.failing_channels: set = set()
        self.posts: List[tuple] = []
        self.broadcasts: List[Message] = []
        self.topics: List[str] = []
        self.events: asyncio.Queue = asyncio.Queue()

    async def post_message(self, channel: str, message: Message) -> None:
        if channel in self.failing_channels:
            raise ChatDeliveryError("channel unavailable", channel=channel)
        self.posts.append((channel, message))

    async def broadcast(self, message: Message) -> int:
        self.broadcasts.append(message)
        return len(self.channels)

    async def set_topic(self, topic: str) -> int:
        self.topics.append(topic)
        return len(self.channels)

    async def next_event(self) -> GatewayEvent:
        return await self.events.get()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Return a sample configuration dictionary."""
    return {
        "version": 1,
        "calendar": {
            "calendar_id": "room@example.com",
            "timezone": "America/New_York",
            "credentials_file": "/etc/roombot/credentials.json",
        },
        "slack": {
            "api_token": "xoxb-test",
            "app_token": "xapp-test",
            "slash_token": "slash-secret",
            "channels": ["C1"],
        },
        "digest": {
            "hour": 9,
            "reminder_minutes": 5,
        },
        "web": {
            "port": 8080,
        },
    }


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text("""
version: 1
calendar:
  calendar_id: room@example.com
  timezone: Europe/London
  credentials_file: /etc/roombot/credentials.json
slack:
  api_token: xoxb-file
  slash_token: file-secret
""")
    return config_path


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def clean_environment():
    """Ensure clean environment variables for tests."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("ROOMBOT_")}
    for key in saved:
        del os.environ[key]

    yield

    for key in [k for k in os.environ if k.startswith("ROOMBOT_")]:
        del os.environ[key]
    os.environ.update(saved)
