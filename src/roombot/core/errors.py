"""
Error taxonomy for RoomBot.

Each error is raised by the boundary that detects it and contained there:

- ConfigError: fatal, aborts startup.
- ProviderError: calendar fetch/submit failed; store left untouched.
- CursorExpiredError: provider rejected the sync cursor; forces a full fetch.
- ParseError: a single provider event could not be ingested.
- AuthError: inbound webhook presented the wrong shared secret.
- ChatDeliveryError: a chat post or topic change failed.
"""

from typing import Optional


class RoomBotError(Exception):
    """Base exception for all RoomBot errors."""
    pass


class ConfigError(RoomBotError):
    """Raised when configuration is missing or invalid."""
    pass


class ProviderError(RoomBotError):
    """Raised when a call to the calendar provider fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CursorExpiredError(ProviderError):
    """Raised when the provider no longer accepts a sync cursor."""
    pass


class ParseError(RoomBotError):
    """Raised when a provider event cannot be turned into a booking."""

    def __init__(self, message: str, event_id: str = ""):
        super().__init__(message)
        self.event_id = event_id


class AuthError(RoomBotError):
    """Raised when an inbound request fails shared-secret authentication."""
    pass


class ChatDeliveryError(RoomBotError):
    """Raised when a message or topic could not be delivered to a channel."""

    def __init__(self, message: str, channel: str = ""):
        super().__init__(message)
        self.channel = channel
