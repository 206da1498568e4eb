"""
RoomBot - Meeting room booking assistant for Slack.

Mirrors a shared Google Calendar into an in-memory booking store and
answers booking commands from chat:
- Slash commands over HTTP
- Mentions and direct messages over Slack Socket Mode
- Daily digest and channel topic updates
"""

__version__ = "1.0.0"
__author__ = "RoomBot Team"

from roombot.core.config import Config

__all__ = [
    "Config",
    "__version__",
]
