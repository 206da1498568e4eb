"""
Core RoomBot components.

This module contains the main agent, configuration, errors, scheduling
and service management.
"""

from roombot.core.agent import RoomBotAgent
from roombot.core.config import Config, load_config
from roombot.core.errors import (
    RoomBotError,
    ConfigError,
    ProviderError,
    CursorExpiredError,
    ParseError,
    AuthError,
    ChatDeliveryError,
)
from roombot.core.scheduler import Scheduler
from roombot.core.service import ServiceManager

__all__ = [
    "RoomBotAgent",
    "Config",
    "load_config",
    "RoomBotError",
    "ConfigError",
    "ProviderError",
    "CursorExpiredError",
    "ParseError",
    "AuthError",
    "ChatDeliveryError",
    "Scheduler",
    "ServiceManager",
]
