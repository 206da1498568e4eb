"""
Chat gateway interface.

Inbound gateway traffic is normalized into a closed set of event kinds
and routed through a handler table that must cover every kind.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Callable, Awaitable

from roombot.chat.messages import Message
from roombot.core.errors import ChatDeliveryError

logger = logging.getLogger(__name__)


class GatewayEventType(Enum):
    """Kinds of inbound gateway events."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    ERROR = "error"
    OTHER = "other"


@dataclass(frozen=True)
class GatewayEvent:
    """An inbound gateway event."""
    type: GatewayEventType
    channel: str = ""
    user: str = ""
    text: str = ""
    error: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def connected(cls, user: str = "") -> "GatewayEvent":
        return cls(GatewayEventType.CONNECTED, user=user)

    @classmethod
    def disconnected(cls) -> "GatewayEvent":
        return cls(GatewayEventType.DISCONNECTED)

    @classmethod
    def message(cls, channel: str, user: str, text: str) -> "GatewayEvent":
        return cls(GatewayEventType.MESSAGE, channel=channel, user=user, text=text)

    @classmethod
    def failure(cls, error: str) -> "GatewayEvent":
        return cls(GatewayEventType.ERROR, error=error)

    @classmethod
    def other(cls, raw: Optional[Dict[str, Any]] = None) -> "GatewayEvent":
        return cls(GatewayEventType.OTHER, raw=raw or {})


EventHandler = Callable[[GatewayEvent], Awaitable[None]]


class GatewayEventRouter:
    """
    Routes gateway events to one handler per event kind.

    Raises:
        ValueError: At construction if any event kind has no handler.
    """

    def __init__(self, handlers: Dict[GatewayEventType, EventHandler]):
        missing = [t.value for t in GatewayEventType if t not in handlers]
        if missing:
            raise ValueError(f"No handler for gateway events: {', '.join(missing)}")
        self._handlers = dict(handlers)

    async def route(self, event: GatewayEvent) -> None:
        await self._handlers[event.type](event)


class ChatGateway(ABC):
    """Outbound chat operations plus a stream of inbound events."""

    @abstractmethod
    async def post_message(self, channel: str, message: Message) -> None:
        """
        Post a message to one channel.

        Raises:
            ChatDeliveryError: If the post fails
        """
        pass

    @abstractmethod
    async def broadcast(self, message: Message) -> int:
        """
        Post a message to every broadcast channel, best effort.

        Returns:
            Number of channels the message reached
        """
        pass

    @abstractmethod
    async def set_topic(self, topic: str) -> int:
        """
        Set the topic of every broadcast channel, best effort.

        Returns:
            Number of channels whose topic was changed
        """
        pass

    @abstractmethod
    async def next_event(self) -> GatewayEvent:
        """Wait for the next inbound event."""
        pass


async def deliver_all(
    channels: List[str],
    send: Callable[[str], Awaitable[None]],
    action: str = "deliver",
) -> int:
    """Run ``send`` for each channel; a failed channel never stops the rest."""
    delivered = 0
    for channel in channels:
        try:
            await send(channel)
            delivered += 1
        except ChatDeliveryError as e:
            logger.warning(f"Failed to {action} to {e.channel or channel}: {e}")
    return delivered
