"""
Chat side of RoomBot.

Command parsing and dispatch, message rendering and the Slack gateway.
"""

from roombot.chat.commands import Command, CommandType, CommandDispatcher, parse_command
from roombot.chat.gateway import ChatGateway, GatewayEvent, GatewayEventType, GatewayEventRouter
from roombot.chat.messages import Attachment, AttachmentField, Message
from roombot.chat.slack import SlackGateway

__all__ = [
    "Command",
    "CommandType",
    "CommandDispatcher",
    "parse_command",
    "ChatGateway",
    "GatewayEvent",
    "GatewayEventType",
    "GatewayEventRouter",
    "Attachment",
    "AttachmentField",
    "Message",
    "SlackGateway",
]
