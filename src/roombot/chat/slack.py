"""
Slack chat gateway.

Outbound traffic goes through the Slack Web API. When an app-level
token is configured, inbound messages arrive over Socket Mode and are
queued as gateway events.

Dependencies (pip):
    - slack_sdk>=3.19
    - aiohttp (Socket Mode transport)
"""

import asyncio
import json
import logging
from typing import Optional, Dict, Any, List, Callable, Awaitable

import aiohttp
from aiohttp import WSMessage, WSMsgType
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from roombot.chat.gateway import ChatGateway, GatewayEvent, deliver_all
from roombot.chat.messages import Message
from roombot.core.errors import ChatDeliveryError
from roombot.core.service import Service

logger = logging.getLogger(__name__)

SLACK_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)

CommandHandler = Callable[[str, str, str], Awaitable[Message]]


class SlackGateway(Service, ChatGateway):
    """
    Slack adapter.

    Handles:
    - Posting replies, digests and reminders
    - Setting the topic of every channel the bot is in
    - Mentions and DMs over Socket Mode, routed as MESSAGE events
    - Slash commands over Socket Mode, answered in the acknowledgement
    """

    def __init__(
        self,
        api_token: str,
        app_token: str = "",
        channels: Optional[List[str]] = None,
        web_client: Optional[AsyncWebClient] = None,
        command_handler: Optional[CommandHandler] = None,
    ):
        """
        Initialize Slack gateway.

        Args:
            api_token: Slack bot token (xoxb-...)
            app_token: Slack app token (xapp-...) for Socket Mode; optional
            channels: Restrict broadcasts to these channel ids
            web_client: Pre-built Web API client
            command_handler: Runs slash commands received over Socket Mode
        """
        super().__init__("slack")
        self._client = web_client or AsyncWebClient(token=api_token)
        self._app_token = app_token
        self._channels = list(channels or [])
        self._socket: Optional[SocketModeClient] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._bot_user_id = ""
        self._user_names: Dict[str, str] = {}
        self.command_handler = command_handler

    @property
    def bot_user_id(self) -> str:
        return self._bot_user_id

    @property
    def socket_mode(self) -> bool:
        return bool(self._app_token)

    async def start(self) -> None:
        """Identify the bot and, with an app token, open Socket Mode."""
        try:
            auth = await self._client.auth_test()
        except SLACK_ERRORS as e:
            raise ChatDeliveryError(f"Slack authentication failed: {e}")
        self._bot_user_id = auth.get("user_id", "")
        logger.info(f"Slack connected as {auth.get('user', self._bot_user_id)}")

        if self._app_token:
            self._socket = SocketModeClient(
                app_token=self._app_token,
                web_client=self._client,
                on_message_listeners=[self._on_ws_message],
                on_error_listeners=[self._on_ws_error],
                on_close_listeners=[self._on_ws_close],
            )
            self._socket.socket_mode_request_listeners.append(self._on_request)
            await self._socket.connect()

    async def stop(self) -> None:
        if self._socket:
            await self._socket.disconnect()
            await self._socket.close()
            self._socket = None

    async def next_event(self) -> GatewayEvent:
        return await self._queue.get()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _on_ws_message(self, message: WSMessage) -> None:
        if message.type != WSMsgType.TEXT:
            return
        try:
            data = json.loads(message.data)
        except ValueError:
            return
        # Slack says hello on every (re)connection
        if data.get("type") == "hello":
            self._queue.put_nowait(GatewayEvent.connected(self._bot_user_id))

    async def _on_ws_error(self, message: WSMessage) -> None:
        self._queue.put_nowait(GatewayEvent.failure(str(message.data)))

    async def _on_ws_close(self, message: WSMessage) -> None:
        self._queue.put_nowait(GatewayEvent.disconnected())

    async def _on_request(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        if req.type == "slash_commands":
            await self._on_slash_command(client, req)
            return

        # Acknowledge first; Slack retries unacknowledged envelopes
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

        if req.type != "events_api":
            self._queue.put_nowait(GatewayEvent.other(req.payload))
            return

        event = await self.to_event(req.payload.get("event", {}))
        self._queue.put_nowait(event)

    async def _on_slash_command(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        """Answer a slash command in its acknowledgement, or queue it without a handler."""
        channel = req.payload.get("channel_id", "")
        user = req.payload.get("user_name", "")
        text = req.payload.get("text", "")

        if self.command_handler is None:
            await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))
            self._queue.put_nowait(GatewayEvent.message(channel, user, text))
            return

        reply = await self.command_handler(channel, user, text)
        await client.send_socket_mode_response(
            SocketModeResponse(envelope_id=req.envelope_id, payload=reply.to_dict())
        )

    async def to_event(self, event: Dict[str, Any]) -> GatewayEvent:
        """
        Convert a Slack Events API payload to a gateway event.

        Only mentions of the bot and direct messages are commands;
        message subtypes and the bot's own messages are ignored.
        """
        kind = event.get("type")
        is_mention = kind == "app_mention"
        is_dm = kind == "message" and event.get("channel_type") == "im"

        if not (is_mention or is_dm):
            return GatewayEvent.other(event)
        if event.get("subtype") or event.get("bot_id") or event.get("user") == self._bot_user_id:
            return GatewayEvent.other(event)

        text = event.get("text", "").replace(f"<@{self._bot_user_id}>", "").strip()
        user = await self.user_name(event.get("user", ""))
        return GatewayEvent.message(event.get("channel", ""), user, text)

    async def user_name(self, user_id: str) -> str:
        """Resolve a user id to a handle, falling back to the id."""
        if not user_id:
            return ""
        if user_id not in self._user_names:
            try:
                info = await self._client.users_info(user=user_id)
                self._user_names[user_id] = info["user"].get("name", user_id)
            except SLACK_ERRORS as e:
                logger.warning(f"Unable to fetch user info for {user_id}: {e}")
                return user_id
        return self._user_names[user_id]

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def post_message(self, channel: str, message: Message) -> None:
        try:
            await self._client.chat_postMessage(
                channel=channel,
                text=message.text,
                attachments=[a.to_dict() for a in message.attachments],
            )
        except SLACK_ERRORS as e:
            raise ChatDeliveryError(f"Unable to post message: {e}", channel=channel)

    async def broadcast(self, message: Message) -> int:
        channels = await self._member_channels()
        delivered = await deliver_all(
            [c["id"] for c in channels],
            lambda channel: self.post_message(channel, message),
            action="broadcast",
        )
        logger.debug(f"Broadcast reached {delivered}/{len(channels)} channels")
        return delivered

    async def set_topic(self, topic: str) -> int:
        channels = await self._member_channels()
        stale = [
            c["id"] for c in channels
            if (c.get("topic") or {}).get("value") != topic
        ]
        return await deliver_all(
            stale,
            lambda channel: self._set_channel_topic(channel, topic),
            action="set topic",
        )

    async def _set_channel_topic(self, channel: str, topic: str) -> None:
        try:
            await self._client.conversations_setTopic(channel=channel, topic=topic)
        except SLACK_ERRORS as e:
            raise ChatDeliveryError(f"Unable to set topic: {e}", channel=channel)

    async def _member_channels(self) -> List[Dict[str, Any]]:
        """Public and private channels the bot has joined."""
        channels: List[Dict[str, Any]] = []
        cursor = None
        try:
            while True:
                response = await self._client.users_conversations(
                    types="public_channel,private_channel",
                    exclude_archived=True,
                    limit=200,
                    cursor=cursor,
                )
                channels.extend(response.get("channels", []))
                cursor = (response.get("response_metadata") or {}).get("next_cursor")
                if not cursor:
                    break
        except SLACK_ERRORS as e:
            logger.warning(f"Unable to list channels: {e}")

        if self._channels:
            channels = [c for c in channels if c.get("id") in self._channels]
        return channels
