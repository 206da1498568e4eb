"""
Slash-command web interface for RoomBot.

Receives Slack slash-command webhooks (form-encoded POST with token,
channel_id, user_name and text) and answers with the dispatcher's
reply as JSON.

Routes:
- POST <path>   slash command (default /slash)
- GET /status   next booking, active booking count and service states
"""

import hmac
import logging
from typing import Optional, Callable, Dict

from aiohttp import web
from aiohttp.web import middleware

from roombot.calendar.reconciler import BookingStore
from roombot.chat.commands import CommandDispatcher
from roombot.core.errors import AuthError
from roombot.core.service import Service, ServiceStatus

logger = logging.getLogger(__name__)


class SlashCommandInterface(Service):
    """HTTP server for Slack slash commands."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        store: BookingStore,
        slash_token: str,
        host: str = "0.0.0.0",
        port: int = 4000,
        path: str = "/slash",
        service_status: Optional[Callable[[], Dict[str, ServiceStatus]]] = None,
    ):
        super().__init__("web")
        self._dispatcher = dispatcher
        self._store = store
        self._slash_token = slash_token
        self._host = host
        self._port = port
        self._path = path
        self._service_status = service_status

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        """Create the aiohttp application with routes and middleware."""
        app = web.Application(middlewares=[self._auth_middleware])
        app.router.add_post(self._path, self._handle_slash)
        app.router.add_get('/status', self._handle_status)
        return app

    async def start(self) -> None:
        """Start the web server."""
        self._app = self.build_app()

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info(f"Slash command interface started on http://{self._host}:{self._port}{self._path}")

    async def stop(self) -> None:
        """Stop the web server."""
        if self._site:
            await self._site.stop()

        if self._runner:
            await self._runner.cleanup()

        self._app = None
        self._runner = None
        self._site = None

        logger.info("Slash command interface stopped")

    def verify_token(self, token: str) -> None:
        """
        Check the shared secret sent with a slash command.

        Raises:
            AuthError: If the token does not match.
        """
        if not hmac.compare_digest(token.encode(), self._slash_token.encode()):
            raise AuthError("Invalid slash command token")

    @middleware
    async def _auth_middleware(self, request: web.Request, handler):
        """Reject slash commands without the shared secret."""
        if request.method != "POST" or request.path != self._path:
            return await handler(request)

        form = await request.post()
        try:
            self.verify_token(str(form.get('token', '')))
        except AuthError as e:
            logger.warning(f"Rejected slash command from {request.remote}: {e}")
            return web.Response(status=403, text="Not authenticated.")

        return await handler(request)

    async def _handle_slash(self, request: web.Request) -> web.Response:
        """Run a slash command."""
        form = await request.post()
        message = await self._dispatcher.dispatch(
            channel=str(form.get('channel_id', '')),
            user=str(form.get('user_name', '')),
            text=str(form.get('text', '')),
        )
        return web.json_response(message.to_dict())

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Report sync health; booking details stay behind the token."""
        snapshot = self._store.snapshot
        services = self._service_status() if self._service_status else {}
        return web.json_response({
            "active_bookings": len(snapshot.active),
            "computed_at": snapshot.computed_at.isoformat() if snapshot.computed_at else None,
            "services": {name: status.to_dict() for name, status in services.items()},
        })
