"""
RoomBot Agent - Main coordinator for the booking bot.

The agent builds the booking store, reconciler, dispatcher, scheduler,
chat gateway and slash-command server from configuration, performs the
initial full sync and runs until shutdown.
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime
from typing import Optional, Dict, Any, Callable

from roombot.calendar.providers.base import CalendarProvider
from roombot.calendar.providers.google import GoogleCalendarProvider
from roombot.calendar.reconciler import BookingStore, Reconciler, utc_now
from roombot.chat.commands import CommandDispatcher
from roombot.chat.gateway import ChatGateway, GatewayEvent, GatewayEventRouter, GatewayEventType
from roombot.chat.slack import SlackGateway
from roombot.core.config import Config, load_config
from roombot.core.errors import ChatDeliveryError, ConfigError
from roombot.core.scheduler import Scheduler
from roombot.core.service import Service, ServiceManager
from roombot.ui.web_interface import SlashCommandInterface

logger = logging.getLogger(__name__)


def load_credentials(config: Config) -> Dict[str, Any]:
    """
    Work out which kind of Google credentials file is configured.

    Raises:
        ConfigError: If the file cannot be read or is not JSON.
    """
    path = config.calendar.credentials_file
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read credentials file {path}: {e}")
    except ValueError as e:
        raise ConfigError(f"Unable to parse credentials file {path}: {e}")

    if data.get("type") == "service_account":
        return {
            "service_account_file": path,
            "delegate_email": config.calendar.delegate_email,
        }
    return {"authorized_user_file": path}


class RoomBotAgent:
    """
    Main RoomBot agent that coordinates all components.

    The agent is responsible for:
    - Wiring the store, reconciler, dispatcher and scheduler together
    - Authenticating with the calendar and running the first full sync
    - Managing service lifecycle
    - Routing inbound chat events
    - Handling system signals
    """

    def __init__(
        self,
        config: Config,
        provider: Optional[CalendarProvider] = None,
        gateway: Optional[ChatGateway] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the agent.

        Args:
            config: Validated configuration.
            provider: Calendar provider (Google by default).
            gateway: Chat gateway (Slack by default).
            clock: Source of "now".
        """
        self.config = config
        self.tz = config.tzinfo

        self.provider = provider or GoogleCalendarProvider()
        self.store = BookingStore()
        self.reconciler = Reconciler(
            self.provider,
            self.store,
            config.calendar.calendar_id,
            fetch_timeout=config.calendar.fetch_timeout_seconds,
            clock=clock,
        )
        self.dispatcher = CommandDispatcher(
            self.reconciler,
            self.provider,
            self.tz,
            config.calendar.link,
            submit_timeout=config.calendar.fetch_timeout_seconds,
            clock=clock,
        )
        self.gateway = gateway or SlackGateway(
            api_token=config.slack.api_token,
            app_token=config.slack.app_token,
            channels=config.slack.channels,
            command_handler=self.dispatcher.dispatch,
        )
        self.scheduler = Scheduler(
            self.reconciler,
            self.dispatcher,
            self.gateway,
            self.tz,
            interval=config.calendar.sync_interval_seconds,
            digest_hour=config.digest.hour if config.digest.enabled else None,
            reminder_minutes=config.digest.reminder_minutes,
            clock=clock,
        )
        self.service_manager = ServiceManager()
        self.web = SlashCommandInterface(
            self.dispatcher,
            self.store,
            config.slack.slash_token,
            host=config.web.host,
            port=config.web.port,
            path=config.web.path,
            service_status=self.service_manager.get_status,
        )
        self.router = GatewayEventRouter({
            GatewayEventType.CONNECTED: self._on_connected,
            GatewayEventType.DISCONNECTED: self._on_disconnected,
            GatewayEventType.MESSAGE: self._on_message,
            GatewayEventType.ERROR: self._on_error,
            GatewayEventType.OTHER: self._on_other,
        })

        self._running = False
        self._events_task: Optional[asyncio.Task] = None

    @classmethod
    def from_path(cls, config_path: Optional[str] = None) -> "RoomBotAgent":
        return cls(load_config(config_path))

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        self.service_manager.request_shutdown()

    def _register_services(self) -> None:
        """Register the long-running services."""
        if isinstance(self.gateway, Service):
            self.service_manager.register(self.gateway)
            self.service_manager.register(self.scheduler, dependencies=[self.gateway.name])
        else:
            self.service_manager.register(self.scheduler)
        self.service_manager.register(self.web)

    async def start(self) -> None:
        """
        Start the agent and run until shutdown.

        Raises:
            ConfigError: If the calendar credentials cannot be loaded.
            ProviderError: If authentication or the first sync fails.
        """
        if self._running:
            logger.warning("Agent already running")
            return

        logger.info("Starting RoomBot Agent...")
        self._running = True

        try:
            self._setup_signal_handlers()

            await self.provider.authenticate(load_credentials(self.config))

            # First sync is a full fetch; without it there is nothing to serve
            result = await self.reconciler.sync()
            logger.info(f"Initial sync loaded {result.added} bookings")

            # Only tick while chat is connected when chat pushes connection events
            if self.config.slack.app_token:
                self.scheduler.pause()

            self._register_services()
            if not await self.service_manager.start_all():
                logger.error("Failed to start all services")
                return

            self._events_task = asyncio.create_task(self._consume_events())
            logger.info("RoomBot Agent started successfully")

            await self.service_manager.wait_for_shutdown()

        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the agent and all services."""
        if not self._running:
            return

        logger.info("Stopping RoomBot Agent...")
        self._running = False

        if self._events_task:
            self._events_task.cancel()
            try:
                await self._events_task
            except asyncio.CancelledError:
                pass
            self._events_task = None

        await self.service_manager.stop_all()

        logger.info("RoomBot Agent stopped")

    async def _consume_events(self) -> None:
        """Route inbound gateway events until cancelled."""
        while True:
            event = await self.gateway.next_event()
            try:
                await self.router.route(event)
            except Exception as e:
                logger.error(f"Error handling {event.type.value} event: {e}")

    # ------------------------------------------------------------------
    # Gateway event handlers
    # ------------------------------------------------------------------

    async def _on_connected(self, event: GatewayEvent) -> None:
        logger.info("Connected.")
        self.scheduler.resume()

    async def _on_disconnected(self, event: GatewayEvent) -> None:
        logger.info("Disconnected.")
        self.scheduler.pause()

    async def _on_message(self, event: GatewayEvent) -> None:
        reply = await self.dispatcher.dispatch(event.channel, event.user, event.text)
        try:
            await self.gateway.post_message(event.channel, reply)
        except ChatDeliveryError as e:
            logger.warning(f"Unable to reply in {e.channel}: {e}")

    async def _on_error(self, event: GatewayEvent) -> None:
        logger.error(f"Gateway error: {event.error}")

    async def _on_other(self, event: GatewayEvent) -> None:
        logger.debug(f"Ignoring gateway event: {event.raw.get('type', 'unknown')}")


async def run_agent(config_path: Optional[str] = None) -> None:
    """
    Run the RoomBot agent.

    Args:
        config_path: Optional path to configuration file.
    """
    agent = RoomBotAgent.from_path(config_path)
    await agent.start()


def main() -> None:
    """Main entry point for the RoomBot agent."""
    import argparse

    parser = argparse.ArgumentParser(description="RoomBot meeting room booking agent")
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default=None
    )
    parser.add_argument(
        "-v", "--verbose",
        help="Enable verbose logging",
        action="store_true"
    )
    parser.add_argument(
        "--debug",
        help="Enable debug logging",
        action="store_true"
    )

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.debug else (logging.INFO if args.verbose else logging.WARNING)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        asyncio.run(run_agent(args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Agent failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
