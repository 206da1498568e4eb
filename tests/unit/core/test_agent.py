"""
Tests for roombot.core.agent module.
"""

import json

import pytest

from roombot.chat.gateway import GatewayEvent
from roombot.core.agent import RoomBotAgent, load_credentials
from roombot.core.config import Config
from roombot.core.errors import ConfigError


@pytest.fixture
def config(sample_config):
    config = Config.from_dict(sample_config)
    config.validate()
    return config


@pytest.fixture
def agent(config, provider, gateway, clock):
    return RoomBotAgent(config, provider=provider, gateway=gateway, clock=clock)


class TestLoadCredentials:
    """Tests for credentials file detection."""

    def test_service_account(self, config, temp_dir):
        path = temp_dir / "sa.json"
        path.write_text(json.dumps({"type": "service_account"}))
        config.calendar.credentials_file = str(path)
        config.calendar.delegate_email = "room@example.com"

        assert load_credentials(config) == {
            "service_account_file": str(path),
            "delegate_email": "room@example.com",
        }

    def test_authorized_user(self, config, temp_dir):
        path = temp_dir / "token.json"
        path.write_text(json.dumps({"type": "authorized_user", "refresh_token": "x"}))
        config.calendar.credentials_file = str(path)

        assert load_credentials(config) == {"authorized_user_file": str(path)}

    def test_missing_file(self, config, temp_dir):
        config.calendar.credentials_file = str(temp_dir / "missing.json")

        with pytest.raises(ConfigError):
            load_credentials(config)

    def test_not_json(self, config, temp_dir):
        path = temp_dir / "creds.json"
        path.write_text("not json")
        config.calendar.credentials_file = str(path)

        with pytest.raises(ConfigError):
            load_credentials(config)


class TestAgentWiring:
    """Tests for component wiring."""

    def test_components_share_store(self, agent):
        assert agent.reconciler.store is agent.store
        assert agent.scheduler.next_digest_deadline is not None

    def test_digest_disabled(self, config, provider, gateway, clock):
        config.digest.enabled = False

        agent = RoomBotAgent(config, provider=provider, gateway=gateway, clock=clock)

        assert agent.scheduler.next_digest_deadline is None

    def test_default_gateway_runs_socket_slash_commands(self, config, provider, clock):
        agent = RoomBotAgent(config, provider=provider, clock=clock)

        assert agent.gateway.command_handler == agent.dispatcher.dispatch


class TestGatewayEvents:
    """Tests for inbound gateway event routing."""

    @pytest.mark.asyncio
    async def test_message_reply_posted(self, agent, gateway):
        await agent.router.route(GatewayEvent.message("C1", "alice", "help"))

        channel, reply = gateway.posts[0]
        assert channel == "C1"
        assert reply.text == "Booking command syntax:"

    @pytest.mark.asyncio
    async def test_failed_reply_is_contained(self, agent, gateway):
        gateway.failing_channels.add("C1")

        await agent.router.route(GatewayEvent.message("C1", "alice", "list"))

        assert gateway.posts == []

    @pytest.mark.asyncio
    async def test_connection_events_toggle_scheduler(self, agent):
        await agent.router.route(GatewayEvent.disconnected())
        assert agent.scheduler.paused is True

        await agent.router.route(GatewayEvent.connected("U1"))
        assert agent.scheduler.paused is False

    @pytest.mark.asyncio
    async def test_error_and_other_events_are_ignored(self, agent, gateway):
        await agent.router.route(GatewayEvent.failure("socket closed"))
        await agent.router.route(GatewayEvent.other({"type": "reaction_added"}))

        assert gateway.posts == []

    @pytest.mark.asyncio
    async def test_book_over_chat(self, agent, gateway, provider, make_event):
        provider.quick_add_result = make_event("new", summary="alice: 1pm")

        await agent.router.route(GatewayEvent.message("C1", "alice", "1pm"))

        assert provider.quick_add_calls == ["alice: 1pm"]
        assert gateway.posts[0][1].text.startswith("Booked for Today")
