"""
Tests for roombot.ui.web_interface module.
"""

import pytest
from aiohttp import test_utils

from roombot.calendar.providers.base import EventFeed
from roombot.chat.commands import CommandDispatcher
from roombot.core.errors import AuthError
from roombot.core.service import ServiceState, ServiceStatus
from roombot.ui.web_interface import SlashCommandInterface


@pytest.fixture
def interface(reconciler, provider, store, tz, clock):
    dispatcher = CommandDispatcher(reconciler, provider, tz, "https://calendar.example.com", clock=clock)
    return SlashCommandInterface(dispatcher, store, "slash-secret")


def slash_form(text, token="slash-secret"):
    return {
        "token": token,
        "channel_id": "C1",
        "user_name": "alice",
        "text": text,
    }


class TestVerifyToken:
    """Tests for shared-secret verification."""

    def test_accepts_matching_token(self, interface):
        interface.verify_token("slash-secret")

    def test_rejects_other_token(self, interface):
        with pytest.raises(AuthError):
            interface.verify_token("slash-secret2")


class TestSlashEndpoint:
    """Tests for the slash-command route."""

    @pytest.mark.asyncio
    async def test_wrong_token_is_forbidden(self, interface, provider):
        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.post("/slash", data=slash_form("list", token="nope"))

            assert resp.status == 403
            assert await resp.text() == "Not authenticated."

        assert provider.fetch_calls == []

    @pytest.mark.asyncio
    async def test_missing_token_is_forbidden(self, interface):
        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.post("/slash", data={"text": "list"})

            assert resp.status == 403

    @pytest.mark.asyncio
    async def test_help_reply(self, interface):
        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.post("/slash", data=slash_form("help"))

            assert resp.status == 200
            body = await resp.json()
            assert body["text"] == "Booking command syntax:"

    @pytest.mark.asyncio
    async def test_list_reply_is_ephemeral(self, interface):
        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.post("/slash", data=slash_form("list"))

            body = await resp.json()
            assert body["response_type"] == "ephemeral"
            assert body["text"] == "No bookings to show."

    @pytest.mark.asyncio
    async def test_book_reply(self, interface, provider, make_event):
        provider.quick_add_result = make_event("new", start_hours=3)

        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.post("/slash", data=slash_form("1pm meeting"))

            body = await resp.json()
            assert body["response_type"] == "in_channel"
            assert body["text"] == "Booked for Today from 1:00 to 2:00pm."

        assert provider.quick_add_calls == ["alice: 1pm meeting"]


class TestStatusEndpoint:
    """Tests for the status route."""

    @pytest.mark.asyncio
    async def test_status_omits_booking_details(self, interface, reconciler, provider, make_event):
        provider.script(EventFeed(events=[make_event("a", summary="alice: standup")], cursor="c1"))
        await reconciler.sync()

        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.get("/status")

            body = await resp.json()
            assert body["active_bookings"] == 1
            assert body["computed_at"] is not None
            assert "alice: standup" not in await resp.text()
            assert "next" not in body

    @pytest.mark.asyncio
    async def test_status_needs_no_token(self, interface):
        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.get("/status")

            assert resp.status == 200
            assert (await resp.json())["active_bookings"] == 0

    @pytest.mark.asyncio
    async def test_status_reports_services(self, reconciler, provider, store, tz, clock):
        dispatcher = CommandDispatcher(reconciler, provider, tz, "https://calendar.example.com", clock=clock)
        interface = SlashCommandInterface(
            dispatcher, store, "slash-secret",
            service_status=lambda: {"slack": ServiceStatus("slack", ServiceState.RUNNING)},
        )

        async with test_utils.TestClient(test_utils.TestServer(interface.build_app())) as client:
            resp = await client.get("/status")

            body = await resp.json()
            assert body["services"]["slack"]["state"] == "running"
