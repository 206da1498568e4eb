"""
Chat command dispatcher.

Maps an inbound (channel, user, text) triple to list, help or book, and
renders the reply. Reads go through the store's last committed
snapshot; the only write path (book) submits to the provider and then
runs a sync through the reconciler's lock.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta, tzinfo
from enum import Enum
from typing import Callable, Tuple

from roombot.calendar.booking import booking_from_event
from roombot.calendar.providers.base import CalendarProvider
from roombot.calendar.reconciler import Reconciler, utc_now
from roombot.chat.messages import (
    EPHEMERAL,
    IN_CHANNEL,
    TODAY_COLOR,
    TOMORROW_COLOR,
    Message,
    booking_attachment,
    calendar_link_attachment,
    help_attachment,
    help_message,
)
from roombot.core.errors import ParseError, ProviderError

logger = logging.getLogger(__name__)


class CommandType(Enum):
    """Commands understood by the bot."""
    LIST = "list"
    HELP = "help"
    BOOK = "book"


# First-token aliases; anything else is free text for a booking
KEYWORDS = {
    "list": CommandType.LIST,
    "show": CommandType.LIST,
    "help": CommandType.HELP,
    "book": CommandType.BOOK,
}


@dataclass(frozen=True)
class Command:
    """A parsed chat command."""
    type: CommandType
    channel: str
    user: str
    text: str = ""  # booking text, without any leading "book" keyword


def parse_command(channel: str, user: str, text: str) -> Command:
    """
    Parse raw command text.

    Blank input is help. A first token of list/show/help selects that
    command; everything else (optionally prefixed with "book") is a
    booking request.
    """
    stripped = (text or "").strip()
    if not stripped:
        return Command(CommandType.HELP, channel, user)

    first, *rest = stripped.split(None, 1)
    command_type = KEYWORDS.get(first.lower())

    if command_type is None:
        return Command(CommandType.BOOK, channel, user, stripped)
    if command_type is CommandType.BOOK:
        return Command(CommandType.BOOK, channel, user, rest[0] if rest else "")
    return Command(command_type, channel, user)


def day_window(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """[midnight, next midnight) of a calendar day in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class CommandDispatcher:
    """Executes chat commands against the booking store."""

    def __init__(
        self,
        reconciler: Reconciler,
        provider: CalendarProvider,
        tz: tzinfo,
        calendar_url: str,
        submit_timeout: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._reconciler = reconciler
        self._provider = provider
        self._tz = tz
        self._calendar_url = calendar_url
        self._submit_timeout = submit_timeout
        self._clock = clock

    async def dispatch(self, channel: str, user: str, text: str) -> Message:
        """Run a command and return the reply."""
        command = parse_command(channel, user, text)
        logger.debug(f"Command from {user} in {channel}: {command.type.value}")

        if command.type is CommandType.LIST:
            return self.list_bookings()
        if command.type is CommandType.BOOK:
            return await self.book(command)
        return help_message()

    def list_bookings(self) -> Message:
        """Today's and tomorrow's bookings, the calendar link and help."""
        snapshot = self._reconciler.store.snapshot
        now = self._clock()
        today = now.astimezone(self._tz).date()

        message = Message(response_type=EPHEMERAL)
        if snapshot.active:
            message.text = "Upcoming Bookings:"
        else:
            message.text = "No bookings to show."

        for day, color in ((today, TODAY_COLOR), (today + timedelta(days=1), TOMORROW_COLOR)):
            start, end = day_window(day, self._tz)
            for position, booking in snapshot.bookings_between(start, end):
                message.attachments.append(
                    booking_attachment(booking, f"Booking #{position}", color, now, self._tz)
                )

        message.attachments.append(calendar_link_attachment(self._calendar_url))
        message.attachments.append(help_attachment())
        return message

    async def book(self, command: Command) -> Message:
        """Quick-add a booking for the user, then sync so it shows up."""
        text = f"{command.user}: {command.text}" if command.text else command.user

        try:
            event = await asyncio.wait_for(
                self._provider.quick_add(self._reconciler.calendar_id, text),
                timeout=self._submit_timeout,
            )
        except (ProviderError, asyncio.TimeoutError) as e:
            logger.warning(f"Booking '{text}' rejected: {e}")
            return Message(text="Could not book that!", response_type=EPHEMERAL)

        try:
            await self._reconciler.sync()
        except ProviderError as e:
            logger.error(f"Sync after booking failed: {e}")

        try:
            booking = booking_from_event(event, self._reconciler.calendar_id)
        except ParseError as e:
            logger.warning(f"Booked event could not be read back: {e}")
            booking = None

        if booking is None:
            return Message(text="Booked.", response_type=IN_CHANNEL)
        label = booking.time_label(self._clock(), self._tz)
        return Message(text=f"Booked for {label}.", response_type=IN_CHANNEL)
