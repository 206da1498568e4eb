"""
Periodic driver for RoomBot.

One tick loop, several cadences sharing the same clock:

- Resync: every tick, pull the calendar delta through the reconciler.
  A failure leaves the store untouched and is retried on the next tick;
  the tick interval is the backoff.
- Daily digest: a single absolute deadline. When a tick passes it, one
  digest is broadcast and the deadline moves forward by whole days until
  it is in the future again.
- Reminders: one broadcast per booking when the next booking is about
  to start.

The scheduler owns no booking state, only its timestamps.
"""

import asyncio
import logging
from datetime import datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Optional, Callable, Set

from roombot.calendar.booking import Booking
from roombot.calendar.reconciler import Reconciler, SyncResult, utc_now
from roombot.chat.commands import CommandDispatcher
from roombot.chat.gateway import ChatGateway
from roombot.chat.messages import next_topic, reminder_message
from roombot.core.errors import ProviderError
from roombot.core.service import Service

logger = logging.getLogger(__name__)

DIGEST_PERIOD = timedelta(days=1)


class SyncState(Enum):
    """Resync cadence states."""
    IDLE = "idle"
    FETCHING = "fetching"
    APPLIED = "applied"
    FAILED = "failed"


def first_digest_deadline(now: datetime, tz: tzinfo, hour: int) -> datetime:
    """Today at ``hour`` o'clock in ``tz``."""
    today = now.astimezone(tz).date()
    return datetime.combine(today, time(hour=hour), tzinfo=tz)


class Scheduler(Service):
    """Drives resyncs, the daily digest, reminders and topic updates."""

    def __init__(
        self,
        reconciler: Reconciler,
        dispatcher: CommandDispatcher,
        gateway: ChatGateway,
        tz: tzinfo,
        interval: float = 5.0,
        digest_hour: Optional[int] = 8,
        reminder_minutes: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            reconciler: Sync engine to drive
            dispatcher: Renders the digest
            gateway: Where broadcasts and topics go
            tz: Display timezone
            interval: Seconds between ticks
            digest_hour: Local hour of the daily digest; None disables it
            reminder_minutes: Lead time for reminders; 0 disables them
            clock: Source of "now"
        """
        super().__init__("scheduler")
        self._reconciler = reconciler
        self._dispatcher = dispatcher
        self._gateway = gateway
        self._tz = tz
        self._interval = interval
        self._reminder_lead = timedelta(minutes=reminder_minutes)
        self._clock = clock

        self.sync_state = SyncState.IDLE
        self.next_digest_deadline: Optional[datetime] = None
        if digest_hour is not None:
            self.next_digest_deadline = first_digest_deadline(clock(), tz, digest_hour)
            logger.info(f"Next daily update scheduled for {self.next_digest_deadline}")

        self._reminded: Set[str] = set()
        self._active = asyncio.Event()
        self._active.set()
        self._task: Optional[asyncio.Task] = None

        reconciler.on_next_changed(self.announce_next)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the tick loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run_loop())
            logger.info(f"Scheduler started (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop the tick loop, abandoning any in-flight fetch."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")

    def pause(self) -> None:
        """Stop ticking until resumed (e.g. while chat is disconnected)."""
        self._active.clear()

    def resume(self) -> None:
        self._active.set()

    @property
    def paused(self) -> bool:
        return not self._active.is_set()

    async def _run_loop(self) -> None:
        """Background tick loop."""
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self._active.wait()
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Scheduler tick error: {e}")

    # ------------------------------------------------------------------
    # Cadences
    # ------------------------------------------------------------------

    async def tick(self, now: Optional[datetime] = None) -> Optional[SyncResult]:
        """
        Run one tick of every cadence.

        Returns:
            The sync result, or None if the sync failed.
        """
        now = now or self._clock()
        result = await self.resync()
        await self.check_digest(now)
        await self.check_reminder(now)
        return result

    async def resync(self) -> Optional[SyncResult]:
        """Idle -> Fetching -> Applied/Failed -> Idle."""
        self.sync_state = SyncState.FETCHING
        try:
            result = await self._reconciler.sync()
        except ProviderError as e:
            self.sync_state = SyncState.FAILED
            logger.error(f"Unable to retrieve calendar events: {e}")
            result = None
        else:
            self.sync_state = SyncState.APPLIED
        finally:
            # Next attempt waits for the next tick
            self.sync_state = SyncState.IDLE
        return result

    async def check_digest(self, now: datetime) -> bool:
        """
        Broadcast the daily digest once the deadline has passed.

        Returns:
            True if a digest was sent.
        """
        if self.next_digest_deadline is None or now <= self.next_digest_deadline:
            return False

        # One digest, however many deadlines were missed
        while self.next_digest_deadline <= now:
            self.next_digest_deadline += DIGEST_PERIOD
        logger.info(f"Sending daily digest; next one at {self.next_digest_deadline}")

        message = self._dispatcher.list_bookings()
        message.response_type = None
        await self._gateway.broadcast(message)
        return True

    async def check_reminder(self, now: datetime) -> bool:
        """
        Remind channels about the next booking shortly before it starts.

        Returns:
            True if a reminder was sent.
        """
        snapshot = self._reconciler.store.snapshot
        active_ids = {b.id for b in snapshot.active}
        self._reminded &= active_ids

        booking = snapshot.next
        if not self._reminder_lead or booking is None or booking.id in self._reminded:
            return False
        if not now <= booking.start <= now + self._reminder_lead:
            return False

        self._reminded.add(booking.id)
        logger.info(f"Booking starting soon: {booking.title}")
        await self._gateway.broadcast(reminder_message(booking, now, self._tz))
        return True

    async def announce_next(self, booking: Optional[Booking]) -> None:
        """Set every channel topic to the new next booking."""
        topic = next_topic(booking, self._clock(), self._tz)
        changed = await self._gateway.set_topic(topic)
        logger.debug(f"Topic '{topic}' set on {changed} channels")
