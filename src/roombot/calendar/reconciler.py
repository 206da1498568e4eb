"""
Booking store and reconciler.

The reconciler mirrors the provider's event feed into a BookingStore.
Every sync applies the delta to a working copy of the booking map, then
rebuilds the sorted active view and the next booking from scratch and
commits everything in one step. A failed fetch commits nothing.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Callable, Tuple, Iterable

from roombot.calendar.booking import Booking, booking_from_event
from roombot.calendar.providers.base import CalendarProvider, CalendarEvent, EventFeed
from roombot.core.errors import CursorExpiredError, ParseError, ProviderError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable view of the store as of the last committed sync."""

    active: Tuple[Booking, ...] = ()
    next: Optional[Booking] = None
    computed_at: Optional[datetime] = None

    def bookings_between(self, start: datetime, end: datetime) -> List[Tuple[int, Booking]]:
        """Active bookings starting in [start, end), with their 1-based position."""
        return [
            (position, booking)
            for position, booking in enumerate(self.active, start=1)
            if booking.is_within(start, end)
        ]


def build_snapshot(bookings: Iterable[Booking], now: datetime) -> StoreSnapshot:
    """Filter to active bookings, sort by start (id breaks ties), pick next."""
    active = tuple(sorted(
        (b for b in bookings if b.is_active(now)),
        key=lambda b: (b.start, b.id),
    ))
    return StoreSnapshot(
        active=active,
        next=active[0] if active else None,
        computed_at=now,
    )


class BookingStore:
    """
    Booking state owned by the reconciler.

    ``by_id`` keeps every known booking, including ones that have ended
    but were never deleted by the provider. Readers should use
    ``snapshot``; it is replaced, never mutated.
    """

    def __init__(self):
        self.by_id: Dict[str, Booking] = {}
        self.cursor: Optional[str] = None
        self.snapshot: StoreSnapshot = StoreSnapshot()

    @property
    def active(self) -> Tuple[Booking, ...]:
        return self.snapshot.active

    @property
    def next(self) -> Optional[Booking]:
        return self.snapshot.next

    def commit(self, by_id: Dict[str, Booking], cursor: Optional[str], snapshot: StoreSnapshot) -> None:
        """Replace all state at once."""
        self.by_id = by_id
        self.cursor = cursor
        self.snapshot = snapshot


@dataclass
class SyncResult:
    """Outcome of one sync."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    parse_errors: int = 0
    full: bool = False
    next_changed: bool = False
    cursor: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.deleted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "deleted": self.deleted,
            "parse_errors": self.parse_errors,
            "full": self.full,
            "next_changed": self.next_changed,
        }


NextChangedCallback = Callable[[Optional[Booking]], Any]


class Reconciler:
    """
    Sync engine between a calendar provider and a BookingStore.

    Syncs are serialized by a lock: a sync requested while another is in
    flight waits for it and then fetches with the cursor it committed.
    """

    def __init__(
        self,
        provider: CalendarProvider,
        store: BookingStore,
        calendar_id: str,
        fetch_timeout: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._provider = provider
        self._store = store
        self._calendar_id = calendar_id
        self._fetch_timeout = fetch_timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        self._on_next_changed: List[NextChangedCallback] = []

    @property
    def store(self) -> BookingStore:
        return self._store

    @property
    def calendar_id(self) -> str:
        return self._calendar_id

    def on_next_changed(self, callback: NextChangedCallback) -> None:
        """
        Register callback for when the next booking changes.

        Args:
            callback: Function (sync or async) taking the new next booking,
                or None when nothing is booked
        """
        self._on_next_changed.append(callback)

    async def sync(self) -> SyncResult:
        """
        Pull one delta from the provider and commit it.

        Returns:
            Counts of added/updated/deleted bookings and change flags.

        Raises:
            ProviderError: If the fetch fails or times out. The store is
                left exactly as it was.
        """
        async with self._lock:
            now = self._clock()
            cursor = self._store.cursor

            try:
                feed = await self._fetch(cursor, now)
            except CursorExpiredError:
                logger.warning("Sync cursor expired, falling back to a full fetch")
                cursor = None
                feed = await self._fetch(None, now)

            result = SyncResult(full=cursor is None, cursor=feed.cursor)
            by_id = self._apply(feed.events, result)

            previous_next = self._store.next
            snapshot = build_snapshot(by_id.values(), now)
            result.next_changed = snapshot.next != previous_next

            self._store.commit(by_id, feed.cursor, snapshot)

        self._log_result(result)

        if result.next_changed:
            await self._notify_next_changed(snapshot.next)

        return result

    async def _fetch(self, cursor: Optional[str], now: datetime) -> EventFeed:
        try:
            return await asyncio.wait_for(
                self._provider.fetch_events(self._calendar_id, cursor=cursor, time_min=now),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            raise ProviderError(f"Calendar fetch timed out after {self._fetch_timeout}s")

    def _apply(self, events: List[CalendarEvent], result: SyncResult) -> Dict[str, Booking]:
        """Apply events to a copy of the booking map, counting changes."""
        by_id = dict(self._store.by_id)
        seen = set()

        for event in events:
            seen.add(event.id)
            try:
                booking = booking_from_event(event, self._calendar_id)
            except ParseError as e:
                logger.warning(f"Skipping event: {e}")
                result.parse_errors += 1
                booking = None

            existing = by_id.get(event.id)
            if booking is None:
                by_id.pop(event.id, None)
                result.deleted += 1
            elif existing is None:
                by_id[booking.id] = booking
                result.added += 1
            elif existing != booking:
                by_id[booking.id] = booking
                result.updated += 1

        # A full feed lists everything that exists; anything else is gone
        if result.full:
            for booking_id in [i for i in by_id if i not in seen]:
                del by_id[booking_id]
                result.deleted += 1

        return by_id

    def _log_result(self, result: SyncResult) -> None:
        if result.updated:
            logger.info(f"{result.updated} updated bookings.")
        if result.deleted:
            logger.info(f"{result.deleted} deleted bookings.")
        if result.added:
            logger.info(f"{result.added} added bookings.")
        if result.changed:
            logger.info(f"New bookings map length: {len(self._store.by_id)}")

    async def _notify_next_changed(self, booking: Optional[Booking]) -> None:
        for callback in self._on_next_changed:
            try:
                outcome = callback(booking)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Next booking callback error: {e}")
