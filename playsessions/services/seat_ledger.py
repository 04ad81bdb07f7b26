"""
Seat ledger: the only code that moves an event's occupied-seat counter.

Every mutation of an event runs inside ``SeatLedger.lock_event``, which
serialises work per event (an in-process ``asyncio.Lock``, an optional Redis
lock across processes, and a row lock in the database) and wraps it in one
transaction.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheKeyBuilder, distributed_lock, get_cache
from ..config import get_settings
from ..models.event import Event
from ..models.guest import Guest
from ..models.hold import Hold, HoldStatus
from ..models.registration import Registration, RegistrationStatus
from ..utils.exceptions import ConcurrencyError, EventNotFoundError, InvalidStateError, ValidationError
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

LockHook = Callable[[Event], Awaitable[None]]


class EventLockRegistry:
    """One ``asyncio.Lock`` per event id, shared by every session in the process.

    A lock lives only while some task holds or waits on it, so the registry
    stays as small as the set of events currently in use.
    """

    def __init__(self):
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._users: Dict[UUID, int] = {}

    @asynccontextmanager
    async def acquire(self, event_id: UUID) -> AsyncIterator[asyncio.Lock]:
        lock = self._locks.get(event_id)
        if lock is None:
            lock = self._locks[event_id] = asyncio.Lock()
        self._users[event_id] = self._users.get(event_id, 0) + 1

        try:
            async with lock:
                yield lock
        finally:
            self._users[event_id] -= 1
            if not self._users[event_id]:
                del self._users[event_id]
                del self._locks[event_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class Reservation:
    """Outcome of a reserve call. ``granted + remainder`` is what was asked for."""
    granted: int
    remainder: int

    @property
    def fully_granted(self) -> bool:
        return self.remainder == 0

    @property
    def is_partial(self) -> bool:
        return self.granted > 0 and self.remainder > 0


class SeatLedger:
    """Atomic reserve and release of seats against an event's capacity."""

    def __init__(
        self,
        session: AsyncSession,
        locks: EventLockRegistry,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.locks = locks
        self.notifier = notifier or NotificationDispatcher()
        self.settings = get_settings()
        self._lock_hooks: List[LockHook] = []

    def register_lock_hook(self, hook: LockHook) -> None:
        """Run ``hook(event)`` right after the event is locked, before any capacity read."""
        self._lock_hooks.append(hook)

    @asynccontextmanager
    async def lock_event(self, event_id: UUID) -> AsyncIterator[Event]:
        """
        Open the per-event transaction.

        Commits when the block exits cleanly and rolls back on error. Buffered
        notifications are dispatched only after a successful commit.

        Args:
            event_id: Event to lock

        Yields:
            The event row, freshly loaded under the row lock

        Raises:
            EventNotFoundError: If the event does not exist
        """
        if self.settings.enable_distributed_locks and get_cache().is_ready:
            cross_process = distributed_lock(
                CacheKeyBuilder.event_lock(str(event_id)),
                timeout=self.settings.distributed_lock_timeout_seconds,
            )
        else:
            cross_process = nullcontext()

        async with self.locks.acquire(event_id):
            async with cross_process:
                try:
                    event = await self._load_for_update(event_id)
                    for hook in self._lock_hooks:
                        await hook(event)
                    yield event
                    await self.session.commit()
                except BaseException:
                    await self.session.rollback()
                    self.notifier.discard()
                    raise

        self.notifier.flush()

    async def _load_for_update(self, event_id: UUID) -> Event:
        result = await self.session.execute(
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    def free_seats(self, event: Event) -> int:
        """Seats still available. The single answer to "is there room"."""
        return max(event.capacity - event.occupied, 0)

    async def reserve(self, event: Event, seats: int, all_or_nothing: bool = False) -> Reservation:
        """
        Claim up to ``seats`` seats on a locked event.

        Args:
            event: Event returned by ``lock_event``
            seats: Seats wanted
            all_or_nothing: Grant every seat or none

        Returns:
            Reservation with the granted and left-over counts
        """
        if seats < 1:
            raise ValidationError("At least one seat must be requested", field_errors={"seats": ["must be >= 1"]})

        free = self.free_seats(event)
        if all_or_nothing:
            granted = seats if seats <= free else 0
        else:
            granted = min(seats, free)

        if granted:
            result = await self.session.execute(
                update(Event)
                .where(
                    Event.id == event.id,
                    Event.occupied + granted <= Event.capacity,
                )
                .values(occupied=Event.occupied + granted)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrencyError(f"Seat counter for event {event.id} changed while locked")
            await self.session.refresh(event, attribute_names=["occupied", "updated_at"])

        logger.debug(
            f"Reserved {granted}/{seats} seats on event {event.id} "
            f"(occupied {event.occupied}/{event.capacity})"
        )
        return Reservation(granted=granted, remainder=seats - granted)

    async def release(self, event: Event, seats: int) -> None:
        """
        Give ``seats`` seats back to a locked event.

        Raises:
            InvalidStateError: If fewer seats are occupied than are being released
        """
        if seats <= 0:
            return

        result = await self.session.execute(
            update(Event)
            .where(Event.id == event.id, Event.occupied >= seats)
            .values(occupied=Event.occupied - seats)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                f"Cannot release {seats} seats on event {event.id}: only {event.occupied} occupied",
                resource_type="event",
            )
        await self.session.refresh(event, attribute_names=["occupied", "updated_at"])

        logger.debug(f"Released {seats} seats on event {event.id} (occupied {event.occupied}/{event.capacity})")

    async def recount(self, event_id: UUID) -> int:
        """
        Recompute occupancy from registrations and holds.

        Confirmed registrations count one seat plus their guests; open holds
        count their seats. Used to audit the counter.
        """
        confirmed = await self.session.scalar(
            select(func.count(Registration.id)).where(
                Registration.event_id == event_id,
                Registration.status == RegistrationStatus.CONFIRMED,
            )
        )
        guests = await self.session.scalar(
            select(func.count(Guest.id))
            .join(Registration, Guest.registration_id == Registration.id)
            .where(
                Registration.event_id == event_id,
                Registration.status == RegistrationStatus.CONFIRMED,
            )
        )
        held = await self.session.scalar(
            select(func.coalesce(func.sum(Hold.seats), 0)).where(
                Hold.event_id == event_id,
                Hold.status == HoldStatus.AWAITING_PAYMENT,
            )
        )
        return int(confirmed or 0) + int(guests or 0) + int(held or 0)
