"""
Waitlist service: the FIFO queue of seat demand an event could not meet.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import Event
from ..models.registration import Registration, RegistrationStatus
from ..models.waitlist import WaitlistEntry, WaitlistKind
from ..utils.exceptions import (
    AlreadyRegisteredError,
    AlreadyWaitlistedError,
    EventNotFoundError,
    InvalidStateError,
    RegistrationNotFoundError,
    ValidationError,
    WaitlistEntryNotFoundError,
)
from ..utils.logging_config import log_business_event
from .seat_ledger import SeatLedger

logger = logging.getLogger(__name__)


class WaitlistService:
    """Service for managing event waitlists.

    Entries are served strictly by ascending position whatever their kind.
    Positions come from ``Event.waitlist_sequence`` and are never reused.
    """

    def __init__(self, session: AsyncSession, ledger: SeatLedger):
        self.session = session
        self.ledger = ledger

    async def join(
        self,
        event_id: UUID,
        owner_id: UUID,
        kind: WaitlistKind = WaitlistKind.NEW_SPOT,
        requested_seats: int = 1,
        owner_registration_id: Optional[UUID] = None,
    ) -> WaitlistEntry:
        """
        Join an event's waitlist.

        Args:
            event_id: Event to wait for
            owner_id: Member joining
            kind: NEW_SPOT for a registration, ADD_GUESTS for more guests
            requested_seats: Seats wanted (always 1 for NEW_SPOT)
            owner_registration_id: Registration to add guests to (ADD_GUESTS only)

        Returns:
            The new or merged waitlist entry

        Raises:
            InvalidStateError: If the event still has free seats
            AlreadyRegisteredError: If a NEW_SPOT owner already holds a registration
            AlreadyWaitlistedError: If a NEW_SPOT owner is already waiting
        """
        if requested_seats < 1:
            raise ValidationError(
                "Requested seats must be at least 1",
                field_errors={"requested_seats": ["must be >= 1"]}
            )

        async with self.ledger.lock_event(event_id) as event:
            free = self.ledger.free_seats(event)
            if free > 0:
                raise InvalidStateError(
                    f"Event {event_id} has {free} free seats, register normally",
                    resource_type="event",
                    details={"free_seats": free},
                )

            if kind == WaitlistKind.NEW_SPOT:
                if owner_registration_id is not None:
                    raise ValidationError("A new spot entry cannot reference a registration")
                existing = await self._active_registration(event_id, owner_id)
                if existing is not None:
                    raise AlreadyRegisteredError(str(event_id), str(existing.id), existing.status.value)
                entry = await self.enqueue(event, owner_id, WaitlistKind.NEW_SPOT, 1)
            else:
                if owner_registration_id is None:
                    raise ValidationError("An add-guests entry needs a registration")
                registration = await self.session.get(Registration, owner_registration_id, populate_existing=True)
                if (
                    registration is None
                    or registration.owner_id != owner_id
                    or registration.event_id != event_id
                ):
                    raise RegistrationNotFoundError(str(owner_registration_id))
                if registration.status != RegistrationStatus.CONFIRMED:
                    raise InvalidStateError(
                        "Guests can only be waitlisted for a confirmed registration",
                        resource_type="registration",
                        current_state=registration.status.value,
                    )
                entry = await self.enqueue(
                    event, owner_id, WaitlistKind.ADD_GUESTS, requested_seats, registration.id
                )

        return entry

    async def enqueue(
        self,
        event: Event,
        owner_id: UUID,
        kind: WaitlistKind,
        requested_seats: int,
        owner_registration_id: Optional[UUID] = None,
    ) -> WaitlistEntry:
        """Append demand to a locked event's queue, merging add-guests demand per registration."""
        if kind == WaitlistKind.NEW_SPOT:
            existing = await self.find_new_spot(event.id, owner_id)
            if existing is not None:
                raise AlreadyWaitlistedError(str(event.id), str(existing.id))
        else:
            existing = await self.find_add_guests(owner_registration_id)
            if existing is not None:
                existing.requested_seats += requested_seats
                await self.session.flush()
                logger.info(
                    f"Merged {requested_seats} seats into waitlist entry {existing.id} "
                    f"(now {existing.requested_seats}, position {existing.position})"
                )
                return existing

        event.waitlist_sequence += 1
        entry = WaitlistEntry(
            event_id=event.id,
            kind=kind,
            owner_id=owner_id,
            owner_registration_id=owner_registration_id,
            requested_seats=requested_seats,
            position=event.waitlist_sequence,
        )
        self.session.add(entry)
        await self.session.flush()

        log_business_event(
            "waitlist_joined",
            {"event_id": event.id, "entry_id": entry.id, "kind": kind.value,
             "requested_seats": requested_seats, "position": entry.position},
            user_id=str(owner_id),
        )
        return entry

    async def reduce(self, entry_id: UUID, owner_id: UUID, count: int) -> Optional[WaitlistEntry]:
        """
        Ask for fewer seats. The entry keeps its position.

        Returns:
            The shrunk entry, or None when it reached zero and was deleted
        """
        if count < 1:
            raise ValidationError("Reduction must be at least 1", field_errors={"count": ["must be >= 1"]})

        event_id = await self._entry_event_id(entry_id)
        async with self.ledger.lock_event(event_id):
            entry = await self._get_owned_entry(entry_id, owner_id)
            if count > entry.requested_seats:
                raise ValidationError(
                    f"Cannot reduce by {count}, entry requests {entry.requested_seats}",
                    field_errors={"count": [f"must be <= {entry.requested_seats}"]},
                )
            remaining = await self.consume(entry, count)

        return remaining

    async def leave(self, entry_id: UUID, owner_id: UUID) -> None:
        """Remove an entry from the queue."""
        event_id = await self._entry_event_id(entry_id)
        async with self.ledger.lock_event(event_id):
            entry = await self._get_owned_entry(entry_id, owner_id)
            await self.session.delete(entry)
            await self.session.flush()
        logger.info(f"Waitlist entry {entry_id} left by owner {owner_id}")

    async def consume(self, entry: WaitlistEntry, seats: int) -> Optional[WaitlistEntry]:
        """Take ``seats`` off an entry, deleting it at zero."""
        if seats >= entry.requested_seats:
            await self.session.delete(entry)
            await self.session.flush()
            return None

        entry.requested_seats -= seats
        await self.session.flush()
        return entry

    async def discard(self, entry: WaitlistEntry) -> None:
        await self.session.delete(entry)
        await self.session.flush()

    async def remove_for_registration(self, registration_id: UUID) -> int:
        """Delete the add-guests demand of a registration. Returns seats dropped."""
        entry = await self.find_add_guests(registration_id)
        if entry is None:
            return 0
        seats = entry.requested_seats
        await self.discard(entry)
        return seats

    async def entries_in_order(self, event_id: UUID) -> List[WaitlistEntry]:
        result = await self.session.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.event_id == event_id)
            .order_by(WaitlistEntry.position)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_event_waitlist(self, event_id: UUID) -> List[WaitlistEntry]:
        """Public view of an event's queue in serving order."""
        if await self.session.get(Event, event_id) is None:
            raise EventNotFoundError(str(event_id))
        return await self.entries_in_order(event_id)

    async def get_owner_entries(self, owner_id: UUID) -> List[WaitlistEntry]:
        result = await self.session.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.owner_id == owner_id)
            .order_by(WaitlistEntry.created_at, WaitlistEntry.position)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_position(self, entry: WaitlistEntry) -> int:
        """1-based rank of an entry among the live entries of its event."""
        ahead = await self.session.scalar(
            select(func.count(WaitlistEntry.id)).where(
                WaitlistEntry.event_id == entry.event_id,
                WaitlistEntry.position < entry.position,
            )
        )
        return int(ahead or 0) + 1

    async def count_for_event(self, event_id: UUID) -> int:
        total = await self.session.scalar(
            select(func.count(WaitlistEntry.id)).where(WaitlistEntry.event_id == event_id)
        )
        return int(total or 0)

    async def find_new_spot(self, event_id: UUID, owner_id: UUID) -> Optional[WaitlistEntry]:
        result = await self.session.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.event_id == event_id,
                WaitlistEntry.owner_id == owner_id,
                WaitlistEntry.kind == WaitlistKind.NEW_SPOT,
            )
        )
        return result.scalar_one_or_none()

    async def find_add_guests(self, registration_id: UUID) -> Optional[WaitlistEntry]:
        result = await self.session.execute(
            select(WaitlistEntry)
            .where(
                WaitlistEntry.owner_registration_id == registration_id,
                WaitlistEntry.kind == WaitlistKind.ADD_GUESTS,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _active_registration(self, event_id: UUID, owner_id: UUID) -> Optional[Registration]:
        result = await self.session.execute(
            select(Registration).where(
                Registration.event_id == event_id,
                Registration.owner_id == owner_id,
                Registration.status != RegistrationStatus.CANCELLED,
            )
        )
        return result.scalars().first()

    async def _entry_event_id(self, entry_id: UUID) -> UUID:
        event_id = await self.session.scalar(
            select(WaitlistEntry.event_id).where(WaitlistEntry.id == entry_id)
        )
        if event_id is None:
            raise WaitlistEntryNotFoundError(str(entry_id))
        return event_id

    async def _get_owned_entry(self, entry_id: UUID, owner_id: UUID) -> WaitlistEntry:
        result = await self.session.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if entry is None or entry.owner_id != owner_id:
            raise WaitlistEntryNotFoundError(str(entry_id))
        return entry
