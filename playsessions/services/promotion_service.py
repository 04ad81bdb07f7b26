"""
Promotion engine: turns freed seats into holds for the head of the waitlist.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import Event
from ..models.hold import HoldKind, PaymentMode
from ..models.registration import Registration, RegistrationStatus
from ..models.waitlist import WaitlistEntry, WaitlistKind
from ..utils.logging_config import log_business_event
from .notifications import NotificationType
from .seat_ledger import SeatLedger
from .waitlist_service import WaitlistService

if TYPE_CHECKING:
    from .payment_service import PaymentReconciliationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Promotion:
    entry_id: UUID
    kind: WaitlistKind
    owner_id: UUID
    registration_id: UUID
    hold_id: UUID
    seats: int


class PromotionEngine:
    """Serves the waitlist in position order whenever seats are free.

    Never skips an earlier entry to satisfy a later one: the head entry gets
    whatever is free, even if that only covers part of its request.
    """

    def __init__(
        self,
        session: AsyncSession,
        ledger: SeatLedger,
        waitlist: WaitlistService,
        payments: "PaymentReconciliationService",
    ):
        self.session = session
        self.ledger = ledger
        self.waitlist = waitlist
        self.payments = payments

    async def promote(self, event: Event) -> List[Promotion]:
        """
        Promote waitlisted demand on a locked event.

        Re-reads free capacity before every entry rather than trusting the
        number of seats that were just released.

        Args:
            event: Event returned by ``SeatLedger.lock_event``

        Returns:
            One Promotion per entry that received seats
        """
        promotions: List[Promotion] = []

        for entry in await self.waitlist.entries_in_order(event.id):
            free = self.ledger.free_seats(event)
            if free <= 0:
                break

            registration = await self._registration_for(entry)
            if registration is _STALE:
                logger.info(f"Dropping stale {entry.kind.value} waitlist entry {entry.id} at position {entry.position}")
                await self.waitlist.discard(entry)
                continue

            reservation = await self.ledger.reserve(event, min(entry.requested_seats, free))
            granted = reservation.granted
            if not granted:
                break

            entry_id, kind, owner_id = entry.id, entry.kind, entry.owner_id
            await self.waitlist.consume(entry, granted)

            if kind == WaitlistKind.NEW_SPOT:
                registration = Registration(
                    event_id=event.id,
                    owner_id=owner_id,
                    status=RegistrationStatus.PENDING,
                    guest_count=0,
                )
                self.session.add(registration)
                await self.session.flush()

            hold = await self.payments.open_hold(
                event,
                registration,
                kind=HoldKind.WAITLIST_PROMOTION,
                seats=granted,
                includes_primary=kind == WaitlistKind.NEW_SPOT,
                payment_mode=PaymentMode.CARD,
            )

            promotion = Promotion(
                entry_id=entry_id,
                kind=kind,
                owner_id=owner_id,
                registration_id=registration.id,
                hold_id=hold.id,
                seats=granted,
            )
            promotions.append(promotion)

            self.ledger.notifier.emit(
                NotificationType.SEAT_PROMOTED,
                owner_id,
                event_id=event.id,
                registration_id=registration.id,
                hold_id=hold.id,
                seats=granted,
                kind=kind.value,
                expires_at=hold.expires_at.isoformat() if hold.expires_at else None,
            )
            log_business_event(
                "waitlist_promoted",
                {"event_id": event.id, "entry_id": entry_id, "hold_id": hold.id,
                 "kind": kind.value, "seats": granted},
                user_id=str(owner_id),
            )

        if promotions:
            logger.info(
                f"Promoted {sum(p.seats for p in promotions)} seats across {len(promotions)} "
                f"waitlist entries on event {event.id}"
            )
        return promotions

    async def _registration_for(self, entry: WaitlistEntry):
        """Existing registration an entry's seats attach to.

        Returns None for a NEW_SPOT entry that is still serviceable and
        ``_STALE`` when the entry can no longer be served: the owner already
        holds a registration (NEW_SPOT) or the target registration is no longer
        confirmed (ADD_GUESTS).
        """
        if entry.kind == WaitlistKind.NEW_SPOT:
            result = await self.session.execute(
                select(Registration.id).where(
                    Registration.event_id == entry.event_id,
                    Registration.owner_id == entry.owner_id,
                    Registration.status != RegistrationStatus.CANCELLED,
                )
            )
            return _STALE if result.first() is not None else None

        registration = await self.session.get(
            Registration, entry.owner_registration_id, populate_existing=True
        )
        if registration is None or registration.status != RegistrationStatus.CONFIRMED:
            return _STALE
        return registration


_STALE = object()
