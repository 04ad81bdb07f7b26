"""
Registration service: creating, cancelling and resizing registrations.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models.guest import Guest
from ..models.hold import Hold, HoldKind, HoldStatus, PaymentMode
from ..models.registration import Registration, RegistrationStatus
from ..models.waitlist import WaitlistEntry, WaitlistKind
from ..utils.exceptions import (
    AlreadyRegisteredError,
    AlreadyWaitlistedError,
    CapacityExceededError,
    GuestNotFoundError,
    InvalidStateError,
    PaymentFailedError,
    RegistrationNotFoundError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .payment_service import PaymentReconciliationService
from .promotion_service import Promotion, PromotionEngine
from .seat_ledger import SeatLedger
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


class ReservationOutcome(str, enum.Enum):
    """How much of a seat request was met right away."""
    GRANTED = "granted"
    PARTIAL = "partial"
    WAITLISTED = "waitlisted"


class CancellationOutcome(str, enum.Enum):
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"


@dataclass
class RegistrationResult:
    outcome: ReservationOutcome
    registration: Optional[Registration] = None
    hold: Optional[Hold] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    granted: int = 0
    waitlisted: int = 0


@dataclass
class GuestAdmissionResult:
    """Split result of adding guests. ``granted + waitlisted`` is what was asked."""
    outcome: ReservationOutcome
    registration: Registration
    hold: Optional[Hold] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    granted: int = 0
    waitlisted: int = 0


@dataclass
class CancellationResult:
    outcome: CancellationOutcome
    registration: Registration
    seats_released: int = 0
    promotions: List[Promotion] = field(default_factory=list)


@dataclass
class GuestRemovalResult:
    registration: Registration
    removed: int
    promotions: List[Promotion] = field(default_factory=list)


@dataclass
class RegistrationDetails:
    registration: Registration
    guests: List[Guest]
    holds: List[Hold]
    waitlist_entry: Optional[WaitlistEntry] = None


@dataclass
class Availability:
    event_id: UUID
    capacity: int
    occupied: int
    free_seats: int
    waitlist_length: int

    @property
    def is_full(self) -> bool:
        return self.free_seats == 0


class RegistrationService:
    """Service for registrations and their guests."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: SeatLedger,
        waitlist: WaitlistService,
        payments: PaymentReconciliationService,
        promotion: PromotionEngine,
    ):
        self.session = session
        self.ledger = ledger
        self.waitlist = waitlist
        self.payments = payments
        self.promotion = promotion
        self.settings = get_settings()

    async def create_registration(
        self,
        event_id: UUID,
        owner_id: UUID,
        guest_count: int = 0,
        payment_mode: PaymentMode = PaymentMode.CARD,
        points_to_use: int = 0,
    ) -> RegistrationResult:
        """
        Register an owner, with guests, for an event.

        The primary seat and every guest seat are reserved together or not at
        all. A full event puts the owner on the waitlist instead.

        Args:
            event_id: Event to register for
            owner_id: Member registering
            guest_count: Guests coming along
            payment_mode: Card, points or mixed
            points_to_use: Points applied to a mixed payment

        Returns:
            GRANTED with a pending registration and its hold, or WAITLISTED
            with the new waitlist entry

        Raises:
            AlreadyRegisteredError: If the owner already holds a registration
            AlreadyWaitlistedError: If the owner is already waiting for a spot
            CapacityExceededError: If some seats are free but not enough
            PaymentFailedError: If the points debit was declined
        """
        self._check_guest_count(guest_count, minimum=0)
        seats = 1 + guest_count
        failed_hold: Optional[Hold] = None

        async with self.ledger.lock_event(event_id) as event:
            if not event.is_active:
                raise InvalidStateError(
                    f"Event {event_id} is not open for registration",
                    resource_type="event",
                )

            existing = await self._active_registration(event_id, owner_id)
            if existing is not None:
                raise AlreadyRegisteredError(str(event_id), str(existing.id), existing.status.value)

            entry = await self.waitlist.find_new_spot(event_id, owner_id)
            if entry is not None:
                raise AlreadyWaitlistedError(str(event_id), str(entry.id))

            reservation = await self.ledger.reserve(event, seats, all_or_nothing=True)

            if reservation.granted:
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
                    kind=HoldKind.NEW_REGISTRATION,
                    seats=seats,
                    includes_primary=True,
                    payment_mode=payment_mode,
                    points_to_use=points_to_use,
                )
                if hold.status == HoldStatus.CANCELLED:
                    failed_hold = hold
                else:
                    result = RegistrationResult(
                        outcome=ReservationOutcome.GRANTED,
                        registration=registration,
                        hold=hold,
                        granted=seats,
                    )
            elif self.ledger.free_seats(event) == 0:
                entry = await self.waitlist.enqueue(event, owner_id, WaitlistKind.NEW_SPOT, 1)
                result = RegistrationResult(
                    outcome=ReservationOutcome.WAITLISTED,
                    waitlist_entry=entry,
                    waitlisted=1,
                )
            else:
                raise CapacityExceededError(seats, self.ledger.free_seats(event), event_id=str(event_id))

        if failed_hold is not None:
            raise PaymentFailedError("Points payment was declined", hold_id=str(failed_hold.id))

        log_business_event(
            "registration_requested",
            {"event_id": event_id, "outcome": result.outcome.value, "seats": seats,
             "registration_id": result.registration.id if result.registration else None},
            user_id=str(owner_id),
        )
        return result

    async def cancel_registration(
        self,
        registration_id: UUID,
        owner_id: UUID,
        reason: str = "cancelled_by_owner",
    ) -> CancellationResult:
        """
        Cancel a registration and hand its seats to the waitlist.

        Cancels outstanding holds, deletes guests and queued guest demand,
        releases every seat the registration occupied and runs promotion, all
        in one transaction. Cancelling twice changes nothing.
        """
        event_id = await self._registration_event_id(registration_id, owner_id)

        async with self.ledger.lock_event(event_id) as event:
            registration = await self._get_owned_registration(registration_id, owner_id)
            if registration.status == RegistrationStatus.CANCELLED:
                return CancellationResult(
                    outcome=CancellationOutcome.ALREADY_CANCELLED,
                    registration=registration,
                )

            confirmed_seats = registration.seats if registration.status == RegistrationStatus.CONFIRMED else 0
            held_seats = await self.payments.cancel_open_holds(event, registration.id)

            await self.session.execute(delete(Guest).where(Guest.registration_id == registration.id))
            await self.waitlist.remove_for_registration(registration.id)
            await self.ledger.release(event, confirmed_seats)

            registration = await self._get_owned_registration(registration_id, owner_id)
            registration.status = RegistrationStatus.CANCELLED
            registration.guest_count = 0
            registration.cancelled_at = self.payments.clock()
            registration.cancellation_reason = reason
            await self.session.flush()

            promotions = await self.promotion.promote(event)

        log_business_event(
            "registration_cancelled",
            {"event_id": event_id, "registration_id": registration_id,
             "seats_released": confirmed_seats + held_seats, "promoted": len(promotions)},
            user_id=str(owner_id),
        )
        return CancellationResult(
            outcome=CancellationOutcome.CANCELLED,
            registration=registration,
            seats_released=confirmed_seats + held_seats,
            promotions=promotions,
        )

    async def add_guests(
        self,
        registration_id: UUID,
        owner_id: UUID,
        count: int,
        payment_mode: PaymentMode = PaymentMode.CARD,
        points_to_use: int = 0,
    ) -> GuestAdmissionResult:
        """
        Add guests to a confirmed registration, admitting as many as fit.

        Seats that fit get an ADD_GUESTS hold; the rest join the waitlist,
        merged into the registration's existing guest entry if there is one.

        Raises:
            InvalidStateError: If the registration is not confirmed
            PaymentFailedError: If the points debit for the admitted guests was declined
        """
        self._check_guest_count(count, minimum=1)
        event_id = await self._registration_event_id(registration_id, owner_id)
        failed_hold: Optional[Hold] = None

        async with self.ledger.lock_event(event_id) as event:
            registration = await self._get_owned_registration(registration_id, owner_id)
            if registration.status != RegistrationStatus.CONFIRMED:
                raise InvalidStateError(
                    "Guests can only be added to a confirmed registration",
                    resource_type="registration",
                    current_state=registration.status.value,
                )

            reservation = await self.ledger.reserve(event, count)
            hold = None
            entry = None

            if reservation.granted:
                hold = await self.payments.open_hold(
                    event,
                    registration,
                    kind=HoldKind.ADD_GUESTS,
                    seats=reservation.granted,
                    includes_primary=False,
                    payment_mode=payment_mode,
                    points_to_use=points_to_use,
                )
                if hold.status == HoldStatus.CANCELLED:
                    failed_hold = hold

            if reservation.remainder and failed_hold is None:
                entry = await self.waitlist.enqueue(
                    event, owner_id, WaitlistKind.ADD_GUESTS, reservation.remainder, registration.id
                )

        if failed_hold is not None:
            raise PaymentFailedError("Points payment for guests was declined", hold_id=str(failed_hold.id))

        if reservation.fully_granted:
            outcome = ReservationOutcome.GRANTED
        elif reservation.granted:
            outcome = ReservationOutcome.PARTIAL
        else:
            outcome = ReservationOutcome.WAITLISTED

        log_business_event(
            "guests_requested",
            {"event_id": event_id, "registration_id": registration_id, "outcome": outcome.value,
             "granted": reservation.granted, "waitlisted": reservation.remainder},
            user_id=str(owner_id),
        )
        return GuestAdmissionResult(
            outcome=outcome,
            registration=registration,
            hold=hold,
            waitlist_entry=entry,
            granted=reservation.granted,
            waitlisted=reservation.remainder,
        )

    async def remove_guests(self, registration_id: UUID, owner_id: UUID, guest_ids: List[UUID]) -> GuestRemovalResult:
        """
        Remove named guests, freeing one seat each.

        The primary attendee is not a guest and cannot be removed this way.

        Raises:
            GuestNotFoundError: If any id is not a guest of this registration
        """
        unique_ids = list(dict.fromkeys(guest_ids))
        if not unique_ids:
            raise ValidationError("No guests given", field_errors={"guest_ids": ["must not be empty"]})

        event_id = await self._registration_event_id(registration_id, owner_id)

        async with self.ledger.lock_event(event_id) as event:
            registration = await self._get_owned_registration(registration_id, owner_id)
            if registration.status == RegistrationStatus.CANCELLED:
                raise InvalidStateError(
                    "Registration is cancelled",
                    resource_type="registration",
                    current_state=registration.status.value,
                )

            guests = await self._load_guests(registration.id, unique_ids)

            for guest in guests:
                await self.session.delete(guest)
            registration.guest_count -= len(guests)
            await self.session.flush()
            await self.ledger.release(event, len(guests))

            promotions = await self.promotion.promote(event)

        logger.info(f"Removed {len(guests)} guests from registration {registration_id}")
        return GuestRemovalResult(registration=registration, removed=len(guests), promotions=promotions)

    async def rename_guests(
        self,
        registration_id: UUID,
        owner_id: UUID,
        names: Dict[UUID, Optional[str]],
    ) -> List[Guest]:
        """Relabel guests by id. Seats are unaffected."""
        registration = await self._get_owned_registration(registration_id, owner_id)
        if not names:
            return await self._load_guests(registration.id, [])

        if registration.status == RegistrationStatus.CANCELLED:
            raise InvalidStateError(
                "Registration is cancelled",
                resource_type="registration",
                current_state=registration.status.value,
            )

        guests = await self._load_guests(registration.id, list(names))
        for guest in guests:
            name = names[guest.id]
            guest.name = (name.strip() or None) if name is not None else None

        await self.session.commit()
        return await self._load_guests(registration.id, [])

    async def get_registration(self, registration_id: UUID, owner_id: UUID) -> RegistrationDetails:
        registration = await self._get_owned_registration(registration_id, owner_id)
        holds = await self.session.execute(
            select(Hold)
            .where(Hold.registration_id == registration.id)
            .order_by(Hold.created_at)
            .execution_options(populate_existing=True)
        )
        return RegistrationDetails(
            registration=registration,
            guests=await self._load_guests(registration.id, []),
            holds=list(holds.scalars().all()),
            waitlist_entry=await self.waitlist.find_add_guests(registration.id),
        )

    async def list_owner_registrations(self, owner_id: UUID, include_cancelled: bool = False) -> List[Registration]:
        query = select(Registration).where(Registration.owner_id == owner_id)
        if not include_cancelled:
            query = query.where(Registration.status != RegistrationStatus.CANCELLED)
        result = await self.session.execute(
            query.order_by(Registration.created_at.desc()).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_availability(self, event_id: UUID) -> Availability:
        """Seat counts for an event, after releasing any overdue holds."""
        async with self.ledger.lock_event(event_id) as event:
            availability = Availability(
                event_id=event.id,
                capacity=event.capacity,
                occupied=event.occupied,
                free_seats=self.ledger.free_seats(event),
                waitlist_length=await self.waitlist.count_for_event(event.id),
            )
        return availability

    def _check_guest_count(self, count: int, minimum: int) -> None:
        maximum = self.settings.max_guests_per_request
        if count < minimum or count > maximum:
            raise ValidationError(
                f"Guest count must be between {minimum} and {maximum}",
                field_errors={"guest_count": [f"must be between {minimum} and {maximum}"]},
            )

    async def _active_registration(self, event_id: UUID, owner_id: UUID) -> Optional[Registration]:
        result = await self.session.execute(
            select(Registration)
            .where(
                Registration.event_id == event_id,
                Registration.owner_id == owner_id,
                Registration.status != RegistrationStatus.CANCELLED,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _registration_event_id(self, registration_id: UUID, owner_id: UUID) -> UUID:
        row = (await self.session.execute(
            select(Registration.event_id, Registration.owner_id).where(Registration.id == registration_id)
        )).first()
        if row is None or row.owner_id != owner_id:
            raise RegistrationNotFoundError(str(registration_id))
        return row.event_id

    async def _get_owned_registration(self, registration_id: UUID, owner_id: UUID) -> Registration:
        registration = await self.session.get(Registration, registration_id, populate_existing=True)
        if registration is None or registration.owner_id != owner_id:
            raise RegistrationNotFoundError(str(registration_id))
        return registration

    async def _load_guests(self, registration_id: UUID, guest_ids: List[UUID]) -> List[Guest]:
        """All guests of a registration, or exactly the given ones."""
        query = select(Guest).where(Guest.registration_id == registration_id)
        if guest_ids:
            query = query.where(Guest.id.in_(guest_ids))
        result = await self.session.execute(
            query.order_by(Guest.sort_order).execution_options(populate_existing=True)
        )
        guests = list(result.scalars().all())

        if guest_ids:
            found = {guest.id for guest in guests}
            missing = [guest_id for guest_id in guest_ids if guest_id not in found]
            if missing:
                raise GuestNotFoundError(str(missing[0]))
        return guests
