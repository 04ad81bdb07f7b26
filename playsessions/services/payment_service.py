"""
Payment reconciliation: ties holds to the outcome of card, points or mixed payment.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models.event import Event
from ..models.guest import Guest
from ..models.hold import Hold, HoldKind, HoldStatus, PaymentMode
from ..models.registration import Registration, RegistrationStatus
from ..models.waitlist import WaitlistEntry
from ..utils.clock import ensure_aware, utc_now
from ..utils.exceptions import (
    HoldExpiredError,
    HoldNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .notifications import NotificationType
from .points_ledger import PointsLedger
from .seat_ledger import SeatLedger
from .waitlist_service import WaitlistService

if TYPE_CHECKING:
    from .promotion_service import PromotionEngine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class GatewayOutcome(str, enum.Enum):
    """Signals the card gateway sends for a checkout session."""
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass
class SweepReport:
    events_checked: int = 0
    holds_expired: int = 0
    seats_promoted: int = 0
    warnings_sent: int = 0
    drifted_events: List[UUID] = field(default_factory=list)


class PaymentReconciliationService:
    """Opens, confirms and releases holds.

    Registers ``expire_overdue`` as a lock hook on the seat ledger, so every
    locked operation first releases holds whose 24 hours have passed.
    """

    def __init__(
        self,
        session: AsyncSession,
        ledger: SeatLedger,
        waitlist: WaitlistService,
        points: PointsLedger,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.ledger = ledger
        self.waitlist = waitlist
        self.points = points
        self.clock = clock
        self.settings = get_settings()
        self.promotion: Optional["PromotionEngine"] = None
        self.expired_total = 0
        self.promoted_seats_total = 0
        ledger.register_lock_hook(self.expire_overdue)

    @property
    def hold_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.hold_expiry_hours)

    async def open_hold(
        self,
        event: Event,
        registration: Registration,
        kind: HoldKind,
        seats: int,
        includes_primary: bool,
        payment_mode: PaymentMode = PaymentMode.CARD,
        points_to_use: int = 0,
    ) -> Hold:
        """
        Create a hold for seats the caller has already reserved.

        Points are debited here. A declined debit resolves the hold as
        cancelled straight away, releasing its seats, and the hold comes back
        with status CANCELLED for the caller to report.

        Args:
            event: Locked event
            registration: Registration the seats belong to
            kind: Why the seats were reserved
            seats: Seats reserved for this hold
            includes_primary: Whether the hold pays for the primary attendee
            payment_mode: Card, points or mixed
            points_to_use: Points applied to a mixed payment

        Returns:
            The hold, AWAITING_PAYMENT, CONFIRMED or CANCELLED
        """
        cost_in_points = seats * event.points_price
        if payment_mode != PaymentMode.CARD and event.points_price <= 0:
            raise ValidationError(
                f"Event {event.id} cannot be paid for with points",
                field_errors={"payment_mode": ["event has no points price, pay by card"]},
            )
        if payment_mode == PaymentMode.MIXED:
            if points_to_use < 0 or points_to_use > cost_in_points:
                raise ValidationError(
                    f"Points to use must be between 0 and {cost_in_points}",
                    field_errors={"points_to_use": [f"must be between 0 and {cost_in_points}"]},
                )
        elif points_to_use:
            raise ValidationError(
                "Points can only be split with a card payment in mixed mode",
                field_errors={"points_to_use": ["only valid for mixed payments"]},
            )

        now = self.clock()
        hold = Hold(
            kind=kind,
            event_id=event.id,
            registration_id=registration.id,
            owner_id=registration.owner_id,
            seats=seats,
            includes_primary=includes_primary,
            payment_mode=payment_mode,
            points_used=0,
            status=HoldStatus.AWAITING_PAYMENT,
            expires_at=now + self.hold_ttl,
            expiry_warning_sent=False,
        )
        self.session.add(hold)
        await self.session.flush()

        logger.info(
            f"Opened {kind.value} hold {hold.id} for {seats} seats on event {event.id} "
            f"({payment_mode.value}, expires {hold.expires_at})"
        )

        if payment_mode == PaymentMode.CARD:
            return hold

        points_due = cost_in_points if payment_mode == PaymentMode.POINTS else points_to_use
        if points_due == 0:
            # Mixed with no points applied: the whole price goes on the card.
            return hold

        if not await self.points.debit(registration.owner_id, points_due):
            logger.warning(f"Points debit of {points_due} declined for hold {hold.id}")
            await self._resolve(event, hold, HoldStatus.CANCELLED, reason="points_declined")
            return hold

        hold.points_used = points_due
        if points_due == cost_in_points:
            # Settled in full by points, nothing left to wait for.
            hold.expires_at = None
            await self._confirm(event, hold)
        else:
            await self.session.flush()
        return hold

    async def confirm(self, hold_id: UUID) -> Hold:
        """
        Confirm a hold after payment succeeded.

        Re-confirming a confirmed hold is a no-op.

        Raises:
            HoldExpiredError: If the hold's time ran out first
            InvalidStateError: If the hold was cancelled
        """
        event_id = await self._hold_event_id(hold_id)
        expired = False

        async with self.ledger.lock_event(event_id) as event:
            hold = await self._get_hold(hold_id)
            if hold.status == HoldStatus.EXPIRED:
                expired = True
            elif hold.status == HoldStatus.CANCELLED:
                raise InvalidStateError(
                    f"Hold {hold_id} was cancelled",
                    resource_type="hold",
                    current_state=hold.status.value,
                )
            elif hold.status == HoldStatus.AWAITING_PAYMENT:
                await self._confirm(event, hold)

        if expired:
            raise HoldExpiredError(str(hold_id))
        return hold

    async def expire_or_cancel(self, hold_id: UUID, expired: bool = False, owner_id: Optional[UUID] = None) -> Hold:
        """
        Release a hold's seats without payment.

        Idempotent for holds already expired or cancelled.

        Args:
            hold_id: Hold to release
            expired: Mark EXPIRED instead of CANCELLED
            owner_id: When given, the hold must belong to this owner

        Raises:
            InvalidStateError: If the hold is already confirmed
        """
        event_id = await self._hold_event_id(hold_id)

        async with self.ledger.lock_event(event_id) as event:
            hold = await self._get_hold(hold_id)
            if owner_id is not None and hold.owner_id != owner_id:
                raise HoldNotFoundError(str(hold_id))
            if hold.status == HoldStatus.CONFIRMED:
                raise InvalidStateError(
                    f"Hold {hold_id} is already paid",
                    resource_type="hold",
                    current_state=hold.status.value,
                )
            if hold.is_open:
                status = HoldStatus.EXPIRED if expired else HoldStatus.CANCELLED
                await self._resolve(event, hold, status, reason=status.value)

        return hold

    async def attach_payment_session(self, hold_id: UUID, owner_id: UUID, session_id: str) -> Hold:
        """Record the gateway checkout session that pays for a hold."""
        event_id = await self._hold_event_id(hold_id)

        async with self.ledger.lock_event(event_id):
            hold = await self._get_hold(hold_id)
            if hold.owner_id != owner_id:
                raise HoldNotFoundError(str(hold_id))
            if hold.status == HoldStatus.EXPIRED:
                raise HoldExpiredError(str(hold_id))
            if not hold.is_open:
                raise InvalidStateError(
                    f"Hold {hold_id} is no longer awaiting payment",
                    resource_type="hold",
                    current_state=hold.status.value,
                )
            hold.payment_session_id = session_id
            await self.session.flush()

        logger.info(f"Attached payment session to hold {hold_id}")
        return hold

    async def handle_gateway_signal(self, session_id: str, outcome: GatewayOutcome) -> Hold:
        """Route a gateway webhook signal to confirm, cancel or expire."""
        hold_id = await self.session.scalar(
            select(Hold.id).where(Hold.payment_session_id == session_id)
        )
        if hold_id is None:
            raise HoldNotFoundError(session_id)

        logger.info(f"Gateway signal {outcome.value} for hold {hold_id}")
        if outcome == GatewayOutcome.SUCCEEDED:
            return await self.confirm(hold_id)
        return await self.expire_or_cancel(hold_id, expired=outcome == GatewayOutcome.EXPIRED)

    async def expire_overdue(self, event: Event) -> int:
        """
        Expire the event's holds whose time has run out, then promote once.

        Runs as a lock hook before any capacity read.

        Returns:
            Number of holds expired
        """
        result = await self.session.execute(
            select(Hold)
            .where(
                Hold.event_id == event.id,
                Hold.status == HoldStatus.AWAITING_PAYMENT,
                Hold.expires_at <= self.clock(),
            )
            .order_by(Hold.expires_at)
            .execution_options(populate_existing=True)
        )
        overdue = list(result.scalars().all())
        for hold in overdue:
            await self._resolve(event, hold, HoldStatus.EXPIRED, reason="expired", promote=False)

        self.expired_total += len(overdue)
        if overdue:
            logger.info(f"Expired {len(overdue)} overdue holds on event {event.id}")
            await self._promote(event)
        return len(overdue)

    async def list_owner_holds(self, owner_id: UUID, open_only: bool = False) -> List[Hold]:
        query = select(Hold).where(Hold.owner_id == owner_id)
        if open_only:
            query = query.where(Hold.status == HoldStatus.AWAITING_PAYMENT)
        result = await self.session.execute(
            query.order_by(Hold.created_at.desc()).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def open_holds_for_registration(self, registration_id: UUID) -> List[Hold]:
        result = await self.session.execute(
            select(Hold)
            .where(
                Hold.registration_id == registration_id,
                Hold.status == HoldStatus.AWAITING_PAYMENT,
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def cancel_open_holds(self, event: Event, registration_id: UUID) -> int:
        """Cancel every open hold of a registration without promoting. Returns seats released."""
        released = 0
        for hold in await self.open_holds_for_registration(registration_id):
            released += hold.seats
            await self._resolve(event, hold, HoldStatus.CANCELLED, reason="registration_cancelled", promote=False)
        return released

    async def sweep(self) -> SweepReport:
        """
        Periodic pass over every event that needs attention.

        Expires overdue holds, re-runs promotion where seats are free and a
        queue is waiting, warns owners once when a hold nears expiry and audits
        the seat counter.
        """
        report = SweepReport()
        now = self.clock()
        warn_before = now + timedelta(hours=self.settings.hold_expiry_warning_hours)

        holds_due = select(Hold.event_id).where(
            Hold.status == HoldStatus.AWAITING_PAYMENT,
            or_(
                Hold.expires_at <= now,
                and_(Hold.expires_at <= warn_before, Hold.expiry_warning_sent.is_(False)),
            ),
        )
        waiting = (
            select(WaitlistEntry.event_id)
            .join(Event, Event.id == WaitlistEntry.event_id)
            .where(Event.occupied < Event.capacity)
        )
        event_ids = set((await self.session.execute(holds_due)).scalars().all())
        event_ids.update((await self.session.execute(waiting)).scalars().all())

        for event_id in sorted(event_ids, key=str):
            report.events_checked += 1
            expired_before = self.expired_total
            promoted_before = self.promoted_seats_total
            try:
                async with self.ledger.lock_event(event_id) as event:
                    await self._promote(event)
                    warnings = await self._warn_expiring(event, warn_before)

                    if await self.ledger.recount(event.id) != event.occupied:
                        logger.error(f"Seat counter drift detected on event {event.id} (occupied {event.occupied})")
                        report.drifted_events.append(event.id)
            except Exception as e:
                # The event's transaction was rolled back; carry on with the rest.
                self.expired_total = expired_before
                self.promoted_seats_total = promoted_before
                logger.error(f"Hold sweep failed for event {event_id}: {e}")
                continue

            report.holds_expired += self.expired_total - expired_before
            report.seats_promoted += self.promoted_seats_total - promoted_before
            report.warnings_sent += warnings

        logger.info(
            f"Hold sweep checked {report.events_checked} events: {report.holds_expired} expired, "
            f"{report.seats_promoted} seats promoted, {report.warnings_sent} warnings"
        )
        return report

    async def _warn_expiring(self, event: Event, warn_before: datetime) -> int:
        result = await self.session.execute(
            select(Hold).where(
                Hold.event_id == event.id,
                Hold.status == HoldStatus.AWAITING_PAYMENT,
                Hold.expires_at <= warn_before,
                Hold.expiry_warning_sent.is_(False),
            )
        )
        holds = list(result.scalars().all())
        for hold in holds:
            hold.expiry_warning_sent = True
            self.ledger.notifier.emit(
                NotificationType.HOLD_EXPIRING,
                hold.owner_id,
                hold_id=hold.id,
                event_id=event.id,
                seats=hold.seats,
                expires_at=ensure_aware(hold.expires_at).isoformat(),
            )
        if holds:
            await self.session.flush()
        return len(holds)

    async def _confirm(self, event: Event, hold: Hold) -> None:
        now = self.clock()
        registration = await self._get_registration(hold.registration_id)

        hold.status = HoldStatus.CONFIRMED
        hold.resolved_at = now

        if hold.includes_primary and registration.status == RegistrationStatus.PENDING:
            registration.status = RegistrationStatus.CONFIRMED
            registration.confirmed_at = now

        new_guests = hold.guest_seats
        if new_guests:
            last_order = await self.session.scalar(
                select(func.coalesce(func.max(Guest.sort_order), 0)).where(
                    Guest.registration_id == registration.id
                )
            )
            for offset in range(1, new_guests + 1):
                self.session.add(Guest(registration_id=registration.id, sort_order=int(last_order or 0) + offset))
            registration.guest_count += new_guests

        await self.session.flush()

        self.ledger.notifier.emit(
            NotificationType.HOLD_CONFIRMED,
            hold.owner_id,
            hold_id=hold.id,
            event_id=event.id,
            registration_id=registration.id,
            seats=hold.seats,
        )
        log_business_event(
            "hold_confirmed",
            {"event_id": event.id, "hold_id": hold.id, "registration_id": registration.id,
             "seats": hold.seats, "payment_mode": hold.payment_mode.value},
            user_id=str(hold.owner_id),
        )

    async def _resolve(
        self,
        event: Event,
        hold: Hold,
        status: HoldStatus,
        reason: str,
        promote: bool = True,
    ) -> bool:
        """Release an open hold's seats and settle what hangs off it.

        Returns:
            False if the hold was not open
        """
        if not hold.is_open:
            return False

        hold.status = status
        hold.resolved_at = self.clock()
        await self.ledger.release(event, hold.seats)

        if hold.points_used:
            await self.points.credit(hold.owner_id, hold.points_used)

        if hold.includes_primary:
            registration = await self._get_registration(hold.registration_id)
            if registration.status == RegistrationStatus.PENDING:
                registration.status = RegistrationStatus.CANCELLED
                registration.cancelled_at = hold.resolved_at
                registration.cancellation_reason = f"hold_{reason}"
                await self.waitlist.remove_for_registration(registration.id)

        await self.session.flush()

        self.ledger.notifier.emit(
            NotificationType.HOLD_RELEASED,
            hold.owner_id,
            hold_id=hold.id,
            event_id=event.id,
            seats=hold.seats,
            status=status.value,
        )
        log_business_event(
            "hold_released",
            {"event_id": event.id, "hold_id": hold.id, "seats": hold.seats,
             "status": status.value, "reason": reason},
            user_id=str(hold.owner_id),
        )

        if promote:
            await self._promote(event)
        return True

    async def _promote(self, event: Event):
        if self.promotion is None:
            return []
        promotions = await self.promotion.promote(event)
        self.promoted_seats_total += sum(p.seats for p in promotions)
        return promotions

    async def _hold_event_id(self, hold_id: UUID) -> UUID:
        event_id = await self.session.scalar(select(Hold.event_id).where(Hold.id == hold_id))
        if event_id is None:
            raise HoldNotFoundError(str(hold_id))
        return event_id

    async def _get_hold(self, hold_id: UUID) -> Hold:
        hold = await self.session.get(Hold, hold_id, populate_existing=True)
        if hold is None:
            raise HoldNotFoundError(str(hold_id))
        return hold

    async def _get_registration(self, registration_id: UUID) -> Registration:
        return await self.session.get(Registration, registration_id, populate_existing=True)
