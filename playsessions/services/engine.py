"""
Per-session wiring of the engine's services.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .notifications import NotificationDispatcher, NotificationSender
from .payment_service import Clock, PaymentReconciliationService
from .points_ledger import PointsLedger, RewardPointsLedger
from .promotion_service import PromotionEngine
from .registration_service import RegistrationService
from .seat_ledger import EventLockRegistry, SeatLedger
from .waitlist_service import WaitlistService
from ..utils.clock import utc_now


class PlaySessionEngine:
    """Every service of the engine bound to one database session.

    The lock registry is shared across sessions; everything else lives as
    long as the session does.
    """

    def __init__(
        self,
        session: AsyncSession,
        locks: EventLockRegistry,
        points: Optional[PointsLedger] = None,
        sender: Optional[NotificationSender] = None,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.notifier = NotificationDispatcher(sender)
        self.ledger = SeatLedger(session, locks, self.notifier)
        self.waitlist = WaitlistService(session, self.ledger)
        self.payments = PaymentReconciliationService(
            session,
            self.ledger,
            self.waitlist,
            points if points is not None else RewardPointsLedger(session),
            clock=clock,
        )
        self.promotion = PromotionEngine(session, self.ledger, self.waitlist, self.payments)
        self.payments.promotion = self.promotion
        self.registrations = RegistrationService(
            session, self.ledger, self.waitlist, self.payments, self.promotion
        )
