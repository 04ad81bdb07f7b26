"""Business logic services for the Play Sessions engine."""

from .seat_ledger import EventLockRegistry, SeatLedger
from .waitlist_service import WaitlistService
from .promotion_service import PromotionEngine
from .registration_service import RegistrationService
from .payment_service import PaymentReconciliationService
from .engine import PlaySessionEngine

__all__ = [
    "EventLockRegistry",
    "SeatLedger",
    "WaitlistService",
    "PromotionEngine",
    "RegistrationService",
    "PaymentReconciliationService",
    "PlaySessionEngine",
]
