"""
Database models for the Play Sessions engine.
"""

from .base import Base
from .event import Event
from .registration import Registration, RegistrationStatus
from .guest import Guest
from .waitlist import WaitlistEntry, WaitlistKind
from .hold import Hold, HoldKind, HoldStatus, PaymentMode
from .points_account import PointsAccount

__all__ = [
    "Base",
    "Event",
    "Registration",
    "RegistrationStatus",
    "Guest",
    "WaitlistEntry",
    "WaitlistKind",
    "Hold",
    "HoldKind",
    "HoldStatus",
    "PaymentMode",
    "PointsAccount",
]
