"""
Hold model: seats reserved while payment is outstanding.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class HoldKind(enum.Enum):
    """How the held seats came to be reserved."""
    NEW_REGISTRATION = "new_registration"
    ADD_GUESTS = "add_guests"
    WAITLIST_PROMOTION = "waitlist_promotion"


class PaymentMode(enum.Enum):
    """How the held seats are paid for."""
    CARD = "card"
    POINTS = "points"
    MIXED = "mixed"


class HoldStatus(enum.Enum):
    """Enumeration for hold status."""
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Hold(Base):
    """Seats counted as occupied until payment confirms or the hold is released."""

    __tablename__ = "holds"

    kind: Mapped[HoldKind] = mapped_column(Enum(HoldKind), nullable=False)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    registration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    # Confirming this hold confirms the registration's primary seat
    includes_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    payment_mode: Mapped[PaymentMode] = mapped_column(
        Enum(PaymentMode),
        default=PaymentMode.CARD,
        nullable=False
    )
    points_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payment_session_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        index=True
    )

    status: Mapped[HoldStatus] = mapped_column(
        Enum(HoldStatus),
        default=HoldStatus.AWAITING_PAYMENT,
        nullable=False,
        index=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_warning_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        CheckConstraint("seats > 0", name="ck_holds_seats_positive"),
        CheckConstraint("points_used >= 0", name="ck_holds_points_used_non_negative"),
    )

    @property
    def is_open(self) -> bool:
        """Open holds carry seats on the event counter."""
        return self.status == HoldStatus.AWAITING_PAYMENT

    @property
    def guest_seats(self) -> int:
        """Guest slots materialised when this hold is confirmed."""
        return self.seats - (1 if self.includes_primary else 0)

    def __repr__(self) -> str:
        return (
            f"<Hold(id={self.id}, kind={self.kind.value}, seats={self.seats}, "
            f"status={self.status.value}, expires_at={self.expires_at})>"
        )
