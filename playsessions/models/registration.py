"""
Registration model: one owner's claim on seats at an event.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RegistrationStatus(enum.Enum):
    """Enumeration for registration status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Registration(Base):
    """A primary attendee plus any guests they bring.

    Occupies ``1 + guest_count`` seats while confirmed. While pending, its seats
    are carried by the awaiting-payment hold that created it.
    """

    __tablename__ = "registrations"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True
    )

    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus),
        default=RegistrationStatus.PENDING,
        nullable=False,
        index=True
    )

    # Number of attached guest records, kept in step with registration_guests
    guest_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("guest_count >= 0", name="ck_registrations_guest_count_non_negative"),
    )

    @property
    def is_active(self) -> bool:
        """Pending and confirmed registrations both block a second registration."""
        return self.status != RegistrationStatus.CANCELLED

    @property
    def seats(self) -> int:
        """Seats this registration occupies once confirmed."""
        return 1 + self.guest_count

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, event_id={self.event_id}, "
            f"owner_id={self.owner_id}, status={self.status.value}, guests={self.guest_count})>"
        )
