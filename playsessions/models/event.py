"""
Event model holding the seat counter of a play session.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Event(Base):
    """A play session with a fixed seat capacity.

    ``occupied`` is only ever changed by the seat ledger.
    """

    __tablename__ = "events"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    starts_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )

    # Capacity management
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    occupied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Pricing per attendee slot
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )
    points_price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Last waitlist position handed out for this event
    waitlist_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_events_capacity_positive"),
        CheckConstraint("occupied >= 0", name="ck_events_occupied_non_negative"),
        CheckConstraint("occupied <= capacity", name="ck_events_occupied_within_capacity"),
        CheckConstraint("price >= 0", name="ck_events_price_non_negative"),
        CheckConstraint("points_price >= 0", name="ck_events_points_price_non_negative"),
        CheckConstraint("waitlist_sequence >= 0", name="ck_events_waitlist_sequence_non_negative"),
    )

    @property
    def free_seats(self) -> int:
        """Seats not occupied by confirmed registrations or open holds."""
        return self.capacity - self.occupied

    @property
    def is_full(self) -> bool:
        return self.occupied >= self.capacity

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, name='{self.name}', "
            f"occupied={self.occupied}/{self.capacity})>"
        )
