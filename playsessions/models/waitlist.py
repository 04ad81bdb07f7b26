"""
Waitlist model for unmet seat demand.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class WaitlistKind(enum.Enum):
    """What an entry is waiting for."""
    NEW_SPOT = "new_spot"
    ADD_GUESTS = "add_guests"


class WaitlistEntry(Base):
    """Waitlist entry served in ascending position order."""

    __tablename__ = "waitlist_entries"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    kind: Mapped[WaitlistKind] = mapped_column(Enum(WaitlistKind), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    # Only set for ADD_GUESTS entries
    owner_registration_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    requested_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("event_id", "position", name="uq_waitlist_event_position"),
        CheckConstraint("requested_seats > 0", name="ck_waitlist_requested_seats_positive"),
        CheckConstraint("position > 0", name="ck_waitlist_position_positive"),
        CheckConstraint(
            "(kind = 'ADD_GUESTS' AND owner_registration_id IS NOT NULL) "
            "OR (kind = 'NEW_SPOT' AND owner_registration_id IS NULL)",
            name="ck_waitlist_registration_matches_kind",
        ),
    )

    @property
    def is_new_spot(self) -> bool:
        return self.kind == WaitlistKind.NEW_SPOT

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, event_id={self.event_id}, kind={self.kind.value}, "
            f"position={self.position}, requested={self.requested_seats})>"
        )
