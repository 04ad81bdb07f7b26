"""
Reward points balance per member.
"""

import uuid

from sqlalchemy import CheckConstraint, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class PointsAccount(Base):
    """Points balance backing the default points ledger."""

    __tablename__ = "points_accounts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        unique=True,
        index=True
    )
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_points_accounts_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<PointsAccount(user_id={self.user_id}, balance={self.balance})>"
