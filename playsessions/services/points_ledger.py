"""
Reward points ledger used for points and mixed payments.
"""

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.points_account import PointsAccount

logger = logging.getLogger(__name__)


class PointsLedger(Protocol):
    """Anything that can debit and credit member points."""

    async def debit(self, user_id: UUID, amount: int) -> bool:
        ...

    async def credit(self, user_id: UUID, amount: int) -> None:
        ...


class RewardPointsLedger:
    """Points ledger over the ``points_accounts`` table.

    Runs on the caller's session so a debit commits or rolls back together with
    the hold it pays for.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def debit(self, user_id: UUID, amount: int) -> bool:
        """
        Take points from a member's balance.

        Args:
            user_id: Member whose balance is debited
            amount: Points to take

        Returns:
            True if the balance covered the amount, False otherwise
        """
        if amount <= 0:
            return True

        result = await self.session.execute(
            update(PointsAccount)
            .where(
                PointsAccount.user_id == user_id,
                PointsAccount.balance >= amount,
            )
            .values(balance=PointsAccount.balance - amount)
        )
        if result.rowcount != 1:
            logger.info(f"Points debit of {amount} declined for user {user_id}")
            return False

        logger.info(f"Debited {amount} points from user {user_id}")
        return True

    async def credit(self, user_id: UUID, amount: int) -> None:
        """Give points back to a member, opening an account if needed."""
        if amount <= 0:
            return

        result = await self.session.execute(
            update(PointsAccount)
            .where(PointsAccount.user_id == user_id)
            .values(balance=PointsAccount.balance + amount)
        )
        if result.rowcount == 0:
            self.session.add(PointsAccount(user_id=user_id, balance=amount))
            await self.session.flush()

        logger.info(f"Credited {amount} points to user {user_id}")
