"""
Hold API endpoints: list, attach a checkout session, cancel.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from ..schemas.hold import HoldResponse, PaymentSessionAttach
from ..services.engine import PlaySessionEngine
from ..utils.dependencies import get_current_owner_id, get_engine


router = APIRouter(prefix="/holds", tags=["holds"])


@router.get("/mine", response_model=List[HoldResponse])
async def list_my_holds(
    open_only: bool = False,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Get the current member's holds, newest first."""
    return await engine.payments.list_owner_holds(owner_id, open_only=open_only)


@router.post("/{hold_id}/payment-session", response_model=HoldResponse)
async def attach_payment_session(
    hold_id: UUID,
    attach: PaymentSessionAttach,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Record the checkout session the front end opened for this hold."""
    return await engine.payments.attach_payment_session(hold_id, owner_id, attach.session_id)


@router.post("/{hold_id}/cancel", response_model=HoldResponse)
async def cancel_hold(
    hold_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Give up a hold before paying.

    Cancelling the hold of a new registration cancels the registration too.
    """
    return await engine.payments.expire_or_cancel(hold_id, expired=False, owner_id=owner_id)
