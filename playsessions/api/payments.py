"""
Payment gateway webhook.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from ..config import get_settings
from ..schemas.hold import GatewaySignal, HoldResponse
from ..services.engine import PlaySessionEngine
from ..utils.dependencies import get_engine
from ..utils.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    """Check the shared secret the gateway integration sends."""
    expected = get_settings().payment_webhook_secret
    if not expected:
        logger.warning("Payment webhook secret is not configured; accepting unsigned signal")
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise AuthenticationError("Invalid webhook secret")


@router.post("/webhook", response_model=HoldResponse, dependencies=[Depends(verify_webhook_secret)])
async def payment_webhook(
    signal: GatewaySignal,
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Receive a checkout outcome from the payment gateway.

    - **succeeded**: the hold is confirmed
    - **cancelled** / **expired**: the hold's seats go back to the pool
    """
    return await engine.payments.handle_gateway_signal(signal.session_id, signal.outcome)
