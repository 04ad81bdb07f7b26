"""
Hold and payment schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.hold import HoldKind, HoldStatus, PaymentMode
from ..services.payment_service import GatewayOutcome


class HoldResponse(BaseModel):
    """Schema for hold responses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: HoldKind
    event_id: UUID
    registration_id: UUID
    seats: int
    includes_primary: bool
    payment_mode: PaymentMode
    points_used: int
    status: HoldStatus
    expires_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class PaymentSessionAttach(BaseModel):
    """Link a gateway checkout session to a hold."""
    session_id: str = Field(..., min_length=1, max_length=255)


class GatewaySignal(BaseModel):
    """Webhook body sent by the payment gateway."""
    session_id: str = Field(..., min_length=1, max_length=255)
    outcome: GatewayOutcome
