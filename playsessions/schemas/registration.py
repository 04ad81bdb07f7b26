"""
Registration and guest schemas for request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.hold import PaymentMode
from ..models.registration import RegistrationStatus
from ..services.registration_service import CancellationOutcome, ReservationOutcome
from .hold import HoldResponse
from .waitlist import WaitlistEntryResponse


class PaymentChoice(BaseModel):
    payment_mode: PaymentMode = Field(default=PaymentMode.CARD, description="card, points or mixed")
    points_to_use: int = Field(default=0, ge=0, description="Points applied to a mixed payment")


class RegistrationCreate(PaymentChoice):
    """Schema for registering for an event."""
    event_id: UUID
    guest_count: int = Field(default=0, ge=0, le=10, description="Guests coming along")


class GuestAdd(PaymentChoice):
    """Schema for adding guests to a registration."""
    count: int = Field(..., ge=1, le=10, description="Guests to add")


class GuestRemove(BaseModel):
    """Schema for removing guests by id."""
    guest_ids: List[UUID] = Field(..., min_length=1)


class GuestRename(BaseModel):
    """Schema for relabelling guests."""
    names: Dict[UUID, Optional[str]] = Field(..., description="Guest id to new name")

    @field_validator('names')
    @classmethod
    def names_not_too_long(cls, v):
        for name in v.values():
            if name is not None and len(name) > 255:
                raise ValueError('Guest names must be at most 255 characters')
        return v


class GuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: Optional[str] = None
    sort_order: int


class RegistrationResponse(BaseModel):
    """Schema for registration responses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    owner_id: UUID
    status: RegistrationStatus
    guest_count: int
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime


class RegistrationDetailResponse(BaseModel):
    registration: RegistrationResponse
    guests: List[GuestResponse]
    holds: List[HoldResponse]
    waitlist_entry: Optional[WaitlistEntryResponse] = None


class RegistrationOutcomeResponse(BaseModel):
    """Result of a registration request: granted or waitlisted."""
    model_config = ConfigDict(from_attributes=True)

    outcome: ReservationOutcome
    granted: int
    waitlisted: int
    registration: Optional[RegistrationResponse] = None
    hold: Optional[HoldResponse] = None
    waitlist_entry: Optional[WaitlistEntryResponse] = None


class GuestAdmissionResponse(BaseModel):
    """Split result of adding guests: ``granted + waitlisted`` equals the request."""
    model_config = ConfigDict(from_attributes=True)

    outcome: ReservationOutcome
    granted: int
    waitlisted: int
    registration: RegistrationResponse
    hold: Optional[HoldResponse] = None
    waitlist_entry: Optional[WaitlistEntryResponse] = None


class CancellationResponse(BaseModel):
    outcome: CancellationOutcome
    registration: RegistrationResponse
    seats_released: int
    promoted: int


class GuestRemovalResponse(BaseModel):
    registration: RegistrationResponse
    removed: int
    promoted: int
