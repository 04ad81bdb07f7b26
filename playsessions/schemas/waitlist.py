"""
Pydantic schemas for waitlist management.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from ..models.waitlist import WaitlistKind


class WaitlistJoin(BaseModel):
    """Schema for joining the waitlist for a new spot."""
    event_id: UUID = Field(..., description="ID of the full event")


class WaitlistReduce(BaseModel):
    """Schema for asking for fewer seats."""
    count: int = Field(..., gt=0, description="Seats to drop from the entry")


class WaitlistEntryResponse(BaseModel):
    """Schema for waitlist entry responses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    kind: WaitlistKind
    owner_id: UUID
    owner_registration_id: Optional[UUID] = None
    requested_seats: int
    position: int = Field(..., description="Serving order within the event, never reused")
    rank: Optional[int] = Field(None, description="1-based place among entries still waiting")
    created_at: datetime


class PublicWaitlistEntry(BaseModel):
    """Waitlist entry as shown to other members."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: WaitlistKind
    requested_seats: int
    position: int
