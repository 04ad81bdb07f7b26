"""
Event schemas.
"""

from uuid import UUID

from pydantic import BaseModel, Field


class AvailabilityResponse(BaseModel):
    """Seat counts for one event."""

    event_id: UUID
    capacity: int = Field(..., description="Total seats")
    occupied: int = Field(..., description="Seats held by confirmed registrations and open holds")
    free_seats: int = Field(..., description="Seats that can be reserved right now")
    waitlist_length: int = Field(..., description="Entries waiting for seats")
    is_full: bool
