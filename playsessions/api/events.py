"""
Event availability API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from ..schemas.event import AvailabilityResponse
from ..services.engine import PlaySessionEngine
from ..utils.dependencies import get_engine


router = APIRouter(prefix="/events", tags=["events"])


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    event_id: UUID,
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Get live seat counts for an event.

    Overdue holds are released before the counts are read.
    """
    availability = await engine.registrations.get_availability(event_id)
    return AvailabilityResponse(
        event_id=availability.event_id,
        capacity=availability.capacity,
        occupied=availability.occupied,
        free_seats=availability.free_seats,
        waitlist_length=availability.waitlist_length,
        is_full=availability.is_full,
    )

