"""
Registration API endpoints: register, cancel and manage guests.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from ..schemas.common import ErrorResponse
from ..schemas.registration import (
    CancellationResponse,
    GuestAdd,
    GuestAdmissionResponse,
    GuestRemovalResponse,
    GuestRemove,
    GuestRename,
    GuestResponse,
    RegistrationCreate,
    RegistrationDetailResponse,
    RegistrationOutcomeResponse,
    RegistrationResponse,
)
from ..services.engine import PlaySessionEngine
from ..utils.dependencies import get_current_owner_id, get_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=RegistrationOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        402: {"model": ErrorResponse, "description": "Points payment declined"},
        409: {"model": ErrorResponse, "description": "Already registered, already waitlisted or not enough seats"},
    },
)
async def create_registration(
    registration_data: RegistrationCreate,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Register for a play session.

    - **granted**: seats are held for 24 hours awaiting card payment
      (points payments confirm straight away)
    - **waitlisted**: the session is full and you are in the queue
    """
    result = await engine.registrations.create_registration(
        event_id=registration_data.event_id,
        owner_id=owner_id,
        guest_count=registration_data.guest_count,
        payment_mode=registration_data.payment_mode,
        points_to_use=registration_data.points_to_use,
    )
    return RegistrationOutcomeResponse.model_validate(result, from_attributes=True)


@router.get("/mine", response_model=List[RegistrationResponse])
async def list_my_registrations(
    include_cancelled: bool = False,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Get the current member's registrations."""
    return await engine.registrations.list_owner_registrations(owner_id, include_cancelled=include_cancelled)


@router.get("/{registration_id}", response_model=RegistrationDetailResponse)
async def get_registration(
    registration_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Get a registration with its guests, holds and queued guest demand."""
    details = await engine.registrations.get_registration(registration_id, owner_id)
    return RegistrationDetailResponse.model_validate(details, from_attributes=True)


@router.post("/{registration_id}/cancel", response_model=CancellationResponse)
async def cancel_registration(
    registration_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Cancel a registration.

    Freed seats go to the waitlist straight away. Cancelling twice is harmless.
    """
    result = await engine.registrations.cancel_registration(registration_id, owner_id)
    return CancellationResponse(
        outcome=result.outcome,
        registration=RegistrationResponse.model_validate(result.registration),
        seats_released=result.seats_released,
        promoted=len(result.promotions),
    )


@router.post("/{registration_id}/guests", response_model=GuestAdmissionResponse)
async def add_guests(
    registration_id: UUID,
    guest_data: GuestAdd,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Add guests to a confirmed registration.

    As many guests as fit are admitted and held for payment; the rest join the
    waitlist. The response carries both numbers.
    """
    result = await engine.registrations.add_guests(
        registration_id,
        owner_id,
        guest_data.count,
        payment_mode=guest_data.payment_mode,
        points_to_use=guest_data.points_to_use,
    )
    return GuestAdmissionResponse.model_validate(result, from_attributes=True)


@router.post("/{registration_id}/guests/remove", response_model=GuestRemovalResponse)
async def remove_guests(
    registration_id: UUID,
    removal: GuestRemove,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Remove guests by id, freeing their seats."""
    result = await engine.registrations.remove_guests(registration_id, owner_id, removal.guest_ids)
    return GuestRemovalResponse(
        registration=RegistrationResponse.model_validate(result.registration),
        removed=result.removed,
        promoted=len(result.promotions),
    )


@router.put("/{registration_id}/guests", response_model=List[GuestResponse])
async def rename_guests(
    registration_id: UUID,
    rename: GuestRename,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Set guest names. Names are labels only and never affect seats."""
    return await engine.registrations.rename_guests(registration_id, owner_id, rename.names)
