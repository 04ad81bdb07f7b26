"""
Waitlist API endpoints for full play sessions.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..schemas.waitlist import PublicWaitlistEntry, WaitlistEntryResponse, WaitlistJoin, WaitlistReduce
from ..services.engine import PlaySessionEngine
from ..utils.dependencies import get_current_owner_id, get_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


async def _with_rank(engine: PlaySessionEngine, entry) -> WaitlistEntryResponse:
    response = WaitlistEntryResponse.model_validate(entry)
    response.rank = await engine.waitlist.get_position(entry)
    return response


@router.post("", response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    waitlist_data: WaitlistJoin,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Join the waitlist for a full play session.

    Rejected while seats are free (register normally instead) or when you
    already hold a registration or a place in the queue.
    """
    entry = await engine.waitlist.join(waitlist_data.event_id, owner_id)
    logger.info(f"Owner {owner_id} joined waitlist for event {waitlist_data.event_id}")
    return await _with_rank(engine, entry)


@router.get("/mine", response_model=List[WaitlistEntryResponse])
async def list_my_entries(
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Get the current member's waitlist entries with their place in line."""
    entries = await engine.waitlist.get_owner_entries(owner_id)
    return [await _with_rank(engine, entry) for entry in entries]


@router.get("/events/{event_id}", response_model=List[PublicWaitlistEntry])
async def get_event_waitlist(
    event_id: UUID,
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Get an event's waitlist in serving order."""
    return await engine.waitlist.get_event_waitlist(event_id)


@router.post("/{entry_id}/reduce", response_model=Optional[WaitlistEntryResponse])
async def reduce_entry(
    entry_id: UUID,
    reduction: WaitlistReduce,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """
    Ask for fewer seats. The entry keeps its place in line.

    Returns null once the entry has been reduced to nothing and removed.
    """
    entry = await engine.waitlist.reduce(entry_id, owner_id, reduction.count)
    if entry is None:
        return None
    return await _with_rank(engine, entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def leave_waitlist(
    entry_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    engine: PlaySessionEngine = Depends(get_engine)
):
    """Leave the waitlist."""
    await engine.waitlist.leave(entry_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
