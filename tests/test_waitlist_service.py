"""
Tests for joining, reducing and leaving the waitlist.
"""

from uuid import uuid4

import pytest

from playsessions.models import WaitlistKind
from playsessions.utils.exceptions import (
    AlreadyRegisteredError,
    AlreadyWaitlistedError,
    InvalidStateError,
    RegistrationNotFoundError,
    ValidationError,
    WaitlistEntryNotFoundError,
)

from conftest import register_confirmed


@pytest.mark.asyncio
async def test_join_rejected_while_seats_are_free(engine, make_event):
    event = await make_event(capacity=5)

    with pytest.raises(InvalidStateError):
        await engine.waitlist.join(event.id, uuid4())


@pytest.mark.asyncio
async def test_positions_increase_and_are_never_reused(engine, make_event):
    event = await make_event(capacity=1)
    await register_confirmed(engine, event.id)
    owners = [uuid4() for _ in range(3)]

    entries = [await engine.waitlist.join(event.id, owner) for owner in owners]
    assert [entry.position for entry in entries] == [1, 2, 3]

    await engine.waitlist.leave(entries[2].id, owners[2])
    late = await engine.waitlist.join(event.id, uuid4())

    assert late.position == 4
    assert await engine.waitlist.get_position(late) == 3


@pytest.mark.asyncio
async def test_new_spot_duplicate_rejected(engine, make_event):
    event = await make_event(capacity=1)
    await register_confirmed(engine, event.id)
    owner = uuid4()
    await engine.waitlist.join(event.id, owner)

    with pytest.raises(AlreadyWaitlistedError):
        await engine.waitlist.join(event.id, owner)


@pytest.mark.asyncio
async def test_registered_owner_cannot_wait_for_a_new_spot(engine, make_event):
    event = await make_event(capacity=1)
    registration = await register_confirmed(engine, event.id)

    with pytest.raises(AlreadyRegisteredError):
        await engine.waitlist.join(event.id, registration.owner_id)


@pytest.mark.asyncio
async def test_add_guests_entry_merges_and_keeps_position(engine, make_event):
    event = await make_event(capacity=2)
    registration = await register_confirmed(engine, event.id, guests=1)

    first = await engine.waitlist.join(
        event.id, registration.owner_id, kind=WaitlistKind.ADD_GUESTS,
        requested_seats=2, owner_registration_id=registration.id,
    )
    await engine.waitlist.join(event.id, uuid4())
    merged = await engine.waitlist.join(
        event.id, registration.owner_id, kind=WaitlistKind.ADD_GUESTS,
        requested_seats=1, owner_registration_id=registration.id,
    )

    assert merged.id == first.id
    assert merged.requested_seats == 3
    assert merged.position == 1
    assert await engine.waitlist.count_for_event(event.id) == 2


@pytest.mark.asyncio
async def test_add_guests_entry_needs_own_registration(engine, make_event):
    event = await make_event(capacity=1)
    registration = await register_confirmed(engine, event.id)

    with pytest.raises(RegistrationNotFoundError):
        await engine.waitlist.join(
            event.id, uuid4(), kind=WaitlistKind.ADD_GUESTS,
            requested_seats=1, owner_registration_id=registration.id,
        )
    with pytest.raises(ValidationError):
        await engine.waitlist.join(event.id, registration.owner_id, kind=WaitlistKind.ADD_GUESTS)


@pytest.mark.asyncio
async def test_reduce_keeps_position_and_deletes_at_zero(engine, make_event):
    event = await make_event(capacity=1)
    registration = await register_confirmed(engine, event.id)
    entry = await engine.waitlist.join(
        event.id, registration.owner_id, kind=WaitlistKind.ADD_GUESTS,
        requested_seats=3, owner_registration_id=registration.id,
    )

    reduced = await engine.waitlist.reduce(entry.id, registration.owner_id, 2)
    assert reduced.requested_seats == 1
    assert reduced.position == entry.position

    assert await engine.waitlist.reduce(entry.id, registration.owner_id, 1) is None
    assert await engine.waitlist.count_for_event(event.id) == 0


@pytest.mark.asyncio
async def test_reduce_by_more_than_requested(engine, make_event):
    event = await make_event(capacity=1)
    await register_confirmed(engine, event.id)
    owner = uuid4()
    entry = await engine.waitlist.join(event.id, owner)

    with pytest.raises(ValidationError):
        await engine.waitlist.reduce(entry.id, owner, 2)


@pytest.mark.asyncio
async def test_cannot_touch_someone_elses_entry(engine, make_event):
    event = await make_event(capacity=1)
    await register_confirmed(engine, event.id)
    entry = await engine.waitlist.join(event.id, uuid4())

    with pytest.raises(WaitlistEntryNotFoundError):
        await engine.waitlist.leave(entry.id, uuid4())
    with pytest.raises(WaitlistEntryNotFoundError):
        await engine.waitlist.reduce(entry.id, uuid4(), 1)


@pytest.mark.asyncio
async def test_cancelling_registration_drops_its_guest_demand(engine, make_event):
    event = await make_event(capacity=2)
    registration = await register_confirmed(engine, event.id, guests=1)
    await engine.registrations.add_guests(registration.id, registration.owner_id, 2)

    await engine.registrations.cancel_registration(registration.id, registration.owner_id)

    assert await engine.waitlist.find_add_guests(registration.id) is None
    assert await engine.waitlist.get_event_waitlist(event.id) == []
