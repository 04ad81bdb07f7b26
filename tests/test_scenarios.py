"""
End-to-end flows through the engine, from request to promotion.
"""

from uuid import uuid4

import pytest

from playsessions.models import HoldStatus, RegistrationStatus, WaitlistKind
from playsessions.services.notifications import NotificationType
from playsessions.services.registration_service import ReservationOutcome

from conftest import assert_conserved, register_confirmed, reload_event, reload_registration


@pytest.mark.asyncio
async def test_registering_for_full_event_joins_waitlist(engine, make_event):
    event = await make_event(capacity=10, occupied=10)

    result = await engine.registrations.create_registration(event.id, uuid4())

    assert result.outcome == ReservationOutcome.WAITLISTED
    assert result.waitlist_entry.kind == WaitlistKind.NEW_SPOT
    assert result.waitlist_entry.position == 1
    assert (await reload_event(engine.session, event.id)).occupied == 10


@pytest.mark.asyncio
async def test_cancellation_promotes_three_waiting_members(engine, make_event, sender):
    event = await make_event(capacity=10)
    leaving = await register_confirmed(engine, event.id, guests=2)
    await register_confirmed(engine, event.id, guests=6)
    waiting = [uuid4() for _ in range(3)]
    for owner in waiting:
        result = await engine.registrations.create_registration(event.id, owner)
        assert result.outcome == ReservationOutcome.WAITLISTED

    cancellation = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    assert cancellation.seats_released == 3
    assert [p.owner_id for p in cancellation.promotions] == waiting
    for promotion in cancellation.promotions:
        registration = await reload_registration(engine.session, promotion.registration_id)
        assert registration.status == RegistrationStatus.PENDING
    assert await engine.waitlist.count_for_event(event.id) == 0
    assert len(sender.of_type(NotificationType.SEAT_PROMOTED)) == 3
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 10


@pytest.mark.asyncio
async def test_adding_more_guests_than_fit_splits_the_request(engine, make_event):
    event = await make_event(capacity=10)
    registration = await register_confirmed(engine, event.id)
    await register_confirmed(engine, event.id, guests=6)

    result = await engine.registrations.add_guests(registration.id, registration.owner_id, 5)

    assert result.outcome == ReservationOutcome.PARTIAL
    assert (result.granted, result.waitlisted) == (2, 3)
    assert result.hold.seats == 2
    assert result.waitlist_entry.kind == WaitlistKind.ADD_GUESTS
    assert result.waitlist_entry.requested_seats == 3
    assert result.waitlist_entry.owner_registration_id == registration.id
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 10


@pytest.mark.asyncio
async def test_unpaid_hold_expires_after_a_day_and_promotes(engine, make_event, clock, sender):
    event = await make_event(capacity=10)
    unpaid = await engine.registrations.create_registration(event.id, uuid4(), guest_count=2)
    await register_confirmed(engine, event.id, guests=6)
    waiting_owner = uuid4()
    await engine.registrations.create_registration(event.id, waiting_owner)

    clock.advance(hours=24)
    availability = await engine.registrations.get_availability(event.id)

    [hold] = await engine.payments.list_owner_holds(unpaid.registration.owner_id)
    assert hold.status == HoldStatus.EXPIRED
    assert (await reload_registration(engine.session, unpaid.registration.id)).status == RegistrationStatus.CANCELLED
    assert availability.occupied == 8
    assert availability.waitlist_length == 0
    [promoted] = sender.of_type(NotificationType.SEAT_PROMOTED)
    assert promoted.owner_id == str(waiting_owner)
    await assert_conserved(engine, event.id)


@pytest.mark.asyncio
async def test_removing_guests_promotes_waiting_guest_and_leaves_a_seat(engine, make_event):
    event = await make_event(capacity=10)
    registration = await register_confirmed(engine, event.id, guests=4)
    other = await register_confirmed(engine, event.id, guests=4)
    queued = await engine.registrations.add_guests(other.id, other.owner_id, 1)
    assert queued.outcome == ReservationOutcome.WAITLISTED

    details = await engine.registrations.get_registration(registration.id, registration.owner_id)
    result = await engine.registrations.remove_guests(
        registration.id, registration.owner_id, [details.guests[0].id, details.guests[1].id]
    )

    assert result.removed == 2
    assert [(p.registration_id, p.seats) for p in result.promotions] == [(other.id, 1)]
    assert await engine.waitlist.count_for_event(event.id) == 0
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 9
    assert (await reload_registration(engine.session, registration.id)).guest_count == 2
