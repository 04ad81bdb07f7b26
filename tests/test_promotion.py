"""
Tests for promotion from the waitlist when seats free up.
"""

from uuid import uuid4

import pytest

from playsessions.models import HoldKind, HoldStatus, Registration, RegistrationStatus, WaitlistKind
from playsessions.services.notifications import NotificationType

from conftest import assert_conserved, register_confirmed, reload_registration


@pytest.mark.asyncio
async def test_head_of_line_partially_filled_before_later_entries(engine, make_event):
    event = await make_event(capacity=4)
    leaving = await register_confirmed(engine, event.id, guests=1)
    staying = await register_confirmed(engine, event.id, guests=1)

    head = await engine.registrations.add_guests(staying.id, staying.owner_id, 3)
    behind_owner = uuid4()
    behind = await engine.registrations.create_registration(event.id, behind_owner)

    result = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    assert [p.entry_id for p in result.promotions] == [head.waitlist_entry.id]
    assert result.promotions[0].seats == 2
    remaining = await engine.waitlist.find_add_guests(staying.id)
    assert remaining.requested_seats == 1
    assert remaining.position == head.waitlist_entry.position
    untouched = await engine.waitlist.find_new_spot(event.id, behind_owner)
    assert untouched.id == behind.waitlist_entry.id
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 4


@pytest.mark.asyncio
async def test_kinds_interleave_in_arrival_order(engine, make_event):
    event = await make_event(capacity=3)
    leaving = await register_confirmed(engine, event.id)
    staying = await register_confirmed(engine, event.id, guests=1)

    first_owner = uuid4()
    await engine.registrations.create_registration(event.id, first_owner)
    await engine.registrations.add_guests(staying.id, staying.owner_id, 1)

    result = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    assert [p.kind for p in result.promotions] == [WaitlistKind.NEW_SPOT]
    assert result.promotions[0].owner_id == first_owner
    assert (await engine.waitlist.find_add_guests(staying.id)).requested_seats == 1


@pytest.mark.asyncio
async def test_new_spot_promotion_creates_pending_registration_with_hold(engine, make_event, sender, clock):
    event = await make_event(capacity=1)
    leaving = await register_confirmed(engine, event.id)
    waiting_owner = uuid4()
    await engine.registrations.create_registration(event.id, waiting_owner)

    result = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    promotion = result.promotions[0]
    registration = await reload_registration(engine.session, promotion.registration_id)
    assert registration.owner_id == waiting_owner
    assert registration.status == RegistrationStatus.PENDING
    [hold] = await engine.payments.list_owner_holds(waiting_owner)
    assert hold.kind == HoldKind.WAITLIST_PROMOTION
    assert hold.includes_primary
    assert hold.status == HoldStatus.AWAITING_PAYMENT

    [notice] = sender.of_type(NotificationType.SEAT_PROMOTED)
    assert notice.owner_id == str(waiting_owner)
    assert notice.payload["hold_id"] == str(hold.id)

    await engine.payments.confirm(hold.id)
    registration = await reload_registration(engine.session, promotion.registration_id)
    assert registration.status == RegistrationStatus.CONFIRMED
    await assert_conserved(engine, event.id)


@pytest.mark.asyncio
async def test_add_guests_promotion_extends_existing_registration(engine, make_event):
    event = await make_event(capacity=3)
    leaving = await register_confirmed(engine, event.id)
    staying = await register_confirmed(engine, event.id, guests=1)
    await engine.registrations.add_guests(staying.id, staying.owner_id, 1)

    result = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    promotion = result.promotions[0]
    assert promotion.registration_id == staying.id
    [hold] = await engine.payments.open_holds_for_registration(staying.id)
    assert hold.id == promotion.hold_id
    assert not hold.includes_primary

    await engine.payments.confirm(hold.id)
    staying = await reload_registration(engine.session, staying.id)
    assert staying.guest_count == 2
    await assert_conserved(engine, event.id)


@pytest.mark.asyncio
async def test_stale_new_spot_entry_is_skipped(engine, make_event):
    event = await make_event(capacity=1)
    holder = await register_confirmed(engine, event.id)
    stale_owner = uuid4()
    stale = await engine.registrations.create_registration(event.id, stale_owner)
    fresh_owner = uuid4()
    await engine.registrations.create_registration(event.id, fresh_owner)

    # Registered by admin tooling while still queued
    engine.session.add(Registration(
        event_id=event.id, owner_id=stale_owner, status=RegistrationStatus.PENDING, guest_count=0,
    ))
    await engine.session.commit()

    result = await engine.registrations.cancel_registration(holder.id, holder.owner_id)

    assert [p.owner_id for p in result.promotions] == [fresh_owner]
    assert await engine.waitlist.find_new_spot(event.id, stale_owner) is None
    assert stale.waitlist_entry.position == 1


@pytest.mark.asyncio
async def test_promotion_never_exceeds_free_seats(engine, make_event):
    event = await make_event(capacity=5)
    leaving = await register_confirmed(engine, event.id, guests=1)
    await register_confirmed(engine, event.id, guests=2)
    waiting = [uuid4() for _ in range(4)]
    for owner in waiting:
        await engine.registrations.create_registration(event.id, owner)

    result = await engine.registrations.cancel_registration(leaving.id, leaving.owner_id)

    assert [p.owner_id for p in result.promotions] == waiting[:2]
    assert await engine.waitlist.count_for_event(event.id) == 2
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 5
