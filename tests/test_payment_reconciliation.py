"""
Tests for hold confirmation, expiry, gateway signals and the periodic sweep.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from playsessions.models import HoldStatus, PaymentMode, PointsAccount, RegistrationStatus
from playsessions.services.notifications import NotificationType
from playsessions.services.payment_service import GatewayOutcome
from playsessions.services.engine import PlaySessionEngine
from playsessions.utils.exceptions import HoldExpiredError, HoldNotFoundError, InvalidStateError, PaymentFailedError

from conftest import assert_conserved, register_confirmed, reload_event, reload_registration


@pytest.mark.asyncio
async def test_confirm_twice_is_harmless(engine, make_event):
    event = await make_event(capacity=10)
    result = await engine.registrations.create_registration(event.id, uuid4(), guest_count=1)

    await engine.payments.confirm(result.hold.id)
    hold = await engine.payments.confirm(result.hold.id)

    assert hold.status == HoldStatus.CONFIRMED
    registration = await reload_registration(engine.session, result.registration.id)
    assert registration.guest_count == 1
    await assert_conserved(engine, event.id)


@pytest.mark.asyncio
async def test_confirm_after_expiry_is_refused(engine, make_event, clock):
    event = await make_event(capacity=10)
    result = await engine.registrations.create_registration(event.id, uuid4())
    clock.advance(hours=24, seconds=1)

    with pytest.raises(HoldExpiredError):
        await engine.payments.confirm(result.hold.id)

    registration = await reload_registration(engine.session, result.registration.id)
    assert registration.status == RegistrationStatus.CANCELLED
    assert registration.cancellation_reason == "hold_expired"
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 0


@pytest.mark.asyncio
async def test_confirm_cancelled_hold_is_invalid(engine, make_event):
    event = await make_event()
    result = await engine.registrations.create_registration(event.id, uuid4())
    await engine.payments.expire_or_cancel(result.hold.id)

    with pytest.raises(InvalidStateError):
        await engine.payments.confirm(result.hold.id)


@pytest.mark.asyncio
async def test_cannot_cancel_a_paid_hold(engine, make_event):
    event = await make_event()
    result = await engine.registrations.create_registration(event.id, uuid4())
    await engine.payments.confirm(result.hold.id)

    with pytest.raises(InvalidStateError):
        await engine.payments.expire_or_cancel(result.hold.id)


@pytest.mark.asyncio
async def test_cancelling_guest_hold_keeps_registration(engine, make_event):
    event = await make_event(capacity=10)
    registration = await register_confirmed(engine, event.id)
    admission = await engine.registrations.add_guests(registration.id, registration.owner_id, 2)

    hold = await engine.payments.expire_or_cancel(admission.hold.id, owner_id=registration.owner_id)

    assert hold.status == HoldStatus.CANCELLED
    registration = await reload_registration(engine.session, registration.id)
    assert registration.status == RegistrationStatus.CONFIRMED
    assert registration.guest_count == 0
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 1


@pytest.mark.asyncio
async def test_owner_check_on_hold_cancel(engine, make_event):
    event = await make_event()
    result = await engine.registrations.create_registration(event.id, uuid4())

    with pytest.raises(HoldNotFoundError):
        await engine.payments.expire_or_cancel(result.hold.id, owner_id=uuid4())


@pytest.mark.asyncio
async def test_gateway_signals_route_by_session_id(engine, make_event):
    event = await make_event(capacity=10)
    paid = await engine.registrations.create_registration(event.id, uuid4())
    abandoned = await engine.registrations.create_registration(event.id, uuid4(), guest_count=2)
    await engine.payments.attach_payment_session(paid.hold.id, paid.registration.owner_id, "cs_paid")
    await engine.payments.attach_payment_session(abandoned.hold.id, abandoned.registration.owner_id, "cs_gone")

    confirmed = await engine.payments.handle_gateway_signal("cs_paid", GatewayOutcome.SUCCEEDED)
    expired = await engine.payments.handle_gateway_signal("cs_gone", GatewayOutcome.EXPIRED)

    assert confirmed.status == HoldStatus.CONFIRMED
    assert expired.status == HoldStatus.EXPIRED
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 1

    with pytest.raises(HoldNotFoundError):
        await engine.payments.handle_gateway_signal("cs_unknown", GatewayOutcome.SUCCEEDED)


@pytest.mark.asyncio
async def test_attach_session_to_closed_hold(engine, make_event):
    event = await make_event()
    result = await engine.registrations.create_registration(event.id, uuid4())
    await engine.payments.confirm(result.hold.id)

    with pytest.raises(InvalidStateError):
        await engine.payments.attach_payment_session(result.hold.id, result.registration.owner_id, "cs_late")


@pytest.mark.asyncio
async def test_overdue_hold_released_before_next_capacity_read(engine, make_event, clock):
    event = await make_event(capacity=2)
    stale = await engine.registrations.create_registration(event.id, uuid4(), guest_count=1)
    clock.advance(hours=24)

    result = await engine.registrations.create_registration(event.id, uuid4(), guest_count=1)

    assert result.hold is not None
    [old_hold] = await engine.payments.list_owner_holds(stale.registration.owner_id)
    assert old_hold.status == HoldStatus.EXPIRED
    event = await assert_conserved(engine, event.id)
    assert event.occupied == 2


@pytest.mark.asyncio
async def test_expired_mixed_hold_refunds_points(engine, make_event, points, clock):
    event = await make_event(capacity=5, points_price=30)
    owner = uuid4()
    points.balances[owner] = 50

    await engine.registrations.create_registration(
        event.id, owner, payment_mode=PaymentMode.MIXED, points_to_use=20
    )
    assert points.balances[owner] == 30

    clock.advance(hours=25)
    await engine.registrations.get_availability(event.id)

    assert points.balances[owner] == 50


@pytest.mark.asyncio
async def test_reward_points_table_backs_points_payments(db_session, locks, sender, clock, make_event):
    engine = PlaySessionEngine(db_session, locks, sender=sender, clock=clock)
    event = await make_event(capacity=5, points_price=40)
    owner = uuid4()
    db_session.add(PointsAccount(user_id=owner, balance=100))
    await db_session.commit()

    result = await engine.registrations.create_registration(
        event.id, owner, guest_count=1, payment_mode=PaymentMode.POINTS
    )
    assert result.hold.status == HoldStatus.CONFIRMED

    account = (await db_session.execute(
        select(PointsAccount).where(PointsAccount.user_id == owner).execution_options(populate_existing=True)
    )).scalar_one()
    assert account.balance == 20

    with pytest.raises(PaymentFailedError):
        await engine.registrations.add_guests(
            result.registration.id, owner, 1, payment_mode=PaymentMode.POINTS
        )
    await db_session.refresh(account)
    assert account.balance == 20
    await assert_conserved(engine, event.id)


@pytest.mark.asyncio
async def test_sweep_expires_warns_and_promotes(engine, make_event, clock, sender):
    full = await make_event(capacity=1)
    unpaid = await engine.registrations.create_registration(full.id, uuid4())
    waiting_owner = uuid4()
    await engine.registrations.create_registration(full.id, waiting_owner)

    quiet = await make_event(capacity=3)
    nearly_due = await engine.registrations.create_registration(quiet.id, uuid4())

    clock.advance(hours=23)
    first = await engine.payments.sweep()
    assert first.holds_expired == 0
    assert first.warnings_sent == 2
    assert len(sender.of_type(NotificationType.HOLD_EXPIRING)) == 2

    again = await engine.payments.sweep()
    assert again.warnings_sent == 0

    clock.advance(hours=1)
    report = await engine.payments.sweep()

    assert report.holds_expired == 2
    assert report.seats_promoted == 1
    assert report.drifted_events == []
    [promoted] = sender.of_type(NotificationType.SEAT_PROMOTED)
    assert promoted.owner_id == str(waiting_owner)
    assert (await reload_registration(engine.session, unpaid.registration.id)).status == RegistrationStatus.CANCELLED
    assert (await reload_registration(engine.session, nearly_due.registration.id)).status == RegistrationStatus.CANCELLED
    assert (await reload_event(engine.session, full.id)).occupied == 1
    assert (await reload_event(engine.session, quiet.id)).occupied == 0


@pytest.mark.asyncio
async def test_sweep_reports_counter_drift(engine, make_event, clock):
    clean = await make_event(capacity=5)
    # One seat taken outside the engine
    drifted = await make_event(capacity=5, occupied=1)
    await engine.registrations.create_registration(clean.id, uuid4(), guest_count=1)
    await engine.registrations.create_registration(drifted.id, uuid4(), guest_count=1)
    clock.advance(hours=23)

    report = await engine.payments.sweep()

    assert report.events_checked == 2
    assert report.drifted_events == [drifted.id]


@pytest.mark.asyncio
async def test_sweep_promotes_where_seats_sit_free(engine, make_event, session_factory):
    event = await make_event(capacity=1)
    holder = await register_confirmed(engine, event.id)
    waiting_owner = uuid4()
    await engine.registrations.create_registration(event.id, waiting_owner)

    # Seat freed by admin tooling without running promotion
    async with session_factory() as session:
        stored = await reload_event(session, event.id)
        stored.occupied = 0
        registration = await reload_registration(session, holder.id)
        registration.status = RegistrationStatus.CANCELLED
        await session.commit()

    report = await engine.payments.sweep()

    assert report.seats_promoted == 1
    assert [hold.status for hold in await engine.payments.list_owner_holds(waiting_owner)] == [
        HoldStatus.AWAITING_PAYMENT
    ]
    await assert_conserved(engine, event.id)
