"""
Tests for the seat ledger: reserve, release and the per-event transaction.
"""

import pytest

from playsessions.services.notifications import NotificationType
from playsessions.utils.exceptions import EventNotFoundError, InvalidStateError, ValidationError

from conftest import reload_event


@pytest.mark.asyncio
async def test_reserve_grants_up_to_free_seats(engine, make_event):
    event = await make_event(capacity=5, occupied=3)

    async with engine.ledger.lock_event(event.id) as locked:
        reservation = await engine.ledger.reserve(locked, 4)

    assert reservation.granted == 2
    assert reservation.remainder == 2
    assert reservation.is_partial
    assert (await reload_event(engine.session, event.id)).occupied == 5


@pytest.mark.asyncio
async def test_reserve_all_or_nothing_grants_nothing_when_short(engine, make_event):
    event = await make_event(capacity=5, occupied=3)

    async with engine.ledger.lock_event(event.id) as locked:
        reservation = await engine.ledger.reserve(locked, 3, all_or_nothing=True)

    assert reservation.granted == 0
    assert reservation.remainder == 3
    assert not reservation.is_partial
    assert (await reload_event(engine.session, event.id)).occupied == 3


@pytest.mark.asyncio
async def test_reserve_on_full_event_grants_zero(engine, make_event):
    event = await make_event(capacity=2, occupied=2)

    async with engine.ledger.lock_event(event.id) as locked:
        reservation = await engine.ledger.reserve(locked, 1)
        assert engine.ledger.free_seats(locked) == 0

    assert reservation.granted == 0
    assert reservation.remainder == 1


@pytest.mark.asyncio
async def test_reserve_rejects_non_positive_request(engine, make_event):
    event = await make_event()

    with pytest.raises(ValidationError):
        async with engine.ledger.lock_event(event.id) as locked:
            await engine.ledger.reserve(locked, 0)


@pytest.mark.asyncio
async def test_release_more_than_occupied_is_refused(engine, make_event):
    event = await make_event(capacity=5, occupied=1)

    with pytest.raises(InvalidStateError):
        async with engine.ledger.lock_event(event.id) as locked:
            await engine.ledger.release(locked, 2)

    assert (await reload_event(engine.session, event.id)).occupied == 1


@pytest.mark.asyncio
async def test_release_returns_seats(engine, make_event):
    event = await make_event(capacity=5, occupied=4)

    async with engine.ledger.lock_event(event.id) as locked:
        await engine.ledger.release(locked, 3)
        assert locked.occupied == 1

    assert (await reload_event(engine.session, event.id)).occupied == 1


@pytest.mark.asyncio
async def test_error_inside_lock_rolls_back_and_drops_notifications(engine, make_event, sender):
    event = await make_event(capacity=5)

    with pytest.raises(RuntimeError):
        async with engine.ledger.lock_event(event.id) as locked:
            await engine.ledger.reserve(locked, 2)
            engine.notifier.emit(NotificationType.SEAT_PROMOTED, "someone")
            raise RuntimeError("boom")

    assert (await reload_event(engine.session, event.id)).occupied == 0
    assert sender.sent == []
    assert engine.notifier.pending == []


@pytest.mark.asyncio
async def test_notifications_sent_only_after_commit(engine, make_event, sender):
    event = await make_event()

    async with engine.ledger.lock_event(event.id):
        engine.notifier.emit(NotificationType.HOLD_CONFIRMED, "owner-1", seats=2)
        assert sender.sent == []

    assert len(sender.sent) == 1
    assert sender.sent[0].payload == {"seats": "2"}


@pytest.mark.asyncio
async def test_lock_unknown_event(engine):
    from uuid import uuid4

    with pytest.raises(EventNotFoundError):
        async with engine.ledger.lock_event(uuid4()):
            pass


@pytest.mark.asyncio
async def test_lock_registry_shares_lock_per_event_and_forgets_idle_ones(locks):
    import asyncio
    from uuid import uuid4

    first, second = uuid4(), uuid4()
    waiter_entered = asyncio.Event()

    async def wait_for_first():
        async with locks.acquire(first):
            waiter_entered.set()

    async with locks.acquire(first) as held:
        async with locks.acquire(second) as other:
            assert other is not held
            assert len(locks) == 2
        assert len(locks) == 1

        waiter = asyncio.create_task(wait_for_first())
        await asyncio.sleep(0)
        assert not waiter_entered.is_set()
        assert len(locks) == 1

    await waiter
    assert waiter_entered.is_set()
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_event_leaves_no_lock_behind(engine, locks, make_event):
    event = await make_event(capacity=3)

    async with engine.ledger.lock_event(event.id) as locked:
        await engine.ledger.reserve(locked, 1)
        assert len(locks) == 1

    assert len(locks) == 0
