"""
Pytest fixtures for the engine: a throwaway SQLite database per test, a shared
lock registry, a controllable clock and in-memory collaborators.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from playsessions.database import create_session_factory, get_db
from playsessions.models import Base, Event, Registration
from playsessions.services.engine import PlaySessionEngine
from playsessions.services.notifications import EngineNotification, NotificationType
from playsessions.services.seat_ledger import EventLockRegistry
from playsessions.utils.auth import create_access_token
from playsessions.utils.dependencies import (
    get_lock_registry,
    get_notification_sender,
    get_points_ledger,
)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePointsLedger:
    """In-memory points balances."""

    def __init__(self, balances: Optional[Dict[UUID, int]] = None):
        self.balances: Dict[UUID, int] = dict(balances or {})
        self.debits: List[tuple] = []
        self.credits: List[tuple] = []

    async def debit(self, user_id: UUID, amount: int) -> bool:
        if self.balances.get(user_id, 0) < amount:
            return False
        self.balances[user_id] = self.balances.get(user_id, 0) - amount
        self.debits.append((user_id, amount))
        return True

    async def credit(self, user_id: UUID, amount: int) -> None:
        self.balances[user_id] = self.balances.get(user_id, 0) + amount
        self.credits.append((user_id, amount))


class RecordingSender:
    """Notification sender that keeps what it was handed."""

    def __init__(self):
        self.sent: List[EngineNotification] = []

    def __call__(self, notification: EngineNotification) -> None:
        self.sent.append(notification)

    def of_type(self, notification_type: NotificationType) -> List[EngineNotification]:
        return [n for n in self.sent if n.type == notification_type]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc))


@pytest.fixture
def locks() -> EventLockRegistry:
    return EventLockRegistry()


@pytest.fixture
def points() -> FakePointsLedger:
    return FakePointsLedger()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'playsessions.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_engine(locks, points, sender, clock):
    """Build an engine for any session, sharing locks and collaborators."""

    def _make(session: AsyncSession, points_ledger=None) -> PlaySessionEngine:
        return PlaySessionEngine(
            session,
            locks,
            points=points_ledger if points_ledger is not None else points,
            sender=sender,
            clock=clock,
        )

    return _make


@pytest.fixture
def engine(db_session, make_engine) -> PlaySessionEngine:
    return make_engine(db_session)


@pytest.fixture
def make_event(session_factory):
    """Create an event in its own committed transaction."""

    async def _make(capacity: int = 10, occupied: int = 0, points_price: int = 10, is_active: bool = True) -> Event:
        async with session_factory() as session:
            event = Event(
                name="Thursday Social Play",
                capacity=capacity,
                occupied=occupied,
                price=Decimal("12.50"),
                points_price=points_price,
                is_active=is_active,
            )
            session.add(event)
            await session.commit()
            return event

    return _make


async def reload_event(session: AsyncSession, event_id: UUID) -> Event:
    return await session.get(Event, event_id, populate_existing=True)


async def reload_registration(session: AsyncSession, registration_id: UUID) -> Registration:
    return await session.get(Registration, registration_id, populate_existing=True)


async def register_confirmed(engine: PlaySessionEngine, event_id: UUID, guests: int = 0,
                             owner_id: Optional[UUID] = None) -> Registration:
    """Register by card and settle the hold straight away."""
    result = await engine.registrations.create_registration(event_id, owner_id or uuid4(), guest_count=guests)
    await engine.payments.confirm(result.hold.id)
    return await reload_registration(engine.session, result.registration.id)


async def assert_conserved(engine: PlaySessionEngine, event_id: UUID) -> Event:
    """Counter agrees with an independent recount and stays within capacity."""
    event = await reload_event(engine.session, event_id)
    assert 0 <= event.occupied <= event.capacity
    assert await engine.ledger.recount(event_id) == event.occupied
    return event


def auth_headers_for(owner_id: UUID) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(owner_id)})}"}


@pytest_asyncio.fixture
async def client(session_factory, locks, points, sender) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the database and collaborators swapped for test doubles."""
    from playsessions.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_registry] = lambda: locks
    app.dependency_overrides[get_points_ledger] = lambda: points
    app.dependency_overrides[get_notification_sender] = lambda: sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
