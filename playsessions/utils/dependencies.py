"""
FastAPI dependencies for authentication and engine wiring.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..services.engine import PlaySessionEngine
from ..services.notifications import NotificationSender
from ..services.points_ledger import PointsLedger
from ..services.seat_ledger import EventLockRegistry
from ..utils.auth import verify_token


# HTTP Bearer token scheme
security = HTTPBearer()


async def get_current_owner_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UUID:
    """
    Get the id of the member making the request from their bearer token.

    Raises:
        HTTPException: If the token is invalid or carries no usable subject
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = verify_token(credentials.credentials)
    if token_data is None or token_data.user_id is None:
        raise credentials_exception

    try:
        return UUID(token_data.user_id)
    except ValueError:
        raise credentials_exception


def get_lock_registry(request: Request) -> EventLockRegistry:
    """Process-wide per-event locks, created with the app."""
    registry = getattr(request.app.state, "event_locks", None)
    if registry is None:
        registry = request.app.state.event_locks = EventLockRegistry()
    return registry


def get_points_ledger() -> Optional[PointsLedger]:
    """Override to plug in an external points ledger. None uses the reward points table."""
    return None


def get_notification_sender() -> Optional[NotificationSender]:
    """Override to route notifications elsewhere. None sends through Celery."""
    return None


async def get_engine(
    db: AsyncSession = Depends(get_db),
    locks: EventLockRegistry = Depends(get_lock_registry),
    points: Optional[PointsLedger] = Depends(get_points_ledger),
    sender: Optional[NotificationSender] = Depends(get_notification_sender),
) -> PlaySessionEngine:
    """Engine services bound to the request's database session."""
    return PlaySessionEngine(db, locks, points=points, sender=sender)
