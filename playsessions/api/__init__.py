"""API endpoints for the Play Sessions engine."""

from fastapi import APIRouter
from .events import router as events_router
from .registrations import router as registrations_router
from .waitlist import router as waitlist_router
from .holds import router as holds_router
from .payments import router as payments_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include all routers
api_router.include_router(events_router)
api_router.include_router(registrations_router)
api_router.include_router(waitlist_router)
api_router.include_router(holds_router)
api_router.include_router(payments_router)

__all__ = ["api_router"]
