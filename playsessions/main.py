"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from playsessions.config import settings
from playsessions.api import api_router
from playsessions.database import init_database, close_database
from playsessions.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from playsessions.services.seat_ledger import EventLockRegistry
from playsessions.utils.logging_config import setup_logging

# Set up logging
setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/playsessions.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("Starting Play Sessions engine")
    app.state.event_locks = EventLockRegistry()
    await init_database()
    logger.info("Database initialized successfully")
    yield
    # Shutdown
    logger.info("Shutting down Play Sessions engine")
    await close_database()
    logger.info("Database connections closed")


app = FastAPI(
    title="Play Sessions API",
    description="""
    ## Play Sessions

    Capacity, waitlist and guest admission for club play sessions.

    ### Key Features

    * **Registrations**: Sign up for a session, optionally bringing guests
    * **Guest Admission**: Add guests later; any that don't fit go on the waitlist
    * **Waitlist**: First come, first served queue that promotes automatically when seats free up
    * **Payment Holds**: Seats are held while card payment is pending and released on expiry
    * **Reward Points**: Pay in full or in part with club reward points

    ### Authentication

    Protected endpoints expect `Authorization: Bearer <access_token>`.

    ### Error Handling

    ```json
    {
      "error": {
        "error_code": "ERROR_CODE",
        "message": "Human readable error message",
        "details": {},
        "suggestions": []
      }
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "events", "description": "Live seat availability"},
        {"name": "registrations", "description": "Registrations and their guests"},
        {"name": "waitlist", "description": "Waitlist for full sessions"},
        {"name": "holds", "description": "Seat holds awaiting payment"},
        {"name": "payments", "description": "Payment gateway callbacks"},
        {"name": "health", "description": "Service health"},
    ],
    lifespan=lifespan,
)

# Middleware runs outermost-last: CORS, then error handling, then logging.
app.add_middleware(
    LoggingMiddleware,
    log_requests=settings.enable_request_logging,
    log_responses=settings.enable_request_logging,
)

app.add_middleware(
    ErrorHandlerMiddleware,
    debug=settings.debug
)

if settings.debug:
    # Cannot use credentials with wildcard origins
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

# Include API routes
app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    """Basic information about the API."""
    return {
        "message": "Play Sessions API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Simple uptime check."""
    return {"status": "healthy", "service": "playsessions"}
