"""
Custom exceptions for the Play Sessions engine.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the engine."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Capacity and waitlist errors
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_WAITLISTED = "ALREADY_WAITLISTED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    INVALID_STATE = "INVALID_STATE"

    # Hold and payment errors
    HOLD_EXPIRED = "HOLD_EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"

    # Concurrency errors
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


class PlaySessionError(Exception):
    """Base exception class for the Play Sessions engine."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(PlaySessionError):
    """Exception raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        details = kwargs.pop("details", None) or ({"field_errors": field_errors} if field_errors else None)
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(PlaySessionError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class EventNotFoundError(NotFoundError):
    """Exception raised when an event is not found."""

    def __init__(self, event_id: str, **kwargs):
        super().__init__(
            f"Event {event_id} not found",
            resource_type="event",
            resource_id=event_id,
            suggestions=["Check the event ID", "Browse upcoming play sessions"],
            **kwargs
        )


class RegistrationNotFoundError(NotFoundError):
    """Exception raised when a registration is missing or owned by someone else."""

    def __init__(self, registration_id: str, **kwargs):
        super().__init__(
            f"Registration {registration_id} not found",
            resource_type="registration",
            resource_id=registration_id,
            suggestions=["Check the registration ID", "View your registrations"],
            **kwargs
        )


class GuestNotFoundError(NotFoundError):
    """Exception raised when a guest does not belong to the registration."""

    def __init__(self, guest_id: str, **kwargs):
        super().__init__(
            f"Guest {guest_id} not found",
            resource_type="guest",
            resource_id=guest_id,
            **kwargs
        )


class WaitlistEntryNotFoundError(NotFoundError):
    """Exception raised when a waitlist entry is not found."""

    def __init__(self, entry_id: str, **kwargs):
        super().__init__(
            f"Waitlist entry {entry_id} not found",
            resource_type="waitlist_entry",
            resource_id=entry_id,
            **kwargs
        )


class HoldNotFoundError(NotFoundError):
    """Exception raised when a hold is not found."""

    def __init__(self, hold_id: str, **kwargs):
        super().__init__(
            f"Hold {hold_id} not found",
            resource_type="hold",
            resource_id=hold_id,
            **kwargs
        )


class AuthenticationError(PlaySessionError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Check your credentials", "Login again"],
            **kwargs
        )


class BusinessLogicError(PlaySessionError):
    """Base exception for business logic violations."""
    pass


class CapacityExceededError(BusinessLogicError):
    """Exception raised when the requested seats do not fit and cannot be waitlisted."""

    def __init__(self, requested: int, available: int, event_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Insufficient capacity: requested {requested}, available {available}",
            error_code=ErrorCode.CAPACITY_EXCEEDED,
            details={"requested": requested, "available": available, "event_id": event_id},
            suggestions=["Register with fewer guests", "Add guests after registering"],
            **kwargs
        )
        self.requested = requested
        self.available = available


class AlreadyWaitlistedError(BusinessLogicError):
    """Exception raised when an owner already waits for a spot at the event."""

    def __init__(self, event_id: str, entry_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Already on the waitlist for event {event_id}",
            error_code=ErrorCode.ALREADY_WAITLISTED,
            details={"event_id": event_id, "entry_id": entry_id},
            suggestions=["Check your waitlist position"],
            **kwargs
        )


class AlreadyRegisteredError(BusinessLogicError):
    """Exception raised when an owner already holds a registration for the event."""

    def __init__(self, event_id: str, registration_id: str, status: str, **kwargs):
        suggestions = ["Add guests to your existing registration"]
        if status == "pending":
            suggestions = ["Complete payment for your reserved spot"]
        super().__init__(
            f"Already registered for event {event_id}",
            error_code=ErrorCode.ALREADY_REGISTERED,
            details={"event_id": event_id, "registration_id": registration_id, "status": status},
            suggestions=suggestions,
            **kwargs
        )


class InvalidStateError(BusinessLogicError):
    """Exception raised when a record is in the wrong state for an operation."""

    def __init__(self, message: str, resource_type: Optional[str] = None, current_state: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if resource_type:
            details["resource_type"] = resource_type
        if current_state:
            details["current_state"] = current_state
        super().__init__(
            message,
            error_code=ErrorCode.INVALID_STATE,
            details=details,
            **kwargs
        )


class HoldExpiredError(BusinessLogicError):
    """Exception raised when payment arrives for a hold that has expired."""

    def __init__(self, hold_id: str, **kwargs):
        super().__init__(
            f"Hold {hold_id} has expired",
            error_code=ErrorCode.HOLD_EXPIRED,
            details={"hold_id": hold_id},
            suggestions=["Register again", "Join the waitlist if the session is full"],
            **kwargs
        )


class PaymentFailedError(BusinessLogicError):
    """Exception raised when a points debit or card payment is declined."""

    def __init__(self, message: str, hold_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.PAYMENT_FAILED,
            details={"hold_id": hold_id} if hold_id else None,
            suggestions=["Check your points balance", "Pay by card instead"],
            **kwargs
        )


class ConcurrencyError(PlaySessionError):
    """Exception raised for concurrency-related issues."""

    def __init__(self, message: str, retry_after: int = 1, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.CONCURRENCY_CONFLICT,
            retry_after=retry_after,
            suggestions=["Please try again", "Wait a moment and retry"],
            **kwargs
        )


class ExternalServiceError(PlaySessionError):
    """Exception raised for external service failures."""

    def __init__(self, service_name: str, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(
            f"{service_name} service error: {message}",
            error_code=ErrorCode.EXTERNAL_SERVICE_ERROR,
            details={"service_name": service_name, "status_code": status_code},
            suggestions=["Try again later", "Contact support if problem persists"],
            **kwargs
        )
