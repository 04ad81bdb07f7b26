"""
Common schemas for API responses and error handling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")
    retry_after: Optional[int] = Field(None, description="Seconds to wait before retrying")


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: str
    timestamp: str

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "error": {
                        "error_code": "CAPACITY_EXCEEDED",
                        "message": "Insufficient capacity: requested 3, available 2",
                        "details": {
                            "requested": 3,
                            "available": 2,
                            "event_id": "123e4567-e89b-12d3-a456-426614174000"
                        },
                        "suggestions": [
                            "Register with fewer guests",
                            "Add guests after registering"
                        ]
                    },
                    "error_id": "9b1f0d6c-3f6e-4a53-8f7e-1f1f3c2b7a10",
                    "timestamp": "2026-05-02T10:15:00+00:00"
                }
            ]
        }
    )


class SuccessResponse(BaseModel):
    """Schema for simple success responses."""

    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")
