"""
Common Pydantic schemas for API responses and requests.
Provides base classes and common data structures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict


class APIResponse(BaseModel):
    """Base API response model."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SuccessResponse(APIResponse):
    """Success response model."""
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "0.1.0"
    services: Dict[str, str] = Field(
        default_factory=lambda: {
            "database": "healthy",
            "ledger": "healthy",
        }
    )


# Common field types
AddressField = Field(
    min_length=42,
    max_length=42,
    pattern=r"^0[xX][0-9a-fA-F]{40}$",
    description="EVM account address"
)

NameField = Field(
    min_length=1,
    max_length=255,
    description="Beneficiary full name"
)


def create_success_response(data: Any = None, message: Optional[str] = None) -> SuccessResponse:
    """Create a success response."""
    return SuccessResponse(data=data, message=message)


def create_error_response(
    message: str,
    error: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(message=message, error=error, details=details)
