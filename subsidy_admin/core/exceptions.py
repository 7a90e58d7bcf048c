"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class SubsidyAdminException(Exception):
    """Base exception class for the subsidy admin backend."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SubsidyAdminException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(SubsidyAdminException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class ValidationError(SubsidyAdminException):
    """Raised when data validation fails. Always raised before any I/O."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(SubsidyAdminException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class ConflictError(SubsidyAdminException):
    """Raised when a resource already exists."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class ExternalServiceError(SubsidyAdminException):
    """Raised when an external service error occurs."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EXTERNAL_SERVICE_ERROR", details)


class LedgerQueryError(ExternalServiceError):
    """Raised when the indexer cannot be reached or returns an invalid payload."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "LEDGER_QUERY_ERROR"


class MutationRejectedError(SubsidyAdminException):
    """Raised when a ledger mutation reverted or was never confirmed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MUTATION_REJECTED", details)


class PartialFailureError(SubsidyAdminException):
    """Raised when the ledger mutation confirmed but the profile write failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PARTIAL_FAILURE", details)


# Profile-specific exceptions
class ProfileNotFoundError(NotFoundError):
    """Raised when a beneficiary profile is not found."""

    def __init__(self, address: str):
        super().__init__(
            f"Beneficiary not found: {address}",
            {"address": address}
        )


class ProfileExistsError(ConflictError):
    """Raised when creating a profile for an address that already has one."""

    def __init__(self, address: str):
        super().__init__(
            f"Beneficiary with this address already exists: {address}",
            {"address": address}
        )


class InvalidAddressError(ValidationError):
    """Raised when an address is malformed or not in canonical form."""

    def __init__(self, address: str, reason: str = "Invalid address"):
        super().__init__(
            f"{reason}: {address!r}",
            {"address": address, "reason": reason}
        )
