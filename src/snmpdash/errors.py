"""
Error types for snmpdash.

This module defines the ServiceError base class and the subclasses raised by
the sample store, the maintenance facade and the HTTP/JSON-RPC layer. Errors
are expressed as ServiceError instances everywhere; the protocol layer maps
them to JSON-RPC error objects and the remote client maps them back, so the
in-process and remote callers observe the same exception classes.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """
    Base exception class for snmpdash domain errors.

    Attributes:
        error_code: Internal error code string (e.g., "not_found",
            "already_exists", "store_error", "invalid_argument").
        message: Human-readable error message.
        details: Optional structured details (e.g., source names).

    Example:
        >>> raise ServiceError(
        ...     error_code="not_found",
        ...     message="Source 'router1' not found",
        ...     details={"source": "router1"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a ServiceError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(ServiceError):
    """Raised when an operation receives invalid input arguments."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class UnauthenticatedError(ServiceError):
    """
    Raised when a request carries no valid bearer token.

    Token introspection failures (inactive token, unreachable introspection
    endpoint, malformed response) all collapse into this error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UnauthenticatedError."""
        super().__init__(
            error_code="unauthenticated", message=message, details=details
        )


class SourceNotFoundError(ServiceError):
    """
    Raised when a named source does not exist in the store.

    Rename, merge and delete all raise this before mutating anything.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a SourceNotFoundError."""
        super().__init__(error_code="not_found", message=message, details=details)


class DestinationExistsError(ServiceError):
    """Raised when a rename target already exists (rename never overwrites)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a DestinationExistsError."""
        super().__init__(
            error_code="already_exists", message=message, details=details
        )


class StoreError(ServiceError):
    """
    Raised when the underlying storage fails.

    The failing transaction has been rolled back when this is raised, so no
    partial effect is visible.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a StoreError."""
        super().__init__(error_code="store_error", message=message, details=details)


class TransportError(ServiceError):
    """Raised when the remote service cannot be reached or answers garbage."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a TransportError."""
        super().__init__(error_code="unavailable", message=message, details=details)


class InternalError(ServiceError):
    """
    Raised for unexpected internal errors.

    Should be logged with a full stack trace where it is created.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(error_code="internal", message=message, details=details)


_ERROR_CLASSES: dict[str, type[ServiceError]] = {
    "invalid_argument": InvalidArgumentError,
    "unauthenticated": UnauthenticatedError,
    "not_found": SourceNotFoundError,
    "already_exists": DestinationExistsError,
    "store_error": StoreError,
    "unavailable": TransportError,
    "internal": InternalError,
}


def error_from_dict(payload: dict[str, Any]) -> ServiceError:
    """
    Rebuild a ServiceError from its ``to_dict()`` form.

    Unknown error codes produce a plain ServiceError carrying that code.

    Args:
        payload: Dictionary with error_code, message and details.

    Returns:
        The matching ServiceError subclass instance.
    """
    error_code = str(payload.get("error_code", "internal"))
    message = str(payload.get("message", ""))
    details = payload.get("details") or {}

    error_class = _ERROR_CLASSES.get(error_code)
    if error_class is None:
        return ServiceError(error_code=error_code, message=message, details=details)
    return error_class(message, details=details)
