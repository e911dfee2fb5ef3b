"""
Shared error taxonomy for the User Directory service.

Every failure that crosses a component boundary is one of the
ServiceException subclasses below. The transport layer maps the
``kind`` of an error to a wire status; nothing else does.
"""

from enum import Enum
from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorKind(str, Enum):
    """Closed set of domain error kinds."""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ServiceException(Exception):
    """Base exception for the service."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInputError(ServiceException):
    """Malformed caller arguments, detected before any backend call."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class NotFoundError(ServiceException):
    """No matching record at the store."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class AlreadyExistsError(ServiceException):
    """Uniqueness conflict at the store."""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, message: str = "Already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__("ALREADY_EXISTS", message, details)


class ConflictError(ServiceException):
    """Reserved for optimistic-concurrency checks."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class InternalError(ServiceException):
    """Anything unclassified."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Internal error", details: Optional[Dict[str, Any]] = None,
                 code: str = "INTERNAL_ERROR"):
        super().__init__(code, message, details)


class StoreError(InternalError):
    """Unclassified record store failure."""

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_ERROR")


class CacheError(InternalError):
    """Cache failure, surfaced only when it follows a confirmed mutation."""

    def __init__(self, message: str = "Cache error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="CACHE_ERROR")


def classify(exc: BaseException) -> ErrorKind:
    """Return the domain kind of an exception; unknown types are internal."""
    if isinstance(exc, ServiceException):
        return exc.kind
    return ErrorKind.INTERNAL


def ensure_service_exception(exc: BaseException, message: str = "Internal error") -> ServiceException:
    """Wrap anything that is not already classified as an InternalError."""
    if isinstance(exc, ServiceException):
        return exc
    wrapped = InternalError(message, {"error": str(exc), "error_type": type(exc).__name__})
    wrapped.__cause__ = exc
    return wrapped
