"""
Custom exception hierarchy for structured error handling.

WHY: Every failure that crosses a service boundary has to be described by a
machine-readable kind plus a human message. Each exception class below is
tagged with an ErrorKind so the action bus can ship it to the caller as data
and rebuild the same exception on the other side.

IMPORTANT: NEVER raise the base Exception class from service code.
"""

import enum
from typing import Any, Dict, Optional, Type


class ErrorKind(str, enum.Enum):
    """
    Machine-readable error kinds understood by every service.

    WHY: Services never share exception objects, only these values.
    """

    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class UnauthorizedError(AppException):
    """
    Raised when a credential is missing or invalid.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication required"


class TokenExpiredError(UnauthorizedError):
    """Raised when a JWT has expired."""

    default_message = "Token has expired"


class TokenInvalidError(UnauthorizedError):
    """Raised when a JWT is malformed or has an invalid signature."""

    default_message = "Token is invalid"


class ForbiddenError(AppException):
    """
    Raised when the caller's role is outside the accepted set, or the caller
    does not own the resource it is trying to change.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    kind = ErrorKind.FORBIDDEN
    default_message = "User with that role can't use this action"


# ============================================================================
# Validation & Resource Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails, before any side effect.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    kind = ErrorKind.VALIDATION
    default_message = "Validation failed"


class NotFoundError(AppException):
    """
    Raised when a requested or referenced entity doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppException):
    """
    Raised when a uniqueness rule is violated (email, organisation name,
    duplicate membership).

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


# ============================================================================
# Bus & Infrastructure Exceptions
# ============================================================================


class ServiceUnavailableError(AppException):
    """
    Raised when a remote action cannot be reached or times out.

    WHY: Protected actions must fail when the User Service cannot answer
    an authorization query. This is the error they fail with.

    HTTP Status: 503 Service Unavailable
    """

    status_code = 503
    kind = ErrorKind.UNAVAILABLE
    default_message = "Service unavailable"


class DatabaseError(AppException):
    """
    Raised when a store operation fails in a way callers can't act on.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    kind = ErrorKind.INTERNAL
    default_message = "Database error"


_EXCEPTION_BY_KIND: Dict[ErrorKind, Type[AppException]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.UNAVAILABLE: ServiceUnavailableError,
    ErrorKind.INTERNAL: AppException,
}


def exception_for(kind: ErrorKind, message: str, **context: Any) -> AppException:
    """
    Rebuild an exception from an error kind received over the bus.

    Args:
        kind: Error kind reported by the remote service
        message: Human-readable message reported by the remote service
        **context: Details to attach

    Returns:
        Exception instance of the class registered for the kind
    """
    return _EXCEPTION_BY_KIND[kind](message=message, **context)
