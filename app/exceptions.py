"""
API errors raised by the usage endpoints.

Each class fixes an HTTP status and a default ``ErrorCode``; the handlers in
``app.error_handlers`` turn them into the ``{"success": false, ...}``
envelope. ``details`` is client-visible, ``internal_message`` only reaches
the logs.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"

    PERMISSION_DENIED = "PERMISSION_DENIED"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    GENERATION_LIMIT_EXCEEDED = "GENERATION_LIMIT_EXCEEDED"
    FOLLOWUP_GENERATION_LIMIT_EXCEEDED = "FOLLOWUP_GENERATION_LIMIT_EXCEEDED"
    ACTIVITY_LIMIT_EXCEEDED = "ACTIVITY_LIMIT_EXCEEDED"

    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    LIMITS_NOT_CONFIGURED = "LIMITS_NOT_CONFIGURED"
    USAGE_CHECK_FAILED = "USAGE_CHECK_FAILED"

    DATABASE_ERROR = "DATABASE_ERROR"


def _present(**values: Any) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class UsageServiceException(Exception):
    """Base class for every error the API renders itself."""

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})
        self.internal_message = internal_message
        super().__init__(self.message)


class AuthenticationError(UsageServiceException):
    """No bearer token, or one Supabase did not sign."""

    status_code = 401
    default_error_code = ErrorCode.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


class AuthorizationError(UsageServiceException):
    status_code = 403
    default_error_code = ErrorCode.PERMISSION_DENIED
    default_message = "Permission denied"

    def __init__(
        self,
        message: Optional[str] = None,
        required_permission: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        internal_message: Optional[str] = None,
    ):
        super().__init__(
            message,
            error_code=error_code,
            details=_present(required_permission=required_permission),
            internal_message=internal_message,
        )


class ResourceNotFoundError(UsageServiceException):
    status_code = 404
    default_error_code = ErrorCode.RESOURCE_NOT_FOUND
    default_message = "Resource not found"

    def __init__(
        self,
        message: Optional[str] = None,
        resource_type: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        super().__init__(message, error_code=error_code, details=_present(resource_type=resource_type))


class UsageLimitExceededError(UsageServiceException):
    """
    A generation or save would go past the user's monthly allowance.

    ``message`` is the denial reason produced by the limit check and is shown
    to the user verbatim. ``retry_after`` becomes the Retry-After header.
    """

    status_code = 429
    default_error_code = ErrorCode.GENERATION_LIMIT_EXCEEDED
    default_message = "Monthly usage limit reached"

    def __init__(
        self,
        message: Optional[str] = None,
        limit: Optional[int] = None,
        current_usage: Optional[int] = None,
        reset_date: Optional[str] = None,
        retry_after: Optional[int] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message,
            error_code=error_code,
            details=_present(limit=limit, current_usage=current_usage, reset_date=reset_date),
        )


class ServiceUnavailableError(UsageServiceException):
    """The limit check could not be answered, so the action is refused."""

    status_code = 503
    default_error_code = ErrorCode.SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class LimitsNotConfiguredError(ServiceUnavailableError):
    default_error_code = ErrorCode.LIMITS_NOT_CONFIGURED
    default_message = "Usage limits not configured"


class DatabaseError(UsageServiceException):
    # Never put driver text in ``message``; it goes to ``internal_message``.
    status_code = 500
    default_error_code = ErrorCode.DATABASE_ERROR
    default_message = "A database error occurred"
