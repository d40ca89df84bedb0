"""
Exception handlers that give every failure the same JSON shape.

    {"success": false, "error": "...", "error_code": "...", "details": {...}}

Messages from our own exceptions are passed through untouched because the
limit denials are written for the end user. Anything else (HTTPException
details, pydantic messages) is scrubbed first. Server-side failures go to
Sentry, except 503s, which are expected while storage is unavailable.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings

from .exceptions import ErrorCode, UsageLimitExceededError, UsageServiceException

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An error occurred while processing your request"
MAX_MESSAGE_LENGTH = 500
MAX_LISTED_ERRORS = 10

_LEAKY = re.compile(
    r"api[_-]?key|secret|password|token|bearer|credential|postgres(?:ql)?://|/(?:home|var|etc)/",
    re.IGNORECASE,
)
_UUID = re.compile(r"\b[0-9a-f]{8}(?:-[0-9a-f]{4}){3}-[0-9a-f]{12}\b", re.IGNORECASE)

# Only these keys of ``details`` ever leave the process.
SAFE_DETAIL_KEYS = frozenset({
    "limit",
    "current_usage",
    "reset_date",
    "retry_after",
    "resource_type",
    "required_permission",
    "field",
    "errors",
    "error_reference",
    "sentry_event_id",
})

_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.GENERATION_LIMIT_EXCEEDED,
    500: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

_PYDANTIC_MESSAGES = {
    "missing": "Field '{field}' is required",
    "int_type": "Field '{field}' must be an integer",
    "int_parsing": "Field '{field}' must be an integer",
    "bool_type": "Field '{field}' must be a boolean",
    "bool_parsing": "Field '{field}' must be a boolean",
    "greater_than_equal": "Field '{field}' must not be negative",
    "enum": "Field '{field}' has an invalid value",
    "string_too_short": "Field '{field}' must not be empty",
}


def sanitize_error_message(message: Optional[str]) -> Optional[str]:
    """Replace leaky messages outright, mask ids and cap the length."""
    if not message:
        return message
    if _LEAKY.search(message):
        return GENERIC_MESSAGE
    message = _UUID.sub("[id]", message)
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."
    return message


def sanitize_details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for key, value in (details or {}).items():
        if key not in SAFE_DETAIL_KEYS:
            continue
        if isinstance(value, str):
            clean[key] = sanitize_error_message(value)
        elif isinstance(value, (bool, int, float)):
            clean[key] = value
        elif isinstance(value, list):
            clean[key] = [item for item in value if isinstance(item, (str, int, float, bool, dict))][
                :MAX_LISTED_ERRORS
            ]
    return clean


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic errors into ``{"field", "message"}`` pairs."""
    formatted = []
    for error in errors[:MAX_LISTED_ERRORS]:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        kind = error.get("type", "")
        template = _PYDANTIC_MESSAGES.get(kind) or (
            _PYDANTIC_MESSAGES["enum"] if "enum" in kind else None
        )
        if template:
            message = template.format(field=field)
        else:
            message = sanitize_error_message(error.get("msg", "Invalid value"))
        formatted.append({"field": field, "message": message})
    return formatted


def error_response(
    status_code: int,
    error: str,
    error_code: ErrorCode,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": error, "error_code": error_code.value}
    visible = sanitize_details(details)
    if visible:
        body["details"] = visible
    return JSONResponse(status_code=status_code, content=body, headers=headers or None)


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Capture ``exc`` with request context; returns the Sentry event id."""
    client = sentry_sdk.get_client()
    if not client.is_active():
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            if request is not None:
                scope.set_context("request", {"method": request.method, "path": request.url.path})
                user_id = getattr(request.state, "user_id", None)
                if user_id:
                    scope.set_user({"id": user_id})
                request_id = getattr(request.state, "request_id", None)
                if request_id:
                    scope.set_tag("request_id", request_id)
            if extra_context:
                scope.set_context("extra", extra_context)
            return sentry_sdk.capture_exception(exc)
    except Exception as e:
        logger.warning(f"Failed to report exception to Sentry: {e}")
        return None


async def usage_service_exception_handler(
    request: Request, exc: UsageServiceException
) -> JSONResponse:
    summary = f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}"
    if exc.internal_message:
        summary += f" ({exc.internal_message})"

    if exc.status_code < 500:
        logger.warning(summary)
    else:
        logger.error(summary)
        if exc.status_code != status.HTTP_503_SERVICE_UNAVAILABLE:
            report_to_sentry(exc, request)

    headers = None
    if isinstance(exc, UsageLimitExceededError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}

    return error_response(exc.status_code, exc.message, exc.error_code, exc.details, headers)


def _validation_response(request: Request, errors: List[Dict[str, Any]], status_code: int):
    formatted = format_pydantic_errors(errors)
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(formatted)} invalid field(s)")
    if len(formatted) == 1:
        message = formatted[0]["message"]
    else:
        message = f"Validation failed with {len(formatted)} error(s)"
    return error_response(
        status_code, message, ErrorCode.VALIDATION_ERROR, details={"errors": formatted}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _validation_response(request, exc.errors(), status.HTTP_422_UNPROCESSABLE_ENTITY)


async def pydantic_validation_handler(request: Request, exc: PydanticValidationError):
    # Raised while building models inside a route, so the input was ours to check.
    return _validation_response(request, exc.errors(), status.HTTP_400_BAD_REQUEST)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, f"HTTP {exc.status_code} on {request.url.path}: {detail}")

    passthrough = {
        name: value
        for name, value in (exc.headers or {}).items()
        if name in ("Retry-After", "WWW-Authenticate")
    }
    return error_response(
        exc.status_code,
        sanitize_error_message(detail),
        _STATUS_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR),
        headers=passthrough,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback and hand back a short reference for support."""
    reference = uuid.uuid4().hex[:8]
    logger.error(
        f"Unhandled {type(exc).__name__} [ref:{reference}] on {request.method} {request.url.path}",
        exc_info=exc,
    )
    event_id = report_to_sentry(exc, request, {"error_reference": reference})

    details: Dict[str, Any] = {"error_reference": reference}
    if get_settings().is_production:
        message = "An unexpected error occurred. Please try again later."
    else:
        message = f"Internal server error: {type(exc).__name__}"
        if event_id:
            details["sentry_event_id"] = event_id

    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, message, ErrorCode.INTERNAL_ERROR, details
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UsageServiceException, usage_service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
