"""Middleware components for the usage accounting API."""

from .logging import RequestLoggingMiddleware
from .usage_gate import (
    check_generation_allowed,
    denial_to_exception,
    raise_for_activity_status,
    raise_for_decision,
    require_generation_allowed,
)

__all__ = [
    # Logging
    "RequestLoggingMiddleware",
    # Usage limits
    "check_generation_allowed",
    "denial_to_exception",
    "raise_for_activity_status",
    "raise_for_decision",
    "require_generation_allowed",
]
