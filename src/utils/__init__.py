"""Shared helpers: the limit settings cache and logging setup."""

from .cache import TTLCache, get_usage_limits_cache, reset_usage_limits_cache
from .logging import clear_request_context, log_duration, set_request_context, setup_logging

__all__ = [
    "TTLCache",
    "get_usage_limits_cache",
    "reset_usage_limits_cache",
    "setup_logging",
    "set_request_context",
    "clear_request_context",
    "log_duration",
]
