"""
Type definitions for the usage accounting service.
"""

from .usage import (
    DEFAULT_USAGE_LIMITS,
    ActivityHistoryEntry,
    ActivityLimitStatus,
    ActivityType,
    CounterField,
    DenialKind,
    LimitDecision,
    UsageLimitSettings,
    UsageSummary,
    UserType,
    UserUsage,
    utcnow,
)

__all__ = [
    "DEFAULT_USAGE_LIMITS",
    "ActivityHistoryEntry",
    "ActivityLimitStatus",
    "ActivityType",
    "CounterField",
    "DenialKind",
    "LimitDecision",
    "UsageLimitSettings",
    "UsageSummary",
    "UserType",
    "UserUsage",
    "utcnow",
]
