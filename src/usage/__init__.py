"""
Usage accounting for the job application assistant.

Tracks generations and saved activities per user, enforces the monthly
limits configured per user type, and rolls the 30-day usage window.
"""

from .evaluator import LimitEvaluator
from .reset import ResetSweeper, get_days_until_reset
from .service import (
    UsageService,
    UserNotFound,
    can_generate,
    can_save_activity,
    get_monthly_activity_count,
    get_usage_service,
    get_usage_summary,
    reset_monthly_counters,
    reset_usage_service,
    track_activity,
    track_generation,
    track_generation_history,
)
from .settings_store import UsageLimitsStore
from .storage import (
    BaseUsageStorage,
    InMemoryUsageStorage,
    PostgresUsageStorage,
    UsageStorage,
    get_usage_storage,
)
from .tracker import GenerationRecorder, UsageTracker

__all__ = [
    "BaseUsageStorage",
    "InMemoryUsageStorage",
    "PostgresUsageStorage",
    "UsageStorage",
    "get_usage_storage",
    "UsageLimitsStore",
    "LimitEvaluator",
    "UsageTracker",
    "GenerationRecorder",
    "ResetSweeper",
    "get_days_until_reset",
    "UsageService",
    "UserNotFound",
    "get_usage_service",
    "reset_usage_service",
    "can_generate",
    "can_save_activity",
    "track_generation",
    "track_activity",
    "track_generation_history",
    "get_monthly_activity_count",
    "reset_monthly_counters",
    "get_usage_summary",
]
