"""
Builders shared by the usage accounting tests.
"""

from datetime import datetime, timedelta, timezone

from src.types.usage import UsageLimitSettings, UserType, UserUsage
from src.usage import InMemoryUsageStorage, ResetSweeper, UsageLimitsStore, UsageService
from src.utils.cache import TTLCache

FIXED_NOW = datetime(2026, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


def days_ago(days: float, now: datetime = FIXED_NOW) -> datetime:
    return now - timedelta(days=days)


def make_user(user_id: str = "user-1", user_type: UserType = UserType.FREE, **fields) -> UserUsage:
    fields.setdefault("monthly_reset_date", days_ago(5))
    return UserUsage(id=user_id, user_type=user_type, **fields)


def free_limits(**fields) -> UsageLimitSettings:
    fields.setdefault("max_activities", 100)
    return UsageLimitSettings(user_type=UserType.FREE, **fields)


def plus_limits(**fields) -> UsageLimitSettings:
    fields.setdefault("max_activities", 500)
    return UsageLimitSettings(user_type=UserType.PLUS, **fields)


def make_service(users=(), limits=(), now: datetime = FIXED_NOW):
    """
    Build a UsageService over fresh in-memory storage.

    Returns (service, storage). The service clock is pinned to ``now``.
    """
    storage = InMemoryUsageStorage()
    for user in users:
        storage.add_user(user)
    for limit in limits:
        storage.set_limits(limit)

    limits_store = UsageLimitsStore(storage=storage, cache=TTLCache(300, name="test"))
    sweeper = ResetSweeper(storage=storage, window_days=30, clock=lambda: now)
    service = UsageService(storage=storage, limits_store=limits_store, sweeper=sweeper)
    return service, storage
