"""
Usage limit settings access.

Every generation or save request needs the limits for the caller's user
type, so reads go through a short TTL cache. Admin updates invalidate the
cached row for that user type so new limits apply on the next request.
"""

import logging
from typing import List, Optional

from src.types.usage import DEFAULT_USAGE_LIMITS, UsageLimitSettings, UserType
from src.utils.cache import TTLCache, get_usage_limits_cache

from .storage import BaseUsageStorage, get_usage_storage

logger = logging.getLogger(__name__)


def limits_cache_key(user_type: UserType) -> str:
    return f"usage-limits:{UserType(user_type).value}"


class UsageLimitsStore:
    """Cached get-or-load access to the usage_limit_settings table."""

    def __init__(
        self,
        storage: Optional[BaseUsageStorage] = None,
        cache: Optional[TTLCache] = None,
    ):
        self._storage = storage
        self._cache = cache

    @property
    def storage(self) -> BaseUsageStorage:
        return self._storage or get_usage_storage()

    @property
    def cache(self) -> TTLCache:
        # An empty TTLCache is falsy, so test against None.
        return self._cache if self._cache is not None else get_usage_limits_cache()

    async def get(self, user_type: UserType) -> Optional[UsageLimitSettings]:
        """
        Get the limits for a user type, from cache when possible.

        A missing row is not cached, so a row created afterwards is picked
        up on the next call.
        """
        key = limits_cache_key(user_type)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        limits = await self.storage.get_limits(user_type)
        if limits is not None:
            self.cache.set(key, limits)
        return limits

    def invalidate(self, user_type: UserType) -> None:
        self.cache.delete(limits_cache_key(user_type))

    async def list(self) -> List[UsageLimitSettings]:
        return await self.storage.list_limits()

    async def update(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        """Upsert the limits for one user type and drop its cached copy."""
        updated = await self.storage.upsert_limits(limits)
        self.invalidate(limits.user_type)
        logger.info(
            "Usage limits updated for %s: activities=%s generations=%s followups=%s include_followups=%s",
            updated.user_type.value,
            updated.max_activities,
            updated.max_generations,
            updated.max_followup_generations,
            updated.include_followups,
        )
        return updated

    async def seed_defaults(self) -> List[UserType]:
        """Create default rows for user types that have none. Returns the types created."""
        created = []
        for user_type, limits in DEFAULT_USAGE_LIMITS.items():
            if await self.storage.create_limits_if_missing(limits):
                self.invalidate(user_type)
                created.append(user_type)
                logger.info(
                    "Seeded usage limits for %s: %s activities",
                    user_type.value,
                    limits.max_activities,
                )
        return created
