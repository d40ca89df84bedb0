"""
Tests for cached usage limit settings access.
"""

import unittest
from unittest.mock import AsyncMock

from src.types.usage import DEFAULT_USAGE_LIMITS, UsageLimitSettings, UserType
from src.usage import InMemoryUsageStorage, UsageLimitsStore
from src.usage.settings_store import limits_cache_key
from src.utils.cache import TTLCache

from tests.helpers import free_limits


class TestUsageLimitsStore(unittest.IsolatedAsyncioTestCase):
    """Tests for cache-first reads and invalidation."""

    def setUp(self):
        self.storage = InMemoryUsageStorage()
        self.cache = TTLCache(300, name="test")
        self.store = UsageLimitsStore(storage=self.storage, cache=self.cache)

    async def test_get_loads_and_caches(self):
        self.storage.set_limits(free_limits())

        limits = await self.store.get(UserType.FREE)

        self.assertEqual(limits.max_activities, 100)
        self.assertIsNotNone(self.cache.get(limits_cache_key(UserType.FREE)))

    async def test_second_get_served_from_cache(self):
        self.storage.set_limits(free_limits())
        await self.store.get(UserType.FREE)

        self.storage.get_limits = AsyncMock(side_effect=AssertionError("storage hit"))
        limits = await self.store.get(UserType.FREE)

        self.assertEqual(limits.max_activities, 100)

    async def test_missing_row_is_not_cached(self):
        self.assertIsNone(await self.store.get(UserType.PLUS))
        self.assertEqual(len(self.cache), 0)

        self.storage.set_limits(UsageLimitSettings(user_type=UserType.PLUS, max_activities=500))
        limits = await self.store.get(UserType.PLUS)
        self.assertEqual(limits.max_activities, 500)

    async def test_update_invalidates_cached_row(self):
        self.storage.set_limits(free_limits())
        await self.store.get(UserType.FREE)

        await self.store.update(free_limits(max_activities=10))

        limits = await self.store.get(UserType.FREE)
        self.assertEqual(limits.max_activities, 10)

    async def test_update_stamps_updated_at(self):
        updated = await self.store.update(free_limits(max_generations=20))
        self.assertIsNotNone(updated.updated_at)
        self.assertEqual(updated.max_generations, 20)

    async def test_list_returns_all_types(self):
        self.storage.set_limits(free_limits())
        self.storage.set_limits(UsageLimitSettings(user_type=UserType.PLUS, max_activities=500))

        types = [limits.user_type for limits in await self.store.list()]

        self.assertEqual(types, [UserType.FREE, UserType.PLUS])

    async def test_seed_defaults_creates_missing_only(self):
        self.storage.set_limits(free_limits(max_activities=42))

        created = await self.store.seed_defaults()

        self.assertEqual(set(created), {UserType.PLUS, UserType.ADMIN})
        self.assertEqual((await self.store.get(UserType.FREE)).max_activities, 42)
        self.assertEqual(
            (await self.store.get(UserType.PLUS)).max_activities,
            DEFAULT_USAGE_LIMITS[UserType.PLUS].max_activities,
        )

    async def test_seed_defaults_is_idempotent(self):
        await self.store.seed_defaults()
        self.assertEqual(await self.store.seed_defaults(), [])


class TestDefaultLimits(unittest.TestCase):
    def test_default_values(self):
        self.assertEqual(DEFAULT_USAGE_LIMITS[UserType.FREE].max_activities, 100)
        self.assertEqual(DEFAULT_USAGE_LIMITS[UserType.PLUS].max_activities, 500)
        self.assertEqual(DEFAULT_USAGE_LIMITS[UserType.ADMIN].max_activities, 999999)
        for limits in DEFAULT_USAGE_LIMITS.values():
            self.assertEqual(limits.max_generations, 0)
            self.assertFalse(limits.include_followups)

    def test_negative_limits_rejected(self):
        from pydantic import ValidationError

        with self.assertRaises(ValidationError):
            UsageLimitSettings(user_type=UserType.FREE, max_activities=-1)


if __name__ == "__main__":
    unittest.main()
