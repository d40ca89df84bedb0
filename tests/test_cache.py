"""
Tests for the TTL cache in front of usage limit settings.
"""

import unittest

from src.utils.cache import TTLCache, get_usage_limits_cache, reset_usage_limits_cache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestTTLCache(unittest.TestCase):
    """Tests for get/set/expiry behaviour."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = TTLCache(default_ttl_seconds=300, name="test", clock=self.clock)

    def test_miss_returns_none(self):
        self.assertIsNone(self.cache.get("missing"))

    def test_set_then_get(self):
        self.cache.set("usage-limits:FREE", {"max_activities": 100})
        self.assertEqual(self.cache.get("usage-limits:FREE"), {"max_activities": 100})

    def test_entry_served_until_ttl(self):
        self.cache.set("k", "v")
        self.clock.advance(299)
        self.assertEqual(self.cache.get("k"), "v")

    def test_entry_expires_after_ttl(self):
        """An entry older than five minutes is treated as absent and evicted."""
        self.cache.set("k", "v")
        self.clock.advance(301)
        self.assertIsNone(self.cache.get("k"))
        self.assertEqual(len(self.cache), 0)

    def test_set_overwrites_and_refreshes_expiry(self):
        self.cache.set("k", "old")
        self.clock.advance(200)
        self.cache.set("k", "new")
        self.clock.advance(200)
        self.assertEqual(self.cache.get("k"), "new")

    def test_per_entry_ttl_override(self):
        self.cache.set("short", "v", ttl_seconds=10)
        self.clock.advance(11)
        self.assertIsNone(self.cache.get("short"))

    def test_delete(self):
        self.cache.set("k", "v")
        self.cache.delete("k")
        self.assertIsNone(self.cache.get("k"))

    def test_delete_missing_key_is_noop(self):
        self.cache.delete("never-set")

    def test_cleanup_removes_only_expired(self):
        self.cache.set("old", 1, ttl_seconds=10)
        self.cache.set("fresh", 2)
        self.clock.advance(60)

        removed = self.cache.cleanup()

        self.assertEqual(removed, 1)
        self.assertEqual(len(self.cache), 1)
        self.assertEqual(self.cache.get("fresh"), 2)

    def test_cleanup_on_empty_cache(self):
        self.assertEqual(self.cache.cleanup(), 0)

    def test_stats_count_hits_and_misses(self):
        self.cache.set("k", "v")
        self.cache.get("k")
        self.cache.get("other")

        stats = self.cache.stats
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 1)
        self.assertEqual(stats["size"], 1)
        self.assertEqual(stats["hit_rate"], 0.5)


class TestSharedCache(unittest.TestCase):
    """Tests for the process-wide usage limits cache."""

    def tearDown(self):
        reset_usage_limits_cache()

    def test_shared_cache_is_singleton(self):
        self.assertIs(get_usage_limits_cache(), get_usage_limits_cache())

    def test_shared_cache_uses_five_minute_ttl_by_default(self):
        self.assertEqual(get_usage_limits_cache().default_ttl_seconds, 300)

    def test_reset_drops_instance(self):
        first = get_usage_limits_cache()
        reset_usage_limits_cache()
        self.assertIsNot(first, get_usage_limits_cache())


if __name__ == "__main__":
    unittest.main()
