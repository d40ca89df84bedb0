"""
Tests for the scheduled maintenance scripts.
"""

import os
import sys
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

os.environ["USAGE_STORAGE_BACKEND"] = "memory"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from scripts import reset_monthly_counters, seed_usage_limits
from src.types.usage import UserType, UserUsage
from src.usage import InMemoryUsageStorage, UsageStorage, reset_usage_service
from src.utils.cache import reset_usage_limits_cache

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


class ScriptTestCase(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryUsageStorage()
        UsageStorage.set_storage(self.storage)
        reset_usage_service()
        reset_usage_limits_cache()

    def tearDown(self):
        UsageStorage.reset()
        reset_usage_service()
        reset_usage_limits_cache()


@patch("scripts.reset_monthly_counters.setup_logging")
class TestResetMonthlyCountersScript(ScriptTestCase):
    def test_resets_due_users(self, _logging):
        self.storage.add_user(UserUsage(
            id="user-1", activity_count=9, monthly_reset_date=NOW - timedelta(days=1)
        ))

        with patch.object(sys, "argv", ["reset_monthly_counters.py", "--now", NOW.isoformat()]):
            self.assertEqual(reset_monthly_counters.main(), 0)

        user = self.storage._users["user-1"]
        self.assertEqual(user.activity_count, 0)
        self.assertEqual(user.monthly_reset_date, NOW + timedelta(days=30))

    def test_invalid_now_exits_2(self, _logging):
        with patch.object(sys, "argv", ["reset_monthly_counters.py", "--now", "yesterday"]):
            self.assertEqual(reset_monthly_counters.main(), 2)

    def test_storage_failure_exits_1(self, _logging):
        self.storage.reset_due_users = AsyncMock(side_effect=ConnectionError("db down"))

        with patch.object(sys, "argv", ["reset_monthly_counters.py"]):
            self.assertEqual(reset_monthly_counters.main(), 1)


@patch("scripts.seed_usage_limits.setup_logging")
class TestSeedUsageLimitsScript(ScriptTestCase):
    def test_seeds_every_user_type(self, _logging):
        self.assertEqual(seed_usage_limits.main(), 0)

        self.assertEqual(set(self.storage._limits), {UserType.FREE, UserType.PLUS, UserType.ADMIN})
        self.assertEqual(self.storage._limits[UserType.FREE].max_activities, 100)

    def test_second_run_changes_nothing(self, _logging):
        seed_usage_limits.main()
        self.storage._limits[UserType.FREE] = self.storage._limits[UserType.FREE].model_copy(
            update={"max_activities": 7}
        )

        self.assertEqual(seed_usage_limits.main(), 0)
        self.assertEqual(self.storage._limits[UserType.FREE].max_activities, 7)


if __name__ == "__main__":
    unittest.main()
