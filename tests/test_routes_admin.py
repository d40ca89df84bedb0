"""
Tests for the admin endpoints: usage limit settings and counter resets.
"""

import os
import sys
import unittest
from datetime import timedelta

# Set environment before imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["USAGE_STORAGE_BACKEND"] = "memory"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi.testclient import TestClient

from src.types.usage import UsageLimitSettings, UserType, UserUsage, utcnow
from src.usage import InMemoryUsageStorage, UsageStorage, reset_usage_service
from src.utils.cache import reset_usage_limits_cache

ADMIN = {"X-User-ID": "admin-1"}
MEMBER = {"X-User-ID": "user-1"}


class AdminRouteTestCase(unittest.TestCase):
    def setUp(self):
        from server import app

        self.storage = InMemoryUsageStorage()
        UsageStorage.set_storage(self.storage)
        reset_usage_service()
        reset_usage_limits_cache()

        now = utcnow()
        self.storage.add_user(UserUsage(
            id="admin-1", user_type=UserType.ADMIN, monthly_reset_date=now - timedelta(days=2)
        ))
        self.storage.add_user(UserUsage(
            id="user-1", activity_count=100, generation_count=4,
            monthly_reset_date=now - timedelta(days=31),
        ))
        self.storage.add_user(UserUsage(
            id="user-2", activity_count=3, monthly_reset_date=now + timedelta(days=12),
        ))
        self.storage.set_limits(UsageLimitSettings(user_type=UserType.FREE, max_activities=100))

        self.client = TestClient(app)

    def tearDown(self):
        UsageStorage.reset()
        reset_usage_service()
        reset_usage_limits_cache()


class TestAdminAccess(AdminRouteTestCase):
    def test_non_admin_gets_403(self):
        response = self.client.get("/admin/usage-limits", headers=MEMBER)

        self.assertEqual(response.status_code, 403)
        data = response.json()
        self.assertEqual(data["error_code"], "ADMIN_REQUIRED")
        self.assertEqual(data["details"]["required_permission"], "admin")

    def test_unknown_user_gets_403(self):
        response = self.client.get("/admin/usage-limits", headers={"X-User-ID": "ghost"})
        self.assertEqual(response.status_code, 403)

    def test_is_admin_flag_grants_access(self):
        self.storage.add_user(UserUsage(id="staff-1", is_admin=True))

        response = self.client.get("/admin/usage-limits", headers={"X-User-ID": "staff-1"})

        self.assertEqual(response.status_code, 200)


class TestUsageLimitSettings(AdminRouteTestCase):
    def test_list_limits(self):
        response = self.client.get("/admin/usage-limits", headers=ADMIN)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["user_type"], "FREE")
        self.assertEqual(data[0]["max_activities"], 100)

    def test_update_applies_to_next_check(self):
        """A cached row is replaced as soon as the limits are updated."""
        before = self.client.get("/usage/check/activity", headers={"X-User-ID": "user-2"})
        self.assertEqual(before.json()["limit"], 100)

        response = self.client.put(
            "/admin/usage-limits",
            json={"user_type": "FREE", "max_activities": 3},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["max_activities"], 3)
        self.assertIsNotNone(response.json()["updated_at"])

        after = self.client.get("/usage/check/activity", headers={"X-User-ID": "user-2"})
        self.assertFalse(after.json()["allowed"])
        self.assertEqual(after.json()["limit"], 3)

    def test_update_creates_missing_row(self):
        response = self.client.put(
            "/admin/usage-limits",
            json={"user_type": "PLUS", "max_activities": 500, "include_followups": True},
            headers=ADMIN,
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.storage._limits[UserType.PLUS].include_followups)

    def test_update_rejects_negative_limit(self):
        response = self.client.put(
            "/admin/usage-limits",
            json={"user_type": "FREE", "max_activities": -5},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 422)


class TestCounterReset(AdminRouteTestCase):
    def test_reset_only_touches_due_users(self):
        response = self.client.post("/admin/usage/reset", headers=ADMIN)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["reset_count"], 1)

        self.assertEqual(self.storage._users["user-1"].activity_count, 0)
        self.assertEqual(self.storage._users["user-1"].generation_count, 0)
        self.assertEqual(self.storage._users["user-2"].activity_count, 3)

    def test_reset_requires_admin(self):
        response = self.client.post("/admin/usage/reset", headers=MEMBER)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.storage._users["user-1"].activity_count, 100)


if __name__ == "__main__":
    unittest.main()
