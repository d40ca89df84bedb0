"""
Tests for the monthly usage window: lazy roll, days-until-reset and the
scheduled counter sweep.
"""

import unittest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from src.types.usage import ActivityHistoryEntry, ActivityType
from src.usage.reset import days_since, get_days_until_reset

from tests.helpers import FIXED_NOW, days_ago, free_limits, make_service, make_user


class TestWindowArithmetic(unittest.TestCase):
    def test_days_since_floors_partial_days(self):
        self.assertEqual(days_since(days_ago(29.9), FIXED_NOW), 29)
        self.assertEqual(days_since(days_ago(30), FIXED_NOW), 30)

    def test_days_since_accepts_naive_datetimes(self):
        naive = days_ago(3).replace(tzinfo=None)
        self.assertEqual(days_since(naive, FIXED_NOW), 3)

    def test_days_until_reset_rounds_up(self):
        self.assertEqual(get_days_until_reset(days_ago(5), now=FIXED_NOW), 25)
        self.assertEqual(get_days_until_reset(days_ago(5.5), now=FIXED_NOW), 25)
        self.assertEqual(get_days_until_reset(days_ago(29.9), now=FIXED_NOW), 1)

    def test_days_until_reset_never_negative(self):
        self.assertEqual(get_days_until_reset(days_ago(45), now=FIXED_NOW), 0)

    def test_days_until_reset_custom_window(self):
        self.assertEqual(get_days_until_reset(days_ago(1), now=FIXED_NOW, window_days=7), 6)


class TestMonthlyActivityCount(unittest.IsolatedAsyncioTestCase):
    """Tests for get_monthly_activity_count and its lazy reset."""

    async def _add_history(self, storage, created_at, is_deleted=False):
        await storage.add_activity(ActivityHistoryEntry(
            user_id="user-1",
            activity_type=ActivityType.COVER_LETTER,
            company_name="Acme",
            is_deleted=is_deleted,
            created_at=created_at,
        ))

    async def test_counts_rows_since_reset_date(self):
        service, storage = make_service(users=[make_user(monthly_reset_date=days_ago(10))])
        await self._add_history(storage, days_ago(9))
        await self._add_history(storage, days_ago(1), is_deleted=True)
        await self._add_history(storage, days_ago(11))

        self.assertEqual(await service.get_monthly_activity_count("user-1"), 2)

    async def test_twenty_nine_days_does_not_roll(self):
        reset_date = days_ago(29)
        service, storage = make_service(
            users=[make_user(activity_count=40, monthly_reset_date=reset_date)]
        )
        await self._add_history(storage, days_ago(2))

        self.assertEqual(await service.get_monthly_activity_count("user-1"), 1)

        user = await storage.get_user("user-1")
        self.assertEqual(user.monthly_reset_date, reset_date)
        self.assertEqual(user.activity_count, 40)

    async def test_thirty_one_days_rolls_activity_window(self):
        service, storage = make_service(
            users=[make_user(
                activity_count=40,
                generation_count=12,
                followup_generation_count=3,
                monthly_reset_date=days_ago(31),
            )]
        )
        await self._add_history(storage, days_ago(2))

        self.assertEqual(await service.get_monthly_activity_count("user-1"), 0)

        user = await storage.get_user("user-1")
        self.assertEqual(user.monthly_reset_date, FIXED_NOW)
        self.assertEqual(user.activity_count, 0)
        self.assertEqual(user.generation_count, 12)
        self.assertEqual(user.followup_generation_count, 3)

    async def test_roll_keeps_generation_limit_in_force(self):
        service, storage = make_service(
            users=[make_user(generation_count=10, monthly_reset_date=days_ago(31))],
            limits=[free_limits(max_generations=10)],
        )
        self.assertFalse((await service.can_generate("user-1")).allowed)

        await service.get_monthly_activity_count("user-1")

        self.assertEqual((await storage.get_user("user-1")).generation_count, 10)
        self.assertFalse((await service.can_generate("user-1")).allowed)

    async def test_unknown_user_counts_zero(self):
        service, _ = make_service()
        self.assertEqual(await service.get_monthly_activity_count("missing"), 0)


class TestResetMonthlyCounters(unittest.IsolatedAsyncioTestCase):
    """Tests for the scheduled sweep."""

    async def test_only_past_due_users_reset(self):
        past_due = make_user(
            "user-a",
            generation_count=50,
            followup_generation_count=4,
            activity_count=20,
            monthly_reset_date=days_ago(1),
        )
        future = make_user(
            "user-b",
            generation_count=10,
            activity_count=5,
            monthly_reset_date=FIXED_NOW + timedelta(days=10),
        )
        service, storage = make_service(users=[past_due, future])

        reset_count = await service.reset_monthly_counters(FIXED_NOW)

        self.assertEqual(reset_count, 1)

        user_a = await storage.get_user("user-a")
        self.assertEqual(user_a.generation_count, 0)
        self.assertEqual(user_a.followup_generation_count, 0)
        self.assertEqual(user_a.activity_count, 0)
        self.assertEqual(user_a.monthly_reset_date, FIXED_NOW + timedelta(days=30))

        user_b = await storage.get_user("user-b")
        self.assertEqual(user_b.generation_count, 10)
        self.assertEqual(user_b.activity_count, 5)
        self.assertEqual(user_b.monthly_reset_date, FIXED_NOW + timedelta(days=10))

    async def test_user_due_exactly_now_is_reset(self):
        service, _ = make_service(users=[make_user(monthly_reset_date=FIXED_NOW)])
        self.assertEqual(await service.reset_monthly_counters(FIXED_NOW), 1)

    async def test_second_run_resets_nobody(self):
        service, _ = make_service(users=[make_user(monthly_reset_date=days_ago(2))])

        self.assertEqual(await service.reset_monthly_counters(FIXED_NOW), 1)
        self.assertEqual(await service.reset_monthly_counters(FIXED_NOW), 0)

    async def test_defaults_to_service_clock(self):
        service, storage = make_service(users=[make_user(monthly_reset_date=days_ago(2))])

        await service.reset_monthly_counters()

        user = await storage.get_user("user-1")
        self.assertEqual(user.monthly_reset_date, FIXED_NOW + timedelta(days=30))

    async def test_naive_now_treated_as_utc(self):
        service, storage = make_service(users=[make_user(monthly_reset_date=days_ago(2))])

        await service.reset_monthly_counters(datetime(2026, 10, 15, 12, 0, 0))

        user = await storage.get_user("user-1")
        self.assertEqual(user.monthly_reset_date, FIXED_NOW + timedelta(days=30))

    async def test_storage_error_propagates(self):
        service, storage = make_service(users=[make_user()])
        storage.reset_due_users = AsyncMock(side_effect=ConnectionError("db down"))

        with self.assertRaises(ConnectionError):
            await service.reset_monthly_counters(FIXED_NOW)


if __name__ == "__main__":
    unittest.main()
