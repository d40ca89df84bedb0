"""
Monthly usage window handling.

A user's window opens at ``monthly_reset_date`` and lasts 30 days. It is
rolled over by whichever runs first:

- the lazy check in ``get_monthly_activity_count`` / the activity gate,
  which opens a new window at "now" when the old one is 30+ days old, or
- the scheduled ``reset_monthly_counters`` sweep, which opens the next
  window at "now + 30 days" for every user whose date has passed.

The two triggers are not coordinated with each other.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.config import get_settings
from src.types.usage import utcnow

from .storage import BaseUsageStorage, get_usage_storage

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def as_utc(dt: datetime) -> datetime:
    """Attach UTC tzinfo to naive datetimes so window arithmetic never mixes kinds."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_since(reset_date: datetime, now: datetime) -> int:
    """Whole days elapsed since ``reset_date`` (floor)."""
    elapsed = (as_utc(now) - as_utc(reset_date)).total_seconds()
    return math.floor(elapsed / SECONDS_PER_DAY)


def get_days_until_reset(
    reset_date: datetime,
    now: Optional[datetime] = None,
    window_days: int = 30,
) -> int:
    """Days left until the window that opened at ``reset_date`` ends, never negative."""
    now = as_utc(now or utcnow())
    next_reset = as_utc(reset_date) + timedelta(days=window_days)
    days_left = math.ceil((next_reset - now).total_seconds() / SECONDS_PER_DAY)
    return max(0, days_left)


class ResetSweeper:
    """Rolls monthly usage windows, lazily per user or in bulk."""

    def __init__(
        self,
        storage: Optional[BaseUsageStorage] = None,
        window_days: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._window_days = window_days
        self._clock = clock

    @property
    def storage(self) -> BaseUsageStorage:
        return self._storage or get_usage_storage()

    @property
    def window_days(self) -> int:
        if self._window_days is not None:
            return self._window_days
        return get_settings().usage.usage_reset_window_days

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def roll_window_if_due(
        self,
        user_id: str,
        reset_date: datetime,
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """
        Open a new window at ``now`` if the current one is over.

        Returns the new reset date, or None when the window is still open.
        """
        now = now or self.now()
        if days_since(reset_date, now) < self.window_days:
            return None

        await self.storage.open_new_window(user_id, now)
        logger.info(
            "Usage window rolled for user %s... (previous reset %s)",
            user_id[:8],
            as_utc(reset_date).isoformat(),
        )
        return now

    async def get_monthly_activity_count(
        self,
        user_id: str,
        reset_date: Optional[datetime] = None,
    ) -> int:
        """
        Count activity history rows in the user's current window.

        Pass ``reset_date`` when the caller already loaded the user row to
        skip a second lookup. If the window is 30+ days old it is rolled
        over here (a write) and 0 is returned.

        Storage errors propagate; callers decide how to fail.
        """
        if reset_date is None:
            user = await self.storage.get_user(user_id)
            if user is None:
                return 0
            reset_date = user.monthly_reset_date

        if await self.roll_window_if_due(user_id, reset_date) is not None:
            return 0

        return await self.storage.count_activity_since(user_id, as_utc(reset_date))

    async def reset_monthly_counters(self, now: Optional[datetime] = None) -> int:
        """
        Zero the counters of every user whose reset date has passed.

        The next reset date is set to ``now + window``. Running it twice in
        the same window only touches users that were due the first time.

        Returns:
            Number of users reset.
        """
        now = as_utc(now or self.now())
        next_reset = now + timedelta(days=self.window_days)

        try:
            reset_count = await self.storage.reset_due_users(now, next_reset)
        except Exception as e:
            logger.error(f"Database error resetting monthly counters: {e}")
            raise

        logger.info(f"Reset monthly counters for {reset_count} users")
        return reset_count
