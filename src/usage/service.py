"""
Usage accounting service.

Ties together the limit evaluator, the tracker, the reset sweeper and the
cached limit settings behind one object, plus module-level convenience
functions for callers that only need one operation:

- can_generate / can_save_activity: limit checks before work is done
- track_generation / track_activity / track_generation_history: bookkeeping
  after work succeeded
- get_monthly_activity_count / reset_monthly_counters: window handling
- get_usage_summary: per-user snapshot for the dashboard
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from src.types.usage import (
    ActivityHistoryEntry,
    ActivityLimitStatus,
    ActivityType,
    LimitDecision,
    UsageLimitSettings,
    UsageSummary,
)

from .evaluator import LimitEvaluator
from .reset import ResetSweeper, get_days_until_reset
from .settings_store import UsageLimitsStore
from .storage import BaseUsageStorage, get_usage_storage
from .tracker import GenerationRecorder, UsageTracker

logger = logging.getLogger(__name__)


class UserNotFound(Exception):
    """Raised when a usage summary is requested for an unknown user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class UsageService:
    """
    Facade over the usage accounting components.

    All components share one storage backend and one limits store, so a
    limits update made through ``update_limits`` is seen by the next check.
    """

    def __init__(
        self,
        storage: Optional[BaseUsageStorage] = None,
        limits_store: Optional[UsageLimitsStore] = None,
        sweeper: Optional[ResetSweeper] = None,
    ):
        self._storage = storage
        self.limits_store = limits_store or UsageLimitsStore(storage=storage)
        self.sweeper = sweeper or ResetSweeper(storage=storage)
        self.evaluator = LimitEvaluator(
            storage=storage, limits_store=self.limits_store, sweeper=self.sweeper
        )
        self.tracker = UsageTracker(storage=storage, limits_store=self.limits_store)

    @property
    def storage(self) -> BaseUsageStorage:
        return self._storage or get_usage_storage()

    # Limit checks

    async def can_generate(self, user_id: str, is_followup: bool = False) -> LimitDecision:
        return await self.evaluator.can_generate(user_id, is_followup)

    async def can_save_activity(
        self, user_id: str, is_followup: bool = False
    ) -> ActivityLimitStatus:
        return await self.evaluator.can_save_activity(user_id, is_followup)

    async def can_create_activity(self, user_id: str) -> ActivityLimitStatus:
        return await self.evaluator.can_create_activity(user_id)

    # Tracking

    async def track_generation(self, user_id: str, is_followup: bool = False) -> bool:
        return await self.tracker.track_generation(user_id, is_followup)

    async def track_activity(self, user_id: str, is_followup: bool = False) -> bool:
        return await self.tracker.track_activity(user_id, is_followup)

    async def track_generation_history(self, user_id: str, activity_type: ActivityType,
                                       company_name: str, **kwargs) -> Optional[str]:
        return await self.tracker.track_generation_history(
            user_id, activity_type, company_name, **kwargs
        )

    async def mark_activity_deleted(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        created_at: datetime,
    ) -> int:
        return await self.tracker.mark_activity_deleted(
            user_id, activity_type, company_name, created_at
        )

    def record_generation(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        **kwargs,
    ) -> GenerationRecorder:
        """Context manager that tracks the generation when its block succeeds."""
        return GenerationRecorder(self.tracker, user_id, activity_type, company_name, **kwargs)

    # Monthly window

    async def get_monthly_activity_count(self, user_id: str) -> int:
        return await self.sweeper.get_monthly_activity_count(user_id)

    async def reset_monthly_counters(self, now: Optional[datetime] = None) -> int:
        return await self.sweeper.reset_monthly_counters(now)

    # Settings

    async def get_limits(self, user_type) -> Optional[UsageLimitSettings]:
        return await self.limits_store.get(user_type)

    async def list_limits(self) -> List[UsageLimitSettings]:
        return await self.limits_store.list()

    async def update_limits(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        return await self.limits_store.update(limits)

    async def seed_default_limits(self):
        return await self.limits_store.seed_defaults()

    # History

    async def list_activity(
        self,
        user_id: str,
        search: str = "",
        activity_type: Optional[ActivityType] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[ActivityHistoryEntry], int]:
        offset = (max(page, 1) - 1) * limit
        return await self.storage.list_activity(
            user_id, search=search, activity_type=activity_type, offset=offset, limit=limit
        )

    async def get_usage_summary(self, user_id: str) -> UsageSummary:
        """
        Build the dashboard snapshot for a user.

        Reading the summary can roll an expired window, same as the
        activity gate.

        Raises:
            UserNotFound: If the user does not exist.
        """
        user = await self.storage.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)

        monthly_count = await self.sweeper.get_monthly_activity_count(
            user_id, user.monthly_reset_date
        )
        # The window may have rolled; reload so counters and date agree.
        user = await self.storage.get_user(user_id) or user
        limits = await self.limits_store.get(user.user_type) or UsageLimitSettings(
            user_type=user.user_type
        )

        return UsageSummary(
            user_id=user.id,
            user_type=user.user_type,
            is_unlimited=user.is_unlimited,
            generation_count=user.generation_count,
            max_generations=limits.max_generations,
            followup_generation_count=user.followup_generation_count,
            max_followup_generations=limits.max_followup_generations,
            activity_count=user.activity_count,
            max_activities=limits.max_activities,
            include_followups=limits.include_followups,
            monthly_activity_count=monthly_count,
            reset_date=user.monthly_reset_date,
            days_until_reset=get_days_until_reset(
                user.monthly_reset_date,
                now=self.sweeper.now(),
                window_days=self.sweeper.window_days,
            ),
        )


# Singleton instance
_usage_service: Optional[UsageService] = None


def get_usage_service() -> UsageService:
    """Get the singleton usage service instance."""
    global _usage_service
    if _usage_service is None:
        _usage_service = UsageService()
    return _usage_service


def reset_usage_service() -> None:
    """Drop the singleton. Useful for testing."""
    global _usage_service
    _usage_service = None


# Convenience functions for direct access
async def can_generate(user_id: str, is_followup: bool = False) -> LimitDecision:
    """Check whether the user may run another generation."""
    return await get_usage_service().can_generate(user_id, is_followup)


async def can_save_activity(user_id: str, is_followup: bool = False) -> ActivityLimitStatus:
    """Check whether the user may save another activity."""
    return await get_usage_service().can_save_activity(user_id, is_followup)


async def track_generation(user_id: str, is_followup: bool = False) -> bool:
    """Count a completed generation."""
    return await get_usage_service().track_generation(user_id, is_followup)


async def track_activity(user_id: str, is_followup: bool = False) -> bool:
    """Count a saved activity."""
    return await get_usage_service().track_activity(user_id, is_followup)


async def track_generation_history(
    user_id: str, activity_type: ActivityType, company_name: str, **kwargs
) -> Optional[str]:
    """Append a generation to the activity history."""
    return await get_usage_service().track_generation_history(
        user_id, activity_type, company_name, **kwargs
    )


async def get_monthly_activity_count(user_id: str) -> int:
    """Count activity history rows in the current window."""
    return await get_usage_service().get_monthly_activity_count(user_id)


async def reset_monthly_counters(now: Optional[datetime] = None) -> int:
    """Reset counters for every user whose window has ended."""
    return await get_usage_service().reset_monthly_counters(now)


async def get_usage_summary(user_id: str) -> UsageSummary:
    """Get the usage snapshot for a user."""
    return await get_usage_service().get_usage_summary(user_id)
