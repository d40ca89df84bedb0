"""
Limit checks run before a generation or a save.

Checks are pure reads except for the lazy window roll in the activity
gates. They fail closed: if storage raises, the request is denied with
``DenialKind.STORAGE_ERROR`` rather than let through uncounted.

There are two activity gates. ``can_save_activity`` compares the stored
``activity_count`` counter and is the one the save handler
(``POST /usage/activities``) enforces. ``can_create_activity`` compares the
number of history rows in the current window and backs reporting and
callers that want the history-based view.
"""

import logging
from typing import Optional

from src.types.usage import (
    ActivityLimitStatus,
    DenialKind,
    LimitDecision,
    UserType,
    UserUsage,
)

from .reset import ResetSweeper
from .settings_store import UsageLimitsStore
from .storage import BaseUsageStorage, get_usage_storage

logger = logging.getLogger(__name__)

STORAGE_ERROR_REASON = "Failed to check usage limits"
USER_NOT_FOUND_REASON = "User not found"
LIMITS_NOT_CONFIGURED_REASON = "Usage limits not configured"


def _upgrade_hint(user_type: UserType) -> str:
    if user_type == UserType.FREE:
        return " Upgrade to PLUS for more."
    return ""


def generation_limit_reason(user_type: UserType, limit: int, is_followup: bool) -> str:
    noun = "follow-up generations" if is_followup else "generations"
    return f"You've reached your monthly limit of {limit} {noun}.{_upgrade_hint(user_type)}"


def activity_limit_reason(user_type: UserType, count: int, limit: int) -> str:
    return (
        f"You've reached your monthly limit of {limit} saved activities "
        f"({count}/{limit} used).{_upgrade_hint(user_type)}"
    )


class LimitEvaluator:
    """Answers "may this user generate / save right now?"."""

    def __init__(
        self,
        storage: Optional[BaseUsageStorage] = None,
        limits_store: Optional[UsageLimitsStore] = None,
        sweeper: Optional[ResetSweeper] = None,
    ):
        self._storage = storage
        self.limits_store = limits_store or UsageLimitsStore(storage=storage)
        self.sweeper = sweeper or ResetSweeper(storage=storage)

    @property
    def storage(self) -> BaseUsageStorage:
        return self._storage or get_usage_storage()

    async def can_generate(self, user_id: str, is_followup: bool = False) -> LimitDecision:
        """
        Check the generation (or follow-up generation) counter against its limit.

        Args:
            user_id: The user requesting a generation.
            is_followup: Whether the generation is a follow-up message.

        Returns:
            LimitDecision; ``reason`` is set whenever ``allowed`` is False.
        """
        try:
            user = await self.storage.get_user(user_id)
            if user is None:
                return LimitDecision.deny(DenialKind.USER_NOT_FOUND, USER_NOT_FOUND_REASON)

            if user.is_unlimited:
                return LimitDecision.allow()

            limits = await self.limits_store.get(user.user_type)
            if limits is None:
                logger.warning(f"No usage limits configured for user type {user.user_type.value}")
                return LimitDecision.deny(
                    DenialKind.LIMITS_NOT_CONFIGURED, LIMITS_NOT_CONFIGURED_REASON
                )
        except Exception as e:
            logger.error(f"Error checking generation limits for {user_id[:8]}...: {e}")
            return LimitDecision.deny(DenialKind.STORAGE_ERROR, STORAGE_ERROR_REASON)

        if is_followup:
            current, limit = user.followup_generation_count, limits.max_followup_generations
            kind = DenialKind.FOLLOWUP_GENERATION_LIMIT
        else:
            current, limit = user.generation_count, limits.max_generations
            kind = DenialKind.GENERATION_LIMIT

        if limit > 0 and current >= limit:
            logger.info(
                f"Generation limit reached for {user_id[:8]}...: "
                f"{current}/{limit} ({user.user_type.value}, followup={is_followup})"
            )
            return LimitDecision.deny(
                kind,
                generation_limit_reason(user.user_type, limit, is_followup),
                current_count=current,
                limit=limit,
            )

        return LimitDecision.allow(current_count=current, limit=limit)

    async def can_save_activity(
        self, user_id: str, is_followup: bool = False
    ) -> ActivityLimitStatus:
        """
        Check the saved-activity counter against ``max_activities``.

        Rolls the user's window first if it is 30+ days old, in which case
        the count starts again from 0. Follow-up saves are always allowed
        unless the user type's settings set ``include_followups``.
        """
        now = self.sweeper.now()
        try:
            user = await self.storage.get_user(user_id)
            if user is None:
                return ActivityLimitStatus(
                    allowed=False,
                    reset_date=now,
                    kind=DenialKind.USER_NOT_FOUND,
                    reason=USER_NOT_FOUND_REASON,
                )

            if user.is_unlimited:
                return ActivityLimitStatus(
                    allowed=True,
                    current_count=user.activity_count,
                    limit=0,
                    reset_date=user.monthly_reset_date,
                )

            limits = await self.limits_store.get(user.user_type)
            if limits is None:
                logger.warning(f"No usage limits configured for user type {user.user_type.value}")
                return ActivityLimitStatus(
                    allowed=False,
                    reset_date=user.monthly_reset_date,
                    kind=DenialKind.LIMITS_NOT_CONFIGURED,
                    reason=LIMITS_NOT_CONFIGURED_REASON,
                )

            current_count, reset_date = await self._current_activity_count(user, now)
        except Exception as e:
            logger.error(f"Error checking activity limits for {user_id[:8]}...: {e}")
            return ActivityLimitStatus(
                allowed=False,
                reset_date=now,
                kind=DenialKind.STORAGE_ERROR,
                reason=STORAGE_ERROR_REASON,
            )

        return self._activity_status(
            user, current_count, limits.max_activities, reset_date,
            counts=not is_followup or limits.include_followups,
        )

    async def can_create_activity(self, user_id: str) -> ActivityLimitStatus:
        """
        History-based variant of the activity gate.

        Counts activity history rows (soft-deleted included) since the
        window opened instead of reading the counter. Used for reporting
        and reconciliation; the save path uses ``can_save_activity``.
        """
        now = self.sweeper.now()
        try:
            user = await self.storage.get_user(user_id)
            if user is None:
                return ActivityLimitStatus(
                    allowed=False,
                    reset_date=now,
                    kind=DenialKind.USER_NOT_FOUND,
                    reason=USER_NOT_FOUND_REASON,
                )

            if user.is_unlimited:
                return ActivityLimitStatus(
                    allowed=True, limit=0, reset_date=user.monthly_reset_date
                )

            limits = await self.limits_store.get(user.user_type)
            if limits is None:
                return ActivityLimitStatus(
                    allowed=False,
                    reset_date=user.monthly_reset_date,
                    kind=DenialKind.LIMITS_NOT_CONFIGURED,
                    reason=LIMITS_NOT_CONFIGURED_REASON,
                )

            rolled_at = await self.sweeper.roll_window_if_due(
                user.id, user.monthly_reset_date, now
            )
            if rolled_at is not None:
                current_count, reset_date = 0, rolled_at
            else:
                reset_date = user.monthly_reset_date
                current_count = await self.storage.count_activity_since(user.id, reset_date)
        except Exception as e:
            logger.error(f"Error checking activity history for {user_id[:8]}...: {e}")
            return ActivityLimitStatus(
                allowed=False,
                reset_date=now,
                kind=DenialKind.STORAGE_ERROR,
                reason=STORAGE_ERROR_REASON,
            )

        return self._activity_status(user, current_count, limits.max_activities, reset_date)

    async def _current_activity_count(self, user: UserUsage, now):
        rolled_at = await self.sweeper.roll_window_if_due(user.id, user.monthly_reset_date, now)
        if rolled_at is not None:
            return 0, rolled_at
        return user.activity_count, user.monthly_reset_date

    def _activity_status(
        self,
        user: UserUsage,
        current_count: int,
        limit: int,
        reset_date,
        counts: bool = True,
    ) -> ActivityLimitStatus:
        if not counts or limit == 0 or current_count < limit:
            return ActivityLimitStatus(
                allowed=True,
                current_count=current_count,
                limit=limit,
                reset_date=reset_date,
            )

        logger.info(
            f"Activity limit reached for {user.id[:8]}...: "
            f"{current_count}/{limit} ({user.user_type.value})"
        )
        return ActivityLimitStatus(
            allowed=False,
            current_count=current_count,
            limit=limit,
            reset_date=reset_date,
            kind=DenialKind.ACTIVITY_LIMIT,
            reason=activity_limit_reason(user.user_type, current_count, limit),
        )
