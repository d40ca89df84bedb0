"""
Counter mutation and activity history recording.

Tracking is best-effort: a failed increment or history insert is logged
and swallowed so the generation the user already received is never lost
to a bookkeeping error. Each increment is a single atomic update; there is
no transaction spanning the preceding limit check.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from src.types.usage import (
    ActivityHistoryEntry,
    ActivityType,
    CounterField,
    UsageLimitSettings,
)

from .reset import as_utc
from .settings_store import UsageLimitsStore
from .storage import BaseUsageStorage, get_usage_storage

logger = logging.getLogger(__name__)

# Generation rows are matched to their save by timestamp, within this tolerance.
DELETE_MATCH_WINDOW = timedelta(seconds=1)


class UsageTracker:
    """Increments per-user counters and appends activity history."""

    def __init__(
        self,
        storage: Optional[BaseUsageStorage] = None,
        limits_store: Optional[UsageLimitsStore] = None,
    ):
        self._storage = storage
        self.limits_store = limits_store or UsageLimitsStore(storage=storage)

    @property
    def storage(self) -> BaseUsageStorage:
        return self._storage or get_usage_storage()

    async def track_generation(self, user_id: str, is_followup: bool = False) -> bool:
        """
        Count one generation against the user.

        Admins are never counted. Returns True when a counter was incremented.
        """
        field = (
            CounterField.FOLLOWUP_GENERATION_COUNT
            if is_followup
            else CounterField.GENERATION_COUNT
        )
        try:
            user = await self.storage.get_user(user_id)
            if user is None:
                logger.warning(f"Cannot track generation, user not found: {user_id[:8]}...")
                return False
            if user.is_unlimited:
                return False

            incremented = await self.storage.increment_counter(user_id, field)
            if incremented:
                logger.debug(f"Tracked {field.value} for {user_id[:8]}...")
            return incremented
        except Exception as e:
            logger.error(f"Error tracking generation for {user_id[:8]}...: {e}")
            return False

    async def track_activity(self, user_id: str, is_followup: bool = False) -> bool:
        """
        Count one saved activity against the user.

        Follow-up saves are only counted when the user type's settings set
        ``include_followups``. Admins are never counted.
        """
        try:
            user = await self.storage.get_user(user_id)
            if user is None:
                logger.warning(f"Cannot track activity, user not found: {user_id[:8]}...")
                return False
            if user.is_unlimited:
                return False

            if is_followup:
                limits = await self.limits_store.get(user.user_type)
                if not self._counts_followups(limits):
                    return False

            incremented = await self.storage.increment_counter(
                user_id, CounterField.ACTIVITY_COUNT
            )
            if incremented:
                logger.debug(
                    f"Tracked activity for {user_id[:8]}... (followup={is_followup})"
                )
            return incremented
        except Exception as e:
            logger.error(f"Error tracking activity for {user_id[:8]}...: {e}")
            return False

    @staticmethod
    def _counts_followups(limits: Optional[UsageLimitSettings]) -> bool:
        return limits is not None and limits.include_followups

    async def track_generation_history(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        position_title: Optional[str] = None,
        recipient: Optional[str] = None,
        llm_model: Optional[str] = None,
        is_saved: bool = False,
        is_followup: bool = False,
        created_at: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Append a generation to the activity history.

        Rows are written for admins as well; history is a log, not a counter.

        Returns:
            The new row id, or None if the insert failed.
        """
        entry = ActivityHistoryEntry(
            user_id=user_id,
            activity_type=activity_type,
            company_name=company_name,
            position_title=position_title,
            recipient=recipient,
            llm_model=llm_model,
            is_saved=is_saved,
            is_followup=is_followup,
        )
        if created_at is not None:
            entry.created_at = as_utc(created_at)

        try:
            return await self.storage.add_activity(entry)
        except Exception as e:
            logger.error(f"Error recording activity history for {user_id[:8]}...: {e}")
            return None

    async def mark_activity_deleted(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        created_at: datetime,
    ) -> int:
        """
        Soft-delete the history rows that match a deleted saved item.

        Rows are matched on type, company and a creation time within one
        second of ``created_at``; a naive ``created_at`` is taken as UTC.
        Counters are not decremented.
        """
        created_at = as_utc(created_at)
        try:
            deleted = await self.storage.mark_activity_deleted(
                user_id,
                activity_type,
                company_name,
                created_at - DELETE_MATCH_WINDOW,
                created_at + DELETE_MATCH_WINDOW,
            )
        except Exception as e:
            logger.error(f"Error marking activity deleted for {user_id[:8]}...: {e}")
            return 0

        if deleted == 0:
            logger.info(
                f"No activity history matched delete for {user_id[:8]}... "
                f"({activity_type.value}, {company_name})"
            )
        return deleted


class GenerationRecorder:
    """
    Context manager that records a generation once it succeeds.

    Usage:
        async with GenerationRecorder(tracker, user_id, ActivityType.COVER_LETTER, "Acme") as rec:
            text = await generate_cover_letter(...)
            rec.llm_model = "gpt-4o"
        # counter incremented and history row written on success only
    """

    def __init__(
        self,
        tracker: UsageTracker,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        position_title: Optional[str] = None,
        recipient: Optional[str] = None,
        is_followup: bool = False,
        is_saved: bool = False,
    ):
        self.tracker = tracker
        self.user_id = user_id
        self.activity_type = activity_type
        self.company_name = company_name
        self.position_title = position_title
        self.recipient = recipient
        self.is_followup = is_followup
        self.is_saved = is_saved
        self.llm_model: Optional[str] = None
        self.history_id: Optional[str] = None
        self.succeeded = False

    async def __aenter__(self) -> "GenerationRecorder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.succeeded = True
            await self.tracker.track_generation(self.user_id, self.is_followup)
            self.history_id = await self.tracker.track_generation_history(
                self.user_id,
                self.activity_type,
                self.company_name,
                position_title=self.position_title,
                recipient=self.recipient,
                llm_model=self.llm_model,
                is_saved=self.is_saved,
                is_followup=self.is_followup,
            )
            logger.info(
                f"Generation recorded for {self.user_id[:8]}...: "
                f"{self.activity_type.value} (followup={self.is_followup})"
            )

        return False
