"""
Pydantic models for usage accounting.

This module defines the data models for:
- User types and the per-type usage limit settings
- Per-user counters and the monthly window
- The append-only activity history
- Limit decisions returned to route handlers
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time used for all window arithmetic."""
    return datetime.now(timezone.utc)


class UserType(str, Enum):
    """Subscription type of a user. Usage limits are keyed by this value."""

    FREE = "FREE"
    PLUS = "PLUS"
    ADMIN = "ADMIN"


class ActivityType(str, Enum):
    """Kind of content a generation or save produced."""

    COVER_LETTER = "COVER_LETTER"
    LINKEDIN_MESSAGE = "LINKEDIN_MESSAGE"
    EMAIL_MESSAGE = "EMAIL_MESSAGE"


class CounterField(str, Enum):
    """Per-user counter columns. Only the tracker and the sweeper mutate them."""

    GENERATION_COUNT = "generation_count"
    FOLLOWUP_GENERATION_COUNT = "followup_generation_count"
    ACTIVITY_COUNT = "activity_count"


class UsageLimitSettings(BaseModel):
    """Limits for one user type. A value of 0 disables that limit."""

    user_type: UserType
    max_activities: int = Field(
        default=0,
        ge=0,
        description="Maximum saved activities per window (0 for unlimited)",
    )
    max_generations: int = Field(
        default=0,
        ge=0,
        description="Maximum generations per window (0 for unlimited)",
    )
    max_followup_generations: int = Field(
        default=0,
        ge=0,
        description="Maximum follow-up generations per window (0 for unlimited)",
    )
    include_followups: bool = Field(
        default=False,
        description="Whether follow-up saves count against max_activities",
    )
    updated_at: Optional[datetime] = None


# Defaults applied by the seed script; existing rows are never overwritten.
DEFAULT_USAGE_LIMITS = {
    UserType.FREE: UsageLimitSettings(user_type=UserType.FREE, max_activities=100),
    UserType.PLUS: UsageLimitSettings(user_type=UserType.PLUS, max_activities=500),
    UserType.ADMIN: UsageLimitSettings(user_type=UserType.ADMIN, max_activities=999999),
}


class UserUsage(BaseModel):
    """The slice of a user row owned by usage accounting."""

    id: str
    user_type: UserType = UserType.FREE
    is_admin: bool = False
    generation_count: int = Field(default=0, ge=0)
    followup_generation_count: int = Field(default=0, ge=0)
    activity_count: int = Field(default=0, ge=0)
    monthly_reset_date: datetime = Field(default_factory=utcnow)

    @property
    def is_unlimited(self) -> bool:
        """Admins bypass every counter."""
        return self.is_admin or self.user_type == UserType.ADMIN


class ActivityHistoryEntry(BaseModel):
    """One row of the append-only activity log."""

    id: Optional[str] = None
    user_id: str
    activity_type: ActivityType
    company_name: str
    position_title: Optional[str] = None
    recipient: Optional[str] = None
    llm_model: Optional[str] = None
    is_saved: bool = False
    is_followup: bool = False
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class DenialKind(str, Enum):
    """Why a limit check denied the request."""

    USER_NOT_FOUND = "USER_NOT_FOUND"
    LIMITS_NOT_CONFIGURED = "LIMITS_NOT_CONFIGURED"
    GENERATION_LIMIT = "GENERATION_LIMIT"
    FOLLOWUP_GENERATION_LIMIT = "FOLLOWUP_GENERATION_LIMIT"
    ACTIVITY_LIMIT = "ACTIVITY_LIMIT"
    STORAGE_ERROR = "STORAGE_ERROR"


class LimitDecision(BaseModel):
    """
    Result of a generation limit check.

    ``reason`` is written for end users and is shown verbatim by the UI;
    ``kind`` is what code should branch on.
    """

    allowed: bool
    kind: Optional[DenialKind] = None
    reason: Optional[str] = None
    current_count: Optional[int] = None
    limit: Optional[int] = None

    @classmethod
    def allow(cls, current_count: Optional[int] = None, limit: Optional[int] = None) -> "LimitDecision":
        return cls(allowed=True, current_count=current_count, limit=limit)

    @classmethod
    def deny(
        cls,
        kind: DenialKind,
        reason: str,
        current_count: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> "LimitDecision":
        return cls(
            allowed=False,
            kind=kind,
            reason=reason,
            current_count=current_count,
            limit=limit,
        )


class ActivityLimitStatus(BaseModel):
    """Result of an activity (save) limit check."""

    allowed: bool
    current_count: int = 0
    limit: int = 0
    reset_date: datetime = Field(default_factory=utcnow)
    kind: Optional[DenialKind] = None
    reason: Optional[str] = None


class UsageSummary(BaseModel):
    """Per-user usage snapshot for the dashboard."""

    user_id: str
    user_type: UserType
    is_unlimited: bool
    generation_count: int
    max_generations: int
    followup_generation_count: int
    max_followup_generations: int
    activity_count: int
    max_activities: int
    include_followups: bool
    monthly_activity_count: int = Field(
        ...,
        description="Activity history rows since the window opened",
    )
    reset_date: datetime
    days_until_reset: int
