"""
Pydantic models for the usage accounting endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.types.usage import ActivityHistoryEntry, ActivityType, UserType


class GenerationRecordRequest(BaseModel):
    """Request model for recording a completed generation."""

    activity_type: ActivityType
    company_name: str = Field(..., min_length=1, max_length=200)
    position_title: Optional[str] = Field(default=None, max_length=200)
    recipient: Optional[str] = Field(default=None, max_length=200)
    llm_model: Optional[str] = Field(default=None, max_length=100)
    is_followup: bool = False
    is_saved: bool = False


class GenerationRecordResponse(BaseModel):
    """Response model for a recorded generation."""

    success: bool = True
    counted: bool
    history_id: Optional[str] = None


class ActivitySaveRequest(BaseModel):
    """Request model for counting a saved activity."""

    is_followup: bool = False


class ActivitySaveResponse(BaseModel):
    """Response model for a counted save."""

    success: bool = True
    counted: bool
    current_count: int
    limit: int
    reset_date: datetime


class ActivityDeleteRequest(BaseModel):
    """Identifies the history rows of a deleted saved item."""

    activity_type: ActivityType
    company_name: str = Field(..., min_length=1, max_length=200)
    created_at: datetime


class ActivityDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int


class ActivityHistoryPage(BaseModel):
    """Paginated activity history."""

    items: List[ActivityHistoryEntry]
    total: int
    page: int
    limit: int
    total_pages: int


class UsageLimitsUpdateRequest(BaseModel):
    """Request model for updating the limits of one user type."""

    user_type: UserType
    max_activities: int = Field(..., ge=0, description="0 for unlimited")
    max_generations: int = Field(default=0, ge=0, description="0 for unlimited")
    max_followup_generations: int = Field(default=0, ge=0, description="0 for unlimited")
    include_followups: bool = False


class UsageResetResponse(BaseModel):
    """Response model for a manual counter reset run."""

    success: bool = True
    reset_count: int
    ran_at: datetime
