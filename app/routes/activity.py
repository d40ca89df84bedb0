"""
Activity history endpoints.
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.types.usage import ActivityType
from src.usage import get_usage_service

from ..auth import get_current_user_id
from ..models.usage import ActivityDeleteRequest, ActivityDeleteResponse, ActivityHistoryPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity-history", tags=["activity"])


@router.get("", response_model=ActivityHistoryPage)
async def list_activity_history(
    search: str = Query(default="", max_length=200),
    activity_type: Optional[ActivityType] = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
) -> ActivityHistoryPage:
    """
    List the user's activity history, newest first.

    ``search`` matches company, position or recipient (case-insensitive).
    Soft-deleted rows are included.
    """
    items, total = await get_usage_service().list_activity(
        user_id, search=search.strip(), activity_type=activity_type, page=page, limit=limit
    )
    return ActivityHistoryPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.delete("", response_model=ActivityDeleteResponse)
async def delete_activity_history(
    request: ActivityDeleteRequest,
    user_id: str = Depends(get_current_user_id),
) -> ActivityDeleteResponse:
    """
    Soft-delete the history rows of a deleted saved item.

    Usage counters are not decremented.
    """
    deleted = await get_usage_service().mark_activity_deleted(
        user_id, request.activity_type, request.company_name, request.created_at
    )
    return ActivityDeleteResponse(deleted_count=deleted)
