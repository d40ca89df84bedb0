"""
Admin endpoints for usage limit settings and counter resets.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from src.types.usage import UsageLimitSettings, utcnow
from src.usage import get_usage_service

from ..auth import require_admin
from ..models.usage import UsageLimitsUpdateRequest, UsageResetResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/usage-limits", response_model=List[UsageLimitSettings])
async def list_usage_limits(
    admin_id: str = Depends(require_admin),
) -> List[UsageLimitSettings]:
    """List the limit settings of every user type."""
    return await get_usage_service().list_limits()


@router.put("/usage-limits", response_model=UsageLimitSettings)
async def update_usage_limits(
    request: UsageLimitsUpdateRequest,
    admin_id: str = Depends(require_admin),
) -> UsageLimitSettings:
    """
    Create or replace the limits for one user type.

    The cached copy is dropped so the new limits apply to the next check.
    """
    updated = await get_usage_service().update_limits(
        UsageLimitSettings(**request.model_dump())
    )
    logger.info(f"Admin {admin_id[:8]}... updated usage limits for {updated.user_type.value}")
    return updated


@router.post("/usage/reset", response_model=UsageResetResponse)
async def reset_usage_counters(
    admin_id: str = Depends(require_admin),
) -> UsageResetResponse:
    """Run the monthly counter reset now for every user that is due."""
    ran_at = utcnow()
    reset_count = await get_usage_service().reset_monthly_counters(ran_at)
    logger.info(f"Admin {admin_id[:8]}... reset monthly counters for {reset_count} users")
    return UsageResetResponse(reset_count=reset_count, ran_at=ran_at)
