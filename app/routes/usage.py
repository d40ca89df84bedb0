"""
Usage accounting endpoints.

Check endpoints are soft: they always answer 200 with the decision so the
UI can show remaining quota. Recording a save is hard-gated and answers 429
when the monthly activity limit is reached.
"""

import logging
from typing import Tuple

from fastapi import APIRouter, Depends, Query

from src.types.usage import ActivityLimitStatus, LimitDecision, UsageSummary
from src.usage import UserNotFound, get_usage_service

from ..auth import get_current_user_id
from ..exceptions import ErrorCode, ResourceNotFoundError
from ..middleware.usage_gate import check_generation_allowed, raise_for_activity_status
from ..models.usage import (
    ActivitySaveRequest,
    ActivitySaveResponse,
    GenerationRecordRequest,
    GenerationRecordResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/summary", response_model=UsageSummary)
async def get_usage_summary(user_id: str = Depends(get_current_user_id)) -> UsageSummary:
    """
    Get the usage snapshot for the authenticated user.

    Returns counters, limits and the days left in the current window.
    """
    try:
        return await get_usage_service().get_usage_summary(user_id)
    except UserNotFound:
        raise ResourceNotFoundError(
            "User not found", resource_type="user", error_code=ErrorCode.USER_NOT_FOUND
        )


@router.get("/check/generation", response_model=LimitDecision)
async def check_generation(
    is_followup: bool = Query(default=False),
    user_id: str = Depends(get_current_user_id),
) -> LimitDecision:
    """Check whether the user may run another generation."""
    return await get_usage_service().can_generate(user_id, is_followup)


@router.get("/check/activity", response_model=ActivityLimitStatus)
async def check_activity(
    is_followup: bool = Query(default=False),
    user_id: str = Depends(get_current_user_id),
) -> ActivityLimitStatus:
    """Check whether the user may save another activity."""
    return await get_usage_service().can_save_activity(user_id, is_followup)


@router.post("/generations/authorize", response_model=LimitDecision)
async def authorize_generation(
    checked: Tuple[str, LimitDecision] = Depends(check_generation_allowed),
) -> LimitDecision:
    """
    Hard generation gate for the generation backend.

    Answers 429 when the limit is reached, otherwise the current counts.
    The ``is_followup`` query parameter is read by the dependency.
    """
    _, decision = checked
    return decision


@router.post("/generations", response_model=GenerationRecordResponse)
async def record_generation(
    request: GenerationRecordRequest,
    user_id: str = Depends(get_current_user_id),
) -> GenerationRecordResponse:
    """
    Record a generation that was delivered to the user.

    Increments the generation (or follow-up) counter without re-checking
    the limit, and appends a history row.
    """
    service = get_usage_service()
    counted = await service.track_generation(user_id, request.is_followup)
    history_id = await service.track_generation_history(
        user_id,
        request.activity_type,
        request.company_name,
        position_title=request.position_title,
        recipient=request.recipient,
        llm_model=request.llm_model,
        is_saved=request.is_saved,
        is_followup=request.is_followup,
    )

    logger.info(
        f"Generation recorded for {user_id[:8]}...: {request.activity_type.value} "
        f"(followup={request.is_followup}, counted={counted})"
    )
    return GenerationRecordResponse(counted=counted, history_id=history_id)


@router.post("/activities", response_model=ActivitySaveResponse)
async def record_activity(
    request: ActivitySaveRequest,
    user_id: str = Depends(get_current_user_id),
) -> ActivitySaveResponse:
    """
    Count a saved activity against the monthly limit.

    Checks the activity limit first and answers 429 when it is reached.
    """
    service = get_usage_service()
    status = await service.can_save_activity(user_id, request.is_followup)
    if not status.allowed:
        logger.warning(
            f"Activity save denied for user {user_id[:8]}...: {status.kind.value} "
            f"({status.current_count}/{status.limit})"
        )
        raise_for_activity_status(status)

    counted = await service.track_activity(user_id, request.is_followup)
    return ActivitySaveResponse(
        counted=counted,
        current_count=status.current_count + (1 if counted else 0),
        limit=status.limit,
        reset_date=status.reset_date,
    )
