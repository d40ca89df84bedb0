"""
Usage limit enforcement dependency for FastAPI.

Provides a dependency that checks the caller's generation limits before a
generation endpoint runs. Denials map to:

- 429 Too Many Requests when a monthly limit is reached
- 404 when the user row does not exist
- 503 when limits are not configured or the check itself failed
"""

import logging
from typing import Tuple

from fastapi import Depends, Query

from src.types.usage import ActivityLimitStatus, DenialKind, LimitDecision
from src.usage import get_usage_service

from ..auth import get_current_user_id
from ..exceptions import (
    ErrorCode,
    LimitsNotConfiguredError,
    ResourceNotFoundError,
    ServiceUnavailableError,
    UsageLimitExceededError,
    UsageServiceException,
)

logger = logging.getLogger(__name__)

# Suggest retry after 1 hour; limits only clear when the window rolls.
RETRY_AFTER_SECONDS = 3600

_LIMIT_ERROR_CODES = {
    DenialKind.GENERATION_LIMIT: ErrorCode.GENERATION_LIMIT_EXCEEDED,
    DenialKind.FOLLOWUP_GENERATION_LIMIT: ErrorCode.FOLLOWUP_GENERATION_LIMIT_EXCEEDED,
    DenialKind.ACTIVITY_LIMIT: ErrorCode.ACTIVITY_LIMIT_EXCEEDED,
}


def denial_to_exception(
    kind: DenialKind,
    reason: str,
    current_count=None,
    limit=None,
    reset_date=None,
) -> UsageServiceException:
    """Map a limit-check denial to the API exception that describes it."""
    if kind == DenialKind.USER_NOT_FOUND:
        return ResourceNotFoundError(
            reason, resource_type="user", error_code=ErrorCode.USER_NOT_FOUND
        )
    if kind == DenialKind.LIMITS_NOT_CONFIGURED:
        return LimitsNotConfiguredError(reason)
    if kind == DenialKind.STORAGE_ERROR:
        return ServiceUnavailableError(reason, error_code=ErrorCode.USAGE_CHECK_FAILED)

    return UsageLimitExceededError(
        reason,
        limit=limit,
        current_usage=current_count,
        reset_date=reset_date.isoformat() if reset_date else None,
        retry_after=RETRY_AFTER_SECONDS,
        error_code=_LIMIT_ERROR_CODES[kind],
    )


def raise_for_decision(decision: LimitDecision) -> None:
    if not decision.allowed:
        raise denial_to_exception(
            decision.kind, decision.reason, decision.current_count, decision.limit
        )


def raise_for_activity_status(status: ActivityLimitStatus) -> None:
    if not status.allowed:
        raise denial_to_exception(
            status.kind, status.reason, status.current_count, status.limit, status.reset_date
        )


async def check_generation_allowed(
    is_followup: bool = Query(default=False, description="Whether this is a follow-up generation"),
    user_id: str = Depends(get_current_user_id),
) -> Tuple[str, LimitDecision]:
    """Run the generation check once and return the caller with the allowing decision."""
    decision = await get_usage_service().can_generate(user_id, is_followup)
    if not decision.allowed:
        logger.warning(
            f"Generation denied for user {user_id[:8]}...: {decision.kind.value} "
            f"({decision.current_count}/{decision.limit})"
        )
        raise_for_decision(decision)

    logger.debug(f"Generation check passed for user: {user_id[:8]}...")
    return user_id, decision


async def require_generation_allowed(
    checked: Tuple[str, LimitDecision] = Depends(check_generation_allowed),
) -> str:
    """
    FastAPI dependency that enforces generation limits.

    Usage:
        @router.post("/cover-letters")
        async def generate_cover_letter(
            request: CoverLetterRequest,
            user_id: str = Depends(require_generation_allowed),
        ):
            # Will only reach here if the user may generate
            ...
    """
    user_id, _ = checked
    return user_id
