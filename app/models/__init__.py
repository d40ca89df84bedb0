"""Pydantic models for the usage accounting API."""

from .usage import (
    ActivityDeleteRequest,
    ActivityDeleteResponse,
    ActivityHistoryPage,
    ActivitySaveRequest,
    ActivitySaveResponse,
    GenerationRecordRequest,
    GenerationRecordResponse,
    UsageLimitsUpdateRequest,
    UsageResetResponse,
)

__all__ = [
    "ActivityDeleteRequest",
    "ActivityDeleteResponse",
    "ActivityHistoryPage",
    "ActivitySaveRequest",
    "ActivitySaveResponse",
    "GenerationRecordRequest",
    "GenerationRecordResponse",
    "UsageLimitsUpdateRequest",
    "UsageResetResponse",
]
