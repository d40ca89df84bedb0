"""API routes for the usage accounting service."""

from .activity import router as activity_router
from .admin import router as admin_router
from .health import router as health_router
from .usage import router as usage_router

__all__ = [
    "activity_router",
    "admin_router",
    "health_router",
    "usage_router",
]
