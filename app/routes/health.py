"""
Liveness, dependency status and limit-cache maintenance.

None of these endpoints need authentication. ``/health`` stays healthy on
in-memory storage; it only degrades when a configured Postgres is
unreachable.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

import sentry_sdk
from fastapi import APIRouter

from src.config import get_settings
from src.db import fetchval, is_database_configured
from src.utils.cache import get_usage_limits_cache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def get_database_status() -> Dict[str, Any]:
    if not is_database_configured():
        return {"configured": False, "connected": False, "error": "DATABASE_URL not set"}

    started = time.perf_counter()
    try:
        await fetchval("SELECT 1")
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return {"configured": True, "connected": False, "error": type(e).__name__}

    return {
        "configured": True,
        "connected": True,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }


def get_sentry_status() -> Dict[str, Any]:
    sentry = get_settings().sentry
    if not sentry.is_configured:
        return {"configured": False, "active": False}
    return {"configured": True, "active": sentry_sdk.get_client().is_active()}


def _label(status: Dict[str, Any], up_key: str) -> str:
    if status.get(up_key):
        return "up"
    return "down" if status.get("configured") else "unconfigured"


@router.get("/health", summary="Service health for load balancers")
async def health_check() -> Dict[str, Any]:
    settings = get_settings()
    database = await get_database_status()
    healthy = database.get("connected") or not database.get("configured")

    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": _timestamp(),
        "version": settings.sentry.sentry_release,
        "environment": settings.security.environment,
        "storage_backend": settings.usage.usage_storage_backend,
        "services": {
            "database": {
                "status": _label(database, "connected"),
                "latency_ms": database.get("latency_ms"),
            },
            "sentry": {"status": _label(get_sentry_status(), "active")},
        },
    }


@router.get("/health/db")
async def database_health() -> Dict[str, Any]:
    return {"timestamp": _timestamp(), "database": await get_database_status()}


@router.get("/health/cache")
async def cache_stats() -> Dict[str, Any]:
    """Hit rate and size of the usage limit settings cache."""
    return {"timestamp": _timestamp(), "caches": {"usage_limits": get_usage_limits_cache().stats}}


@router.post("/health/cache/cleanup")
async def cleanup_caches() -> Dict[str, Any]:
    evicted = get_usage_limits_cache().cleanup()
    return {"timestamp": _timestamp(), "cleaned": {"usage_limits": evicted}}


@router.get("/", summary="API information")
async def root() -> Dict[str, str]:
    return {
        "message": "Usage accounting API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
