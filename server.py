"""
ASGI entry point for the usage accounting API.

    uvicorn server:app

Logging is configured before anything else is imported so module-level
loggers pick up the handler.
"""

import logging
import os
import re
from contextlib import asynccontextmanager

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from src.utils.logging import setup_logging

logger = setup_logging(service_name="usage-accounting-api")

from src.config import Settings, get_settings
from src.db import close_pool

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import activity_router, admin_router, health_router, usage_router

settings: Settings = get_settings()
logger.info("Configuration loaded", extra={"config": settings.get_config_summary()})

_PRIVATE_HEADER = re.compile(r"authorization|cookie|token|secret|x-user-id", re.IGNORECASE)
_PRIVATE_QUERY = re.compile(r"((?:token|secret|password|access_token)=)[^&]*", re.IGNORECASE)


def scrub_breadcrumb(crumb, hint):
    """Keep bearer tokens and the dev user header out of Sentry breadcrumbs."""
    data = crumb.get("data")
    if crumb.get("category") == "http" and isinstance(data, dict):
        headers = data.get("headers")
        if isinstance(headers, dict):
            for name in headers:
                if _PRIVATE_HEADER.search(name):
                    headers[name] = "[FILTERED]"
        if isinstance(data.get("url"), str):
            data["url"] = _PRIVATE_QUERY.sub(r"\1[FILTERED]", data["url"])
    return crumb


def init_sentry(config: Settings) -> None:
    sentry = config.sentry
    if not sentry.is_configured:
        logger.info("SENTRY_DSN not set; error reporting disabled")
        return
    sentry_sdk.init(
        dsn=sentry.sentry_dsn,
        environment=sentry.sentry_environment,
        release=sentry.sentry_release,
        traces_sample_rate=sentry.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=scrub_breadcrumb,
        send_default_pii=False,
    )
    logger.info(f"Sentry reporting to environment {sentry.sentry_environment}")


init_sentry(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.is_dev_mode and settings.is_production:
        logger.warning("DEV_MODE is on in production: X-User-ID is trusted without a token")
    yield
    await close_pool()


app = FastAPI(
    title="Usage Accounting API",
    description=(
        "Monthly generation and saved-activity limits for the job application "
        "assistant. Authenticate with a Supabase access token "
        "(`Authorization: Bearer <token>`)."
    ),
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "Liveness and dependency status"},
        {"name": "usage", "description": "Limit checks and usage tracking"},
        {"name": "activity", "description": "Generation history"},
        {"name": "admin", "description": "Per-type limits and the monthly reset"},
    ],
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-User-ID"],
    expose_headers=["X-Request-ID", "X-Response-Time", "Retry-After"],
)

if settings.logging.request_logging_enabled:
    app.add_middleware(RequestLoggingMiddleware)

for router in (health_router, usage_router, activity_router, admin_router):
    app.include_router(router)


@app.get("/config-status", tags=["health"])
async def get_config_status():
    """Secret-free configuration summary; hidden in production unless DEV_MODE is on."""
    if settings.is_production and not settings.is_dev_mode:
        return {"success": False, "error": "Not available in production"}
    return {"success": True, "config": settings.get_config_summary()}


if __name__ == "__main__":
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() == "true",
    )
