"""
Per-request access log with request IDs.

Each response gets an ``X-Request-ID`` (forwarded from upstream when the
client sent one) and an ``X-Response-Time``. The request ID and the
authenticated user are bound to the logging context for the duration of
the request, so usage tracking logs can be correlated with the call that
caused them.
"""

import logging
import time
import uuid
from typing import Callable, FrozenSet, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

SILENT_PATHS: FrozenSet[str] = frozenset({"/", "/docs", "/redoc", "/openapi.json", "/favicon.ico"})

# Polled by load balancers; only worth a line when something is wrong.
QUIET_PATHS: FrozenSet[str] = frozenset({"/health", "/health/db"})


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        silent_paths: Optional[FrozenSet[str]] = None,
        quiet_paths: Optional[FrozenSet[str]] = None,
    ):
        super().__init__(app)
        self.silent_paths = silent_paths if silent_paths is not None else SILENT_PATHS
        self.quiet_paths = quiet_paths if quiet_paths is not None else QUIET_PATHS

    def _should_log(self, path: str, status_code: int) -> bool:
        if path in self.silent_paths:
            return False
        return path not in self.quiet_paths or status_code >= 400

    def _get_log_level(self, status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        if status_code >= 400:
            # 429s from the usage gate land here.
            return logging.WARNING
        return logging.INFO

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        path = request.url.path
        fields = {
            "http_method": request.method,
            "http_path": path,
            "client_ip": _client_address(request),
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.exception(
                f"{request.method} {path} crashed after {elapsed:.2f}ms: {type(exc).__name__}",
                extra={**fields, "event": "http_request_error", "duration_ms": round(elapsed, 2)},
            )
            clear_request_context()
            raise

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.2f}ms"

        # The auth dependency records who made the call on request.state.
        authenticated = getattr(request.state, "user_id", None)
        if authenticated:
            set_request_context(user_id=str(authenticated))

        status = response.status_code
        if self._should_log(path, status):
            logger.log(
                self._get_log_level(status),
                f"{request.method} {path} -> {status} in {elapsed:.2f}ms",
                extra={
                    **fields,
                    "event": "http_request",
                    "http_status": status,
                    "duration_ms": round(elapsed, 2),
                },
            )

        clear_request_context()
        return response
