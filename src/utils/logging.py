"""
Logging setup shared by the API process and the maintenance scripts.

Every record carries the current request ID and user ID (``-`` outside a
request). Tokens, secrets and connection strings are masked before any
handler sees them. Production writes one JSON object per line; development
gets a coloured single-line format.
"""

import json
import logging
import re
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from src.config import get_settings

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_user_id: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

MASK = "[REDACTED]"

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'(?:api[_-]?key|secret|password|authorization)["\']?\s*[:=]\s*["\']?[^\s,}]+',
        r'token["\']?\s*[:=]\s*["\']?[\w.-]+',
        r'bearer\s+[\w.-]+',
        r'postgres(?:ql)?://\S+',
        r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+',
    )
]

# Attributes every LogRecord has; anything else came in through ``extra``.
_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "request_id", "user_id"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "asyncio": logging.WARNING,
    "asyncpg": logging.WARNING,
}


def redact(text: str) -> str:
    """Mask credentials inside a free-form string."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(MASK, text)
    return text


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class UsageLogFilter(logging.Filter):
    """Stamp request context on the record and mask secrets in its message."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        record.user_id = _user_id.get() or "-"
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        return True


class JsonLineFormatter(logging.Formatter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra = _extras(record)
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``12:30:01.123 WARNING  [a1b2c3d4 user-1] src.usage.tracker - message``"""

    _LEVEL_COLOURS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelno, "0")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        context = f"{getattr(record, 'request_id', '-')[:8]} {getattr(record, 'user_id', '-')}"

        line = (
            f"\033[2m{clock}\033[0m \033[1;{colour}m{record.levelname:<8}\033[0m "
            f"\033[2m[{context}]\033[0m {record.name} - {record.getMessage()}"
        )
        extra = _extras(record)
        if extra:
            line += f" \033[2m{extra}\033[0m"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    service_name: str = "usage-accounting-api",
    level: Optional[int] = None,
    json_output: Optional[bool] = None,
) -> logging.Logger:
    """
    Replace the root handlers with a single stdout handler.

    ``level`` and ``json_output`` default to LOG_LEVEL and to
    LOG_FORMAT_JSON / ENVIRONMENT=production respectively.
    """
    settings = get_settings()
    if level is None:
        level = logging.getLevelName(settings.logging.log_level)
    if json_output is None:
        json_output = settings.logging.log_format_json or settings.is_production

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(UsageLogFilter())
    handler.setFormatter(JsonLineFormatter(service_name) if json_output else ConsoleFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    root.debug("Logging ready", extra={"service": service_name, "json": json_output})
    return root


def set_request_context(request_id: Optional[str] = None, user_id: Optional[str] = None) -> None:
    if request_id is not None:
        _request_id.set(request_id)
    if user_id is not None:
        _user_id.set(user_id)


def clear_request_context() -> None:
    _request_id.set(None)
    _user_id.set(None)


@contextmanager
def log_duration(
    operation: str, logger: logging.Logger, level: int = logging.INFO
) -> Iterator[None]:
    """Log how long the wrapped block took and whether it raised."""
    started = time.perf_counter()
    succeeded = False
    try:
        yield
        succeeded = True
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.log(
            level,
            f"{operation} {'finished' if succeeded else 'failed'} after {elapsed_ms}ms",
            extra={"operation": operation, "duration_ms": elapsed_ms, "success": succeeded},
        )
