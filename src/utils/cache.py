"""
Process-local TTL cache for usage limit settings.

Limits per user type change rarely but are read on every generation and
save check. Entries expire lazily on read; ``cleanup()`` sweeps whatever
nobody has asked for since.
"""

import logging
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 300.0


class TTLCache(Generic[V]):
    """
    String-keyed cache whose entries live for ``default_ttl_seconds``.

    A miss and an expired entry both read as None, so None is not a
    storable value. ``clock`` must be monotonic; tests pass a fake.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[V]:
        found = self._entries.get(key)
        if found is not None:
            expires_at, value = found
            if self._clock() <= expires_at:
                self._hits += 1
                return value
            del self._entries[key]
            logger.debug("%s: %s expired", self.name, key)
        self._misses += 1
        return None

    def set(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("%s: cleared", self.name)

    def cleanup(self) -> int:
        """Drop expired entries and return how many went."""
        now = self._clock()
        stale = [key for key, (expires_at, _) in self._entries.items() if expires_at < now]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info("%s: evicted %d expired entries", self.name, len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
        }


_usage_limits_cache: Optional[TTLCache] = None


def get_usage_limits_cache() -> TTLCache:
    global _usage_limits_cache
    if _usage_limits_cache is None:
        from src.config import get_settings

        _usage_limits_cache = TTLCache(
            get_settings().usage.usage_limits_cache_ttl_seconds, name="usage_limits"
        )
    return _usage_limits_cache


def reset_usage_limits_cache() -> None:
    """Forget the shared cache so the next access rebuilds it from settings."""
    global _usage_limits_cache
    _usage_limits_cache = None
