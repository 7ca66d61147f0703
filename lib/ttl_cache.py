# =============================================================================
# lib/ttl_cache.py - Bounded In-Memory TTL Cache
# =============================================================================
# Small process-local cache used to avoid redundant third-party API calls
# (YouTube video lists, playlist ids, JWKS keys, subscription tiers).
#
# Behavior:
# - Entries expire a fixed number of seconds after they were written
# - When full, the least recently used entry is evicted
# - Writes overwrite (last writer wins); no cross-process sharing
# - Contents are lost on restart
#
# Usage:
#   from lib.ttl_cache import TTLCache, get_or_fetch
#
#   videos_cache = TTLCache(maxsize=500, ttl=600, name="youtube_videos")
#   videos = get_or_fetch(videos_cache, user_id, lambda: fetch_videos(user_id))
# =============================================================================

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Registry of named caches so they can be cleared together (tests, admin)
_registry: dict[str, "TTLCache"] = {}


class TTLCache:
    """
    LRU cache whose entries expire after `ttl` seconds.

    The clock is injectable so expiry can be tested without sleeping.

    Example:
        cache = TTLCache(maxsize=2, ttl=60)
        cache.set("a", 1)
        cache.get("a")  # 1
        cache.get("b")  # None
    """

    def __init__(
        self,
        maxsize: int,
        ttl: float,
        timer: Callable[[], float] = time.monotonic,
        name: str | None = None,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        if ttl < 0:
            raise ValueError("ttl must not be negative")

        self.maxsize = maxsize
        self.ttl = ttl
        self.timer = timer
        self.name = name
        self._data: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()

        if name:
            _registry[name] = self

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self.timer() >= expires_at:
            del self._data[key]
            return None

        self._data.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the least recently used entry when full."""
        if key in self._data:
            del self._data[key]
        elif len(self._data) >= self.maxsize:
            evicted, _ = self._data.popitem(last=False)
            logger.debug(f"Cache {self.name or id(self)} evicted key {evicted}")

        self._data[key] = (value, self.timer() + self.ttl)

    def delete(self, key: Hashable) -> None:
        """Remove a key if present."""
        self._data.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._data)


def get_or_fetch(cache: TTLCache, key: Hashable, fetcher: Callable[[], T]) -> T:
    """
    Return the cached value for `key`, calling `fetcher` only on a miss.

    Exceptions raised by the fetcher propagate unchanged and nothing is
    stored, so the next call tries again.
    """
    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"Cache hit: {cache.name or 'cache'}[{key}]")
        return cached

    value = fetcher()
    cache.set(key, value)
    return value


def clear_all_caches() -> None:
    """Empty every named cache in this process."""
    for cache in _registry.values():
        cache.clear()
    logger.info(f"Cleared {len(_registry)} caches")
