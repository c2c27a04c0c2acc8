"""
In-memory TTL cache for lookup tables.

Process-local and thread-safe.  Entries carry their own expiry so one cache
can hold short-lived and long-lived data side by side (the location table is
kept for 48 hours).  When full, the least recently used entry is dropped.

``fetch`` is the read-through entry point: on a miss it runs the loader and
stores the result.  Concurrent misses on the same key share a single load.
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from managed_reports.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIZE = 256

_MISSING = object()


@dataclass
class _Slot:
    value: Any
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """Thread-safe LRU cache with per-entry time-to-live.

    Parameters
    ----------
    ttl : float
        Default time-to-live in seconds, used when ``put``/``fetch`` get none.
    max_size : int
        Entry limit; the least recently used entry goes first.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, max_size: int = DEFAULT_MAX_SIZE):
        self.default_ttl = ttl
        self.max_size = max_size
        self._slots: OrderedDict[str, _Slot] = OrderedDict()
        self._lock = threading.Lock()
        self._loading: dict[str, threading.Lock] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        now = time.monotonic()
        with self._lock:
            slot = self._slots.get(key)
            if slot is not None and slot.expired(now):
                del self._slots[key]
                slot = None
            if slot is None:
                self._misses += 1
                return default
            self._slots.move_to_end(key)
            self._hits += 1
            return slot.value

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = time.monotonic() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._slots[key] = _Slot(value, expires_at)
            self._slots.move_to_end(key)
            while len(self._slots) > self.max_size:
                evicted, _ = self._slots.popitem(last=False)
                logger.debug("Cache evicted key=%s", evicted)

    def fetch(self, key: str, loader: Callable[[], Any], ttl: float | None = None) -> Any:
        """Return the value under *key*, running *loader* once on a miss."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value

        with self._lock:
            key_lock = self._loading.setdefault(key, threading.Lock())
        try:
            with key_lock:
                # Another thread may have finished the load while we waited.
                value = self.get(key, _MISSING)
                if value is _MISSING:
                    logger.info("Cache MISS key=%s, loading", key)
                    value = loader()
                    self.put(key, value, ttl=ttl)
        finally:
            with self._lock:
                self._loading.pop(key, None)
        return value

    def invalidate(self, key: str | None = None) -> int:
        """Drop *key*, or everything when no key is given.  Returns the count removed."""
        with self._lock:
            if key is None:
                removed = len(self._slots)
                self._slots.clear()
                return removed
            return 1 if self._slots.pop(key, None) is not None else 0

    def cleanup_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            stale = [k for k, slot in self._slots.items() if slot.expired(now)]
            for k in stale:
                del self._slots[k]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._slots),
                "max_size": self.max_size,
                "ttl_seconds": self.default_ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
            }


_cache = TTLCache()


def get_cache() -> TTLCache:
    """Process-wide cache shared by the lookup services."""
    return _cache
