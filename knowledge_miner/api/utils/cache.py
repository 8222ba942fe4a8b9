"""
TTL Cache Utility

Time-based caching for lookups that are expensive and change rarely:
- Global category list (database)
- YouTube video metadata (Data API / yt-dlp)

Thread-safe; safe to share between FastAPI threadpool workers.
"""

import time
import threading
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Keyed time-to-live cache with an optional size bound.

    When ``max_entries`` is reached the entry closest to expiry is evicted.

    Usage:
        cache = TTLCache(ttl_seconds=60.0)
        categories = cache.get_or_compute("global", lambda: load_categories())
    """

    def __init__(self, ttl_seconds: float = 60.0, max_entries: Optional[int] = None):
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._max_entries = max_entries

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if (
                self._max_entries is not None
                and key not in self._entries
                and len(self._entries) >= self._max_entries
            ):
                oldest = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest]
            self._entries[key] = (value, time.time() + self._ttl)

    def get_or_compute(self, key: str, compute_fn: Callable[[], Any]) -> Any:
        """
        Get cached value or compute and cache it.

        A computed value of None is returned but not cached, so failed
        lookups are retried on the next call.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = compute_fn()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
