"""stratlab.core.cache

Simple in-memory cache with TTL.

Backs the price-series cache: many concurrent runs over the same asset and
range should not each pay for the fetch. Cached values must be immutable.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any


class TTLCache:
    """Thread-safe TTL cache.

    Expired entries are dropped on every write. With ``max_entries`` set, the
    oldest entries are evicted first once the bound is reached.
    """

    def __init__(self, default_ttl_s: float = 60.0, *, max_entries: int | None = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._default_ttl_s = float(default_ttl_s)
        self._max_entries = max_entries
        self._store: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Any | None:
        now = time.monotonic()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expires_at, value = item
            if now < expires_at:
                return value
            self._store.pop(key, None)
            return None

    def set(self, key: Hashable, value: Any, *, ttl_s: float | None = None) -> None:
        ttl = self._default_ttl_s if ttl_s is None else float(ttl_s)
        now = time.monotonic()
        with self._lock:
            self._purge_expired(now)
            # Re-inserting moves the key to the back of the eviction order.
            self._store.pop(key, None)
            if self._max_entries is not None:
                while len(self._store) >= self._max_entries:
                    del self._store[next(iter(self._store))]
            self._store[key] = (now + ttl, value)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._store.items() if expires_at <= now]
        for k in expired:
            del self._store[k]

    def get_or_set(self, key: Hashable, factory: Callable[[], Any], *, ttl_s: float | None = None) -> Any:
        val = self.get(key)
        if val is not None:
            return val
        # Factory runs outside the lock; two racing misses both fetch, last write wins.
        val = factory()
        self.set(key, val, ttl_s=ttl_s)
        return val

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
