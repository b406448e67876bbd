"""
disburse.service.cache
======================

Small, thread-safe TTL cache for ledger reads.

- In-memory only, owned by one service instance (no module globals).
- One TTL for every entry; the clock is injected so tests can move time.
- ``invalidate()`` drops everything (called after scheme-changing writes);
  ``invalidate(key)`` drops one entry.

Typical usage
-------------
    cache = TTLCache(ttl=60.0)
    schemes = cache.get_or_load("schemes", factory.list_schemes)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from ..metrics import METRICS, Metrics

__all__ = ["TTLCache", "CacheStats"]

_MISSING = object()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    invalidations: int = 0


class TTLCache:
    def __init__(
        self,
        *,
        ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[Metrics] = METRICS,
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = float(ttl)
        self.clock = clock
        self.metrics = metrics
        self.stats = CacheStats()
        self._lock = threading.RLock()
        self._map: Dict[Hashable, Tuple[float, Any]] = {}

    def _count(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache(result)

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self.clock()
        with self._lock:
            entry = self._map.get(key)
            if entry is None:
                self.stats.misses += 1
                self._count("miss")
                return default
            expires_at, value = entry
            if now >= expires_at:
                # kept for peek_stale until overwritten or invalidated
                self.stats.expired += 1
                self._count("expired")
                return default
            self.stats.hits += 1
            self._count("hit")
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._map[key] = (self.clock() + self.ttl, value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            self.put(key, value)
        return value

    def peek_stale(self, key: Hashable, default: Any = None) -> Any:
        """Value for ``key`` even if expired (for fail-open reads); no stats."""
        with self._lock:
            entry = self._map.get(key)
            return entry[1] if entry is not None else default

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._map.clear()
            else:
                self._map.pop(key, None)
            self.stats.invalidations += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)
