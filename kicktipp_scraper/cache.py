"""
In-process cache with absolute and sliding expiration.

An entry lives at most ``absolute_ttl`` seconds after it was stored and is
dropped earlier if nobody reads it for ``sliding_ttl`` seconds. The map is
lock-guarded; factories run outside the lock, so two concurrent misses for
the same key may both fetch and the later write wins.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

STANDINGS_TTL = (20 * 60, 10 * 60)
MATCHES_HISTORY_TTL = (15 * 60, 7 * 60)


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    last_accessed_at: float
    absolute_ttl: float
    sliding_ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.inserted_at >= self.absolute_ttl
                or now - self.last_accessed_at >= self.sliding_ttl)


class ExpiringCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            entry.last_accessed_at = now
            return entry.value

    def set(self, key: Hashable, value: Any, absolute_ttl: float, sliding_ttl: float) -> None:
        if absolute_ttl <= 0 or sliding_ttl <= 0:
            raise ValueError("TTLs müssen positiv sein.")
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value, now, now, absolute_ttl, sliding_ttl)

    def get_or_create(self, key: Hashable, factory: Callable[[], Any],
                      absolute_ttl: float, sliding_ttl: float,
                      should_cache: Callable[[Any], bool] = lambda v: True) -> Any:
        hit = self.get(key)
        if hit is not None:
            return hit
        value = factory()
        if should_cache(value):
            self.set(key, value, absolute_ttl, sliding_ttl)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for e in self._entries.values() if not e.is_expired(now))
