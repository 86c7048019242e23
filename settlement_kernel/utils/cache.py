"""
CacheService -- keyed cache with time-to-live and prefix invalidation.

Responsibility:
    Holds computed read models (FINAL settlement breakdowns) for a short
    time.  Injected into the services that use it; there is no module-level
    cache instance.

Invariants enforced:
    - An entry is never returned after its TTL elapsed.
    - ``invalidate_prefix`` removes every key starting with the prefix,
      so finalize/void can drop all cached views of one settlement.
    - Size is bounded: past ``max_entries`` expired entries are purged
      first, then the oldest entries.

Failure modes:
    None.  A miss returns None.
"""

import threading
from collections import OrderedDict
from typing import Any

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger

logger = get_logger("utils.cache")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 500


class CacheService:
    """Thread-safe in-process TTL cache."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Clock | None = None,
    ):
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock or SystemClock()
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        now = self._clock.monotonic()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if now >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock.monotonic() + (self._default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (expires_at, value)
            if len(self._entries) > self._max_entries:
                self._evict()

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``; returns how many."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("cache_invalidated", extra={"prefix": prefix, "count": len(doomed)})
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self) -> None:
        # Caller holds the lock.
        now = self._clock.monotonic()
        for key in [k for k, (exp, _) in self._entries.items() if now >= exp]:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
