"""
Time-bounded cache for catalog lookups.

Owned by whoever builds the catalog (one per process or per request),
never a module-level singleton. Entries expire after ttl_seconds;
invalidate() drops everything, e.g. after the catalog files change.
"""

import time
from collections.abc import Callable, Hashable
from typing import Any


class RuleCache:
    """Key -> value cache with a fixed time-to-live."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl_seconds: Lifetime of an entry; 0 disables caching
            clock: Monotonic seconds source (injectable for tests)
        """
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for key, calling loader when absent or stale."""
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and now - entry[0] < self.ttl_seconds:
            self.hits += 1
            return entry[1]

        self.misses += 1
        value = loader()
        if self.ttl_seconds > 0:
            self._entries[key] = (now, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one key, or everything when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
