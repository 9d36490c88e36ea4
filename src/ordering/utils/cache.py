"""Bounded-staleness read-through cache for derived reads."""

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any


class TTLCache:
    """Serve a computed value for up to ``ttl`` seconds before recomputing it.

    Entries are evicted oldest-first once ``max_entries`` is reached.
    """

    def __init__(self, ttl: float, max_entries: int = 128, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now - entry[0] < self.ttl:
                return entry[1]

        # Computed outside the lock: a store read must not block other keys
        value = compute()

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (now, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
