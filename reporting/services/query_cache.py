"""
Generation-tagged query result cache.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable


class QueryCache:
    """
    Bounded TTL cache whose entries are tagged with a dataset generation.

    An entry is served only while its dataset's store generation is
    unchanged, so any committed write makes older results unreachable.
    Least recently used entries are evicted once ``max_entries`` is reached.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[tuple[str, Hashable], tuple[int, float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, dataset_type: str, key: Hashable, *, generation: int) -> tuple[bool, Any]:
        """
        Return ``(True, value)`` on a fresh hit, otherwise ``(False, None)``.
        """

        cache_key = (dataset_type, key)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                self.misses += 1
                return False, None
            entry_generation, stored_at, value = entry
            if entry_generation != generation or self._clock() - stored_at > self._ttl_seconds:
                del self._entries[cache_key]
                self.misses += 1
                return False, None
            self._entries.move_to_end(cache_key)
            self.hits += 1
            return True, value

    def put(self, dataset_type: str, key: Hashable, value: Any, *, generation: int) -> None:
        if self._ttl_seconds <= 0:
            return
        cache_key = (dataset_type, key)
        with self._lock:
            self._entries[cache_key] = (generation, self._clock(), value)
            self._entries.move_to_end(cache_key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, dataset_type: str | None = None) -> None:
        with self._lock:
            if dataset_type is None:
                self._entries.clear()
                return
            for cache_key in [key for key in self._entries if key[0] == dataset_type]:
                del self._entries[cache_key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
