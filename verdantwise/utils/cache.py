"""
Simple caching and request-coalescing utilities.

Provides:
- StalenessCache: timestamped entries with a fixed staleness window and an
  injectable clock, so "fresh vs stale" can be tested at exact boundaries.
  An optional ``maxsize`` bounds it; the oldest entry goes first.
- InFlightGuard: at most one in-flight call per key for slow advice requests.
"""

from __future__ import annotations
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Tuple

from .errors import RequestInProgress

Clock = Callable[[], float]


class StalenessCache:
    """
    Thread-safe cache of ``key -> (stored_at, value)``.

    An entry is fresh while ``now - stored_at <= window_seconds``. Anything
    older is stale; stale entries are kept (so they can be refreshed or
    inspected) until overwritten, pruned, evicted or cleared.

    Usage:
        cache = StalenessCache(window_seconds=12 * 3600, maxsize=64)
        hit = cache.get_fresh("paris")
        if hit is None:
            cache.put("paris", fetch("paris"))
    """

    def __init__(self, window_seconds: float, clock: Optional[Clock] = None, maxsize: Optional[int] = None):
        self.window_seconds = window_seconds
        self.maxsize = maxsize
        self._clock = clock or time.time
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def is_stale(self, stored_at: float) -> bool:
        return self.now() - stored_at > self.window_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_oldest(self) -> None:
        # Caller holds the lock
        if not self.maxsize:
            return
        while len(self._entries) > self.maxsize:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]

    def get_fresh(self, key: Hashable) -> Optional[Any]:
        """Return the cached value if it is within the window, else None."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.is_stale(stored_at):
            return None
        return value

    def put(self, key: Hashable, value: Any, stored_at: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (self.now() if stored_at is None else stored_at, value)
            self._evict_oldest()

    def stale_keys(self) -> List[Hashable]:
        with self._lock:
            entries = list(self._entries.items())
        return [key for key, (stored_at, _) in entries if self.is_stale(stored_at)]

    def prune(self, max_age_seconds: float) -> int:
        """Drop entries older than ``max_age_seconds``. Returns how many went."""
        cutoff = self.now() - max_age_seconds
        with self._lock:
            expired = [key for key, (stored_at, _) in self._entries.items() if stored_at < cutoff]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def snapshot(self) -> Dict[Hashable, Tuple[float, Any]]:
        """Copy of all entries (fresh and stale), e.g. for persistence."""
        with self._lock:
            return dict(self._entries)

    def load(self, entries: Dict[Hashable, Tuple[float, Any]]) -> None:
        with self._lock:
            self._entries.update(entries)
            self._evict_oldest()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class InFlightGuard:
    """
    Reject overlapping calls that share a key.

    Usage:
        guard = InFlightGuard()
        with guard.claim(f"decide:{plant_id}"):
            ...  # RequestInProgress raised if the same key is already running
    """

    def __init__(self):
        self._active: set = set()
        self._lock = threading.Lock()

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[None]:
        with self._lock:
            if key in self._active:
                raise RequestInProgress(f"Request already in progress for {key}")
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
