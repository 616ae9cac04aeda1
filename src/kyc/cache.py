"""In-process volatile tier with per-entry absolute expiry."""

from __future__ import annotations

import heapq
import threading
import time
from typing import Callable, Dict, Generic, List, Optional, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


class VolatileCache(Generic[V]):
    """Thread-safe keyed store whose entries expire on an absolute timer.

    Each entry lives for ``ttl_seconds`` from the moment it was written;
    reading an entry never extends its lifetime. An expired entry is evicted
    when it is next read, and every write also drops all entries whose
    expiry has passed, so keys that are never read again do not accumulate.

    Args:
        ttl_seconds: Default lifetime applied by :meth:`set`.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, ttl_seconds: float = 3600, *, clock: Clock = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, tuple[float, V]] = {}
        # (expires_at, key) min-heap; may hold stale pairs for rewritten or dropped keys.
        self._expiry_heap: List[tuple[float, str]] = []
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        """Return the live value stored under ``key``, or ``None``."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() < expires_at:
                return value
            del self._entries[key]
            return None

    def set(self, key: str, value: V, *, ttl_seconds: float | None = None) -> None:
        """Store ``value`` with an expiry of ``ttl_seconds`` from now."""

        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            expires_at = now + ttl
            self._entries[key] = (expires_at, value)
            heapq.heappush(self._expiry_heap, (expires_at, key))

    def invalidate(self, key: str) -> bool:
        """Drop ``key``; returns True when an entry was present."""

        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._expiry_heap.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        heap = self._expiry_heap
        while heap and heap[0][0] <= now:
            expires_at, key = heapq.heappop(heap)
            entry = self._entries.get(key)
            if entry is not None and entry[0] == expires_at:
                del self._entries[key]


__all__ = ["VolatileCache", "Clock"]
