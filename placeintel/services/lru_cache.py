"""Bounded in-process LRU cache with per-entry TTL."""
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple


class LRUCache:
    """
    Thread-safe LRU keyed by string.

    Each entry carries its own absolute expiry. Expired entries are removed
    when they are read; when the cache is full the least recently used entry
    is evicted.
    """

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.time):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    def ttl_remaining(self, key: str) -> Optional[float]:
        """Seconds left for a live entry, else None."""
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            remaining = item[1] - self._clock()
            return remaining if remaining > 0 else None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
