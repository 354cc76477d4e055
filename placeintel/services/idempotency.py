"""Short-lived store of serialized responses keyed by client idempotency key."""
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from placeintel.config import settings


class IdempotencyStore:
    """
    Keeps the exact response bytes for ``window_seconds`` so a retried
    request gets a byte-identical replay without touching any provider.
    """

    def __init__(
        self,
        window_seconds: int = None,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds if window_seconds is not None else settings.idempotency_window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._records: "OrderedDict[str, Tuple[bytes, int, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Tuple[bytes, int]]:
        """Return ``(body, status_code)`` for a live key."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            body, status_code, expires_at = record
            if self._clock() >= expires_at:
                del self._records[key]
                return None
            return body, status_code

    def put(self, key: str, body: bytes, status_code: int = 200) -> None:
        with self._lock:
            self._records[key] = (body, status_code, self._clock() + self.window_seconds)
            self._records.move_to_end(key)
            while len(self._records) > self.max_entries:
                self._records.popitem(last=False)
