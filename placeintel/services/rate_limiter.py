"""Per-client fixed-window rate limiting (per minute and per hour)."""
import logging
import threading
import time
import zlib
from dataclasses import dataclass
from typing import Callable, Dict, List

from placeintel.config import settings

logger = logging.getLogger(__name__)

MINUTE_SECONDS = 60
HOUR_SECONDS = 3600


@dataclass
class RateLimitEntry:
    minute_count: int
    minute_reset_at: float
    hour_count: int
    hour_reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    minute_remaining: int
    hour_remaining: int
    retry_after_seconds: int = 0


class RateLimiter:
    """
    Counts requests per client in a minute window and an hour window.

    A request is admitted only when both counters are below their ceilings,
    and only admitted requests are counted. Entries live in shards, each with
    its own lock, so unrelated clients don't contend. Every ``prune_every``
    checks, entries whose hour window has passed are dropped.
    """

    def __init__(
        self,
        per_minute: int = None,
        per_hour: int = None,
        shards: int = 16,
        prune_every: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.per_minute = per_minute if per_minute is not None else settings.rate_limit_per_minute
        self.per_hour = per_hour if per_hour is not None else settings.rate_limit_per_hour
        self._clock = clock
        self._shards: List[Dict[str, RateLimitEntry]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]
        self.prune_every = prune_every
        self._checks = 0
        self._checks_lock = threading.Lock()

    def _shard(self, client_id: str) -> int:
        return zlib.crc32(client_id.encode("utf-8")) % len(self._shards)

    def check(self, client_id: str) -> RateDecision:
        """Admit or reject one request for ``client_id``."""
        with self._checks_lock:
            self._checks += 1
            due = self._checks % self.prune_every == 0
        if due:
            self.prune()

        index = self._shard(client_id)
        now = self._clock()
        with self._locks[index]:
            entries = self._shards[index]
            entry = entries.get(client_id)
            if entry is None:
                entry = RateLimitEntry(0, now + MINUTE_SECONDS, 0, now + HOUR_SECONDS)
                entries[client_id] = entry

            if now >= entry.minute_reset_at:
                entry.minute_count = 0
                entry.minute_reset_at = now + MINUTE_SECONDS
            if now >= entry.hour_reset_at:
                entry.hour_count = 0
                entry.hour_reset_at = now + HOUR_SECONDS

            if entry.minute_count >= self.per_minute or entry.hour_count >= self.per_hour:
                if entry.hour_count >= self.per_hour:
                    wait = entry.hour_reset_at - now
                else:
                    wait = entry.minute_reset_at - now
                logger.info(f"Rate limit exceeded for client {client_id}")
                return RateDecision(
                    allowed=False,
                    minute_remaining=0,
                    hour_remaining=max(0, self.per_hour - entry.hour_count),
                    retry_after_seconds=max(1, int(wait + 0.999)),
                )

            entry.minute_count += 1
            entry.hour_count += 1
            return RateDecision(
                allowed=True,
                minute_remaining=self.per_minute - entry.minute_count,
                hour_remaining=self.per_hour - entry.hour_count,
            )

    def prune(self) -> int:
        """Drop entries whose hour window has passed. Returns how many."""
        now = self._clock()
        removed = 0
        for index, entries in enumerate(self._shards):
            with self._locks[index]:
                stale = [key for key, entry in entries.items() if now >= entry.hour_reset_at]
                for key in stale:
                    del entries[key]
                removed += len(stale)
        return removed

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._shards)
