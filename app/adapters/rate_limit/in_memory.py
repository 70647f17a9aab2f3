"""In-memory rate limiter over a bounded LRU counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the read-check-increment sequence.
- The window starts at a key's first admitted request, not on wall-clock
  boundaries, so two bursts straddling an expiry can briefly admit up to
  twice the limit.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Any, Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.utils.counter_store import BoundedCounterStore, CounterEntry


class InMemoryLRURateLimiter(AbstractRateLimiter):
    """Count requests per key, tracking at most ``capacity`` keys.

    When more than ``capacity`` distinct keys are active, the least recently
    seen key is forgotten and its next request starts a fresh window.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        capacity: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum admitted requests per key per window.
            window_seconds: Window length in seconds.
            capacity: Maximum distinct keys tracked at once.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._store = BoundedCounterStore(capacity, clock=clock)

    def consume(self, key: str) -> RateLimitResult:
        """Admit and count one request for ``key``, or block it.

        Blocked requests are not counted and do not extend the window.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            entry = self._store.get(key)

            if entry is not None and entry.count >= self._limit:
                return self._build_blocked_result(now=now, expires_at=entry.expires_at)

            if entry is None:
                entry = CounterEntry(count=0, expires_at=now + self._window_seconds)

            updated = CounterEntry(count=entry.count + 1, expires_at=entry.expires_at)
            self._store.set(key, updated)

            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=max(0, self._limit - updated.count),
                reset_at=int(math.ceil(updated.expires_at)),
                retry_after_seconds=None,
            )

    def stats(self) -> dict[str, Any]:
        with self._lock:
            store_stats = self._store.stats()
        return {
            "limit": self._limit,
            "window_seconds": self._window_seconds,
            **store_stats,
        }

    def _build_blocked_result(self, *, now: float, expires_at: float) -> RateLimitResult:
        retry_after = max(1, int(math.ceil(expires_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=int(math.ceil(expires_at)),
            retry_after_seconds=retry_after,
        )
