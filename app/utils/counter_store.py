"""Bounded in-memory store for per-client request counters.

Holds at most ``capacity`` entries. Each entry carries its own expiry, and
expired entries are dropped lazily when they are next read, so there is no
background sweeper. When a new key would push the store past capacity, the
least recently used entry (read or written) is evicted first.

The store does no locking of its own; the owning limiter serializes access.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class CounterEntry:
    """Request count for one client key within its current window."""

    count: int
    expires_at: float


class BoundedCounterStore:
    """LRU-ordered counter map with per-entry expiry.

    Attributes:
        capacity: Maximum number of keys tracked at once.
    """

    def __init__(self, capacity: int, clock: Callable[[], float] = time.time) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._clock = clock
        # Ordered from least to most recently used.
        self._entries: OrderedDict[str, CounterEntry] = OrderedDict()
        self._evictions = 0
        self._expirations = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"BoundedCounterStore(capacity={self._capacity}, size={len(self._entries)}, "
            f"evictions={self._evictions}, expirations={self._expirations})"
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._is_expired(entry)

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> CounterEntry | None:
        """Return the live entry for ``key`` and mark it recently used.

        Args:
            key: Client key.

        Returns:
            The entry, or None if the key was never set, was evicted, or its
            window has elapsed.
        """

        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._is_expired(entry):
            del self._entries[key]
            self._expirations += 1
            logger.debug("counter_store.expired", extra={"size": len(self._entries)})
            return None

        self._entries.move_to_end(key)
        return entry

    def set(self, key: str, entry: CounterEntry) -> None:
        """Insert or replace the entry for ``key`` as most recently used.

        Args:
            key: Client key.
            entry: Counter state to store.
        """

        if key in self._entries:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            return

        while len(self._entries) >= self._capacity:
            # popitem(last=False) removes the least recently used entry
            self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(
                "counter_store.evicted",
                extra={"capacity": self._capacity, "evictions": self._evictions},
            )

        self._entries[key] = entry

    def clear(self) -> None:
        """Drop every entry and reset counters."""

        self._entries.clear()
        self._evictions = 0
        self._expirations = 0

    def stats(self) -> dict[str, int]:
        """Return store metrics without exposing keys."""

        return {
            "capacity": self._capacity,
            "entries": len(self._entries),
            "evictions": self._evictions,
            "expirations": self._expirations,
        }

    def _is_expired(self, entry: CounterEntry) -> bool:
        return self._clock() > entry.expires_at
