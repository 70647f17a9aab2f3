"""Rate limiter interfaces.

The policy layer depends on this abstraction rather than on the in-memory
implementation, so the counter storage can change without touching the
HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of consuming one request for a client key.

    Attributes:
        allowed: Whether the request is admitted.
        limit: Max requests per key per window.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the key's window ends.
        retry_after_seconds: Suggested wait in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Record one request for ``key`` if it is under the limit.

        Args:
            key: Client identity (usually an IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Return limiter parameters and storage metrics."""
        raise NotImplementedError
