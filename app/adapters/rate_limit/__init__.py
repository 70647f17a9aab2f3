"""Rate limiting adapters.

The policy layer talks to ``AbstractRateLimiter``; the in-memory LRU limiter
is the only backend. Counters live in the process and are lost on restart.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryLRURateLimiter

__all__ = ["AbstractRateLimiter", "InMemoryLRURateLimiter", "RateLimitResult"]
