"""Per-endpoint rate limiting for FastAPI routes.

Each protected endpoint owns a ``RateLimiter`` built from a named policy.
The limiters are created once by the app factory and kept in a
``RateLimiterRegistry`` on ``app.state``; routes reach them through the
``rate_limit(policy_name)`` dependency.

Decision flow for one request:
1. derive the client key from proxy headers or the peer address
2. consume one unit from that key's budget
3. return normally when admitted, raise ``RateLimitExceededError`` otherwise

If the limiter itself fails, the request is admitted (fail open) unless
``fail_open`` is disabled, in which case it is rejected like an over-limit
request.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, Awaitable, Callable, Iterator, Mapping

from fastapi import Request

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryLRURateLimiter
from app.core.config import RateLimitPolicy, Settings
from app.core.errors import ConfigurationAppError, RateLimitExceededError
from app.utils.client_identity import ANONYMOUS_CLIENT_KEY, derive_client_key

logger = logging.getLogger(__name__)


def hash_client_key(key: str) -> str:
    """Hash a client key for logging without exposing the address."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RateLimiter:
    """Admit/deny decisions for one protected endpoint.

    Attributes:
        name: Policy name, used in logs and error details.
        policy: Window, ceiling and capacity in force.
    """

    def __init__(
        self,
        name: str,
        policy: RateLimitPolicy,
        *,
        fail_open: bool = True,
        fallback_key: str = ANONYMOUS_CLIENT_KEY,
        clock: Callable[[], float] = time.time,
        backend: AbstractRateLimiter | None = None,
    ) -> None:
        self.name = name
        self.policy = policy
        self.fail_open = fail_open
        self.fallback_key = fallback_key
        self._backend = backend or InMemoryLRURateLimiter(
            limit=policy.ceiling,
            window_seconds=policy.window_seconds,
            capacity=policy.capacity,
            clock=clock,
        )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RateLimiter(name={self.name!r}, policy={self.policy!r}, fail_open={self.fail_open})"

    def check(
        self,
        headers: Mapping[str, str],
        client_host: str | None = None,
    ) -> RateLimitResult | None:
        """Count one request and decide whether it may proceed.

        Args:
            headers: Request headers, used for X-Real-IP / X-Forwarded-For.
            client_host: Direct peer address, used when no proxy header is
                present.

        Returns:
            The admitted result, or None when the limiter failed and the
            request was let through.

        Raises:
            RateLimitExceededError: The client is over its budget, or the
                limiter failed while configured to fail closed.
        """

        try:
            key = derive_client_key(headers, fallback=client_host or self.fallback_key)
            result = self._backend.consume(key)
        except Exception:
            logger.exception(
                "rate_limit.internal_error",
                extra={"policy": self.name, "fail_open": self.fail_open},
            )
            if self.fail_open:
                return None
            raise RateLimitExceededError(
                code="rate_limit_unavailable",
                message="Rate limiting is temporarily unavailable. Try again later.",
                details={"policy": self.name},
            ) from None

        log_fields = {
            "policy": self.name,
            "key_hash": hash_client_key(key),
            "anonymous": key == self.fallback_key,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": self.policy.window_seconds,
        }

        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_fields)
            return result

        logger.warning(
            "rate_limit.exceeded",
            extra={**log_fields, "retry_after_s": result.retry_after_seconds},
        )
        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={
                "policy": self.name,
                "limit": result.limit,
                "remaining": result.remaining,
                "reset_at": result.reset_at,
                "retry_after": result.retry_after_seconds or 0,
            },
        )

    def stats(self) -> dict[str, Any]:
        return {"policy": self.name, "fail_open": self.fail_open, **self._backend.stats()}


class RateLimiterRegistry:
    """Owns one ``RateLimiter`` per configured policy for the app's lifetime.

    Attributes:
        enabled: When False, the ``rate_limit`` dependency admits everything
            without counting.
    """

    def __init__(
        self,
        limiters: Mapping[str, RateLimiter] | None = None,
        *,
        enabled: bool = True,
    ) -> None:
        self._limiters: dict[str, RateLimiter] = dict(limiters or {})
        self.enabled = enabled

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "RateLimiterRegistry":
        """Build a limiter for every policy in ``config.rate_limit.policies``."""

        limiters = {
            name: RateLimiter(
                name,
                policy,
                fail_open=config.app.rate_limit_fail_open,
                fallback_key=config.app.rate_limit_fallback_key,
                clock=clock,
            )
            for name, policy in config.rate_limit.policies.items()
        }
        logger.info(
            "rate_limit.registry_built",
            extra={
                "policies": sorted(limiters),
                "enabled": config.app.rate_limit_enabled,
                "fail_open": config.app.rate_limit_fail_open,
            },
        )
        return cls(limiters, enabled=config.app.rate_limit_enabled)

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def __iter__(self) -> Iterator[str]:
        return iter(self._limiters)

    def __len__(self) -> int:
        return len(self._limiters)

    def get(self, name: str) -> RateLimiter:
        """Return the limiter for ``name``.

        Raises:
            ConfigurationAppError: If no such policy is configured.
        """
        limiter = self._limiters.get(name)
        if limiter is None:
            raise ConfigurationAppError(
                code="rate_limit_policy_not_found",
                message=f"No rate limit policy named '{name}' is configured",
                details={"policy": name, "hint": "Add it to RATE_LIMIT_POLICIES"},
            )
        return limiter

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: limiter.stats() for name, limiter in self._limiters.items()}


def get_registry(request: Request) -> RateLimiterRegistry:
    """Return the registry the app factory attached to ``app.state``."""

    registry = getattr(request.app.state, "rate_limiters", None)
    if registry is None:
        raise ConfigurationAppError(
            code="rate_limit_registry_missing",
            message="Rate limiters are not configured for this application",
        )
    return registry


def rate_limit(policy_name: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the named policy.

    Usage:
        @router.post("/posts", dependencies=[Depends(rate_limit("posts.create"))])
        async def create_post(): ...

    Raises (from the dependency):
        RateLimitExceededError: rendered as HTTP 429 by the exception handlers.
    """

    async def enforce_rate_limit(request: Request) -> None:
        registry = get_registry(request)
        if not registry.enabled:
            return

        limiter = registry.get(policy_name)
        client_host = request.client.host if request.client else None
        limiter.check(request.headers, client_host)

    enforce_rate_limit.__name__ = f"enforce_rate_limit_{policy_name.replace('.', '_')}"
    return enforce_rate_limit
