"""Unit tests for RateLimiter.check and RateLimiterRegistry."""

import logging
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.core.config import AppSettings, RateLimitPolicy, RateLimitSettings, Settings
from app.core.errors import ConfigurationAppError, RateLimitExceededError
from app.core.rate_limit import RateLimiter, RateLimiterRegistry, hash_client_key


def _limiter(clock, **policy_overrides) -> RateLimiter:
    policy = RateLimitPolicy(**{"window_seconds": 60, "ceiling": 2, "capacity": 10, **policy_overrides})
    return RateLimiter("test.policy", policy, clock=clock)


class TestCheck:
    """Admit/deny decisions for a single limiter."""

    def test_admits_up_to_ceiling_then_raises(self, clock) -> None:
        limiter = _limiter(clock)
        headers = {"x-real-ip": "203.0.113.5"}

        assert limiter.check(headers).allowed is True
        assert limiter.check(headers).allowed is True

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check(headers)

        error = exc_info.value
        assert error.code == "rate_limit_exceeded"
        assert error.details["policy"] == "test.policy"
        assert error.details["limit"] == 2
        assert error.details["remaining"] == 0
        assert error.details["retry_after"] == 60

    def test_window_reset_admits_again(self, clock) -> None:
        limiter = _limiter(clock, ceiling=1)
        headers = {"x-real-ip": "203.0.113.5"}

        limiter.check(headers)
        with pytest.raises(RateLimitExceededError):
            limiter.check(headers)

        clock.advance(61)
        assert limiter.check(headers).allowed is True

    def test_keys_come_from_forwarded_header(self, clock) -> None:
        limiter = _limiter(clock, ceiling=1)

        limiter.check({"x-forwarded-for": "10.0.0.1, 198.51.100.2"})
        # Same client behind a different first hop
        with pytest.raises(RateLimitExceededError):
            limiter.check({"x-forwarded-for": "10.0.0.9, 198.51.100.2"})

        assert limiter.check({"x-forwarded-for": "10.0.0.1, 198.51.100.3"}).allowed

    def test_peer_address_used_without_proxy_headers(self, clock) -> None:
        limiter = _limiter(clock, ceiling=1)

        limiter.check({}, client_host="192.0.2.1")
        assert limiter.check({}, client_host="192.0.2.2").allowed
        with pytest.raises(RateLimitExceededError):
            limiter.check({"x-real-ip": "192.0.2.1"})

    def test_unattributable_requests_share_one_bucket(self, clock) -> None:
        limiter = _limiter(clock, ceiling=1)

        limiter.check({})
        with pytest.raises(RateLimitExceededError):
            limiter.check({}, client_host=None)

    def test_limiters_are_independent(self, clock) -> None:
        signin = _limiter(clock, ceiling=1)
        feed = _limiter(clock, ceiling=1)
        headers = {"x-real-ip": "203.0.113.5"}

        signin.check(headers)
        with pytest.raises(RateLimitExceededError):
            signin.check(headers)

        assert feed.check(headers).allowed is True

    def test_exceeded_log_uses_hashed_key(self, clock, caplog) -> None:
        limiter = _limiter(clock, ceiling=1)
        headers = {"x-real-ip": "203.0.113.5"}
        limiter.check(headers)

        with caplog.at_level(logging.WARNING, logger="app.core.rate_limit"):
            with pytest.raises(RateLimitExceededError):
                limiter.check(headers)

        record = next(r for r in caplog.records if r.getMessage() == "rate_limit.exceeded")
        assert record.key_hash == hash_client_key("203.0.113.5")
        assert "203.0.113.5" not in record.key_hash


class TestInternalFailure:
    """Limiter faults must not take the endpoint down unless configured to."""

    @staticmethod
    def _broken_backend() -> Mock:
        backend = Mock(spec=AbstractRateLimiter)
        backend.consume.side_effect = RuntimeError("store corrupted")
        return backend

    def test_fail_open_admits(self, caplog) -> None:
        limiter = RateLimiter(
            "broken",
            RateLimitPolicy(),
            fail_open=True,
            backend=self._broken_backend(),
        )

        with caplog.at_level(logging.ERROR, logger="app.core.rate_limit"):
            assert limiter.check({"x-real-ip": "203.0.113.5"}) is None

        assert any(r.getMessage() == "rate_limit.internal_error" for r in caplog.records)

    def test_fail_closed_rejects(self) -> None:
        limiter = RateLimiter(
            "broken",
            RateLimitPolicy(),
            fail_open=False,
            backend=self._broken_backend(),
        )

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check({"x-real-ip": "203.0.113.5"})

        assert exc_info.value.code == "rate_limit_unavailable"


class TestRegistry:
    """Registry construction and lookup."""

    @staticmethod
    def _settings(**app_overrides) -> Settings:
        return Settings(
            app=AppSettings(**app_overrides),
            rate_limit=RateLimitSettings(
                policies={
                    "auth.signin": RateLimitPolicy(window_seconds=60, ceiling=20),
                    "posts.create": RateLimitPolicy(window_seconds=1800, ceiling=5),
                }
            ),
        )

    def test_builds_one_limiter_per_policy(self, clock) -> None:
        registry = RateLimiterRegistry.from_settings(self._settings(), clock=clock)

        assert set(registry) == {"auth.signin", "posts.create"}
        assert registry.get("posts.create").policy.ceiling == 5
        assert registry.get("auth.signin") is not registry.get("posts.create")

    def test_propagates_app_flags(self, clock) -> None:
        registry = RateLimiterRegistry.from_settings(
            self._settings(
                rate_limit_enabled=False,
                rate_limit_fail_open=False,
                rate_limit_fallback_key="unknown-client",
            ),
            clock=clock,
        )

        assert registry.enabled is False
        limiter = registry.get("auth.signin")
        assert limiter.fail_open is False
        assert limiter.fallback_key == "unknown-client"

    def test_unknown_policy_raises_configuration_error(self) -> None:
        registry = RateLimiterRegistry()

        with pytest.raises(ConfigurationAppError) as exc_info:
            registry.get("nope")

        assert exc_info.value.code == "rate_limit_policy_not_found"

    def test_stats_reports_tracked_keys(self, clock) -> None:
        registry = RateLimiterRegistry.from_settings(self._settings(), clock=clock)
        registry.get("auth.signin").check({"x-real-ip": "203.0.113.5"})

        stats = registry.stats()

        assert stats["auth.signin"]["entries"] == 1
        assert stats["auth.signin"]["limit"] == 20
        assert stats["posts.create"]["entries"] == 0
