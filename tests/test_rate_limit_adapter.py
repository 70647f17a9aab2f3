"""Unit tests for the in-memory LRU rate limiter adapter."""

import threading
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryLRURateLimiter


def test_allows_up_to_limit_in_same_window() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=3, window_seconds=60, capacity=10, clock=clock)

    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is True
    result = limiter.consume("k")
    assert result.allowed is True
    assert result.remaining == 0
    assert result.reset_at == 1060


def test_blocks_when_over_limit_without_counting() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=2, window_seconds=60, capacity=10, clock=clock)

    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is True

    clock.return_value = 1015.0
    blocked = limiter.consume("k")
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 45
    assert blocked.reset_at == 1060

    # Still blocked, still anchored to the first request
    assert limiter.consume("k").reset_at == 1060


def test_hundred_per_minute_then_reset() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=100, window_seconds=60, capacity=500, clock=clock)

    for _ in range(100):
        assert limiter.consume("X").allowed is True
    assert limiter.consume("X").allowed is False

    clock.return_value = 1060.5
    result = limiter.consume("X")
    assert result.allowed is True
    assert result.remaining == 99


def test_window_is_anchored_to_first_request() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=2, window_seconds=10, capacity=10, clock=clock)

    assert limiter.consume("k").allowed is True
    clock.return_value = 1009.0
    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is False

    # Window opened at 1000, so it has ended by 1010.5 despite the hit at 1009
    clock.return_value = 1010.5
    assert limiter.consume("k").allowed is True


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=1, window_seconds=60, capacity=10, clock=clock)

    assert limiter.consume("k1").allowed is True
    assert limiter.consume("k1").allowed is False

    assert limiter.consume("k2").allowed is True


def test_lru_eviction_scenario() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=1, window_seconds=60, capacity=2, clock=clock)

    assert limiter.consume("A").allowed is True
    assert limiter.consume("A").allowed is False
    assert limiter.consume("B").allowed is True
    assert limiter.consume("C").allowed is True  # evicts "A"
    assert limiter.consume("A").allowed is True  # "A" starts over

    stats = limiter.stats()
    assert stats["entries"] == 2
    assert stats["evictions"] == 2


def test_evicted_key_count_restarts_from_zero() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryLRURateLimiter(limit=3, window_seconds=60, capacity=1, clock=clock)

    limiter.consume("A")
    limiter.consume("A")
    limiter.consume("B")

    assert limiter.consume("A").remaining == 2


def test_concurrent_consumers_never_exceed_limit() -> None:
    limiter = InMemoryLRURateLimiter(limit=50, window_seconds=60, capacity=10)
    allowed: list[bool] = []
    lock = threading.Lock()

    def _worker() -> None:
        for _ in range(20):
            result = limiter.consume("shared")
            with lock:
                allowed.append(result.allowed)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(allowed) == 50
    assert len(allowed) == 200


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60, "capacity": 10},
        {"limit": 1, "window_seconds": 0, "capacity": 10},
        {"limit": 1, "window_seconds": 60, "capacity": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryLRURateLimiter(**kwargs)


def test_empty_key_is_rejected() -> None:
    limiter = InMemoryLRURateLimiter(limit=1, window_seconds=60, capacity=10)

    with pytest.raises(ValueError):
        limiter.consume("")
