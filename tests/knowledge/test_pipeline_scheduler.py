"""Unit tests for request pacing."""

from __future__ import annotations

import pytest

from src.knowledge.pipeline.scheduler import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_first_call_does_not_wait(self) -> None:
        """The first call returns immediately."""
        clock = FakeClock()
        limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)

        assert limiter.wait() == 0.0
        assert clock.sleeps == []

    def test_enforces_interval(self) -> None:
        """Back-to-back calls wait out the remaining interval."""
        clock = FakeClock()
        limiter = RateLimiter(1.5, clock=clock, sleep=clock.sleep)

        limiter.wait()
        clock.now += 0.5
        waited = limiter.wait()

        assert waited == pytest.approx(1.0)
        assert clock.sleeps == [pytest.approx(1.0)]

    def test_no_wait_after_interval_elapsed(self) -> None:
        """Slow callers are not delayed further."""
        clock = FakeClock()
        limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)

        limiter.wait()
        clock.now += 2.0

        assert limiter.wait() == 0.0

    def test_reset(self) -> None:
        """After reset the next call is immediate."""
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        limiter.wait()

        limiter.reset()

        assert limiter.wait() == 0.0

    def test_zero_interval(self) -> None:
        """A zero interval never sleeps."""
        clock = FakeClock()
        limiter = RateLimiter(0, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            limiter.wait()

        assert clock.sleeps == []

    def test_negative_interval_rejected(self) -> None:
        """Negative intervals are invalid."""
        with pytest.raises(ValueError):
            RateLimiter(-1)
