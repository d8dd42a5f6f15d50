"""
Unit tests for per-provider pacing: RateLimiter and ConcurrencyGate.

Timing tests run against a fake clock, so they are deterministic and fast.
"""

import asyncio

import pytest

from notesynth.services.dispatch.limits import ConcurrencyGate, RateLimiter


class TestRateLimiter:
    """Tests for minimum-interval spacing of request starts."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_are_spaced_by_min_interval(self, clock) -> None:
        """N concurrent acquisitions produce stamps at least M apart."""
        limiter = RateLimiter("groq", min_interval_ms=4000, clock=clock, sleep=clock.sleep)

        stamps = await asyncio.gather(*(limiter.acquire_slot() for _ in range(5)))

        ordered = sorted(stamps)
        gaps = [b - a for a, b in zip(ordered, ordered[1:])]
        assert all(gap >= 4.0 for gap in gaps)
        assert clock.sleeps == [4.0] * 4

    @pytest.mark.asyncio
    async def test_stamps_follow_arrival_order(self, clock) -> None:
        """The lock is FIFO: earlier callers get earlier slots."""
        limiter = RateLimiter("groq", min_interval_ms=1000, clock=clock, sleep=clock.sleep)

        stamps = await asyncio.gather(*(limiter.acquire_slot() for _ in range(3)))

        assert stamps == sorted(stamps)
        assert limiter.last_request_at == stamps[-1]

    @pytest.mark.asyncio
    async def test_no_wait_when_interval_already_elapsed(self, clock) -> None:
        limiter = RateLimiter("gemini", min_interval_ms=1000, clock=clock, sleep=clock.sleep)
        await limiter.acquire_slot()

        clock.now += 5.0
        await limiter.acquire_slot()

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_waits_only_the_remaining_interval(self, clock) -> None:
        limiter = RateLimiter("gemini", min_interval_ms=1000, clock=clock, sleep=clock.sleep)
        await limiter.acquire_slot()

        clock.now += 0.25
        await limiter.acquire_slot()

        assert clock.sleeps == [pytest.approx(0.75)]

    @pytest.mark.asyncio
    async def test_zero_interval_never_waits(self, clock) -> None:
        limiter = RateLimiter("groq", min_interval_ms=0, clock=clock, sleep=clock.sleep)

        await asyncio.gather(*(limiter.acquire_slot() for _ in range(10)))

        assert clock.sleeps == []
        assert limiter.last_request_at == clock.now

    @pytest.mark.asyncio
    async def test_clock_going_backwards_does_not_wait(self, clock) -> None:
        """Negative elapsed time is treated as 'interval satisfied'."""
        limiter = RateLimiter("groq", min_interval_ms=4000, clock=clock, sleep=clock.sleep)
        await limiter.acquire_slot()

        clock.now -= 10.0
        stamp = await limiter.acquire_slot()

        assert clock.sleeps == []
        assert stamp == clock.now


class TestConcurrencyGate:
    """Tests for bounding in-flight calls per provider."""

    @pytest.mark.asyncio
    async def test_at_most_max_concurrent_calls_in_flight(self) -> None:
        gate = ConcurrencyGate("groq", max_concurrent=2)
        observed: list[int] = []

        async def call() -> str:
            observed.append(gate.active)
            await asyncio.sleep(0.01)
            return "ok"

        results = await asyncio.gather(*(gate.with_slot(call) for _ in range(6)))

        assert results == ["ok"] * 6
        assert max(observed) <= 2
        assert gate.peak == 2
        assert gate.active == 0

    @pytest.mark.asyncio
    async def test_slot_released_when_call_raises(self) -> None:
        gate = ConcurrencyGate("groq", max_concurrent=1)

        async def failing() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await gate.with_slot(failing)

        async def ok() -> str:
            return "ok"

        assert await gate.with_slot(ok) == "ok"
        assert gate.active == 0

    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            ConcurrencyGate("groq", max_concurrent=0)
