"""
Per-Provider Pacing Primitives

RateLimiter enforces a minimum interval between request starts to one
provider. ConcurrencyGate bounds how many requests to one provider are in
flight. Each provider gets one instance of each, owned by its ProviderRuntime.

Ordering:
    acquire_slot() callers pass through a FIFO asyncio.Lock, so timing
    decisions are made strictly in arrival order. Inside the lock a caller
    computes the remaining wait, sleeps it, and stamps the new request time
    before releasing, so no two callers can observe the same stale timestamp.

Usage:
    limiter = RateLimiter("groq", min_interval_ms=4000)
    gate = ConcurrencyGate("groq", max_concurrent=2)

    async def call():
        await limiter.acquire_slot()
        return await invoker.invoke(prompt)

    text = await gate.with_slot(call)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ProviderState:
    """
    Mutable timing state of one provider.

    Owned by exactly one RateLimiter and only touched while holding `lock`.
    """

    last_request_at: Optional[float] = None  # clock seconds, None = never
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class RateLimiter:
    """
    Minimum-interval limiter for one provider.

    Attributes:
        provider: Provider name, for logging
        min_interval: Minimum seconds between two request starts
    """

    def __init__(
        self,
        provider: str,
        min_interval_ms: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.min_interval: float = max(0.0, min_interval_ms / 1000.0)
        self._clock = clock
        self._sleep = sleep
        self._state = ProviderState()

    @property
    def last_request_at(self) -> Optional[float]:
        """Clock reading of the most recent granted slot."""
        return self._state.last_request_at

    async def acquire_slot(self) -> float:
        """
        Wait until a request to this provider may start, and reserve it.

        Returns:
            The clock reading stamped for this request
        """
        if self.min_interval == 0:
            stamp = self._clock()
            self._state.last_request_at = stamp
            return stamp

        async with self._state.lock:
            last = self._state.last_request_at
            if last is not None:
                elapsed = self._clock() - last
                # Negative elapsed means the clock went backwards: no wait.
                if 0 <= elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug(f"{self.provider}: waiting {wait:.3f}s for rate limit slot")
                    await self._sleep(wait)

            stamp = self._clock()
            self._state.last_request_at = stamp
            return stamp


class ConcurrencyGate:
    """
    Counting semaphore bounding in-flight requests to one provider.

    Excess callers queue in arrival order; a slot is released when the
    wrapped call settles, whether it returns, raises, or is cancelled.
    """

    def __init__(self, provider: str, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.provider = provider
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self.peak = 0

    @property
    def active(self) -> int:
        """Number of calls currently holding a slot."""
        return self._active

    async def with_slot(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` once a slot is free and return its result."""
        async with self._semaphore:
            self._active += 1
            self.peak = max(self.peak, self._active)
            try:
                return await fn()
            finally:
                self._active -= 1
