"""
Retry/Backoff Controller

Wraps one provider's invoker with bounded retries for rate-limit signals,
using tenacity for the retry loop:

- RateLimitedError: back off base_backoff_ms, then base * multiplier, ...
  for up to max_retries retries (max_retries + 1 attempts in total), then
  raise RetriesExhaustedError so the orchestrator moves to the next provider
- any other error: re-raised at once, no delay
- ProviderNetworkError is also retried when the provider's policy sets
  retry_on_network_errors

Every attempt, retries included, waits for the provider's ConcurrencyGate and
RateLimiter before invoking, so retries never bypass pacing.

Usage:
    controller = RetryController()
    text = await controller.call_with_retry(runtime, prompt, on_retry=report)
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from notesynth.models.dispatch import RetryAttempt
from notesynth.services.dispatch.limits import Sleep
from notesynth.services.dispatch.pool import ProviderRuntime
from notesynth.services.errors import (
    BatchCancelledError,
    ProviderNetworkError,
    RateLimitedError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)

RetryCallback = Callable[[RetryAttempt], Awaitable[None]]


class RetryController:
    """Bounded exponential-backoff retries around one provider."""

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    def _retryable(self, runtime: ProviderRuntime) -> tuple[type[Exception], ...]:
        if runtime.config.retry_on_network_errors:
            return (RateLimitedError, ProviderNetworkError)
        return (RateLimitedError,)

    def _wait(self, runtime: ProviderRuntime) -> wait_exponential:
        config = runtime.config
        kwargs = {
            "multiplier": config.base_backoff_ms / 1000.0,
            "exp_base": config.backoff_multiplier,
        }
        if config.max_backoff_ms is not None:
            kwargs["max"] = config.max_backoff_ms / 1000.0
        return wait_exponential(**kwargs)

    async def call_with_retry(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        *,
        on_retry: Optional[RetryCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Invoke the provider, retrying rate-limit failures with backoff.

        Args:
            runtime: Provider to call
            prompt: Fully rendered prompt
            on_retry: Awaited with a RetryAttempt before each backoff sleep
            cancel_event: When set, no further attempt is started

        Returns:
            Generated text

        Raises:
            RetriesExhaustedError: Still rate limited after max_retries retries
            BatchCancelledError: Cancellation observed before an attempt
            DispatchError: Any non-retryable provider failure
        """
        name = runtime.name
        attempts = 0
        pending: Optional[RetryAttempt] = None

        def record_backoff(retry_state: RetryCallState) -> None:
            nonlocal pending
            backoff_s = retry_state.next_action.sleep if retry_state.next_action else 0.0
            pending = RetryAttempt(
                provider=name,
                attempt_number=retry_state.attempt_number,
                backoff_ms=backoff_s * 1000.0,
            )
            logger.warning(
                f"{name} rate limited (attempt {retry_state.attempt_number}/"
                f"{runtime.config.max_retries + 1}), retrying in {backoff_s:.1f}s"
            )

        async def backoff_sleep(seconds: float) -> None:
            if on_retry is not None and pending is not None:
                await on_retry(pending)
            await self._sleep(seconds)

        async def attempt_once() -> str:
            nonlocal attempts
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelledError()

            async def paced_invoke() -> str:
                await runtime.limiter.acquire_slot()
                # Cancellation may have arrived while queued for a slot
                if cancel_event is not None and cancel_event.is_set():
                    raise BatchCancelledError()
                return await runtime.invoker.invoke(prompt)

            attempts += 1
            return await runtime.gate.with_slot(paced_invoke)

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(self._retryable(runtime)),
            stop=stop_after_attempt(runtime.config.max_retries + 1),
            wait=self._wait(runtime),
            before_sleep=record_backoff,
            sleep=backoff_sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await attempt_once()
        except RateLimitedError as e:
            raise RetriesExhaustedError(name, attempts) from e

        # AsyncRetrying either returns from the loop body or raises
        raise RetriesExhaustedError(name, attempts)
