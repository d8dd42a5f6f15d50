"""
Provider Pool

Holds one ProviderRuntime (config, invoker, rate limiter, concurrency gate)
per credentialed provider. Limiter and gate state is process-wide: every
batch dispatched in this process shares the same pacing for a provider, so
two concurrent batches cannot together exceed a provider's limits.

Usage:
    from notesynth.services.dispatch.pool import get_provider_pool

    pool = get_provider_pool()
    order = pool.resolve_order(["gemini", "groq"])
    runtime = pool.get(order[0])
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from notesynth.config import Settings, get_provider_configs, get_settings
from notesynth.models.dispatch import ProviderConfig
from notesynth.services.dispatch.limits import Clock, ConcurrencyGate, RateLimiter, Sleep
from notesynth.services.errors import ConfigurationError
from notesynth.services.llm.providers import ProviderInvoker, build_invoker

logger = logging.getLogger(__name__)

# Used when a batch has no provider to take its policy from (captions only)
DEFAULT_BATCH_CONCURRENCY = 3


@dataclass
class ProviderRuntime:
    """Everything needed to call one provider under its pacing policy."""

    config: ProviderConfig
    invoker: ProviderInvoker
    limiter: RateLimiter
    gate: ConcurrencyGate

    @property
    def name(self) -> str:
        return self.config.name


class ProviderPool:
    """
    Registry of usable providers.

    Attributes:
        known_names: Every provider with a policy, credentialed or not
        default_order: Configured priority order
    """

    def __init__(
        self,
        runtimes: dict[str, ProviderRuntime],
        known_names: Optional[Iterable[str]] = None,
        default_order: Optional[list[str]] = None,
        batch_concurrency: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._runtimes = runtimes
        self.known_names = set(known_names or runtimes)
        self.default_order = default_order or list(runtimes)
        self._batch_concurrency = batch_concurrency
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        configs: Optional[dict[str, ProviderConfig]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "ProviderPool":
        """Build runtimes for every provider that has an API key."""
        settings = settings or get_settings()
        configs = configs if configs is not None else get_provider_configs()
        client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

        runtimes: dict[str, ProviderRuntime] = {}
        for name, config in configs.items():
            api_key = settings.provider_credentials.get(name, "")
            if not api_key:
                logger.info(f"Provider {name} has no API key configured, skipping")
                continue
            runtimes[name] = ProviderRuntime(
                config=config,
                invoker=build_invoker(config, api_key=api_key, client=client),
                limiter=RateLimiter(name, config.min_interval_ms),
                gate=ConcurrencyGate(name, config.max_concurrent),
            )

        logger.info(f"Provider pool ready: {sorted(runtimes) or 'no providers'}")
        return cls(
            runtimes,
            known_names=configs,
            default_order=settings.provider_order,
            batch_concurrency=settings.BATCH_CONCURRENCY,
            client=client,
        )

    @classmethod
    def from_invokers(
        cls,
        invokers: dict[str, ProviderInvoker],
        configs: dict[str, ProviderConfig],
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        batch_concurrency: Optional[int] = None,
    ) -> "ProviderPool":
        """Build a pool around ready-made invokers (tests, embedding)."""
        runtimes = {
            name: ProviderRuntime(
                config=configs[name],
                invoker=invoker,
                limiter=RateLimiter(name, configs[name].min_interval_ms, clock=clock, sleep=sleep),
                gate=ConcurrencyGate(name, configs[name].max_concurrent),
            )
            for name, invoker in invokers.items()
        }
        return cls(
            runtimes,
            known_names=configs,
            default_order=list(invokers),
            batch_concurrency=batch_concurrency,
        )

    @property
    def available(self) -> list[str]:
        """Names of credentialed providers, in configured priority order."""
        ordered = [name for name in self.default_order if name in self._runtimes]
        return ordered + sorted(name for name in self._runtimes if name not in ordered)

    def get(self, name: str) -> ProviderRuntime:
        try:
            return self._runtimes[name]
        except KeyError:
            raise ConfigurationError(f"Provider '{name}' is not available") from None

    def resolve_order(self, requested: Optional[list[str]] = None) -> list[str]:
        """
        Turn a requested priority list into the providers a batch will use.

        Unknown names are rejected; known providers without credentials are
        dropped; duplicates keep their first position.

        Raises:
            ConfigurationError: Unknown provider name or nothing usable left
        """
        names = [n.strip().lower() for n in (requested or self.default_order) if n.strip()]

        unknown = [n for n in names if n not in self.known_names]
        if unknown:
            raise ConfigurationError(
                f"Unknown provider(s): {', '.join(unknown)}",
                details={"known": sorted(self.known_names)},
            )

        order: list[str] = []
        for name in names:
            if name in self._runtimes and name not in order:
                order.append(name)

        if not order:
            raise ConfigurationError(
                "No LLM provider credentials configured for the requested providers",
                details={"requested": names},
            )
        return order

    def default_batch_concurrency(self, order: list[str]) -> int:
        """Batch concurrency override, else the primary provider's policy."""
        if self._batch_concurrency:
            return self._batch_concurrency
        if not order:
            return DEFAULT_BATCH_CONCURRENCY
        return self.get(order[0]).config.batch_concurrency

    async def aclose(self) -> None:
        """Close the shared HTTP client, if this pool owns one."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Process-wide pool, created lazily
_provider_pool: Optional[ProviderPool] = None


def get_provider_pool() -> ProviderPool:
    """Get the shared provider pool, building it on first use."""
    global _provider_pool
    if _provider_pool is None:
        _provider_pool = ProviderPool.from_settings()
    return _provider_pool


def reset_provider_pool() -> None:
    """Forget the shared pool (tests). Does not close its client."""
    global _provider_pool
    _provider_pool = None


async def close_provider_pool() -> None:
    """Close and forget the shared pool (application shutdown)."""
    global _provider_pool
    if _provider_pool is not None:
        await _provider_pool.aclose()
        _provider_pool = None
