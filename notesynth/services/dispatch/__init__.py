"""
Multi-provider LLM dispatch core.

Layers, innermost first:
    RateLimiter / ConcurrencyGate  per-provider pacing (limits.py)
    RetryController                backoff on rate limits (retry.py)
    FallbackOrchestrator           provider priority fallback (orchestrator.py)
    BatchDispatcher                bounded concurrent batches (batch.py)
"""

from notesynth.services.dispatch.batch import BatchDispatcher
from notesynth.services.dispatch.limits import ConcurrencyGate, ProviderState, RateLimiter
from notesynth.services.dispatch.orchestrator import FallbackOrchestrator
from notesynth.services.dispatch.pool import (
    ProviderPool,
    ProviderRuntime,
    close_provider_pool,
    get_provider_pool,
    reset_provider_pool,
)
from notesynth.services.dispatch.retry import RetryController

__all__ = [
    "BatchDispatcher",
    "ConcurrencyGate",
    "FallbackOrchestrator",
    "ProviderPool",
    "ProviderRuntime",
    "ProviderState",
    "RateLimiter",
    "RetryController",
    "close_provider_pool",
    "get_provider_pool",
    "reset_provider_pool",
]
