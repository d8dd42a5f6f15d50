"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests: a fake
clock for deterministic pacing tests, scripted invokers standing in for LLM
providers, and helpers to assemble provider pools around them.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest
from dotenv import load_dotenv

_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Settings and the SlowAPI limiter are created at import time, so the test
# environment must be in place before any notesynth module is imported.
os.environ.update(
    {
        "GROQ_API_KEY": "test-groq-key",
        "GEMINI_API_KEY": "test-gemini-key",
        "PROVIDER_ORDER": "groq,gemini",
        "RATE_LIMIT_ENABLED": "false",
        "PROMPT_TEMPLATE_PATH": "",
        "DEBUG": "true",
    }
)
os.environ.pop("BATCH_CONCURRENCY", None)

from notesynth.models.dispatch import ProviderConfig, WorkItem  # noqa: E402
from notesynth.services.dispatch import ProviderPool, RetryController  # noqa: E402
from notesynth.services.dispatch.batch import BatchDispatcher  # noqa: E402
from notesynth.services.dispatch.orchestrator import FallbackOrchestrator  # noqa: E402
from notesynth.services.prompts import PromptTemplate  # noqa: E402


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """
    Deterministic monotonic clock.

    sleep() advances the clock instead of waiting and records the duration,
    then yields to the event loop once so other tasks can run.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


Outcome = Union[str, Exception, Callable[[str], str]]


class ScriptedInvoker:
    """
    Stand-in for a provider invoker.

    Each call consumes the next scripted outcome (text to return, exception
    to raise, or a callable of the prompt); once the script is used up every
    call returns `default`.
    """

    def __init__(
        self,
        name: str,
        script: Optional[list[Outcome]] = None,
        default: Outcome = "## Notes",
        clock: Optional[FakeClock] = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.script = list(script or [])
        self.default = default
        self.clock = clock
        self.delay = delay
        self.calls: list[str] = []
        self.started_at: list[float] = []
        self.active = 0
        self.peak = 0

    async def invoke(self, prompt: str) -> str:
        self.calls.append(prompt)
        if self.clock is not None:
            self.started_at.append(self.clock())
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            outcome = self.script.pop(0) if self.script else self.default
            if isinstance(outcome, Exception):
                raise outcome
            if callable(outcome):
                return outcome(prompt)
            return outcome
        finally:
            self.active -= 1


def make_config(name: str, **overrides: Any) -> ProviderConfig:
    """Provider policy without pacing delays unless overridden."""
    policy = {
        "min_interval_ms": 0,
        "max_concurrent": 5,
        "max_retries": 3,
        "base_backoff_ms": 4000,
        "backoff_multiplier": 1.5,
        "batch_concurrency": 3,
    }
    policy.update(overrides)
    return ProviderConfig(name=name, **policy)


def make_pool(
    invokers: list[ScriptedInvoker],
    clock: FakeClock,
    configs: Optional[dict[str, ProviderConfig]] = None,
    **kwargs: Any,
) -> ProviderPool:
    configs = configs or {}
    all_configs = {inv.name: configs.get(inv.name) or make_config(inv.name) for inv in invokers}
    return ProviderPool.from_invokers(
        {inv.name: inv for inv in invokers},
        all_configs,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


def make_dispatcher(pool: ProviderPool, clock: FakeClock) -> BatchDispatcher:
    orchestrator = FallbackOrchestrator(pool, RetryController(sleep=clock.sleep))
    return BatchDispatcher(pool, orchestrator, template=PromptTemplate("Notes for: {{TRANSCRIPT}}"))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def template() -> PromptTemplate:
    return PromptTemplate("Notes for: {{TRANSCRIPT}}")


@pytest.fixture
def items() -> list[WorkItem]:
    return [
        WorkItem(id=f"lec-{n}", title=f"Lecture {n}", raw_text=f"caption text {n}")
        for n in range(1, 4)
    ]
