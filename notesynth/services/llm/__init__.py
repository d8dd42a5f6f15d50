"""
LLM Service Module

HTTP invokers for the supported LLM providers. Each invoker performs one
request and normalizes failures into the dispatch error taxonomy; pacing,
retries, and fallback live in notesynth.services.dispatch.

Usage:
    from notesynth.services.llm import build_invoker

    invoker = build_invoker(config, api_key, client)
    text = await invoker.invoke(prompt)
"""

from notesynth.services.llm.providers import (
    INVOKER_CLASSES,
    GeminiInvoker,
    GroqInvoker,
    ProviderInvoker,
    build_invoker,
    build_messages,
)

__all__ = [
    "INVOKER_CLASSES",
    "GeminiInvoker",
    "GroqInvoker",
    "ProviderInvoker",
    "build_invoker",
    "build_messages",
]
