"""
Dispatch-related enums.

Defines enums for LLM providers, per-item failure classification, and the
progress events emitted while a batch runs.
"""

from enum import Enum


class ProviderName(str, Enum):
    """LLM providers with a built-in invoker, in default priority order."""

    GROQ = "groq"  # OpenAI-compatible chat completions, fast
    GEMINI = "gemini"  # Google generateContent, fallback


class ErrorKind(str, Enum):
    """
    Classification of a per-item failure.

    Every failed Result carries one of these so callers can report partial
    batches clearly ("8 of 10 succeeded, 2 fell back to raw captions").
    """

    # Provider signalled throttling (HTTP 429). Retried with backoff.
    RATE_LIMITED = "rate_limited"

    # Non-transient provider failure: bad request, auth, server error, network.
    PROVIDER_ERROR = "provider_error"

    # Well-formed response without any usable text.
    EMPTY_RESPONSE = "empty_response"

    # Every provider failed; the Result echoes the raw text instead.
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"

    # Content source could not supply the item's text. No provider was called.
    SOURCE_FETCH_FAILED = "source_fetch_failed"

    # No provider credentials or invalid template. Batch-fatal.
    CONFIGURATION_ERROR = "configuration_error"

    # Unclassified exception raised while processing one item.
    UNKNOWN = "unknown"


class ProgressEventType(str, Enum):
    """Events published to a progress sink during a batch."""

    ITEM_STARTED = "item_started"  # item got its batch slot
    ITEM_FETCHED = "item_fetched"  # content source supplied the text
    ITEM_RETRYING = "item_retrying"
    ITEM_COMPLETED = "item_completed"
    BATCH_COMPLETED = "batch_completed"
    BATCH_FAILED = "batch_failed"
    BATCH_CANCELLED = "batch_cancelled"
