"""
Dispatch Error Taxonomy

Per-item errors (contained within one item's processing and converted to a
Result):
    RateLimitedError      provider signalled throttling (HTTP 429); retried
    RetriesExhaustedError rate limiting outlasted max_retries; try next provider
    ProviderError         non-transient provider failure; next provider at once
    ProviderNetworkError  transport failure (timeout, reset); a ProviderError
    EmptyResponseError    well-formed response without text; next provider
    SourceFetchError      content source failed; no provider is called

Batch-fatal errors (raised before any item is processed):
    ConfigurationError    no provider credentials, unknown provider names
    TemplateError         prompt template lacks its substitution marker

"All providers exhausted" is deliberately not an exception: it resolves to a
degraded Result that echoes the raw text.
"""

from typing import Optional

from notesynth.enums.dispatch import ErrorKind
from notesynth.middleware.error_handling import LLMError, ServiceError


class DispatchError(LLMError):
    """Base class for classified per-item failures."""

    error_kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


class RateLimitedError(DispatchError):
    """Provider answered with HTTP 429 (too many requests)."""

    error_kind = ErrorKind.RATE_LIMITED
    error_code = "provider_rate_limited"


class RetriesExhaustedError(DispatchError):
    """Provider kept rate limiting after every allowed retry."""

    error_kind = ErrorKind.RATE_LIMITED
    error_code = "provider_retries_exhausted"

    def __init__(self, provider: str, attempts: int):
        super().__init__(
            f"{provider} still rate limited after {attempts} attempts",
            provider=provider,
            details={"attempts": attempts},
        )
        self.attempts = attempts


class ProviderError(DispatchError):
    """
    Non-transient provider failure.

    Attributes:
        provider_status: HTTP status returned by the provider, if any
    """

    error_kind = ErrorKind.PROVIDER_ERROR
    error_code = "provider_error"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        provider_status: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, provider=provider, details=details)
        self.provider_status = provider_status


class ProviderNetworkError(ProviderError):
    """Request never got an HTTP response (timeout, connection reset)."""

    error_code = "provider_network_error"


class EmptyResponseError(DispatchError):
    """Provider response parsed fine but contained no usable text."""

    error_kind = ErrorKind.EMPTY_RESPONSE
    error_code = "provider_empty_response"


class SourceFetchError(DispatchError):
    """Content source could not supply an item's text."""

    error_kind = ErrorKind.SOURCE_FETCH_FAILED
    error_code = "source_fetch_failed"


class ConfigurationError(ServiceError):
    """Batch cannot start: no usable providers or invalid request setup."""

    status_code = 503
    error_code = "configuration_error"
    error_kind = ErrorKind.CONFIGURATION_ERROR


class TemplateError(ConfigurationError):
    """Prompt template is missing its substitution marker."""

    status_code = 422
    error_code = "invalid_prompt_template"


class BatchCancelledError(Exception):
    """Cancellation was observed before starting a provider invocation."""
