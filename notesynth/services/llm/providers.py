"""
Provider Invokers

One-shot request/response wrappers around each LLM provider's HTTP API.
Each invoker knows its provider's auth scheme and JSON shapes; all of them
normalize failures into the same classification so retry and fallback policy
can stay provider-agnostic:

    HTTP 429                    → RateLimitedError
    other non-2xx               → ProviderError (carries status + body)
    timeout / connection error  → ProviderNetworkError
    body not JSON               → ProviderError
    JSON without usable text    → EmptyResponseError

No retry logic lives here.

Supported providers:
- groq: OpenAI-compatible chat completions, bearer token auth
- gemini: Google generateContent, API key as query parameter

Usage:
    async with httpx.AsyncClient() as client:
        invoker = build_invoker(config, api_key="...", client=client)
        text = await invoker.invoke(prompt)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from notesynth.enums.dispatch import ProviderName
from notesynth.models.dispatch import ProviderConfig
from notesynth.services.errors import (
    DispatchError,
    EmptyResponseError,
    ProviderError,
    ProviderNetworkError,
    RateLimitedError,
)
from notesynth.services.prompts import NOTE_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS_CODE = 429
MAX_ERROR_BODY_CHARS = 500


def build_messages(
    prompt: str,
    system_prompt: Optional[str] = None,
) -> list[dict[str, str]]:
    """
    Build messages list from prompt and optional system prompt.

    Args:
        prompt: User prompt text
        system_prompt: Optional system prompt

    Returns:
        List of message dicts for chat-completion APIs
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class ProviderInvoker(ABC):
    """
    Base class for provider invokers.

    Subclasses describe the request (build_request) and where the generated
    text lives in the response (extract_text); invoke() handles transport and
    failure classification.
    """

    DEFAULT_MODEL: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        api_key: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.config = config
        self.api_key = api_key
        self.client = client
        self.model: str = config.model or self.DEFAULT_MODEL

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    def build_request(self, prompt: str) -> dict[str, Any]:
        """Return keyword arguments for httpx.AsyncClient.post()."""

    @abstractmethod
    def extract_text(self, data: dict[str, Any]) -> str:
        """Pull the generated text out of a parsed response ('' if absent)."""

    async def invoke(self, prompt: str) -> str:
        """
        Send the prompt and return the generated text.

        Raises:
            RateLimitedError: Provider answered 429
            ProviderError: Any other failure status or an unparseable body
            ProviderNetworkError: No HTTP response was received
            EmptyResponseError: Response contained no usable text
        """
        request_kwargs = self.build_request(prompt)

        try:
            response = await self.client.post(
                timeout=self.config.timeout_seconds,
                **request_kwargs,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._classify_status(e.response) from e
        except httpx.TransportError as e:
            raise ProviderNetworkError(
                f"{self.name} request failed: {type(e).__name__}: {e}",
                provider=self.name,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned invalid JSON",
                provider=self.name,
                provider_status=response.status_code,
                details={"body": response.text[:MAX_ERROR_BODY_CHARS]},
            ) from e

        text = self.extract_text(data) if isinstance(data, dict) else ""
        if not text or not text.strip():
            raise EmptyResponseError(
                f"{self.name} returned no content",
                provider=self.name,
            )
        return text

    def _classify_status(self, response: httpx.Response) -> DispatchError:
        status = response.status_code
        if status == RATE_LIMIT_STATUS_CODE:
            logger.warning(f"{self.name} rate limited (HTTP 429)")
            return RateLimitedError(
                f"{self.name} rate limited",
                provider=self.name,
                details={"retry_after": response.headers.get("Retry-After")},
            )

        body = response.text[:MAX_ERROR_BODY_CHARS]
        logger.error(f"{self.name} error: HTTP {status} {response.reason_phrase}")
        return ProviderError(
            f"{self.name} error: HTTP {status} {response.reason_phrase}",
            provider=self.name,
            provider_status=status,
            details={"body": body},
        )


class GroqInvoker(ProviderInvoker):
    """Groq chat completions (OpenAI-compatible)."""

    URL = "https://api.groq.com/openai/v1/chat/completions"
    DEFAULT_MODEL = "llama-3.3-70b-versatile"
    DEFAULT_MAX_TOKENS = 4096

    def build_request(self, prompt: str) -> dict[str, Any]:
        return {
            "url": self.URL,
            "headers": {"Authorization": f"Bearer {self.api_key}"},
            "json": {
                "model": self.model,
                "messages": build_messages(prompt, NOTE_SYSTEM_PROMPT),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens or self.DEFAULT_MAX_TOKENS,
            },
        }

    def extract_text(self, data: dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else ""


class GeminiInvoker(ProviderInvoker):
    """Google Gemini generateContent."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_MODEL = "gemini-1.5-flash"
    DEFAULT_MAX_TOKENS = 2048

    def build_request(self, prompt: str) -> dict[str, Any]:
        return {
            "url": f"{self.BASE_URL}/{self.model}:generateContent",
            "params": {"key": self.api_key},
            "json": {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": self.config.temperature,
                    "topK": 40,
                    "topP": 0.8,
                    "maxOutputTokens": self.config.max_output_tokens or self.DEFAULT_MAX_TOKENS,
                },
            },
        }

    def extract_text(self, data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )


INVOKER_CLASSES: dict[str, type[ProviderInvoker]] = {
    ProviderName.GROQ.value: GroqInvoker,
    ProviderName.GEMINI.value: GeminiInvoker,
}


def build_invoker(
    config: ProviderConfig,
    api_key: str,
    client: httpx.AsyncClient,
) -> ProviderInvoker:
    """
    Create the invoker for a configured provider.

    Raises:
        ValueError: If no invoker exists for the provider name
    """
    try:
        invoker_cls = INVOKER_CLASSES[config.name]
    except KeyError:
        raise ValueError(f"Unknown provider: {config.name}") from None
    return invoker_cls(config, api_key=api_key, client=client)
