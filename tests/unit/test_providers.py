"""
Unit tests for provider invokers.

Requests are served by httpx.MockTransport, so these tests check the exact
request shapes each provider expects and the failure classification that
retry and fallback logic depend on.
"""

import json

import httpx
import pytest

from notesynth.models.dispatch import ProviderConfig
from notesynth.services.errors import (
    EmptyResponseError,
    ProviderError,
    ProviderNetworkError,
    RateLimitedError,
)
from notesynth.services.llm.providers import (
    GeminiInvoker,
    GroqInvoker,
    build_invoker,
    build_messages,
)


def groq_reply(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def gemini_reply(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


def make_invoker(name: str, handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return build_invoker(ProviderConfig(name=name, **config), api_key="secret", client=client)


class TestBuildMessages:
    def test_with_system_prompt(self) -> None:
        messages = build_messages("hello", "be brief")
        assert messages == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
        ]

    def test_without_system_prompt(self) -> None:
        assert build_messages("hello") == [{"role": "user", "content": "hello"}]


class TestGroqInvoker:
    """Tests for the OpenAI-compatible Groq invoker."""

    @pytest.mark.asyncio
    async def test_success_request_shape(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=groq_reply("## Notes"))

        invoker = make_invoker("groq", handler, model="llama-3.3-70b-versatile", max_output_tokens=4096)

        assert isinstance(invoker, GroqInvoker)
        assert await invoker.invoke("PROMPT") == "## Notes"
        assert seen["url"] == GroqInvoker.URL
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["model"] == "llama-3.3-70b-versatile"
        assert seen["body"]["max_tokens"] == 4096
        assert seen["body"]["messages"][-1] == {"role": "user", "content": "PROMPT"}

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "7"}, text="slow down")

        invoker = make_invoker("groq", handler)

        with pytest.raises(RateLimitedError) as exc_info:
            await invoker.invoke("PROMPT")
        assert exc_info.value.provider == "groq"
        assert exc_info.value.details == {"retry_after": "7"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 500, 503])
    async def test_other_failure_status_is_provider_error(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text="bad things")

        invoker = make_invoker("groq", handler)

        with pytest.raises(ProviderError) as exc_info:
            await invoker.invoke("PROMPT")
        assert not isinstance(exc_info.value, RateLimitedError)
        assert exc_info.value.provider_status == status
        assert exc_info.value.details["body"] == "bad things"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": []},
            {"choices": [{"message": {"content": ""}}]},
            {"choices": [{"message": {"content": "   \n"}}]},
            {"choices": [{"message": {}}]},
            {},
        ],
    )
    async def test_content_free_reply_is_empty_response(self, payload) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        invoker = make_invoker("groq", handler)

        with pytest.raises(EmptyResponseError):
            await invoker.invoke("PROMPT")

    @pytest.mark.asyncio
    async def test_invalid_json_is_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        invoker = make_invoker("groq", handler)

        with pytest.raises(ProviderError):
            await invoker.invoke("PROMPT")

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection reset", request=request)

        invoker = make_invoker("groq", handler)

        with pytest.raises(ProviderNetworkError):
            await invoker.invoke("PROMPT")


class TestGeminiInvoker:
    """Tests for the Gemini generateContent invoker."""

    @pytest.mark.asyncio
    async def test_success_request_shape(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_reply("## Part one", "\n\nPart two"))

        invoker = make_invoker("gemini", handler, model="gemini-1.5-flash", max_output_tokens=2048)

        assert isinstance(invoker, GeminiInvoker)
        assert await invoker.invoke("PROMPT") == "## Part one\n\nPart two"
        assert seen["path"].endswith("/models/gemini-1.5-flash:generateContent")
        assert seen["key"] == "secret"
        assert seen["body"]["contents"] == [{"parts": [{"text": "PROMPT"}]}]
        assert seen["body"]["generationConfig"]["maxOutputTokens"] == 2048

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}})

        invoker = make_invoker("gemini", handler)

        with pytest.raises(RateLimitedError):
            await invoker.invoke("PROMPT")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"candidates": []},
            {"candidates": [{"content": {"parts": []}}]},
            {"candidates": [{"finishReason": "SAFETY"}]},
        ],
    )
    async def test_content_free_reply_is_empty_response(self, payload) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        invoker = make_invoker("gemini", handler)

        with pytest.raises(EmptyResponseError):
            await invoker.invoke("PROMPT")


def test_build_invoker_rejects_unknown_provider() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(ValueError, match="Unknown provider"):
        build_invoker(ProviderConfig(name="openai"), api_key="x", client=client)
