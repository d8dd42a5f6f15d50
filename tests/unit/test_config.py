"""
Unit Tests for Configuration Management

Tests the Settings class, YAML loading and provider policy validation.
"""

import os
from unittest.mock import patch

import httpx
import pytest

from notesynth.config import DEFAULT_PROVIDER_POLICIES, Settings, load_provider_configs, load_yaml_config
from notesynth.enums import ProviderName
from notesynth.services.dispatch import ProviderPool
from notesynth.services.errors import ConfigurationError
from notesynth.services.llm import INVOKER_CLASSES


class TestSettings:
    """Test suite for the Settings Pydantic model."""

    def test_default_values(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.APP_NAME == "NoteSynth"
            assert test_settings.GROQ_API_KEY == ""
            assert test_settings.provider_order == ["groq", "gemini"]
            assert test_settings.BATCH_CONCURRENCY is None
            assert test_settings.RATE_LIMIT_BATCH == "5/minute"

    def test_provider_order_parsing(self) -> None:
        with patch.dict(os.environ, {"PROVIDER_ORDER": " Gemini , groq,, "}, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.provider_order == ["gemini", "groq"]

    def test_credentials_from_environment(self) -> None:
        env = {"GROQ_API_KEY": "gsk-test", "BATCH_CONCURRENCY": "4"}
        with patch.dict(os.environ, env, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.provider_credentials == {"groq": "gsk-test", "gemini": ""}
            assert test_settings.BATCH_CONCURRENCY == 4


class TestProviderPolicies:
    """Test suite for provider policy loading."""

    def test_every_provider_name_is_wired(self) -> None:
        names = {provider.value for provider in ProviderName}

        with patch.dict(os.environ, {}, clear=True):
            credentials = Settings(_env_file=None).provider_credentials

        assert set(DEFAULT_PROVIDER_POLICIES) == names
        assert set(INVOKER_CLASSES) == names
        assert set(credentials) == names

    def test_yaml_defines_both_providers(self) -> None:
        load_yaml_config.cache_clear()
        config = load_yaml_config()

        assert set(config["providers"]) == {"groq", "gemini"}

    def test_shipped_policies(self) -> None:
        configs = load_provider_configs()

        groq = configs["groq"]
        assert (groq.min_interval_ms, groq.max_concurrent, groq.max_retries) == (4000, 2, 3)
        assert (groq.base_backoff_ms, groq.backoff_multiplier, groq.batch_concurrency) == (4000, 1.5, 3)

        gemini = configs["gemini"]
        assert (gemini.min_interval_ms, gemini.max_concurrent, gemini.max_retries) == (1000, 5, 3)
        assert gemini.batch_concurrency == 5

    def test_yaml_overrides_defaults(self) -> None:
        configs = load_provider_configs({"providers": {"groq": {"min_interval_ms": 2000}}})

        assert configs["groq"].min_interval_ms == 2000
        assert configs["groq"].max_concurrent == 2
        assert configs["gemini"].min_interval_ms == 1000

    def test_missing_yaml_uses_defaults(self) -> None:
        configs = load_provider_configs({})

        assert configs["groq"].min_interval_ms == 4000

    @pytest.mark.parametrize(
        "policy",
        [{"max_concurrent": 0}, {"backoff_multiplier": 0.5}, {"unknown_field": 1}],
    )
    def test_invalid_policy_is_rejected(self, policy) -> None:
        with pytest.raises(ValueError, match="groq"):
            load_provider_configs({"providers": {"groq": policy}})


class TestProviderPoolFromSettings:
    """Credentials decide which providers take part."""

    @pytest.mark.asyncio
    async def test_provider_without_key_is_skipped(self) -> None:
        settings = Settings(_env_file=None, GROQ_API_KEY="", GEMINI_API_KEY="key")
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        pool = ProviderPool.from_settings(settings, load_provider_configs({}), client=client)

        assert pool.available == ["gemini"]
        assert pool.resolve_order() == ["gemini"]
        assert pool.default_batch_concurrency(["gemini"]) == 5
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_no_keys_is_configuration_error(self) -> None:
        settings = Settings(_env_file=None, GROQ_API_KEY="", GEMINI_API_KEY="")
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        pool = ProviderPool.from_settings(settings, load_provider_configs({}), client=client)

        assert pool.available == []
        with pytest.raises(ConfigurationError):
            pool.resolve_order()
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_batch_concurrency_override(self) -> None:
        settings = Settings(_env_file=None, GROQ_API_KEY="k", BATCH_CONCURRENCY=7)
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        pool = ProviderPool.from_settings(settings, load_provider_configs({}), client=client)

        assert pool.default_batch_concurrency(["groq"]) == 7
        await pool.aclose()
