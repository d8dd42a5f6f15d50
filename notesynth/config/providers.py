"""
Provider Policy Configuration

Builds one immutable ProviderConfig per supported provider from the built-in
defaults, overlaid with the `providers:` section of config/default.yaml.

Usage:
    from notesynth.config.providers import load_provider_configs

    configs = load_provider_configs()
    configs["groq"].min_interval_ms  # 4000
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError

from notesynth.config.settings import load_yaml_config
from notesynth.enums.dispatch import ProviderName
from notesynth.models.dispatch import ProviderConfig

logger = logging.getLogger(__name__)

# Used when config/default.yaml is absent (e.g. installed wheel).
DEFAULT_PROVIDER_POLICIES: dict[str, dict[str, Any]] = {
    ProviderName.GROQ.value: {
        "min_interval_ms": 4000,
        "max_concurrent": 2,
        "max_retries": 3,
        "base_backoff_ms": 4000,
        "backoff_multiplier": 1.5,
        "batch_concurrency": 3,
        "model": "llama-3.3-70b-versatile",
        "max_output_tokens": 4096,
    },
    ProviderName.GEMINI.value: {
        "min_interval_ms": 1000,
        "max_concurrent": 5,
        "max_retries": 3,
        "base_backoff_ms": 4000,
        "backoff_multiplier": 1.5,
        "batch_concurrency": 5,
        "model": "gemini-1.5-flash",
        "max_output_tokens": 2048,
    },
}


def load_provider_configs(
    yaml_data: Optional[dict[str, Any]] = None,
) -> dict[str, ProviderConfig]:
    """
    Build ProviderConfig objects for every known provider.

    Args:
        yaml_data: Parsed YAML config (default: config/default.yaml)

    Returns:
        Mapping of provider name to its validated ProviderConfig

    Raises:
        ValueError: If a YAML policy has invalid values
    """
    if yaml_data is None:
        yaml_data = load_yaml_config()

    overrides = (yaml_data or {}).get("providers") or {}
    names = list(DEFAULT_PROVIDER_POLICIES) + [
        name for name in overrides if name not in DEFAULT_PROVIDER_POLICIES
    ]

    configs: dict[str, ProviderConfig] = {}
    for name in names:
        policy = {**DEFAULT_PROVIDER_POLICIES.get(name, {}), **(overrides.get(name) or {})}
        try:
            configs[name] = ProviderConfig(name=name, **policy)
        except ValidationError as e:
            raise ValueError(f"Invalid policy for provider '{name}': {e}") from e

    logger.debug(f"Loaded provider policies: {sorted(configs)}")
    return configs


@lru_cache()
def get_provider_configs() -> dict[str, ProviderConfig]:
    """Get cached provider policies."""
    return load_provider_configs()
