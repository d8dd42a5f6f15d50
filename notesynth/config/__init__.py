"""Configuration package."""

from notesynth.config.providers import (
    DEFAULT_PROVIDER_POLICIES,
    get_provider_configs,
    load_provider_configs,
)
from notesynth.config.settings import (
    Settings,
    get_settings,
    load_yaml_config,
    settings,
)

__all__ = [
    # Provider policies
    "DEFAULT_PROVIDER_POLICIES",
    "get_provider_configs",
    "load_provider_configs",
    # Application settings
    "Settings",
    "get_settings",
    "load_yaml_config",
    "settings",
]
