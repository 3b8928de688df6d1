"""Configuration management for loomline.

This module provides configuration loading, validation, and feature flag management
for the timeline engine.
"""

from .config import (
    Config,
    ConfigError,
    FeatureFlags,
    HistoryConfig,
    KeyboardConfig,
    LoggingConfig,
    MetricsConfig,
    QueryConfig,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)

__all__ = [
    "Config",
    "ConfigError",
    "FeatureFlags",
    "HistoryConfig",
    "KeyboardConfig",
    "LoggingConfig",
    "MetricsConfig",
    "QueryConfig",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
