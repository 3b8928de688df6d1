"""Core configuration management for loomline.

This module provides the main configuration classes and loading functionality
with environment variable support and feature flags.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConfigError(Exception):
    """Configuration-related errors."""

    pass


@dataclass
class FeatureFlags:
    """Feature flags for enabling/disabling functionality.

    These can be controlled via the LOOMLINE_FEATURES environment variable
    as a comma-separated list (e.g., "caching,metrics,strict").
    """

    # Engine features
    query_caching: bool = True
    strict_snapshots: bool = False
    custom_shortcuts: bool = True

    # Observability features
    metrics_export: bool = True

    @classmethod
    def from_env(cls, env_var: str = "LOOMLINE_FEATURES") -> "FeatureFlags":
        """Load feature flags from environment variable.

        Args:
            env_var: Environment variable name (default: LOOMLINE_FEATURES)

        Returns:
            FeatureFlags instance with features enabled based on env var
        """
        features_str = os.getenv(env_var, "")
        if not features_str:
            return cls()

        enabled_features = {f.strip().lower() for f in features_str.split(",")}

        # Map feature names to attributes
        feature_mapping = {
            "caching": "query_caching",
            "strict": "strict_snapshots",
            "shortcuts": "custom_shortcuts",
            "metrics": "metrics_export",
        }

        kwargs = {}
        for feature_name, attr_name in feature_mapping.items():
            kwargs[attr_name] = feature_name in enabled_features

        return cls(**kwargs)

    def to_dict(self) -> dict[str, bool]:
        """Convert to dictionary for display and export."""
        return asdict(self)


class HistoryConfig(BaseModel):
    """Undo/redo history configuration."""

    max_entries: int = 100


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = True


class KeyboardConfig(BaseModel):
    """Keyboard shortcut configuration."""

    overrides_path: str | None = None
    mac_labels: bool = False


class QueryConfig(BaseModel):
    """Temporal query configuration."""

    cache_enabled: bool = True


class Config(BaseModel):
    """Main configuration class for loomline.

    This class combines all configuration sections and provides
    validation and environment variable loading.
    """

    # Feature flags
    features: FeatureFlags = Field(default_factory=FeatureFlags)

    # Subsystem configurations
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    keyboard: KeyboardConfig = Field(default_factory=KeyboardConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("features", mode="before")
    @classmethod
    def validate_features(cls, v):
        """Validate feature flags."""
        if isinstance(v, dict):
            return FeatureFlags(**v)
        return v


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If configuration is invalid or file cannot be read
    """
    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}

        return Config(**config_data)

    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
    except TypeError as e:
        raise ConfigError(f"Configuration file must contain a mapping: {e}") from e


def _int_env(name: str) -> int | None:
    env_val = os.getenv(name)
    if not env_val:
        return None
    try:
        return int(env_val)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {env_val}") from e


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Environment variables are mapped as follows:
    - LOOMLINE_ENVIRONMENT: Environment name (development/staging/production)
    - LOOMLINE_DEBUG: Enable debug mode (true/false)
    - LOOMLINE_FEATURES: Comma-separated list of enabled features
    - LOOMLINE_LOG_LEVEL: Logging level
    - LOOMLINE_LOG_FORMAT: Logging format (json/text)
    - LOOMLINE_METRICS_ENABLED: Record Prometheus metrics (true/false)
    - LOOMLINE_MAX_HISTORY: Maximum undo entries
    - LOOMLINE_SHORTCUTS_FILE: Path of the keyboard overrides file
    - LOOMLINE_QUERY_CACHE: Memoize temporal queries (true/false)

    Returns:
        Configuration loaded from environment variables
    """
    config_data: dict = {}

    # Environment and debug
    if env_val := os.getenv("LOOMLINE_ENVIRONMENT"):
        config_data["environment"] = env_val
    if env_val := os.getenv("LOOMLINE_DEBUG"):
        config_data["debug"] = _truthy(env_val)

    # Feature flags
    if os.getenv("LOOMLINE_FEATURES"):
        config_data["features"] = FeatureFlags.from_env()

    # Logging configuration
    logging_config = {}
    if env_val := os.getenv("LOOMLINE_LOG_LEVEL"):
        logging_config["level"] = env_val.upper()
    if env_val := os.getenv("LOOMLINE_LOG_FORMAT"):
        logging_config["format"] = env_val.lower()
    if logging_config:
        config_data["logging"] = logging_config

    # Metrics configuration
    if env_val := os.getenv("LOOMLINE_METRICS_ENABLED"):
        config_data["metrics"] = {"enabled": _truthy(env_val)}

    # History configuration
    if (max_history := _int_env("LOOMLINE_MAX_HISTORY")) is not None:
        config_data["history"] = {"max_entries": max_history}

    # Keyboard configuration
    if env_val := os.getenv("LOOMLINE_SHORTCUTS_FILE"):
        config_data["keyboard"] = {"overrides_path": env_val}

    # Query configuration
    if env_val := os.getenv("LOOMLINE_QUERY_CACHE"):
        config_data["query"] = {"cache_enabled": _truthy(env_val)}

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Environment configuration validation failed: {e}") from e


def _truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default values
    2. Configuration file (if provided)
    3. Environment variables

    Args:
        config_path: Optional path to configuration file

    Returns:
        Merged configuration
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        file_config = load_config_from_file(config_path)
        config = _merge(config, file_config)

    # Load from environment (highest priority)
    config = _merge(config, load_config_from_env())
    return config


def _merge(base: Config, override: Config) -> Config:
    """Overlay the explicitly set sections and fields of ``override``."""
    merged = base.model_dump()
    for key, value in override.model_dump(exclude_unset=True).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    if "features" in override.model_fields_set:
        merged["features"] = override.features
    return Config(**merged)


def validate_config(config: Config) -> None:
    """Validate configuration for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if config.history.max_entries <= 0:
        raise ConfigError("history.max_entries must be positive")

    if config.keyboard.overrides_path is not None and not config.keyboard.overrides_path:
        raise ConfigError("keyboard.overrides_path must not be empty")

    # Environment-specific validations
    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")

        if config.logging.level == "DEBUG":
            raise ConfigError("DEBUG logging should not be used in production")
