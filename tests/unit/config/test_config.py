"""Tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from loomline.config import (
    Config,
    ConfigError,
    FeatureFlags,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LOOMLINE_ENVIRONMENT",
        "LOOMLINE_DEBUG",
        "LOOMLINE_FEATURES",
        "LOOMLINE_LOG_LEVEL",
        "LOOMLINE_LOG_FORMAT",
        "LOOMLINE_METRICS_ENABLED",
        "LOOMLINE_MAX_HISTORY",
        "LOOMLINE_SHORTCUTS_FILE",
        "LOOMLINE_QUERY_CACHE",
    ):
        monkeypatch.delenv(name, raising=False)


class TestFeatureFlags:
    """Test feature flags functionality."""

    def test_default_features(self):
        """Test default feature flag values."""
        features = FeatureFlags()

        assert features.query_caching is True
        assert features.strict_snapshots is False
        assert features.custom_shortcuts is True
        assert features.metrics_export is True

    def test_from_env_empty(self):
        """Test loading feature flags from empty environment."""
        features = FeatureFlags.from_env("NONEXISTENT_VAR")
        assert features == FeatureFlags()

    def test_from_env_with_features(self, monkeypatch):
        """Test loading feature flags from environment variable."""
        monkeypatch.setenv("TEST_FEATURES", "strict, caching")

        features = FeatureFlags.from_env("TEST_FEATURES")

        assert features.strict_snapshots is True
        assert features.query_caching is True
        assert features.metrics_export is False  # Not in list

    def test_to_dict(self):
        """Test converting feature flags to dictionary."""
        feature_dict = FeatureFlags(strict_snapshots=True).to_dict()

        assert feature_dict["strict_snapshots"] is True
        assert set(feature_dict) == {
            "query_caching",
            "strict_snapshots",
            "custom_shortcuts",
            "metrics_export",
        }


class TestConfig:
    """Test configuration validation."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()

        assert config.environment == "development"
        assert config.history.max_entries == 100
        assert config.logging.format == "json"
        assert config.keyboard.overrides_path is None
        assert config.query.cache_enabled is True

    def test_features_accept_mapping(self):
        config = Config(features={"strict_snapshots": True})
        assert isinstance(config.features, FeatureFlags)
        assert config.features.strict_snapshots is True

    def test_config_validation_success(self):
        """Test successful configuration validation."""
        validate_config(Config())

    def test_invalid_history_limit(self):
        config = Config()
        config.history.max_entries = 0

        with pytest.raises(ConfigError, match="max_entries must be positive"):
            validate_config(config)

    def test_metrics_section_only_toggles_recording(self, monkeypatch):
        assert Config().metrics.model_dump() == {"enabled": True}

        monkeypatch.setenv("LOOMLINE_METRICS_ENABLED", "false")
        assert load_config_from_env().metrics.enabled is False

    def test_empty_shortcuts_path(self):
        config = Config()
        config.keyboard.overrides_path = ""

        with pytest.raises(ConfigError, match="overrides_path"):
            validate_config(config)

    def test_config_validation_production_debug(self):
        """Test configuration validation for production with debug enabled."""
        config = Config()
        config.environment = "production"
        config.debug = True

        with pytest.raises(ConfigError, match="Debug mode should not be enabled in production"):
            validate_config(config)

    def test_config_validation_production_debug_logging(self):
        config = Config()
        config.environment = "production"
        config.logging.level = "DEBUG"

        with pytest.raises(ConfigError, match="DEBUG logging"):
            validate_config(config)


class TestConfigLoading:
    """Test configuration loading from various sources."""

    def test_load_config_from_file(self, tmp_path: Path):
        """Test loading configuration from YAML file."""
        path = tmp_path / "loomline.yaml"
        path.write_text(
            yaml.dump(
                {
                    "environment": "staging",
                    "history": {"max_entries": 20},
                    "features": {"strict_snapshots": True},
                    "keyboard": {"overrides_path": "shortcuts.json", "mac_labels": True},
                }
            )
        )

        config = load_config_from_file(path)

        assert config.environment == "staging"
        assert config.history.max_entries == 20
        assert config.features.strict_snapshots is True
        assert config.keyboard.mac_labels is True

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_from_file(path).history.max_entries == 100

    @pytest.mark.parametrize(
        "content",
        [
            "history: [unclosed",
            "history:\n  max_entries: many\n",
            "- just\n- a list\n",
        ],
    )
    def test_invalid_file_raises(self, tmp_path: Path, content: str):
        path = tmp_path / "bad.yaml"
        path.write_text(content)

        with pytest.raises(ConfigError):
            load_config_from_file(path)

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_load_config_from_env(self, monkeypatch):
        """Test loading configuration from environment variables."""
        monkeypatch.setenv("LOOMLINE_ENVIRONMENT", "production")
        monkeypatch.setenv("LOOMLINE_LOG_LEVEL", "warning")
        monkeypatch.setenv("LOOMLINE_MAX_HISTORY", "5")
        monkeypatch.setenv("LOOMLINE_QUERY_CACHE", "off")
        monkeypatch.setenv("LOOMLINE_SHORTCUTS_FILE", "/tmp/keys.json")

        config = load_config_from_env()

        assert config.environment == "production"
        assert config.logging.level == "WARNING"
        assert config.history.max_entries == 5
        assert config.query.cache_enabled is False
        assert config.keyboard.overrides_path == "/tmp/keys.json"

    def test_invalid_env_values_raise(self, monkeypatch):
        monkeypatch.setenv("LOOMLINE_MAX_HISTORY", "many")
        with pytest.raises(ConfigError, match="LOOMLINE_MAX_HISTORY"):
            load_config_from_env()

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch):
        """Test that environment variables override file values."""
        path = tmp_path / "loomline.yaml"
        path.write_text(
            yaml.dump({"history": {"max_entries": 20}, "logging": {"format": "text"}})
        )
        monkeypatch.setenv("LOOMLINE_MAX_HISTORY", "7")

        config = load_config(path)

        assert config.history.max_entries == 7
        assert config.logging.format == "text"
        assert config.logging.level == "INFO"

    def test_load_config_without_file(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.yaml")
        assert config.model_dump() == Config().model_dump()
