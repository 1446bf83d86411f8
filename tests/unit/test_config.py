"""Unit tests for configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from comicizer.config import (
    ComicizerConfig,
    ConfigManager,
    EnvVarNotFoundError,
    ProviderConfig,
    resolve_env_value,
)
from comicizer.errors import ConfigError


class TestDefaults:
    """Tests for built-in defaults."""

    def test_default_config(self) -> None:
        config = ComicizerConfig()
        assert config.text_provider == "openrouter"
        assert config.image_provider == "openrouter"
        assert config.openrouter.base_url == "https://openrouter.ai/api/v1"
        assert config.openrouter.chat_path == "/chat/completions"
        assert config.crsai.chat_path == "/v1/chat/completions"
        assert config.polling.interval_seconds == 3.0
        assert config.polling.max_attempts == 60
        assert config.generation.aspect_ratio == "2:3"
        assert config.generation.image_size == "1K"
        assert config.prompts.analysis_user is None

    def test_provider_lookup(self) -> None:
        config = ComicizerConfig()
        assert config.provider("crsai") is config.crsai
        with pytest.raises(ConfigError, match="Unknown provider"):
            config.provider("acme")

    @pytest.mark.parametrize(
        "polling", [{"interval_seconds": 0}, {"max_attempts": 0}]
    )
    def test_invalid_polling_rejected(self, polling: dict) -> None:
        with pytest.raises(ValueError):
            ComicizerConfig.model_validate({"polling": polling})


class TestEnvResolution:
    """Tests for env: syntax in configuration values."""

    def test_plain_value_unchanged(self) -> None:
        assert resolve_env_value("sk-plain") == "sk-plain"

    def test_env_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_KEY", "sk-env")
        assert resolve_env_value("env:MY_KEY") == "sk-env"

    def test_missing_env_strict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MISSING_KEY", raising=False)
        with pytest.raises(EnvVarNotFoundError) as exc_info:
            resolve_env_value("env:MISSING_KEY")
        assert exc_info.value.var_name == "MISSING_KEY"
        assert resolve_env_value("env:MISSING_KEY", strict=False) is None

    def test_provider_resolved_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MISSING_KEY", raising=False)
        provider = ProviderConfig(
            base_url="https://x",
            text_model="t",
            image_model="i",
            api_key="env:MISSING_KEY",
        )
        assert provider.get_resolved_api_key() is None
        assert ProviderConfig(
            base_url="https://x", text_model="t", image_model="i"
        ).get_resolved_api_key() is None


class TestConfigManager:
    """Tests for the configuration file fallback chain."""

    def write(self, path: Path, data: dict) -> Path:
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_explicit_path(self, tmp_path: Path, isolated_home: Path) -> None:
        path = self.write(tmp_path / "custom.json", {"image_provider": "crsai"})
        manager = ConfigManager()
        config = manager.load(path)
        assert config.image_provider == "crsai"
        assert manager.config_path == path

    def test_env_path(
        self, tmp_path: Path, isolated_home: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = self.write(tmp_path / "env.json", {"output_dir": "/tmp/comics"})
        monkeypatch.setenv("COMICIZER_CONFIG", str(path))
        assert ConfigManager().load().output_dir == "/tmp/comics"

    def test_cwd_config(
        self, tmp_path: Path, isolated_home: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self.write(tmp_path / "comicizer.json", {"polling": {"max_attempts": 5}})
        monkeypatch.chdir(tmp_path)
        config = ConfigManager().load()
        assert config.polling.max_attempts == 5
        assert config.polling.interval_seconds == 3.0

    def test_defaults_without_file(
        self, tmp_path: Path, isolated_home: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        manager = ConfigManager()
        manager.DEFAULT_USER_CONFIG_DIR = tmp_path / "nowhere"
        assert manager.config == ComicizerConfig()
        assert manager.config_path is None

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Cannot read configuration file"):
            ConfigManager().load(path)

    def test_non_object_json(self, tmp_path: Path) -> None:
        path = self.write(tmp_path / "list.json", [])  # type: ignore[arg-type]
        with pytest.raises(ConfigError, match="must contain a JSON object"):
            ConfigManager().load(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = self.write(tmp_path / "bad.json", {"text_provider": "acme"})
        with pytest.raises(ConfigError, match="Invalid configuration"):
            ConfigManager().load(path)

    def test_merge_overrides(self, tmp_path: Path) -> None:
        """Test that merged overrides keep untouched nested values."""
        path = self.write(
            tmp_path / "c.json", {"crsai": {"api_key": "sk-file"}}
        )
        manager = ConfigManager()
        manager.load(path)
        config = manager.merge(
            {"image_provider": "crsai", "crsai": {"image_model": "other"}}
        )
        assert config.image_provider == "crsai"
        assert config.crsai.image_model == "other"
        assert config.crsai.api_key == "sk-file"
        assert manager.config is config

    def test_merge_rejects_invalid(self, tmp_path: Path) -> None:
        manager = ConfigManager()
        manager.load(self.write(tmp_path / "c.json", {}))
        with pytest.raises(ConfigError, match="Invalid configuration override"):
            manager.merge({"image_provider": "acme"})
