"""Tests for the configuration manager and application settings."""

import json

import pytest
from pydantic import ValidationError

from src.infrastructure.config_manager import ConfigManager, StorageConfig, get_storage_config
from src.infrastructure.settings import APP_NAME, Settings


class TestStorageConfig:
    """Test suite for StorageConfig validation."""

    def test_defaults(self):
        """Test the default store is in-memory with auditing."""
        config = StorageConfig()
        assert config.storage_type == "memory"
        assert config.audit_enabled is True
        assert config.get_db_path() == ":memory:"

    def test_storage_type_normalized(self):
        """Test storage types are case-insensitive."""
        assert StorageConfig(storage_type="DuckDB").storage_type == "duckdb"

    def test_unsupported_storage_type(self):
        """Test unknown storage types are rejected."""
        with pytest.raises(ValidationError):
            StorageConfig(storage_type="postgresql")

    def test_db_path_directory_must_exist(self, tmp_path):
        """Test the database directory is validated."""
        assert StorageConfig(storage_type="duckdb", db_path=str(tmp_path / "docs.duckdb")).db_path.endswith("docs.duckdb")
        with pytest.raises(ValidationError):
            StorageConfig(storage_type="duckdb", db_path=str(tmp_path / "missing" / "docs.duckdb"))


class TestConfigManager:
    """Test suite for ConfigManager."""

    def test_from_environment(self, monkeypatch, tmp_path):
        """Test environment variables select the store."""
        monkeypatch.setenv("CC_STORAGE_TYPE", "duckdb")
        monkeypatch.setenv("CC_DB_PATH", str(tmp_path / "docs.duckdb"))
        monkeypatch.setenv("CC_AUDIT_ENABLED", "no")

        config = ConfigManager.from_environment().get_storage_config()
        assert config.storage_type == "duckdb"
        assert config.audit_enabled is False

    def test_environment_defaults(self, monkeypatch):
        """Test the defaults when nothing is configured."""
        for name in ("CC_STORAGE_TYPE", "CC_DB_PATH", "CC_AUDIT_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        config = get_storage_config()
        assert config.storage_type == "memory"
        assert config.audit_enabled is True

    def test_from_file(self, tmp_path):
        """Test loading a JSON configuration file."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"storage": {"storage_type": "memory", "audit_enabled": False}}))

        manager = ConfigManager.from_file(str(config_file))
        assert manager.get_storage_config().audit_enabled is False
        assert manager.get("storage.storage_type") == "memory"
        assert manager.get("storage.db_path", ":memory:") == ":memory:"
        assert manager.get("missing.key", "fallback") == "fallback"

    def test_from_file_missing(self, tmp_path):
        """Test a missing configuration file raises."""
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "nope.json"))

    def test_from_file_invalid_json(self, tmp_path):
        """Test malformed JSON raises ValueError."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")
        with pytest.raises(ValueError):
            ConfigManager.from_file(str(config_file))


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self, monkeypatch):
        """Test default settings."""
        for name in ("CC_APP_NAME", "CC_SESSION_TIMEOUT_MINUTES", "CC_CONTROLLED_EXPIRATION_MONTHS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.app_name == APP_NAME
        assert settings.session_timeout_minutes == 30
        assert settings.controlled_expiration_months == 6

    def test_environment_overrides(self, monkeypatch):
        """Test settings read their CC_ variables."""
        monkeypatch.setenv("CC_SESSION_TIMEOUT_MINUTES", "5")
        monkeypatch.setenv("CC_CONTROLLED_EXPIRATION_MONTHS", "3")
        monkeypatch.setenv("CC_PROFILES_FILE", "/tmp/clinic-profiles.json")
        monkeypatch.setenv("CC_LOG_JSON", "TRUE")

        settings = Settings()
        assert settings.session_timeout_minutes == 5
        assert settings.controlled_expiration_months == 3
        assert settings.profiles_file == "/tmp/clinic-profiles.json"
        assert settings.log_json is True

    def test_get_db_path(self, monkeypatch):
        """Test the database path is only available for DuckDB."""
        monkeypatch.setenv("CC_STORAGE_TYPE", "duckdb")
        monkeypatch.delenv("CC_DB_PATH", raising=False)
        assert Settings().get_db_path() == ":memory:"

        monkeypatch.setenv("CC_STORAGE_TYPE", "memory")
        with pytest.raises(ValueError):
            Settings().get_db_path()
