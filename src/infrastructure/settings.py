"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Session timeouts are enforced from a single setting
    - Sensitive values are never logged
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from src.domain.commands.clinical.entry_commands import DEFAULT_CONTROLLED_EXPIRATION_MONTHS
from src.domain.commands.invoker import DEFAULT_HISTORY_LIMIT
from src.domain.session import DEFAULT_SESSION_TIMEOUT_MINUTES
from src.infrastructure.config_manager import ConfigManager, StorageConfig, get_storage_config

# Application metadata
APP_NAME = "CliniDoc"
APP_VERSION = "1.0.0"

DEFAULT_PROFILES_FILE = "profiles.json"


class Settings:
    """Application settings loaded from configuration manager and environment.

    Environment Variables:
        - CC_APP_NAME: Application name shown by the CLI
        - CC_LOG_LEVEL: Root log level (default INFO)
        - CC_LOG_JSON: Emit JSON log lines (default false)
        - CC_SESSION_TIMEOUT_MINUTES: Idle minutes before a session expires
        - CC_CONTROLLED_EXPIRATION_MONTHS: Default expiry of controlled prescriptions
        - CC_PROFILES_FILE: JSON file holding user profiles
        - CC_HISTORY_LIMIT: Command history kept by the invoker
    """

    def __init__(self):
        """Initialize settings from configuration manager and environment."""
        self._storage_config: Optional[StorageConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("CC_APP_NAME", APP_NAME)
        self.log_level = os.getenv("CC_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("CC_LOG_JSON", "false").lower() == "true"

        self.session_timeout_minutes = int(
            os.getenv("CC_SESSION_TIMEOUT_MINUTES", str(DEFAULT_SESSION_TIMEOUT_MINUTES))
        )
        self.controlled_expiration_months = int(
            os.getenv("CC_CONTROLLED_EXPIRATION_MONTHS", str(DEFAULT_CONTROLLED_EXPIRATION_MONTHS))
        )
        self.profiles_file = os.getenv("CC_PROFILES_FILE", DEFAULT_PROFILES_FILE)
        self.history_limit = int(os.getenv("CC_HISTORY_LIMIT", str(DEFAULT_HISTORY_LIMIT)))

    @property
    def storage_config(self) -> StorageConfig:
        """Storage configuration, loaded lazily on first access."""
        if self._storage_config is None:
            self._storage_config = get_storage_config()
        return self._storage_config

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    def get_db_path(self) -> str:
        """Get database path for DuckDB.

        Returns:
            Database path or ':memory:' for in-memory database
        """
        if self.storage_config.storage_type == "duckdb":
            return self.storage_config.get_db_path()
        raise ValueError(f"Storage type '{self.storage_config.storage_type}' does not use db_path")


# Global settings instance
settings = Settings()
