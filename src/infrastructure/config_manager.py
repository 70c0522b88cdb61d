"""Configuration Manager for Storage and Audit Settings.

This module provides the configuration manager that selects and configures the
clinical document store (in-memory or DuckDB) and the change audit trail.

Security Impact:
    - Database paths are validated before use
    - Configuration is validated up front so misconfiguration fails fast
    - Configuration values are never logged in full

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Supports environment variables (with optional .env file) and JSON files
    - Type-safe configuration using Pydantic models
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

SUPPORTED_STORAGE_TYPES = ("memory", "duckdb")


class StorageConfig(BaseModel):
    """Document storage configuration.

    Parameters:
        storage_type: Store implementation (`memory` or `duckdb`)
        db_path: Path to the DuckDB database file (`:memory:` for in-process)
        audit_enabled: Whether field-level changes are written to the audit trail
    """

    storage_type: str = Field("memory", description="Store implementation (memory, duckdb)")
    db_path: Optional[str] = Field(None, description="Path to DuckDB database file")
    audit_enabled: bool = Field(True, description="Record field-level change events")

    @field_validator("storage_type")
    @classmethod
    def validate_storage_type(cls, v: str) -> str:
        """Validate storage type."""
        if v.lower() not in SUPPORTED_STORAGE_TYPES:
            raise ValueError(f"Unsupported storage type: {v}. Supported: {list(SUPPORTED_STORAGE_TYPES)}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the database directory exists (the file may not exist yet)."""
        if v is None or v == ":memory:":
            return v

        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)

    def get_db_path(self) -> str:
        return self.db_path or ":memory:"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Configuration manager for storage settings.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        storage_config = config.get_storage_config()

        # Load from file
        config = ConfigManager.from_file("config.json")
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary
        """
        self._config_data = config_data
        self._storage_config: Optional[StorageConfig] = None

    @classmethod
    def from_environment(cls) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - CC_STORAGE_TYPE: Store implementation (memory, duckdb)
            - CC_DB_PATH: Path to DuckDB database file
            - CC_AUDIT_ENABLED: Record field-level changes (true/false)

        A `.env` file in the project root is loaded first if present; variables
        already set in the environment take precedence.

        Returns:
            ConfigManager instance
        """
        env_path = Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        config_data = {
            "storage": {
                "storage_type": os.getenv("CC_STORAGE_TYPE", "memory"),
                "db_path": os.getenv("CC_DB_PATH"),
                "audit_enabled": _env_flag("CC_AUDIT_ENABLED", "true"),
            }
        }
        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration (validated once, then cached)."""
        if self._storage_config is None:
            self._storage_config = StorageConfig(**self._config_data.get("storage", {}))
        return self._storage_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "storage.db_path")
            default: Default value if key not found
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_storage_config() -> StorageConfig:
    """Load storage configuration from the environment.

    Defaults to an in-memory store with auditing enabled.
    """
    return ConfigManager.from_environment().get_storage_config()
