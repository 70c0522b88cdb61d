"""Application wiring for CliniDoc.

This module assembles the clinical documentation engine from configuration:
the document store selected by the configuration manager, the profile
directory, the change audit trail, the command factory and the invoker.

Security Impact:
    - Sessions are only opened for profiles present in the directory
    - Audit entries are flushed to durable storage when the store supports it
    - Configuration is loaded via the configuration manager

Architecture:
    - Follows Hexagonal Architecture principles
    - Storage adapter is chosen from StorageConfig.storage_type
    - Host surfaces (the CLI, tests) depend on `build_application` only
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.adapters.storage import DuckDBDocumentStore, InMemoryDocumentStore, InMemoryProfileDirectory
from src.domain.commands import CommandFactory, CommandInvoker
from src.domain.ports import DocumentStorePort, Result, StorageError
from src.domain.session import SessionContext
from src.domain.utils import to_uuid
from src.infrastructure.audit import ChangeAuditLogger
from src.infrastructure.config_manager import StorageConfig
from src.infrastructure.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def create_document_store(storage_config: StorageConfig) -> DocumentStorePort:
    """Create the document store selected by configuration.

    Parameters:
        storage_config: Storage configuration

    Returns:
        DocumentStorePort: Configured store instance

    Raises:
        ValueError: If the storage type is unsupported
    """
    if storage_config.storage_type == "duckdb":
        logger.info(f"Initializing DuckDB document store with path: {storage_config.get_db_path()}")
        return DuckDBDocumentStore(storage_config=storage_config)
    if storage_config.storage_type == "memory":
        logger.info("Initializing in-memory document store")
        return InMemoryDocumentStore()
    raise ValueError(f"Unsupported storage type: {storage_config.storage_type}")


@dataclass
class Application:
    """Assembled engine handed to host surfaces."""

    settings: Settings
    store: DocumentStorePort
    profiles: InMemoryProfileDirectory
    audit: ChangeAuditLogger
    factory: CommandFactory
    invoker: CommandInvoker

    def open_session(self, user: str) -> Optional[SessionContext]:
        """Open a session for a profile given by id or username."""
        profile_id = to_uuid(user)
        profile = self.profiles.find_profile_by_id(profile_id) if profile_id else None
        if profile is None:
            profile = self.profiles.find_by_username(user)
        if profile is None:
            logger.warning(f"No profile found for user '{user}'")
            return None

        session = SessionContext.for_profile(profile, timeout_minutes=self.settings.session_timeout_minutes)
        self.audit.set_session_context(session_id=str(session.session_id), changed_by=str(profile.id))
        return session

    def flush_audit(self) -> Result[int]:
        """Persist buffered audit entries if the store keeps an audit table."""
        if not self.audit.has_logs():
            return Result.success_result(0)
        if not isinstance(self.store, DuckDBDocumentStore):
            return Result.success_result(0)

        result = self.store.flush_change_logs(self.audit.get_logs())
        if result.is_success():
            self.audit.clear_logs()
        return result

    def close(self) -> None:
        if isinstance(self.store, DuckDBDocumentStore):
            self.store.close()


def build_application(
    app_settings: Optional[Settings] = None,
    store: Optional[DocumentStorePort] = None,
    profiles: Optional[InMemoryProfileDirectory] = None
) -> Application:
    """Build the engine from settings.

    Parameters:
        app_settings: Settings to use (defaults to the global settings)
        store: Pre-built store, bypassing storage configuration
        profiles: Pre-built profile directory, bypassing the profiles file

    Raises:
        StorageError: If the profiles file cannot be read
    """
    app_settings = app_settings or default_settings

    if store is None:
        store = create_document_store(app_settings.storage_config)

    if profiles is None:
        loaded = InMemoryProfileDirectory.load_from_file(app_settings.profiles_file)
        if loaded.is_failure():
            raise StorageError(str(loaded.error), operation="load_profiles")
        profiles = loaded.value

    audit = ChangeAuditLogger()
    factory = CommandFactory(
        store,
        profiles,
        audit if app_settings.storage_config.audit_enabled else None,
        controlled_expiration_months=app_settings.controlled_expiration_months
    )
    invoker = CommandInvoker(history_limit=app_settings.history_limit)

    return Application(
        settings=app_settings,
        store=store,
        profiles=profiles,
        audit=audit,
        factory=factory,
        invoker=invoker,
    )
