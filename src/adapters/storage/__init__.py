"""Storage adapters for CliniDoc.

This module contains storage adapters that implement the DocumentStorePort
and ProfileLookupPort interfaces for persisting clinical documents, user
profiles and the change audit trail.
"""

from src.adapters.storage.duckdb_store import DuckDBDocumentStore
from src.adapters.storage.memory_store import InMemoryDocumentStore, InMemoryProfileDirectory

__all__ = ["DuckDBDocumentStore", "InMemoryDocumentStore", "InMemoryProfileDirectory"]
