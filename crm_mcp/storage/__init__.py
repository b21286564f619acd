"""Record store backends."""

from crm_mcp.core.config import Settings
from crm_mcp.utils.errors import ConfigurationError

from .base import RecordStore
from .database_store import DatabaseRecordStore
from .memory_store import MemoryRecordStore
from .query import Filter, Query
from .tables import AGENTS_TABLE, AUDIT_TABLE, CRM_TABLES, PERMISSIONS_TABLE, TableSpec


def create_record_store(settings: Settings) -> RecordStore:
    """Build the record store selected by ``settings.store_backend``.

    Raises:
        ConfigurationError: If the database backend is selected without a URL.
    """
    if settings.store_backend == "database":
        if not settings.database_url:
            raise ConfigurationError("DATABASE_URL is required when STORE_BACKEND=database")
        return DatabaseRecordStore(
            settings.database_url,
            min_pool_size=settings.db_min_pool_size,
            max_pool_size=settings.db_max_pool_size,
        )
    return MemoryRecordStore(storage_path=settings.storage_path)


__all__ = [
    "AGENTS_TABLE",
    "AUDIT_TABLE",
    "CRM_TABLES",
    "DatabaseRecordStore",
    "Filter",
    "MemoryRecordStore",
    "PERMISSIONS_TABLE",
    "Query",
    "RecordStore",
    "TableSpec",
    "create_record_store",
]
