"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory backend serves tests
and local runs. Both sit behind the same interface.
"""

from cashflow.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    LedgerStorage,
    NotFoundError,
    StorageError,
)
from cashflow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCollection,
    create_memory_storage,
)
from cashflow.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollection,
    create_sheets_storage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "LedgerStorage",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCollection",
    "create_memory_storage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCollection",
    "create_sheets_storage",
]
