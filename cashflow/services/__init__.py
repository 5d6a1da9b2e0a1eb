"""Services package."""

from cashflow.services.clock import Clock, FixedClock, SystemClock
from cashflow.services.storage import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollection,
    InMemoryAuditStorage,
    InMemoryCollection,
    LedgerStorage,
    NotFoundError,
    StorageError,
    create_memory_storage,
    create_sheets_storage,
)

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Storage services
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCollection",
    "InMemoryAuditStorage",
    "InMemoryCollection",
    "LedgerStorage",
    "NotFoundError",
    "StorageError",
    "create_memory_storage",
    "create_sheets_storage",
]
