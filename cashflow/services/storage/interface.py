"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Each entity type lives in its own collection exposing add / update /
delete / list. There are no transactions: a multi-record operation is a
sequence of independent writes, and callers report partial failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from cashflow.models.audit import AuditEvent
from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    Ledger,
    OpeningBalance,
    Recurrence,
    Transaction,
)


RecordT = TypeVar("RecordT", bound=BaseModel)


class CollectionStorageInterface(ABC, Generic[RecordT]):
    """
    Abstract interface for one collection of records.

    Records carry an optional ``id``; storage assigns it on ``add``.
    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def add(self, record: RecordT) -> str:
        """
        Persist a new record.

        Args:
            record: The record to save (its id is ignored)

        Returns:
            The id assigned by storage

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, record: RecordT) -> None:
        """
        Replace a stored record with this one.

        Raises:
            NotFoundError: If no record has this id
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """
        Delete a record by id.

        Deleting an id that does not exist is a no-op.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_all(self) -> list[RecordT]:
        """
        Return the current contents of the collection.

        Always reflects every write that completed before the call.
        """
        pass

    async def get(self, record_id: str) -> Optional[RecordT]:
        """
        Retrieve a record by its id.

        Returns:
            The record if found, None otherwise
        """
        for record in await self.list_all():
            if getattr(record, "id", None) == record_id:
                return record
        return None


@dataclass
class LedgerStorage:
    """One collection per entity type the engine reads and writes."""

    ledgers: CollectionStorageInterface[Ledger]
    cards: CollectionStorageInterface[CreditCard]
    transactions: CollectionStorageInterface[Transaction]
    recurrences: CollectionStorageInterface[Recurrence]
    debt_contracts: CollectionStorageInterface[DebtContract]
    opening_balances: CollectionStorageInterface[OpeningBalance]


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one save and its siblings).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'contract')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
