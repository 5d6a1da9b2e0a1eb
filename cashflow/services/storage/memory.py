"""
In-Memory Storage Implementation

Used by the test suite and for local runs without Google credentials.
Behaves like the Sheets backend from the engine's point of view: ids are
assigned on add, list_all returns copies, and nothing survives the process.
"""

from typing import Optional
from uuid import UUID, uuid4

from cashflow.models.audit import AuditEvent
from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    Ledger,
    OpeningBalance,
    Recurrence,
    Transaction,
)
from cashflow.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    LedgerStorage,
    NotFoundError,
    RecordT,
)


class InMemoryCollection(CollectionStorageInterface[RecordT]):
    """A collection kept in a dict, preserving insertion order."""

    def __init__(self, records: Optional[list[RecordT]] = None):
        self._records: dict[str, RecordT] = {}
        for record in records or []:
            record_id = record.id or uuid4().hex
            self._records[record_id] = record.model_copy(update={"id": record_id})

    async def add(self, record: RecordT) -> str:
        record_id = uuid4().hex
        self._records[record_id] = record.model_copy(update={"id": record_id}, deep=True)
        return record_id

    async def update(self, record: RecordT) -> None:
        if record.id not in self._records:
            raise NotFoundError(f"Record not found: {record.id}")
        self._records[record.id] = record.model_copy(deep=True)

    async def delete(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    async def list_all(self) -> list[RecordT]:
        return [record.model_copy(deep=True) for record in self._records.values()]

    async def get(self, record_id: str) -> Optional[RecordT]:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def __len__(self) -> int:
        return len(self._records)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.correlation_id == correlation_id),
            key=lambda e: e.timestamp,
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return sorted(
            (
                e for e in self.events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ),
            key=lambda e: e.timestamp,
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]


def create_memory_storage() -> LedgerStorage:
    """Build an empty in-memory collection per entity type."""
    return LedgerStorage(
        ledgers=InMemoryCollection[Ledger](),
        cards=InMemoryCollection[CreditCard](),
        transactions=InMemoryCollection[Transaction](),
        recurrences=InMemoryCollection[Recurrence](),
        debt_contracts=InMemoryCollection[DebtContract](),
        opening_balances=InMemoryCollection[OpeningBalance](),
    )
