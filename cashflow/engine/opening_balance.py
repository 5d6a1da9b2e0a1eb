"""
Opening Balance Roller

Creates the opening balance of a ledger/month the first time that month
is viewed, by rolling the previous month forward:

    previous opening + previous income - previous expense

where only paid and scheduled transactions recorded directly on the
ledger count. A missing previous balance rolls over as 0 and is audited
as a warning; the chain is never back-filled further than one month.

DESIGN DECISION: The record is a snapshot. Once it exists it is never
recomputed, even if last month's transactions change afterwards.
Corrections go through set_opening_balance.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from cashflow.audit.logger import AuditLogger
from cashflow.config import EngineSettings, get_settings
from cashflow.engine.months import previous_month
from cashflow.models.ledger import (
    OpeningBalance,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from cashflow.services.storage.interface import LedgerStorage, StorageError


logger = structlog.get_logger(__name__)

ROLLOVER_STATUSES = frozenset({TransactionStatus.PAID, TransactionStatus.SCHEDULED})


def compute_rollover(
    previous: Optional[OpeningBalance],
    transactions: Iterable[Transaction],
    ledger_id: str,
    previous_month_ref: str,
) -> Decimal:
    """
    Amount the next month opens with.

    Zero when there is no previous balance to roll from.
    """
    if previous is None:
        return Decimal("0")

    income = Decimal("0")
    expense = Decimal("0")
    for tx in transactions:
        if tx.ledger_id != ledger_id or tx.reference_month != previous_month_ref:
            continue
        if tx.status not in ROLLOVER_STATUSES:
            continue
        if tx.type == TransactionType.INCOME:
            income += tx.amount
        else:
            expense += tx.amount

    return previous.amount + income - expense


class OpeningBalanceRoller:
    """Creates and edits per-ledger, per-month opening balances."""

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().engine
        self._in_flight: set[tuple[str, str]] = set()

    @property
    def min_supported_month(self) -> str:
        return self._settings.min_supported_month

    async def opening_balance_for(
        self,
        ledger_id: str,
        month: str,
    ) -> Optional[OpeningBalance]:
        for balance in await self._storage.opening_balances.list_all():
            if balance.ledger_id == ledger_id and balance.month_ref == month:
                return balance
        return None

    async def ensure_opening_balance(
        self,
        ledger_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[OpeningBalance]:
        """
        Make sure (ledger, month) has an opening balance.

        Returns the existing or newly created record, or None when the
        month is at or before the first supported month and nobody
        seeded it. Safe to call on every view.
        """
        existing = await self.opening_balance_for(ledger_id, month)
        if existing is not None:
            return existing
        if month <= self.min_supported_month:
            return None

        key = (ledger_id, month)
        if key in self._in_flight:
            return None
        self._in_flight.add(key)

        try:
            prev_month = previous_month(month)
            previous = await self.opening_balance_for(ledger_id, prev_month)
            transactions = await self._storage.transactions.list_all() if previous else []
            amount = compute_rollover(previous, transactions, ledger_id, prev_month)

            balance = OpeningBalance(
                ledger_id=ledger_id,
                month_ref=month,
                amount=amount,
                base_month=(previous.base_month or previous.month_ref) if previous else month,
            )
            balance_id = await self._storage.opening_balances.add(balance)
        except StorageError as e:
            await self._audit.log_write_failed(
                entity_type="opening_balance",
                entity_id=None,
                operation="rollover",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        finally:
            # Once stored, the record itself answers later calls
            self._in_flight.discard(key)

        logger.info(
            "opening_balance_rolled",
            ledger_id=ledger_id,
            month=month,
            amount=str(amount),
        )
        await self._audit.log_opening_balance_rolled(
            balance_id=balance_id,
            ledger_id=ledger_id,
            month_ref=month,
            amount=str(amount),
            had_previous=previous is not None,
            correlation_id=correlation_id,
        )
        return balance.model_copy(update={"id": balance_id})

    async def set_opening_balance(
        self,
        ledger_id: str,
        month: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OpeningBalance:
        """
        Explicit user input: overwrite or create the balance for (ledger, month).

        The record is marked as starting the rollover chain at the first
        supported month.
        """
        existing = await self.opening_balance_for(ledger_id, month)
        if existing is not None:
            balance = existing.model_copy(update={
                "amount": amount,
                "base_month": self.min_supported_month,
            })
            await self._storage.opening_balances.update(balance)
        else:
            balance = OpeningBalance(
                ledger_id=ledger_id,
                month_ref=month,
                amount=amount,
                base_month=self.min_supported_month,
            )
            balance_id = await self._storage.opening_balances.add(balance)
            balance = balance.model_copy(update={"id": balance_id})

        await self._audit.log_opening_balance_set(
            balance_id=balance.id,
            ledger_id=ledger_id,
            month_ref=month,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        return balance
