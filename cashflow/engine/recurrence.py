"""
Recurrence Generator

Materializes card-billed recurrence rules into transactions for the
current and next calendar month (the horizon is configurable).

DESIGN DECISION: Generation is idempotent. It is meant to run on every
view refresh, so it must converge instead of duplicating:
1. Existing transactions with the same (recurrence id, reference month)
   are checked first and are authoritative
2. An in-memory guard of keys written by this generator instance covers
   the window where a write has been issued but is not yet visible
3. A failed write releases its key so a later run can retry it
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from cashflow.audit.logger import AuditLogger
from cashflow.config import EngineSettings, get_settings
from cashflow.engine.months import add_months, clamp_day, invoice_month, month_of
from cashflow.engine.registry import LedgerRegistry
from cashflow.models.flow import GenerationReport, WriteFailure
from cashflow.models.ledger import (
    PaymentMethod,
    Recurrence,
    Transaction,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
)
from cashflow.services.storage.interface import LedgerStorage, StorageError


logger = structlog.get_logger(__name__)


class RecurrenceGenerator:
    """
    Creates missing transactions for active, auto-generating card recurrences.

    Usage:
        generator = RecurrenceGenerator(storage, audit_logger)
        report = await generator.generate(today)
    """

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().engine
        self._processed: set[tuple[str, str]] = set()

    def target_months(self, today: date) -> list[str]:
        """Calendar months covered by one run, starting with today's."""
        current = month_of(today)
        return [
            add_months(current, offset)
            for offset in range(self._settings.generation_horizon_months)
        ]

    def occurrence(self, recurrence: Recurrence, calendar_month: str, closing_day: int) -> tuple[date, str]:
        """Spend date and invoice month of a rule within one calendar month."""
        spend_date = clamp_day(calendar_month, recurrence.day_of_month)
        return spend_date, invoice_month(spend_date, closing_day)

    def is_eligible(self, recurrence: Recurrence, registry: LedgerRegistry) -> bool:
        """Only active, auto-generating, card-billed rules with a known card qualify."""
        if not recurrence.is_active or not recurrence.auto_generate:
            return False
        if recurrence.method != PaymentMethod.CARD or not recurrence.ledger_id:
            return False
        return registry.card(recurrence.card_id) is not None

    async def generate(
        self,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationReport:
        """
        Run one generation pass.

        A failing write is recorded in the report and does not stop the
        remaining rules.
        """
        report = GenerationReport()

        registry = await LedgerRegistry.load(self._storage)
        existing = {
            (tx.recurrence_id, tx.reference_month)
            for tx in await self._storage.transactions.list_all()
            if tx.recurrence_id
        }

        for recurrence in registry.recurrences:
            if not self.is_eligible(recurrence, registry):
                continue

            card = registry.card(recurrence.card_id)
            closing_day = card.closing_day or self._settings.default_card_closing_day

            for calendar_month in self.target_months(today):
                spend_date, reference_month = self.occurrence(
                    recurrence, calendar_month, closing_day
                )
                key = (recurrence.id, reference_month)

                if reference_month in recurrence.skipped_months:
                    report.suppressed.append(f"{recurrence.id}:{reference_month}")
                    logger.debug(
                        "recurrence_month_suppressed",
                        recurrence_id=recurrence.id,
                        reference_month=reference_month,
                    )
                    continue

                if key in existing or key in self._processed:
                    continue

                # Claimed before the write so an overlapping run skips it
                self._processed.add(key)

                transaction = Transaction(
                    ledger_id=recurrence.ledger_id,
                    type=recurrence.type,
                    origin=TransactionOrigin.RECURRENCE,
                    description=recurrence.description,
                    amount=recurrence.amount,
                    method=PaymentMethod.CARD,
                    status=TransactionStatus.SCHEDULED,
                    date=spend_date,
                    reference_month=reference_month,
                    category=recurrence.category,
                    nature=TransactionNature.RECURRING,
                    card_id=recurrence.card_id,
                    recurrence_id=recurrence.id,
                )

                try:
                    transaction_id = await self._storage.transactions.add(transaction)
                except StorageError as e:
                    self._processed.discard(key)
                    report.failures.append(WriteFailure(
                        record_id=recurrence.id,
                        operation="generate",
                        error=str(e),
                    ))
                    await self._audit.log_write_failed(
                        entity_type="recurrence",
                        entity_id=recurrence.id,
                        operation="generate",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    continue

                existing.add(key)
                report.created.append(transaction_id)
                await self._audit.log_recurrence_generated(
                    recurrence_id=recurrence.id,
                    transaction_id=transaction_id,
                    reference_month=reference_month,
                    correlation_id=correlation_id,
                )

        return report
