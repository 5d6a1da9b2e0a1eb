"""
Main Orchestrator for the Cash-Flow Ledger

This module ties the engine components together and defines the
end-to-end flows a caller uses:
1. Viewing a ledger (generate recurrences → roll opening balance → aggregate)
2. Mutating records (save, delete, toggle, contracts, transfers)

DESIGN DECISION: The orchestrator enforces the ordering:
- Recurrences are generated before anything is read for a view
- The opening balance of the first viewed month exists before statistics
- Every flow shares one correlation id across its audit events

Callers pass the ledger and period explicitly; there is no ambient
"selected ledger" state.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from cashflow.audit import AuditLogger, create_correlation_id
from cashflow.config import EngineSettings, get_settings, validate_all_settings
from cashflow.engine.aggregator import StatisticsAggregator
from cashflow.engine.coordinator import DebtInstallmentCoordinator
from cashflow.engine.opening_balance import OpeningBalanceRoller
from cashflow.engine.recurrence import RecurrenceGenerator
from cashflow.engine.registry import LedgerRegistry
from cashflow.models.drafts import (
    DeleteScope,
    RecurrenceStub,
    TransactionDraft,
    TransactionEdit,
    UpdateScope,
)
from cashflow.models.flow import (
    BatchResult,
    ContractUpdateResult,
    FlowEntry,
    LedgerView,
    PeriodContext,
    SaveResult,
    StatusFilter,
)
from cashflow.models.ledger import DebtContract, OpeningBalance, Recurrence, Transaction
from cashflow.services.clock import Clock, SystemClock
from cashflow.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    LedgerStorage,
    create_memory_storage,
    create_sheets_storage,
)


logger = structlog.get_logger(__name__)


class LedgerSession:
    """
    One caller's entry point into the engine.

    The generator and roller keep their in-process guards for the
    lifetime of the session, so repeated views never duplicate records.

    Usage:
        session = LedgerSession(storage)
        view = await session.view("personal", "2026-03", "2026-03")
    """

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings().engine

        self.generator = RecurrenceGenerator(storage, self._audit_logger, self._settings)
        self.roller = OpeningBalanceRoller(storage, self._audit_logger, self._settings)
        self.aggregator = StatisticsAggregator(self._settings)
        self.coordinator = DebtInstallmentCoordinator(
            storage, self._audit_logger, self._settings, self._clock
        )

    @property
    def storage(self) -> LedgerStorage:
        return self._storage

    async def view(
        self,
        ledger_id: Optional[str],
        start_month: str,
        end_month: Optional[str] = None,
        status_filter: StatusFilter = StatusFilter.ALL,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerView:
        """
        Build the view of one ledger (or all ledgers when None) for a period.

        Consolidated views carry no opening balance.
        """
        correlation_id = correlation_id or create_correlation_id()
        today = self._clock.today()
        context = PeriodContext(
            ledger_id=ledger_id,
            start_month=start_month,
            end_month=end_month or start_month,
            today=today,
        )

        generation = await self.generator.generate(today, correlation_id)

        opening: Optional[OpeningBalance] = None
        if not context.is_consolidated:
            opening = await self.roller.ensure_opening_balance(
                ledger_id, context.start_month, correlation_id
            )

        registry = await LedgerRegistry.load(self._storage)
        transactions = await self._storage.transactions.list_all()

        statistics = self.aggregator.compute_stats(transactions, registry, context, opening)
        flow = self.aggregator.filter_flow(
            self.aggregator.build_flow(transactions, registry, context),
            status_filter,
            today,
        )
        card_usages = []
        for card in registry.cards_for_ledger(ledger_id):
            usage = self.aggregator.card_usage(card.id, transactions, registry)
            if usage:
                card_usages.append(usage)

        logger.info(
            "ledger_view_built",
            ledger_id=ledger_id,
            start_month=context.start_month,
            end_month=context.end_month,
            flow_entries=len(flow),
            generated=len(generation.created),
            correlation_id=str(correlation_id),
        )

        return LedgerView(
            context=context,
            statistics=statistics,
            flow=flow,
            card_usages=card_usages,
            generation=generation,
        )

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def save(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
        scope: UpdateScope = UpdateScope.ONLY_THIS,
        correlation_id: Optional[UUID] = None,
    ) -> Union[SaveResult, Recurrence]:
        """Save any editing item; recurrence stubs update their rule."""
        if isinstance(item, RecurrenceStub):
            return await self.coordinator.save_recurrence(item, correlation_id)
        return await self.coordinator.save_transaction(item, scope, correlation_id)

    async def delete(
        self,
        transaction_id: str,
        scope: DeleteScope = DeleteScope.ONLY_THIS,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        return await self.coordinator.delete_transaction(transaction_id, scope, correlation_id)

    async def toggle(
        self,
        entry: Union[FlowEntry, str],
        correlation_id: Optional[UUID] = None,
    ) -> Union[BatchResult, Transaction]:
        """Toggle a flow entry (grouped invoices toggle all members) or a transaction id."""
        if isinstance(entry, FlowEntry):
            return await self.coordinator.toggle_invoice(entry, correlation_id)
        return await self.coordinator.toggle_status(entry, correlation_id=correlation_id)

    async def set_opening_balance(
        self,
        ledger_id: str,
        month: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OpeningBalance:
        return await self.roller.set_opening_balance(ledger_id, month, amount, correlation_id)

    async def create_debt_contract(
        self,
        contract: DebtContract,
        first_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> ContractUpdateResult:
        return await self.coordinator.create_debt_contract(contract, first_due_date, correlation_id)

    async def update_debt_contract(
        self,
        contract: DebtContract,
        correlation_id: Optional[UUID] = None,
    ) -> ContractUpdateResult:
        return await self.coordinator.update_debt_contract(contract, correlation_id)

    async def transfer(
        self,
        from_ledger_id: str,
        to_ledger_id: str,
        amount: Decimal,
        on: Optional[date] = None,
        description: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> tuple[str, BatchResult]:
        return await self.coordinator.record_transfer(
            from_ledger_id,
            to_ledger_id,
            amount,
            on or self._clock.today(),
            description,
            correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
    clock: Optional[Clock] = None,
) -> tuple[LedgerSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
        clock: Overrides the system clock.

    Returns:
        (session, sheets_client)
    """
    sheets_client = None
    storage = None
    audit_logger = None

    if use_storage:
        status = validate_all_settings()
        if not status["google_sheets"]:
            logger.warning("storage_not_configured", error=status["google_sheets_error"])
        else:
            try:
                sheets_client = GoogleSheetsClient()
                storage = create_sheets_storage(sheets_client)
                audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
            except Exception as e:
                # Sheets unreachable - continue in memory
                logger.warning("storage_unavailable", error=str(e))
                sheets_client = None
                storage = None

    if storage is None:
        storage = create_memory_storage()
        audit_logger = AuditLogger()  # Local-only logging

    session = LedgerSession(storage, audit_logger=audit_logger, clock=clock)
    return session, sheets_client
