"""
Statistics & Flow Aggregator

Turns the raw transaction set into what a ledger view displays:
period statistics, the unified flow (card purchases merged into one
invoice entry per card and reference month) and card usage.

DESIGN DECISION: Everything here is a pure function of its inputs.
"today", the ledger scope and the period arrive in a PeriodContext;
nothing is read from storage or from a clock.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from cashflow.config import EngineSettings, get_settings
from cashflow.engine.months import clamp_day
from cashflow.engine.registry import LedgerRegistry
from cashflow.models.flow import (
    CardUsage,
    CategoryTotal,
    CountTotal,
    FlowEntry,
    PeriodContext,
    Statistics,
    StatusFilter,
)
from cashflow.models.ledger import (
    DebtStatus,
    PENDING_STATUSES,
    OpeningBalance,
    Transaction,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)


def _total(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), Decimal("0"))


def _count_total(transactions: list[Transaction]) -> CountTotal:
    return CountTotal(count=len(transactions), total=_total(transactions))


class StatisticsAggregator:
    """Computes statistics, flow entries and card usage for one period."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = settings or get_settings().engine

    # =========================================================================
    # SCOPING
    # =========================================================================

    def period_transactions(
        self,
        transactions: Iterable[Transaction],
        registry: LedgerRegistry,
        context: PeriodContext,
    ) -> list[Transaction]:
        """Transactions of the context's ledger whose reference month is in the period."""
        return [
            tx for tx in registry.scope_transactions(transactions, context.ledger_id)
            if context.contains(tx.reference_month)
        ]

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def compute_stats(
        self,
        transactions: Iterable[Transaction],
        registry: LedgerRegistry,
        context: PeriodContext,
        opening_balance: Optional[OpeningBalance] = None,
    ) -> Statistics:
        """
        Summarize one period.

        Projected totals and top categories count every status, cancelled
        included. Consolidated views have no opening balance.
        """
        in_period = self.period_transactions(transactions, registry, context)
        incomes = [tx for tx in in_period if tx.type == TransactionType.INCOME]
        expenses = [tx for tx in in_period if tx.type == TransactionType.EXPENSE]

        opening = opening_balance.amount if opening_balance else Decimal("0")

        realized_income = _total(tx for tx in incomes if tx.status == TransactionStatus.PAID)
        realized_expense = _total(tx for tx in expenses if tx.status == TransactionStatus.PAID)
        projected_income = _total(incomes)
        projected_expense = _total(expenses)

        today = context.today
        overdue = [
            tx for tx in expenses
            if tx.date < today
            and tx.status in PENDING_STATUSES
            and not (tx.is_card and registry.card(tx.card_id) is None)
        ]
        horizon = today + timedelta(days=self._settings.due_soon_days)
        due_soon = [
            tx for tx in expenses
            if today <= tx.date <= horizon and tx.status == TransactionStatus.SCHEDULED
        ]

        return Statistics(
            opening_balance=opening,
            realized_income=realized_income,
            realized_expense=realized_expense,
            projected_income=projected_income,
            projected_expense=projected_expense,
            pending_income=_total(tx for tx in incomes if tx.status in PENDING_STATUSES),
            pending_expense=_total(tx for tx in expenses if tx.status in PENDING_STATUSES),
            cash_balance=opening + realized_income - realized_expense,
            projected_balance=opening + projected_income - projected_expense,
            total_open_debt=_total_open_debt(registry, context.ledger_id),
            monthly_debt_installments=_total(
                tx for tx in in_period
                if tx.contract_id or tx.origin == TransactionOrigin.DEBT
            ),
            overdue=_count_total(overdue),
            due_soon=_count_total(due_soon),
            top_categories=self.top_categories(expenses),
        )

    def top_categories(self, expenses: Iterable[Transaction]) -> list[CategoryTotal]:
        """Expense totals per category, largest first."""
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for tx in expenses:
            totals[tx.category or self._settings.default_category] += tx.amount

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [
            CategoryTotal(category=category, total=total)
            for category, total in ranked[:self._settings.top_categories_limit]
        ]

    # =========================================================================
    # FLOW
    # =========================================================================

    def build_flow(
        self,
        transactions: Iterable[Transaction],
        registry: LedgerRegistry,
        context: PeriodContext,
    ) -> list[FlowEntry]:
        """
        Unified flow for the period, sorted by date.

        Non-card transactions appear as themselves. Card transactions are
        merged into one invoice entry per (card, reference month), dated
        on the card's due day and paid only when every member is paid.
        """
        entries: list[FlowEntry] = []
        groups: dict[tuple[str, str], list[Transaction]] = {}

        for tx in self.period_transactions(transactions, registry, context):
            if not tx.is_card:
                entries.append(_entry_for(tx))
                continue
            if registry.card(tx.card_id) is None:
                continue
            groups.setdefault((tx.card_id, tx.reference_month), []).append(tx)

        for (card_id, reference_month), members in groups.items():
            card = registry.card(card_id)
            due_day = card.due_day or self._settings.default_card_due_day
            all_paid = all(tx.status == TransactionStatus.PAID for tx in members)
            entries.append(FlowEntry(
                id=f"group-{card_id}-{reference_month}",
                description=f"Invoice {card.name}",
                amount=_total(members),
                type=TransactionType.EXPENSE,
                method=members[0].method,
                status=TransactionStatus.PAID if all_paid else TransactionStatus.SCHEDULED,
                date=clamp_day(reference_month, due_day),
                reference_month=reference_month,
                ledger_id=card.ledger_id,
                card_id=card_id,
                is_group=True,
                transaction_ids=[tx.id for tx in members],
                all_paid=all_paid,
            ))

        entries.sort(key=lambda entry: entry.date)
        return entries

    def filter_flow(
        self,
        entries: Iterable[FlowEntry],
        status_filter: StatusFilter,
        today: date,
    ) -> list[FlowEntry]:
        """Apply the status filter after grouping."""
        if status_filter == StatusFilter.ALL:
            return list(entries)
        wanted = TransactionStatus(status_filter.value)
        return [entry for entry in entries if entry.effective_status(today) == wanted]

    # =========================================================================
    # CARDS
    # =========================================================================

    def card_usage(
        self,
        card_id: str,
        transactions: Iterable[Transaction],
        registry: LedgerRegistry,
    ) -> Optional[CardUsage]:
        """
        Committed amount of a card.

        Remaining debt of active contracts billed to the card, plus pending
        card expenses not already covered by one of those contracts.
        Installments of a contract that no longer exists are not counted.
        """
        card = registry.card(card_id)
        if card is None:
            return None

        active = {
            c.id: c for c in registry.contracts
            if c.card_id == card_id and c.status == DebtStatus.ACTIVE
        }
        usage = _total_debt(active.values())

        for tx in transactions:
            if tx.card_id != card_id or tx.type != TransactionType.EXPENSE:
                continue
            if tx.status not in PENDING_STATUSES:
                continue
            if tx.contract_id and (
                tx.contract_id in active or registry.contract(tx.contract_id) is None
            ):
                continue
            usage += tx.amount

        percentage = float(usage / card.limit * 100) if card.limit > 0 else 0.0
        return CardUsage(card=card, usage=usage, percentage=max(percentage, 0.0))

    def card_statement(
        self,
        card_id: str,
        transactions: Iterable[Transaction],
        month: Optional[str] = None,
        pending_only: bool = False,
    ) -> list[Transaction]:
        """
        Transactions billed to one card.

        Either every pending card expense, or the members of one
        reference month's invoice. Sorted by date.
        """
        selected = []
        for tx in transactions:
            if tx.card_id != card_id:
                continue
            if pending_only:
                if tx.status in PENDING_STATUSES and tx.type == TransactionType.EXPENSE:
                    selected.append(tx)
            elif tx.reference_month == month:
                selected.append(tx)
        return sorted(selected, key=lambda tx: tx.date)


def _total_debt(contracts) -> Decimal:
    return sum((c.total_debt_remaining for c in contracts), Decimal("0"))


def _total_open_debt(registry: LedgerRegistry, ledger_id: Optional[str]) -> Decimal:
    return _total_debt(registry.contracts_for_ledger(ledger_id))


def _entry_for(tx: Transaction) -> FlowEntry:
    info = tx.installments_info
    return FlowEntry(
        id=tx.id,
        description=tx.description,
        amount=tx.amount,
        type=tx.type,
        method=tx.method,
        status=tx.status,
        date=tx.date,
        reference_month=tx.reference_month,
        ledger_id=tx.ledger_id,
        category=tx.category,
        nature=tx.nature,
        card_id=tx.card_id,
        contract_id=tx.contract_id,
        recurrence_id=tx.recurrence_id,
        installment_current=info.current if info else None,
        installment_total=info.total if info else None,
    )
