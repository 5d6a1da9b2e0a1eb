"""
Derived Models for the Cash-Flow Ledger

Everything the engine computes rather than stores: period statistics,
the unified flow view, card usage, and the reports returned by batch
operations.

DESIGN DECISION: The aggregator is pure. It receives "today" and the period
through PeriodContext instead of reading a clock or ambient filter state,
so the same inputs always produce the same Statistics.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from cashflow.config.settings import MONTH_PATTERN
from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    PaymentMethod,
    Transaction,
    TransactionNature,
    TransactionStatus,
    TransactionType,
)


class StatusFilter(str, Enum):
    """Status filter for the flow view, applied after invoice grouping."""
    ALL = "all"
    SCHEDULED = "scheduled"
    PAID = "paid"
    OVERDUE = "overdue"


class PeriodContext(BaseModel):
    """
    Explicit scope for one aggregation run.

    ledger_id=None means consolidated mode (all ledgers).
    """

    ledger_id: Optional[str] = None
    start_month: str = Field(..., pattern=MONTH_PATTERN)
    end_month: str = Field(..., pattern=MONTH_PATTERN)
    today: datetime.date

    @model_validator(mode='after')
    def validate_range(self) -> 'PeriodContext':
        if self.end_month < self.start_month:
            raise ValueError("End month cannot be before start month")
        return self

    @property
    def is_consolidated(self) -> bool:
        return self.ledger_id is None

    @property
    def is_range(self) -> bool:
        return self.start_month != self.end_month

    def contains(self, month: Optional[str]) -> bool:
        """Check whether a reference month falls inside the period."""
        if not month:
            return False
        return self.start_month <= month <= self.end_month


class CountTotal(BaseModel):
    """A count of transactions and their summed amount."""

    count: int = 0
    total: Decimal = Decimal("0")


class CategoryTotal(BaseModel):
    category: str
    total: Decimal


class Statistics(BaseModel):
    """
    Summary of one ledger (or all ledgers) over a period.

    realized_* only count paid transactions; projected_* count every
    status, cancelled included; pending_* count scheduled/overdue only.
    """

    opening_balance: Decimal = Decimal("0")

    realized_income: Decimal = Decimal("0")
    realized_expense: Decimal = Decimal("0")
    projected_income: Decimal = Decimal("0")
    projected_expense: Decimal = Decimal("0")
    pending_income: Decimal = Decimal("0")
    pending_expense: Decimal = Decimal("0")

    cash_balance: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance + realized income - realized expense"
    )
    projected_balance: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance + projected income - projected expense"
    )

    total_open_debt: Decimal = Decimal("0")
    monthly_debt_installments: Decimal = Decimal("0")

    overdue: CountTotal = Field(default_factory=CountTotal)
    due_soon: CountTotal = Field(default_factory=CountTotal)
    top_categories: list[CategoryTotal] = Field(default_factory=list)


class FlowEntry(BaseModel):
    """
    One row of the unified flow view.

    Either a plain (non-card) transaction, or a synthetic invoice entry
    grouping every card transaction of one card and reference month.
    """

    id: str
    description: str = ""
    amount: Decimal
    type: TransactionType
    method: Optional[PaymentMethod] = None
    status: TransactionStatus
    date: datetime.date
    reference_month: str
    ledger_id: Optional[str] = None
    category: Optional[str] = None
    nature: Optional[TransactionNature] = None
    card_id: Optional[str] = None
    contract_id: Optional[str] = None
    recurrence_id: Optional[str] = None
    installment_current: Optional[int] = None
    installment_total: Optional[int] = None

    # Invoice grouping
    is_group: bool = False
    transaction_ids: list[str] = Field(default_factory=list)
    all_paid: bool = False

    def effective_status(self, today: datetime.date) -> TransactionStatus:
        """
        Status used for filtering.

        Plain entries past their date that are still pending count as
        overdue; grouped invoices are never reclassified.
        """
        if (
            not self.is_group
            and self.date < today
            and self.status in (TransactionStatus.SCHEDULED, TransactionStatus.OVERDUE)
        ):
            return TransactionStatus.OVERDUE
        return self.status


class CardUsage(BaseModel):
    """How much of a card's limit is committed."""

    card: CreditCard
    usage: Decimal
    percentage: float = Field(
        default=0.0,
        ge=0.0,
        description="usage / limit * 100, 0 when the card has no limit"
    )


# =============================================================================
# OPERATION REPORTS
# =============================================================================

class WriteFailure(BaseModel):
    """A single record that could not be written during a batch."""

    record_id: Optional[str] = None
    operation: str
    error: str


class BatchResult(BaseModel):
    """
    Outcome of a sequence of independent per-record writes.

    There is no rollback: succeeded writes stay, failed ones are listed.
    """

    succeeded: list[str] = Field(default_factory=list)
    failures: list[WriteFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: 'BatchResult') -> 'BatchResult':
        self.succeeded.extend(other.succeeded)
        self.failures.extend(other.failures)
        return self


class SaveResult(BaseModel):
    """
    Outcome of saving an editing item.

    ``transaction`` is the record the user edited or the first record of
    a new series; ``batch`` lists the sibling writes the save caused.
    """

    transaction: Transaction
    recurrence_id: Optional[str] = None
    batch: BatchResult = Field(default_factory=BatchResult)
    warnings: list[str] = Field(default_factory=list)


class GenerationReport(BaseModel):
    """What one recurrence generation run did."""

    created: list[str] = Field(
        default_factory=list,
        description="IDs of transactions created in this run"
    )
    suppressed: list[str] = Field(
        default_factory=list,
        description="'<recurrence_id>:<month>' keys skipped because the user deleted them"
    )
    failures: list[WriteFailure] = Field(default_factory=list)


class ContractDrift(BaseModel):
    """
    A debt contract whose remaining total disagrees with
    installment_amount x installments_remaining.

    Reported, never reconciled automatically.
    """

    contract_id: str
    installments_remaining: int
    installment_amount: Decimal
    total_debt_remaining: Decimal
    expected_debt_remaining: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total_debt_remaining - self.expected_debt_remaining


class ContractUpdateResult(BaseModel):
    """Outcome of a direct contract edit: the stored contract, propagated writes, detected drift."""

    contract: DebtContract
    batch: BatchResult = Field(default_factory=BatchResult)
    drift: Optional[ContractDrift] = None


class LedgerView(BaseModel):
    """Everything one ledger screen shows for a period."""

    context: PeriodContext
    statistics: Statistics
    flow: list[FlowEntry] = Field(default_factory=list)
    card_usages: list[CardUsage] = Field(default_factory=list)
    generation: GenerationReport = Field(default_factory=GenerationReport)
