"""
Core Data Models for the Cash-Flow Ledger

These models define the strict schemas for every record the engine reads
and writes through the persistence collaborator. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Referential invariants (a card transaction must point at an
existing card, a contract installment must share its contract's ledger) are
NOT enforced here. Historical records may outlive their references and must
still load; those rules are checked at entry points by the validator and
gaps are excluded by the aggregator.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from cashflow.config.settings import MONTH_PATTERN


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LedgerType(str, Enum):
    """Book categories. Each type normally has one default ledger."""
    PERSONAL = "personal"
    BUSINESS = "business"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    """
    How money moves.

    CARD implies billing-cycle semantics: the transaction counts toward an
    invoice month that may differ from its calendar date.
    """
    PIX = "pix"
    CARD = "card"
    BOLETO = "boleto"  # bank slip


class TransactionStatus(str, Enum):
    """
    User-declared status.

    OVERDUE is a display state; the engine only persists it when the user
    toggles it explicitly.
    """
    SCHEDULED = "scheduled"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class TransactionNature(str, Enum):
    ONE_OFF = "one_off"
    RECURRING = "recurring"
    INSTALLMENT = "installment"


class TransactionOrigin(str, Enum):
    """Which path created the transaction."""
    MANUAL = "manual"
    RECURRENCE = "recurrence"
    INSTALLMENT = "installment"
    DEBT = "debt"
    TRANSFER = "transfer"


class DebtStatus(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"


# Statuses that still represent money expected to move
PENDING_STATUSES = frozenset({TransactionStatus.SCHEDULED, TransactionStatus.OVERDUE})


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Ledger(BaseModel):
    """An independent financial book (e.g. personal vs. business)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(
        default="",
        max_length=100,
        description="Display name of the book"
    )
    type: LedgerType
    is_default: bool = False


class CreditCard(BaseModel):
    """
    A credit card and its billing-cycle parameters.

    ledger_id may be None while the card is unclassified.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    ledger_id: Optional[str] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=100
    )
    closing_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Spend on or after this day goes to the next invoice"
    )
    due_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of the reference month the invoice is due"
    )
    limit: Decimal = Field(
        default=Decimal("0"),
        ge=0
    )


class DebtContract(BaseModel):
    """
    A multi-installment obligation.

    total_debt_remaining is kept in step with installments_remaining by the
    status-toggle path; direct edits are a manual override and may drift.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    ledger_id: str
    card_id: Optional[str] = None
    creditor: str = Field(
        default="",
        max_length=200
    )
    description: str = Field(
        default="",
        max_length=200
    )
    installment_amount: Decimal = Field(
        ...,
        ge=0
    )
    installments_remaining: int = Field(
        ...,
        ge=0
    )
    total_installments: Optional[int] = Field(
        default=None,
        ge=0
    )
    total_debt_remaining: Decimal = Field(
        ...,
        ge=0
    )
    total_loan_value: Decimal = Field(
        default=Decimal("0"),
        ge=0
    )
    due_day: int = Field(
        default=10,
        ge=1,
        le=31
    )
    start_date: Optional[datetime.date] = None
    status: DebtStatus = DebtStatus.ACTIVE

    @property
    def expected_debt_remaining(self) -> Decimal:
        """What total_debt_remaining should be if both fields moved together."""
        return self.installment_amount * self.installments_remaining


# =============================================================================
# TRANSACTIONS AND TEMPLATES
# =============================================================================

class InstallmentsInfo(BaseModel):
    """Position of a transaction within an installment series."""

    current: int = Field(ge=1)
    total: int = Field(ge=1)

    @model_validator(mode='after')
    def validate_position(self) -> 'InstallmentsInfo':
        if self.current > self.total:
            raise ValueError("Installment index cannot exceed the total count")
        return self


class Transaction(BaseModel):
    """
    A single money movement.

    recurrence_id doubles as the series key: it links generated transactions
    to their Recurrence and installment siblings to each other.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    ledger_id: str
    type: TransactionType
    origin: TransactionOrigin = TransactionOrigin.MANUAL
    description: str = Field(
        default="",
        max_length=300
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative amount; direction comes from type"
    )
    method: PaymentMethod = PaymentMethod.PIX
    status: TransactionStatus = TransactionStatus.SCHEDULED
    date: datetime.date = Field(
        ...,
        description="Due date, or spend date for card purchases"
    )
    paid_date: Optional[datetime.date] = None
    reference_month: str = Field(
        ...,
        pattern=MONTH_PATTERN,
        description="Accounting/invoice month this transaction counts toward"
    )
    category: Optional[str] = None
    nature: TransactionNature = TransactionNature.ONE_OFF
    card_id: Optional[str] = None
    contract_id: Optional[str] = None
    recurrence_id: Optional[str] = None
    transfer_group_id: Optional[str] = None
    installments_info: Optional[InstallmentsInfo] = None

    @property
    def is_card(self) -> bool:
        return self.method == PaymentMethod.CARD

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES


class Recurrence(BaseModel):
    """
    A template that auto-generates periodic transactions.

    Never counted in statistics; only its generated transactions are.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    ledger_id: str
    description: str = Field(
        default="",
        max_length=300
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        ge=0
    )
    category: Optional[str] = None
    method: PaymentMethod = PaymentMethod.PIX
    day_of_month: int = Field(
        default=1,
        ge=1,
        le=31
    )
    card_id: Optional[str] = None
    is_active: bool = True
    auto_generate: bool = True
    skipped_months: list[str] = Field(
        default_factory=list,
        description="Reference months the user deleted; never regenerated"
    )


class OpeningBalance(BaseModel):
    """
    Cash on hand at the start of a month for one ledger.

    A snapshot: once created it is never recomputed automatically.
    """

    id: Optional[str] = None
    ledger_id: str
    month_ref: str = Field(
        ...,
        pattern=MONTH_PATTERN
    )
    amount: Decimal
    base_month: Optional[str] = Field(
        default=None,
        pattern=MONTH_PATTERN,
        description="Month from which automatic rollover accounting started"
    )
