"""
Editing-Item Models

A form can hand the engine three different things: a brand new transaction,
an edit of a stored transaction, or a recurrence rule being edited through
the same form. Each gets its own variant of a discriminated union so the
coordinator never has to guess what a loosely shaped dict means.

Conversion functions at the bottom are the only way stored records become
editing items.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from cashflow.config.settings import MONTH_PATTERN
from cashflow.models.ledger import (
    InstallmentsInfo,
    PaymentMethod,
    Recurrence,
    Transaction,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)


class UpdateScope(str, Enum):
    """How far an edit to one member of a series propagates."""
    ONLY_THIS = "only_this"
    FROM_HERE = "from_here"
    ALL_RELATED = "all_related"


class DeleteScope(str, Enum):
    ONLY_THIS = "only_this"
    ALL_RELATED = "all_related"


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'dangling_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (references against the registry)
    """

    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# EDITING ITEM VARIANTS
# =============================================================================

class _TransactionFields(BaseModel):
    """Fields shared by new and edited transactions."""
    model_config = ConfigDict(str_strip_whitespace=True)

    ledger_id: str = Field(..., min_length=1)
    type: TransactionType
    description: str = Field(default="", max_length=300)
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount per installment"
    )
    method: PaymentMethod = PaymentMethod.PIX
    status: TransactionStatus = TransactionStatus.SCHEDULED
    date: datetime.date
    reference_month: Optional[str] = Field(
        default=None,
        pattern=MONTH_PATTERN,
        description="Derived from date (and the card's closing day) when omitted"
    )
    category: Optional[str] = None
    nature: TransactionNature = TransactionNature.ONE_OFF
    card_id: Optional[str] = None
    contract_id: Optional[str] = None
    installment_count: int = Field(
        default=1,
        ge=1,
        le=480,
        description="Total installments the series should have"
    )

    @property
    def is_card(self) -> bool:
        return self.method == PaymentMethod.CARD

    @property
    def is_multi(self) -> bool:
        """
        Card purchases and installment natures split into several records.

        Recurring transactions are never split; the recurrence rule
        produces the following months instead.
        """
        if self.nature == TransactionNature.RECURRING:
            return False
        return (
            self.is_card or self.nature == TransactionNature.INSTALLMENT
        ) and self.installment_count > 1


class TransactionDraft(_TransactionFields):
    """A transaction that does not exist yet."""

    kind: Literal["new_transaction"] = "new_transaction"

    def to_transaction(self, reference_month: str) -> Transaction:
        """Build the first record of the (possibly multi-installment) series."""
        origin = (
            TransactionOrigin.INSTALLMENT if self.is_multi else TransactionOrigin.MANUAL
        )
        return Transaction(
            ledger_id=self.ledger_id,
            type=self.type,
            origin=origin,
            description=self.description,
            amount=self.amount,
            method=self.method,
            status=self.status,
            date=self.date,
            reference_month=reference_month,
            category=self.category,
            nature=self.nature,
            card_id=self.card_id if self.is_card else None,
            contract_id=self.contract_id,
            installments_info=(
                InstallmentsInfo(current=1, total=self.installment_count)
                if self.is_multi else None
            ),
        )


class TransactionEdit(_TransactionFields):
    """An edit of a stored transaction."""

    kind: Literal["transaction_edit"] = "transaction_edit"

    id: str = Field(..., min_length=1)
    origin: TransactionOrigin = TransactionOrigin.MANUAL
    paid_date: Optional[datetime.date] = None
    recurrence_id: Optional[str] = None
    transfer_group_id: Optional[str] = None
    installment_current: int = Field(default=1, ge=1)
    previous_installment_total: int = Field(
        default=1,
        ge=1,
        description="Installment total before this edit"
    )

    def to_transaction(self, reference_month: str) -> Transaction:
        """Apply the edit; installment info only survives on multi series."""
        return Transaction(
            id=self.id,
            ledger_id=self.ledger_id,
            type=self.type,
            origin=self.origin,
            description=self.description,
            amount=self.amount,
            method=self.method,
            status=self.status,
            date=self.date,
            paid_date=self.paid_date,
            reference_month=reference_month,
            category=self.category,
            nature=self.nature,
            card_id=self.card_id if self.is_card else None,
            contract_id=self.contract_id,
            recurrence_id=self.recurrence_id,
            transfer_group_id=self.transfer_group_id,
            installments_info=(
                InstallmentsInfo(
                    current=self.installment_current,
                    total=self.installment_count,
                )
                if self.is_multi else None
            ),
        )


class RecurrenceStub(BaseModel):
    """A recurrence rule edited through the transaction form."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["recurrence_stub"] = "recurrence_stub"

    recurrence_id: str = Field(..., min_length=1)
    ledger_id: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=300)
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    category: Optional[str] = None
    method: PaymentMethod = PaymentMethod.PIX
    day_of_month: int = Field(default=1, ge=1, le=31)
    card_id: Optional[str] = None
    is_active: bool = True
    auto_generate: bool = True

    def apply_to(self, recurrence: Recurrence) -> Recurrence:
        """Return the stored rule with this stub's values; skipped months are kept."""
        return recurrence.model_copy(update={
            "ledger_id": self.ledger_id,
            "description": self.description,
            "type": self.type,
            "amount": self.amount,
            "category": self.category,
            "method": self.method,
            "day_of_month": self.day_of_month,
            "card_id": self.card_id if self.method == PaymentMethod.CARD else None,
            "is_active": self.is_active,
            "auto_generate": self.auto_generate,
        })


EditingItem = Annotated[
    Union[TransactionDraft, TransactionEdit, RecurrenceStub],
    Field(discriminator="kind"),
]

editing_item_adapter: TypeAdapter[EditingItem] = TypeAdapter(EditingItem)


# =============================================================================
# CONVERSIONS
# =============================================================================

def draft_from_transaction(transaction: Transaction) -> TransactionEdit:
    """Turn a stored transaction into an edit variant."""
    if transaction.id is None:
        raise ValueError("Only stored transactions can be edited")

    info = transaction.installments_info
    return TransactionEdit(
        id=transaction.id,
        ledger_id=transaction.ledger_id,
        type=transaction.type,
        origin=transaction.origin,
        description=transaction.description,
        amount=transaction.amount,
        method=transaction.method,
        status=transaction.status,
        date=transaction.date,
        paid_date=transaction.paid_date,
        reference_month=transaction.reference_month,
        category=transaction.category,
        nature=transaction.nature,
        card_id=transaction.card_id,
        contract_id=transaction.contract_id,
        recurrence_id=transaction.recurrence_id,
        transfer_group_id=transaction.transfer_group_id,
        installment_current=info.current if info else 1,
        installment_count=info.total if info else 1,
        previous_installment_total=info.total if info else 1,
    )


def stub_from_recurrence(recurrence: Recurrence) -> RecurrenceStub:
    """Turn a stored recurrence rule into a stub for the edit form."""
    if recurrence.id is None:
        raise ValueError("Only stored recurrences can be edited")

    return RecurrenceStub(
        recurrence_id=recurrence.id,
        ledger_id=recurrence.ledger_id,
        description=recurrence.description,
        type=recurrence.type,
        amount=recurrence.amount,
        category=recurrence.category,
        method=recurrence.method,
        day_of_month=recurrence.day_of_month,
        card_id=recurrence.card_id,
        is_active=recurrence.is_active,
        auto_generate=recurrence.auto_generate,
    )


def infer_kind(payload: dict) -> str:
    """
    Pick the variant for a raw payload that carries no explicit kind.

    Payloads with an id are edits; payloads naming a recurrence and a
    day of month are recurrence stubs; everything else is new.
    """
    if payload.get("kind"):
        return payload["kind"]
    if payload.get("id"):
        return "transaction_edit"
    if payload.get("recurrence_id") and "day_of_month" in payload:
        return "recurrence_stub"
    return "new_transaction"
