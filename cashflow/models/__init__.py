"""
Data Models Package

This package contains all Pydantic models used by the Cash-Flow Ledger.
Every record read from or written to storage conforms to these schemas.
"""

from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    DebtStatus,
    InstallmentsInfo,
    Ledger,
    LedgerType,
    OpeningBalance,
    PENDING_STATUSES,
    PaymentMethod,
    Recurrence,
    Transaction,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from cashflow.models.drafts import (
    DeleteScope,
    EditingItem,
    RecurrenceStub,
    TransactionDraft,
    TransactionEdit,
    UpdateScope,
    ValidationIssue,
    ValidationResult,
    draft_from_transaction,
    editing_item_adapter,
    infer_kind,
    stub_from_recurrence,
)
from cashflow.models.flow import (
    BatchResult,
    CardUsage,
    CategoryTotal,
    ContractDrift,
    ContractUpdateResult,
    CountTotal,
    FlowEntry,
    GenerationReport,
    LedgerView,
    PeriodContext,
    SaveResult,
    Statistics,
    StatusFilter,
    WriteFailure,
)
from cashflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CreditCard",
    "DebtContract",
    "DebtStatus",
    "InstallmentsInfo",
    "Ledger",
    "LedgerType",
    "OpeningBalance",
    "PENDING_STATUSES",
    "PaymentMethod",
    "Recurrence",
    "Transaction",
    "TransactionNature",
    "TransactionOrigin",
    "TransactionStatus",
    "TransactionType",
    # Editing items
    "DeleteScope",
    "EditingItem",
    "RecurrenceStub",
    "TransactionDraft",
    "TransactionEdit",
    "UpdateScope",
    "ValidationIssue",
    "ValidationResult",
    "draft_from_transaction",
    "editing_item_adapter",
    "infer_kind",
    "stub_from_recurrence",
    # Derived models
    "BatchResult",
    "CardUsage",
    "CategoryTotal",
    "ContractDrift",
    "ContractUpdateResult",
    "CountTotal",
    "FlowEntry",
    "GenerationReport",
    "LedgerView",
    "PeriodContext",
    "SaveResult",
    "Statistics",
    "StatusFilter",
    "WriteFailure",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
