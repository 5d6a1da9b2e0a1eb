"""
Audit Models for the Cash-Flow Ledger

Every write the engine performs is logged for audit purposes.
This provides:
1. Complete traceability of generated and propagated records
2. Debugging information when a batch partially fails
3. A visible trail for contract drift, which is never auto-corrected

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    One event type per kind of write, plus the warnings the engine raises.
    """
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    STATUS_TOGGLED = "status_toggled"
    TRANSFER_RECORDED = "transfer_recorded"

    # Recurrences
    RECURRENCE_CREATED = "recurrence_created"
    RECURRENCE_UPDATED = "recurrence_updated"
    RECURRENCE_DELETED = "recurrence_deleted"
    RECURRENCE_GENERATED = "recurrence_generated"
    RECURRENCE_MONTH_SKIPPED = "recurrence_month_skipped"

    # Opening balances
    OPENING_BALANCE_ROLLED = "opening_balance_rolled"
    OPENING_BALANCE_SET = "opening_balance_set"

    # Debt contracts
    CONTRACT_CREATED = "contract_created"
    CONTRACT_ADJUSTED = "contract_adjusted"
    CONTRACT_SETTLED = "contract_settled"
    CONTRACT_REACTIVATED = "contract_reactivated"
    CONTRACT_UPDATED = "contract_updated"
    CONTRACT_DELETED = "contract_deleted"
    CONTRACT_DRIFT_DETECTED = "contract_drift_detected"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    WRITE_FAILED = "write_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'recurrence', 'contract')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Storage ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., every write caused by one save)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx_id, "Rent", "1200", correlation_id)
        event = AuditEventBuilder.contract_settled(contract_id, correlation_id)
    """

    @staticmethod
    def transaction_created(
        transaction_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID],
        origin: str = "manual",
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {description} - {amount}",
            details={
                "amount": amount,
                "origin": origin,
            },
            is_user_action=origin == "manual",
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        fields: list[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({len(fields)} fields)",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def status_toggled(
        transaction_id: str,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_TOGGLED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Status changed: {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_recorded(
        transfer_group_id: str,
        from_ledger_id: str,
        to_ledger_id: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_RECORDED,
            entity_type="transfer",
            entity_id=transfer_group_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} recorded",
            details={
                "from_ledger_id": from_ledger_id,
                "to_ledger_id": to_ledger_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurrence_changed(
        event_type: AuditEventType,
        recurrence_id: str,
        description: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        verb = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type="recurrence",
            entity_id=recurrence_id,
            correlation_id=correlation_id,
            description=f"Recurrence {verb}: {description}",
            is_user_action=True,
        )

    @staticmethod
    def recurrence_generated(
        recurrence_id: str,
        transaction_id: str,
        reference_month: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRENCE_GENERATED,
            entity_type="recurrence",
            entity_id=recurrence_id,
            correlation_id=correlation_id,
            description=f"Generated transaction for {reference_month}",
            details={
                "transaction_id": transaction_id,
                "reference_month": reference_month,
            },
        )

    @staticmethod
    def recurrence_month_skipped(
        recurrence_id: str,
        reference_month: str,
        correlation_id: Optional[UUID],
        is_user_action: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRENCE_MONTH_SKIPPED,
            entity_type="recurrence",
            entity_id=recurrence_id,
            correlation_id=correlation_id,
            description=f"Month {reference_month} suppressed",
            details={"reference_month": reference_month},
            is_user_action=is_user_action,
        )

    @staticmethod
    def opening_balance_rolled(
        balance_id: str,
        ledger_id: str,
        month_ref: str,
        amount: str,
        had_previous: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPENING_BALANCE_ROLLED,
            # A broken chain rolls over as zero and needs a manual fix
            severity=AuditSeverity.INFO if had_previous else AuditSeverity.WARNING,
            entity_type="opening_balance",
            entity_id=balance_id,
            correlation_id=correlation_id,
            description=(
                f"Opening balance for {month_ref} rolled over: {amount}"
                if had_previous
                else f"Opening balance for {month_ref} created as 0 (no previous month)"
            ),
            details={
                "ledger_id": ledger_id,
                "month_ref": month_ref,
                "amount": amount,
                "had_previous": had_previous,
            },
        )

    @staticmethod
    def opening_balance_set(
        balance_id: str,
        ledger_id: str,
        month_ref: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPENING_BALANCE_SET,
            entity_type="opening_balance",
            entity_id=balance_id,
            correlation_id=correlation_id,
            description=f"Opening balance for {month_ref} set to {amount}",
            details={
                "ledger_id": ledger_id,
                "month_ref": month_ref,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def contract_adjusted(
        contract_id: str,
        installments_remaining: int,
        total_debt_remaining: str,
        status: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        if status == "settled":
            event_type = AuditEventType.CONTRACT_SETTLED
        else:
            event_type = AuditEventType.CONTRACT_ADJUSTED
        return AuditEvent(
            event_type=event_type,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract {installments_remaining} installments left ({total_debt_remaining})",
            details={
                "installments_remaining": installments_remaining,
                "total_debt_remaining": total_debt_remaining,
                "status": status,
            },
        )

    @staticmethod
    def contract_reactivated(
        contract_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_REACTIVATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description="Settled contract reactivated by an un-paid installment",
        )

    @staticmethod
    def contract_changed(
        event_type: AuditEventType,
        contract_id: str,
        correlation_id: Optional[UUID],
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract {verb}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def contract_drift_detected(
        contract_id: str,
        total_debt_remaining: str,
        expected_debt_remaining: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=(
                f"Remaining debt {total_debt_remaining} differs from "
                f"installments x amount {expected_debt_remaining}"
            ),
            details={
                "total_debt_remaining": total_debt_remaining,
                "expected_debt_remaining": expected_debt_remaining,
            },
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Input rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        entity_type: str,
        entity_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Failed to {operation} {entity_type}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
