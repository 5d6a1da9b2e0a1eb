"""
Audit Logger

DESIGN DECISION: Every write the engine performs is logged.
This provides:
1. Complete traceability of generated, propagated and deleted records
2. Debugging capability when a batch partially fails
3. A visible record of contract drift, which is never auto-corrected

The audit logger:
- Is async to fit the storage calls it sits between
- Gracefully handles failures (a failing audit sink never fails a write)
- Supports correlation IDs to trace every write caused by one user action
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from cashflow.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from cashflow.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("cashflow.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID],
        origin: str = "manual",
    ) -> None:
        """Log a new transaction."""
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            description=description,
            amount=amount,
            correlation_id=correlation_id,
            origin=origin,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: str,
        fields: list[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_status_toggled(
        self,
        transaction_id: str,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a paid/unpaid toggle."""
        await self.log(AuditEventBuilder.status_toggled(
            transaction_id=transaction_id,
            old_status=old_status,
            new_status=new_status,
            correlation_id=correlation_id,
        ))

    async def log_transfer_recorded(
        self,
        transfer_group_id: str,
        from_ledger_id: str,
        to_ledger_id: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.transfer_recorded(
            transfer_group_id=transfer_group_id,
            from_ledger_id=from_ledger_id,
            to_ledger_id=to_ledger_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_recurrence_changed(
        self,
        event_type: AuditEventType,
        recurrence_id: str,
        description: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log creation, update or deletion of a recurrence rule."""
        await self.log(AuditEventBuilder.recurrence_changed(
            event_type=event_type,
            recurrence_id=recurrence_id,
            description=description,
            correlation_id=correlation_id,
        ))

    async def log_recurrence_generated(
        self,
        recurrence_id: str,
        transaction_id: str,
        reference_month: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.recurrence_generated(
            recurrence_id=recurrence_id,
            transaction_id=transaction_id,
            reference_month=reference_month,
            correlation_id=correlation_id,
        ))

    async def log_recurrence_month_skipped(
        self,
        recurrence_id: str,
        reference_month: str,
        correlation_id: Optional[UUID],
        is_user_action: bool = False,
    ) -> None:
        await self.log(AuditEventBuilder.recurrence_month_skipped(
            recurrence_id=recurrence_id,
            reference_month=reference_month,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        ))

    async def log_opening_balance_rolled(
        self,
        balance_id: str,
        ledger_id: str,
        month_ref: str,
        amount: str,
        had_previous: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log an automatic rollover (warning when the chain was broken)."""
        await self.log(AuditEventBuilder.opening_balance_rolled(
            balance_id=balance_id,
            ledger_id=ledger_id,
            month_ref=month_ref,
            amount=amount,
            had_previous=had_previous,
            correlation_id=correlation_id,
        ))

    async def log_opening_balance_set(
        self,
        balance_id: str,
        ledger_id: str,
        month_ref: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.opening_balance_set(
            balance_id=balance_id,
            ledger_id=ledger_id,
            month_ref=month_ref,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_contract_adjusted(
        self,
        contract_id: str,
        installments_remaining: int,
        total_debt_remaining: str,
        status: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.contract_adjusted(
            contract_id=contract_id,
            installments_remaining=installments_remaining,
            total_debt_remaining=total_debt_remaining,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_contract_reactivated(
        self,
        contract_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.contract_reactivated(
            contract_id=contract_id,
            correlation_id=correlation_id,
        ))

    async def log_contract_changed(
        self,
        event_type: AuditEventType,
        contract_id: str,
        correlation_id: Optional[UUID],
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.contract_changed(
            event_type=event_type,
            contract_id=contract_id,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_contract_drift(
        self,
        contract_id: str,
        total_debt_remaining: str,
        expected_debt_remaining: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a contract whose remaining total no longer matches its installments."""
        await self.log(AuditEventBuilder.contract_drift_detected(
            contract_id=contract_id,
            total_debt_remaining=total_debt_remaining,
            expected_debt_remaining=expected_debt_remaining,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        entity_type: str,
        entity_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log one failed write inside a batch."""
        await self.log(AuditEventBuilder.write_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving a transaction).
    Pass it through all subsequent writes.
    """
    return uuid4()
