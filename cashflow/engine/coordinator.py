"""
Debt & Installment Coordinator

Handles the user actions that mutate several records together:
- Status toggles, which also move the linked debt contract
- Saving a transaction, which may create or expand an installment series,
  propagate an edit across a series, or create a recurrence rule
- Deleting a transaction, a series occurrence or a whole series
- Debt contract lifecycle and ledger transfers

DESIGN DECISION: There is no multi-record transaction in storage.
The record the user acted on is written first and its failure is raised.
Every write that follows is independent: a failure is recorded in the
returned BatchResult, audited, and the remaining records still run.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid4

import structlog

from cashflow.audit.logger import AuditLogger, create_correlation_id
from cashflow.config import EngineSettings, get_settings
from cashflow.engine.months import add_months, invoice_month, month_of, shift_date
from cashflow.engine.registry import LedgerRegistry
from cashflow.engine.series import resolve_series_membership
from cashflow.models.audit import AuditEventType
from cashflow.models.drafts import (
    DeleteScope,
    RecurrenceStub,
    TransactionDraft,
    TransactionEdit,
    UpdateScope,
)
from cashflow.models.flow import (
    BatchResult,
    ContractDrift,
    ContractUpdateResult,
    FlowEntry,
    SaveResult,
    WriteFailure,
)
from cashflow.models.ledger import (
    DebtContract,
    DebtStatus,
    InstallmentsInfo,
    PaymentMethod,
    Recurrence,
    Transaction,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from cashflow.services.clock import Clock, SystemClock
from cashflow.services.storage.interface import (
    LedgerStorage,
    NotFoundError,
    StorageError,
)
from cashflow.validation.validator import InvalidInputError, TransactionValidator


logger = structlog.get_logger(__name__)

_INSTALLMENT_SUFFIX = re.compile(r"\s*\(\d+/\d+\)$")

TRANSFER_CATEGORY = "Transfer"


def base_description(description: str) -> str:
    """Description without its trailing "(i/N)" installment suffix."""
    return _INSTALLMENT_SUFFIX.sub("", description)


def installment_description(description: str, current: int, total: int) -> str:
    base = base_description(description)
    suffix = f"({current}/{total})"
    return f"{base} {suffix}" if base else suffix


class DebtInstallmentCoordinator:
    """
    Applies save, delete and toggle actions to transactions, recurrence
    rules and debt contracts.

    Usage:
        coordinator = DebtInstallmentCoordinator(storage, audit_logger)
        result = await coordinator.save_transaction(draft)
        await coordinator.toggle_status(result.transaction.id)
    """

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().engine
        self._clock = clock or SystemClock()

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _registry(self) -> LedgerRegistry:
        return await LedgerRegistry.load(self._storage)

    async def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = await self._storage.transactions.get(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def _validate(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
        registry: LedgerRegistry,
        correlation_id: UUID,
    ) -> list[str]:
        """Validate an editing item; audit and raise on errors, return warnings."""
        try:
            result = TransactionValidator(registry).ensure_valid(item)
        except InvalidInputError as e:
            await self._audit.log_validation_failed(
                entity_type=item.kind,
                issues=[issue.model_dump() for issue in e.result.issues],
                correlation_id=correlation_id,
            )
            raise
        return result.warnings

    def _reference_month(
        self,
        item: Union[TransactionDraft, TransactionEdit],
        registry: LedgerRegistry,
    ) -> str:
        """Explicit reference month, else the invoice month for cards, else the date's month."""
        if item.reference_month:
            return item.reference_month
        if item.is_card:
            card = registry.card(item.card_id)
            closing_day = (
                card.closing_day if card else self._settings.default_card_closing_day
            )
            return invoice_month(item.date, closing_day)
        return month_of(item.date)

    async def _batch_write(
        self,
        batch: BatchResult,
        operation: str,
        entity_type: str,
        record_id: Optional[str],
        write,
        correlation_id: UUID,
    ) -> Optional[str]:
        """
        Run one write of a batch.

        Returns the written id, or None after recording and auditing a failure.
        """
        try:
            result = await write
        except StorageError as e:
            batch.failures.append(WriteFailure(
                record_id=record_id,
                operation=operation,
                error=str(e),
            ))
            logger.warning(
                "batch_write_failed",
                operation=operation,
                record_id=record_id,
                error=str(e),
            )
            await self._audit.log_write_failed(
                entity_type=entity_type,
                entity_id=record_id,
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

        written_id = result if isinstance(result, str) else record_id
        batch.succeeded.append(written_id)
        return written_id

    # =========================================================================
    # STATUS TOGGLES
    # =========================================================================

    async def _adjust_contract(
        self,
        transaction: Transaction,
        new_status: TransactionStatus,
        correlation_id: UUID,
    ) -> Optional[DebtContract]:
        """
        Move a contract one installment along.

        Paying decreases the remaining count and debt; un-paying increases
        them and reactivates the contract. Missing contracts are ignored.
        """
        if not transaction.contract_id:
            return None
        contract = await self._storage.debt_contracts.get(transaction.contract_id)
        if contract is None:
            return None

        step = contract.installment_amount or transaction.amount
        was_settled = contract.status == DebtStatus.SETTLED

        if new_status == TransactionStatus.PAID:
            remaining = max(0, contract.installments_remaining - 1)
            updated = contract.model_copy(update={
                "installments_remaining": remaining,
                "total_debt_remaining": max(Decimal("0"), contract.total_debt_remaining - step),
                "status": DebtStatus.SETTLED if remaining == 0 else contract.status,
            })
        else:
            updated = contract.model_copy(update={
                "installments_remaining": contract.installments_remaining + 1,
                "total_debt_remaining": contract.total_debt_remaining + step,
                "status": DebtStatus.ACTIVE,
            })

        await self._storage.debt_contracts.update(updated)

        await self._audit.log_contract_adjusted(
            contract_id=updated.id,
            installments_remaining=updated.installments_remaining,
            total_debt_remaining=str(updated.total_debt_remaining),
            status=updated.status.value,
            correlation_id=correlation_id,
        )
        if was_settled and updated.status == DebtStatus.ACTIVE:
            await self._audit.log_contract_reactivated(
                contract_id=updated.id,
                correlation_id=correlation_id,
            )
        return updated

    async def _set_status(
        self,
        transaction: Transaction,
        new_status: TransactionStatus,
        correlation_id: UUID,
    ) -> Transaction:
        is_paid = new_status == TransactionStatus.PAID
        updated = transaction.model_copy(update={
            "status": new_status,
            "paid_date": (transaction.paid_date or self._clock.today()) if is_paid else None,
        })

        await self._storage.transactions.update(updated)
        await self._audit.log_status_toggled(
            transaction_id=transaction.id,
            old_status=transaction.status.value,
            new_status=new_status.value,
            correlation_id=correlation_id,
        )
        await self._adjust_contract(updated, new_status, correlation_id)
        return updated

    async def toggle_status(
        self,
        transaction_id: str,
        paid_on: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Flip one transaction between paid and scheduled.

        Anything not paid becomes paid; paid becomes scheduled. A linked
        debt contract moves by one installment in the same direction.

        Raises:
            NotFoundError: If the transaction does not exist
            StorageError: If a write fails
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction = await self._get_transaction(transaction_id)
        new_status = (
            TransactionStatus.SCHEDULED
            if transaction.status == TransactionStatus.PAID
            else TransactionStatus.PAID
        )
        if paid_on and new_status == TransactionStatus.PAID:
            transaction = transaction.model_copy(update={"paid_date": paid_on})
        return await self._set_status(transaction, new_status, correlation_id)

    async def toggle_invoice(
        self,
        entry: FlowEntry,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        Toggle a grouped card invoice.

        Every member moves to the new status; members already there are
        left alone so their contracts are not adjusted twice.
        """
        correlation_id = correlation_id or create_correlation_id()
        if not entry.is_group:
            batch = BatchResult()
            await self.toggle_status(entry.id, correlation_id=correlation_id)
            batch.succeeded.append(entry.id)
            return batch

        new_status = (
            TransactionStatus.SCHEDULED
            if entry.status == TransactionStatus.PAID
            else TransactionStatus.PAID
        )

        batch = BatchResult()
        for transaction_id in entry.transaction_ids:
            transaction = await self._storage.transactions.get(transaction_id)
            if transaction is None or transaction.status == new_status:
                continue
            await self._batch_write(
                batch, "toggle", "transaction", transaction_id,
                self._set_status(transaction, new_status, correlation_id),
                correlation_id,
            )
        return batch

    # =========================================================================
    # SAVE
    # =========================================================================

    async def save_transaction(
        self,
        item: Union[TransactionDraft, TransactionEdit],
        scope: UpdateScope = UpdateScope.ONLY_THIS,
        correlation_id: Optional[UUID] = None,
    ) -> SaveResult:
        """
        Save a new transaction or an edit of a stored one.

        Raises:
            InvalidInputError: If the item fails validation (nothing is written)
            NotFoundError: If an edit targets a missing transaction
            StorageError: If writing the primary record fails
        """
        correlation_id = correlation_id or create_correlation_id()
        registry = await self._registry()
        warnings = await self._validate(item, registry, correlation_id)

        if isinstance(item, TransactionDraft):
            result = await self._create_transaction(item, registry, correlation_id)
        else:
            result = await self._edit_transaction(item, scope, registry, correlation_id)
        result.warnings.extend(warnings)
        return result

    async def _create_transaction(
        self,
        draft: TransactionDraft,
        registry: LedgerRegistry,
        correlation_id: UUID,
    ) -> SaveResult:
        """
        Create the first record, then its installment siblings, then the
        recurrence rule for recurring natures.
        """
        reference_month = self._reference_month(draft, registry)
        first = draft.to_transaction(reference_month)
        main_id = await self._storage.transactions.add(first)
        first = first.model_copy(update={"id": main_id})
        await self._audit.log_transaction_created(
            transaction_id=main_id,
            description=first.description,
            amount=str(first.amount),
            correlation_id=correlation_id,
            origin=first.origin.value,
        )

        result = SaveResult(transaction=first)
        total = draft.installment_count

        if draft.is_multi:
            for index in range(1, total):
                sibling = first.model_copy(update={
                    "id": None,
                    "description": installment_description(draft.description, index + 1, total),
                    "date": shift_date(draft.date, index),
                    "reference_month": add_months(reference_month, index),
                    "status": TransactionStatus.SCHEDULED,
                    "paid_date": None,
                    "recurrence_id": main_id,
                    "installments_info": InstallmentsInfo(current=index + 1, total=total),
                })
                await self._batch_write(
                    result.batch, "create_installment", "transaction", None,
                    self._storage.transactions.add(sibling),
                    correlation_id,
                )

            first = first.model_copy(update={
                "description": installment_description(draft.description, 1, total),
                "recurrence_id": main_id,
            })
            await self._batch_write(
                result.batch, "label_installment", "transaction", main_id,
                self._storage.transactions.update(first),
                correlation_id,
            )
            result.transaction = first
            result.recurrence_id = main_id

        if draft.nature == TransactionNature.RECURRING:
            rule = Recurrence(
                ledger_id=draft.ledger_id,
                description=draft.description,
                type=draft.type,
                amount=draft.amount,
                category=draft.category,
                method=draft.method,
                day_of_month=draft.date.day,
                card_id=draft.card_id if draft.is_card else None,
                is_active=True,
                auto_generate=True,
            )
            rule_id = await self._batch_write(
                result.batch, "create_recurrence", "recurrence", None,
                self._storage.recurrences.add(rule),
                correlation_id,
            )
            if rule_id:
                await self._audit.log_recurrence_changed(
                    event_type=AuditEventType.RECURRENCE_CREATED,
                    recurrence_id=rule_id,
                    description=rule.description,
                    correlation_id=correlation_id,
                )
                first = first.model_copy(update={"recurrence_id": rule_id})
                await self._batch_write(
                    result.batch, "link_recurrence", "transaction", main_id,
                    self._storage.transactions.update(first),
                    correlation_id,
                )
                result.transaction = first
                result.recurrence_id = rule_id

        return result

    async def _edit_transaction(
        self,
        edit: TransactionEdit,
        scope: UpdateScope,
        registry: LedgerRegistry,
        correlation_id: UUID,
    ) -> SaveResult:
        """Update the edited record, then propagate across its series and expand it."""
        original = await self._get_transaction(edit.id)
        reference_month = self._reference_month(edit, registry)

        updated = edit.to_transaction(reference_month)
        if edit.is_multi:
            updated.description = installment_description(
                edit.description, edit.installment_current, edit.installment_count
            )
        await self._storage.transactions.update(updated)
        await self._audit.log_transaction_updated(
            transaction_id=updated.id,
            fields=sorted(
                name for name in Transaction.model_fields
                if getattr(original, name) != getattr(updated, name)
            ),
            correlation_id=correlation_id,
        )

        result = SaveResult(transaction=updated)

        is_series = original.nature == TransactionNature.RECURRING or original.recurrence_id
        if scope != UpdateScope.ONLY_THIS and is_series:
            await self._propagate_edit(original, updated, scope, result.batch, correlation_id)

        if edit.is_multi and edit.installment_count > edit.previous_installment_total:
            await self._expand_series(edit, updated, result.batch, correlation_id)
            result.recurrence_id = edit.recurrence_id or edit.id

        return result

    async def _propagate_edit(
        self,
        original: Transaction,
        updated: Transaction,
        scope: UpdateScope,
        batch: BatchResult,
        correlation_id: UUID,
    ) -> None:
        """Copy the editable fields onto the rest of the series."""
        members = resolve_series_membership(
            original, await self._storage.transactions.list_all()
        )
        for member in members:
            if member.id == updated.id:
                continue
            if scope == UpdateScope.FROM_HERE and member.date < updated.date:
                continue

            description = base_description(updated.description)
            if member.installments_info:
                description = installment_description(
                    description,
                    member.installments_info.current,
                    member.installments_info.total,
                )
            propagated = member.model_copy(update={
                "category": updated.category,
                "description": description,
                "amount": updated.amount,
                "method": updated.method,
                "card_id": updated.card_id,
                "ledger_id": updated.ledger_id,
            })
            written = await self._batch_write(
                batch, "propagate", "transaction", member.id,
                self._storage.transactions.update(propagated),
                correlation_id,
            )
            if written:
                await self._audit.log_transaction_updated(
                    transaction_id=member.id,
                    fields=["category", "description", "amount", "method", "card_id", "ledger_id"],
                    correlation_id=correlation_id,
                )

    async def _expand_series(
        self,
        edit: TransactionEdit,
        updated: Transaction,
        batch: BatchResult,
        correlation_id: UUID,
    ) -> None:
        """
        Grow an installment series to the new total.

        Existing installments get the new amount and total; only the
        trailing installments past the highest existing index are created.
        """
        key = edit.recurrence_id or edit.id
        total = edit.installment_count
        existing = [
            tx for tx in await self._storage.transactions.list_all()
            if tx.id == key or tx.recurrence_id == key
        ]
        highest = max(
            (tx.installments_info.current if tx.installments_info else 1 for tx in existing),
            default=1,
        )

        for tx in existing:
            if not tx.installments_info or tx.id == updated.id:
                continue
            resized = tx.model_copy(update={
                "amount": updated.amount,
                "description": installment_description(
                    tx.description, tx.installments_info.current, total
                ),
                "installments_info": InstallmentsInfo(
                    current=tx.installments_info.current, total=total
                ),
            })
            await self._batch_write(
                batch, "resize_installment", "transaction", tx.id,
                self._storage.transactions.update(resized),
                correlation_id,
            )

        offset = edit.installment_current - 1
        base_date = shift_date(updated.date, -offset)
        base_month = add_months(updated.reference_month, -offset)

        for index in range(highest, total):
            trailing = updated.model_copy(update={
                "id": None,
                "origin": TransactionOrigin.INSTALLMENT,
                "description": installment_description(updated.description, index + 1, total),
                "date": shift_date(base_date, index),
                "reference_month": add_months(base_month, index),
                "status": TransactionStatus.SCHEDULED,
                "paid_date": None,
                "recurrence_id": key,
                "installments_info": InstallmentsInfo(current=index + 1, total=total),
            })
            created = await self._batch_write(
                batch, "expand_series", "transaction", None,
                self._storage.transactions.add(trailing),
                correlation_id,
            )
            if created:
                await self._audit.log_transaction_created(
                    transaction_id=created,
                    description=trailing.description,
                    amount=str(trailing.amount),
                    correlation_id=correlation_id,
                    origin=TransactionOrigin.INSTALLMENT.value,
                )

    async def save_recurrence(
        self,
        stub: RecurrenceStub,
        correlation_id: Optional[UUID] = None,
    ) -> Recurrence:
        """
        Apply a recurrence stub to its stored rule.

        Skipped months survive the edit. Already generated transactions
        are not touched.
        """
        correlation_id = correlation_id or create_correlation_id()
        registry = await self._registry()
        await self._validate(stub, registry, correlation_id)

        recurrence = await self._storage.recurrences.get(stub.recurrence_id)
        if recurrence is None:
            raise NotFoundError(f"Recurrence not found: {stub.recurrence_id}")

        updated = stub.apply_to(recurrence)
        await self._storage.recurrences.update(updated)
        await self._audit.log_recurrence_changed(
            event_type=AuditEventType.RECURRENCE_UPDATED,
            recurrence_id=updated.id,
            description=updated.description,
            correlation_id=correlation_id,
        )
        return updated

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_transaction(
        self,
        transaction_id: str,
        scope: DeleteScope = DeleteScope.ONLY_THIS,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        Delete a transaction, an occurrence of a recurrence, or a series.

        - only_this on a generated occurrence also suppresses its month on
          the rule, so the generator never recreates it
        - all_related on a recurring transaction deletes the rule and every
          transaction it generated
        - all_related on anything else deletes every transaction sharing its
          series key, contract or id

        Deleting a transaction that does not exist is a no-op.
        """
        correlation_id = correlation_id or create_correlation_id()
        batch = BatchResult()
        target = await self._storage.transactions.get(transaction_id)
        if target is None:
            return batch

        is_recurring = target.nature == TransactionNature.RECURRING

        if scope == DeleteScope.ONLY_THIS:
            if is_recurring and target.recurrence_id:
                await self._skip_month(target.recurrence_id, target.reference_month, correlation_id)
            await self._storage.transactions.delete(target.id)
            batch.succeeded.append(target.id)
            await self._audit.log_transaction_deleted(
                transaction_id=target.id,
                correlation_id=correlation_id,
            )
            return batch

        transactions = await self._storage.transactions.list_all()
        if is_recurring:
            if target.recurrence_id:
                key = target.recurrence_id
                await self._storage.recurrences.delete(key)
                await self._audit.log_recurrence_changed(
                    event_type=AuditEventType.RECURRENCE_DELETED,
                    recurrence_id=key,
                    description=target.description,
                    correlation_id=correlation_id,
                )
                related = [
                    tx for tx in transactions
                    if tx.recurrence_id == key or tx.id == key or tx.id == target.id
                ]
            else:
                related = resolve_series_membership(target, transactions)
        else:
            root = target.recurrence_id or target.contract_id or target.id
            related = [
                tx for tx in transactions
                if root in (tx.recurrence_id, tx.contract_id, tx.id) or tx.id == target.id
            ]

        for tx in related:
            deleted = await self._batch_write(
                batch, "delete", "transaction", tx.id,
                self._storage.transactions.delete(tx.id),
                correlation_id,
            )
            if deleted:
                await self._audit.log_transaction_deleted(
                    transaction_id=tx.id,
                    correlation_id=correlation_id,
                )
        return batch

    async def _skip_month(
        self,
        recurrence_id: str,
        reference_month: str,
        correlation_id: UUID,
    ) -> None:
        recurrence = await self._storage.recurrences.get(recurrence_id)
        if recurrence is None or reference_month in recurrence.skipped_months:
            return
        await self._storage.recurrences.update(recurrence.model_copy(update={
            "skipped_months": [*recurrence.skipped_months, reference_month],
        }))
        await self._audit.log_recurrence_month_skipped(
            recurrence_id=recurrence_id,
            reference_month=reference_month,
            correlation_id=correlation_id,
            is_user_action=True,
        )

    # =========================================================================
    # DEBT CONTRACTS
    # =========================================================================

    async def _linked_transactions(self, contract_id: str) -> list[Transaction]:
        return [
            tx for tx in await self._storage.transactions.list_all()
            if tx.contract_id == contract_id
        ]

    async def create_debt_contract(
        self,
        contract: DebtContract,
        first_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> ContractUpdateResult:
        """
        Persist a contract and schedule its remaining installments.

        Installments are monthly from ``first_due_date``, linked by
        contract id (also their series key), and billed to the contract's
        card when it has one.
        """
        correlation_id = correlation_id or create_correlation_id()
        registry = await self._registry()
        result = TransactionValidator(registry).validate_contract(contract)
        if result.has_errors:
            await self._audit.log_validation_failed(
                entity_type="contract",
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
            raise InvalidInputError(result)

        contract_id = await self._storage.debt_contracts.add(contract)
        contract = contract.model_copy(update={"id": contract_id})
        await self._audit.log_contract_changed(
            event_type=AuditEventType.CONTRACT_CREATED,
            contract_id=contract_id,
            correlation_id=correlation_id,
            details={"installments_remaining": contract.installments_remaining},
        )

        card = registry.card(contract.card_id)
        if card:
            first_month = invoice_month(first_due_date, card.closing_day)
        else:
            first_month = month_of(first_due_date)

        remaining = contract.installments_remaining
        total = max(contract.total_installments or remaining, remaining)
        already_paid = total - remaining
        label = contract.description or contract.creditor

        update = ContractUpdateResult(contract=contract)
        for index in range(remaining):
            current = already_paid + index + 1
            installment = Transaction(
                ledger_id=contract.ledger_id,
                type=TransactionType.EXPENSE,
                origin=TransactionOrigin.DEBT,
                description=installment_description(label, current, total),
                amount=contract.installment_amount,
                method=PaymentMethod.CARD if card else PaymentMethod.BOLETO,
                status=TransactionStatus.SCHEDULED,
                date=shift_date(first_due_date, index),
                reference_month=add_months(first_month, index),
                nature=TransactionNature.INSTALLMENT,
                card_id=card.id if card else None,
                contract_id=contract_id,
                recurrence_id=contract_id,
                installments_info=InstallmentsInfo(current=current, total=total),
            )
            await self._batch_write(
                update.batch, "create_installment", "transaction", None,
                self._storage.transactions.add(installment),
                correlation_id,
            )
        return update

    def detect_drift(self, contract: DebtContract) -> Optional[ContractDrift]:
        """Report a contract whose remaining debt disagrees with its installments."""
        if contract.total_debt_remaining == contract.expected_debt_remaining:
            return None
        return ContractDrift(
            contract_id=contract.id,
            installments_remaining=contract.installments_remaining,
            installment_amount=contract.installment_amount,
            total_debt_remaining=contract.total_debt_remaining,
            expected_debt_remaining=contract.expected_debt_remaining,
        )

    async def update_debt_contract(
        self,
        contract: DebtContract,
        correlation_id: Optional[UUID] = None,
    ) -> ContractUpdateResult:
        """
        Direct edit of a contract (manual override).

        A changed installment amount is copied to every installment not
        yet paid. Drift between the remaining debt and the installments is
        reported and audited, never corrected.
        """
        correlation_id = correlation_id or create_correlation_id()
        stored = await self._storage.debt_contracts.get(contract.id)
        if stored is None:
            raise NotFoundError(f"Debt contract not found: {contract.id}")

        await self._storage.debt_contracts.update(contract)
        await self._audit.log_contract_changed(
            event_type=AuditEventType.CONTRACT_UPDATED,
            contract_id=contract.id,
            correlation_id=correlation_id,
        )

        result = ContractUpdateResult(contract=contract)
        if contract.installment_amount != stored.installment_amount:
            for tx in await self._linked_transactions(contract.id):
                if tx.status == TransactionStatus.PAID:
                    continue
                await self._batch_write(
                    result.batch, "propagate_amount", "transaction", tx.id,
                    self._storage.transactions.update(
                        tx.model_copy(update={"amount": contract.installment_amount})
                    ),
                    correlation_id,
                )

        result.drift = self.detect_drift(contract)
        if result.drift:
            await self._audit.log_contract_drift(
                contract_id=contract.id,
                total_debt_remaining=str(contract.total_debt_remaining),
                expected_debt_remaining=str(contract.expected_debt_remaining),
                correlation_id=correlation_id,
            )
        return result

    async def reassign_contract_ledger(
        self,
        contract_id: str,
        ledger_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ContractUpdateResult:
        """Move a contract and all of its installments to another ledger."""
        correlation_id = correlation_id or create_correlation_id()
        contract = await self._storage.debt_contracts.get(contract_id)
        if contract is None:
            raise NotFoundError(f"Debt contract not found: {contract_id}")

        moved = contract.model_copy(update={"ledger_id": ledger_id})
        await self._storage.debt_contracts.update(moved)
        await self._audit.log_contract_changed(
            event_type=AuditEventType.CONTRACT_UPDATED,
            contract_id=contract_id,
            correlation_id=correlation_id,
            details={"ledger_id": ledger_id},
        )

        result = ContractUpdateResult(contract=moved)
        for tx in await self._linked_transactions(contract_id):
            await self._batch_write(
                result.batch, "reassign_ledger", "transaction", tx.id,
                self._storage.transactions.update(tx.model_copy(update={"ledger_id": ledger_id})),
                correlation_id,
            )
        return result

    async def delete_debt_contract(
        self,
        contract_id: str,
        cascade: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """Delete a contract and, with cascade, every installment linked to it."""
        correlation_id = correlation_id or create_correlation_id()
        batch = BatchResult()

        if cascade:
            for tx in await self._linked_transactions(contract_id):
                await self._batch_write(
                    batch, "delete", "transaction", tx.id,
                    self._storage.transactions.delete(tx.id),
                    correlation_id,
                )

        await self._storage.debt_contracts.delete(contract_id)
        await self._audit.log_contract_changed(
            event_type=AuditEventType.CONTRACT_DELETED,
            contract_id=contract_id,
            correlation_id=correlation_id,
            details={"cascade": cascade},
        )
        return batch

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    async def record_transfer(
        self,
        from_ledger_id: str,
        to_ledger_id: str,
        amount: Decimal,
        on: date,
        description: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> tuple[str, BatchResult]:
        """
        Move money between ledgers.

        Writes a paid expense on the source ledger and a paid income on the
        destination, both sharing one transfer group id.
        """
        correlation_id = correlation_id or create_correlation_id()
        if amount <= 0:
            raise ValueError("Transfer amount must be positive")

        group_id = uuid4().hex
        batch = BatchResult()
        legs = [
            (from_ledger_id, TransactionType.EXPENSE),
            (to_ledger_id, TransactionType.INCOME),
        ]
        for ledger_id, tx_type in legs:
            leg = Transaction(
                ledger_id=ledger_id,
                type=tx_type,
                origin=TransactionOrigin.TRANSFER,
                description=description,
                amount=amount,
                method=PaymentMethod.PIX,
                status=TransactionStatus.PAID,
                date=on,
                paid_date=on,
                reference_month=month_of(on),
                category=TRANSFER_CATEGORY,
                transfer_group_id=group_id,
            )
            await self._batch_write(
                batch, "transfer", "transaction", None,
                self._storage.transactions.add(leg),
                correlation_id,
            )

        await self._audit.log_transfer_recorded(
            transfer_group_id=group_id,
            from_ledger_id=from_ledger_id,
            to_ledger_id=to_ledger_id,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        return group_id, batch
