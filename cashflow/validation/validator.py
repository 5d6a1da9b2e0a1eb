"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount and installment count are numbers in range
- Card purchases name a card
- Installment index within the series total
- This catches malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Referenced card and contract exist
- Card purchases stay in their card's ledger
- Contract installments stay in their contract's ledger
- This catches input that would break referential invariants

IMPORTANT: Validation NEVER silently fixes issues, and nothing is
persisted when an error-level issue exists. Records already in storage
are not validated here; referential gaps in stored data are excluded
by the aggregator instead.
"""

from decimal import Decimal
from typing import Any, Union

from pydantic import ValidationError

from cashflow.engine.registry import LedgerRegistry
from cashflow.models.drafts import (
    EditingItem,
    RecurrenceStub,
    TransactionDraft,
    TransactionEdit,
    ValidationIssue,
    ValidationResult,
    editing_item_adapter,
    infer_kind,
)
from cashflow.models.ledger import DebtContract, PaymentMethod


class InvalidInputError(Exception):
    """Input rejected at the point of entry. Carries the validation result."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            f"{issue.field}: {issue.message}"
            for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid input ({result.error_count} errors): {messages}")


def parse_editing_item(payload: dict[str, Any]) -> EditingItem:
    """
    Turn a raw form payload into one editing-item variant.

    Raises:
        InvalidInputError: non-numeric amounts, non-positive installment
            counts and any other schema violation
    """
    data = dict(payload)
    data["kind"] = infer_kind(data)
    try:
        return editing_item_adapter.validate_python(data)
    except ValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in error["loc"][1:]) or "payload",
                issue_type=error["type"],
                message=error["msg"],
                severity="error",
            )
            for error in e.errors()
        ]
        raise InvalidInputError(ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            issues=issues,
        )) from e


class TransactionValidator:
    """
    Validates editing items and debt contracts before they are written.

    Stage 1: Schema validation (no registry needed)
    Stage 2: Semantic validation (against the registry snapshot)
    """

    def __init__(self, registry: LedgerRegistry):
        self._registry = registry

    def _validate_schema(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if item.amount == Decimal("0"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
            ))

        if item.method == PaymentMethod.CARD and not item.card_id:
            issues.append(ValidationIssue(
                field="card_id",
                issue_type="missing",
                message="Card purchases must reference a card",
                severity="error",
            ))

        if isinstance(item, TransactionEdit) and item.is_multi:
            if item.installment_current > item.installment_count:
                issues.append(ValidationIssue(
                    field="installment_count",
                    issue_type="invalid_value",
                    message=(
                        f"Installment {item.installment_current} is beyond "
                        f"the series total of {item.installment_count}"
                    ),
                    severity="error",
                ))
            elif item.installment_count < item.previous_installment_total:
                issues.append(ValidationIssue(
                    field="installment_count",
                    issue_type="shrink_ignored",
                    message="Lowering the installment total does not delete trailing installments",
                    severity="warning",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if self._registry.ledger(item.ledger_id) is None:
            issues.append(ValidationIssue(
                field="ledger_id",
                issue_type="unknown_reference",
                message=f"Ledger {item.ledger_id} is not registered",
                severity="warning",
            ))

        if item.method == PaymentMethod.CARD:
            card = self._registry.card(item.card_id)
            if card is None:
                issues.append(ValidationIssue(
                    field="card_id",
                    issue_type="dangling_reference",
                    message=f"Card {item.card_id} does not exist",
                    severity="error",
                ))
            elif card.ledger_id and card.ledger_id != item.ledger_id:
                issues.append(ValidationIssue(
                    field="ledger_id",
                    issue_type="ledger_mismatch",
                    message=f"Card {card.name} belongs to another ledger",
                    severity="error",
                ))

        contract_id = getattr(item, "contract_id", None)
        if contract_id:
            contract = self._registry.contract(contract_id)
            if contract is None:
                issues.append(ValidationIssue(
                    field="contract_id",
                    issue_type="dangling_reference",
                    message=f"Debt contract {contract_id} does not exist",
                    severity="error",
                ))
            elif contract.ledger_id != item.ledger_id:
                issues.append(ValidationIssue(
                    field="ledger_id",
                    issue_type="ledger_mismatch",
                    message="Installments must stay in their contract's ledger",
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_schema(item)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(item)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=all_issues,
        )

    def validate_contract(self, contract: DebtContract) -> ValidationResult:
        """Check a debt contract before it is created or edited."""
        issues = []

        if contract.card_id and self._registry.card(contract.card_id) is None:
            issues.append(ValidationIssue(
                field="card_id",
                issue_type="dangling_reference",
                message=f"Card {contract.card_id} does not exist",
                severity="error",
            ))

        if contract.total_installments and contract.installments_remaining > contract.total_installments:
            issues.append(ValidationIssue(
                field="installments_remaining",
                issue_type="invalid_value",
                message="More installments remaining than the contract has",
                severity="error",
            ))

        if contract.total_debt_remaining != contract.expected_debt_remaining:
            issues.append(ValidationIssue(
                field="total_debt_remaining",
                issue_type="drift",
                message="Remaining debt differs from installments x installment amount",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            schema_valid=True,
            semantic_valid=is_valid,
            issues=issues,
        )

    def ensure_valid(
        self,
        item: Union[TransactionDraft, TransactionEdit, RecurrenceStub],
    ) -> ValidationResult:
        """
        Validate and raise on errors.

        Returns the result so callers can surface warnings.

        Raises:
            InvalidInputError: If any error-level issue was found
        """
        result = self.validate(item)
        if result.has_errors:
            raise InvalidInputError(result)
        return result
