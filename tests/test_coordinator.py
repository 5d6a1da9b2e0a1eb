"""
Tests for the debt & installment coordinator.

Each test runs against in-memory storage with a pinned clock; the card
fixture closes on the 10th, so purchases on or after the 10th land on
the next month's invoice.
"""

import pytest
from datetime import date
from decimal import Decimal

from conftest import make_transaction, run_async

from cashflow.engine.aggregator import StatisticsAggregator
from cashflow.engine.coordinator import (
    DebtInstallmentCoordinator,
    base_description,
    installment_description,
)
from cashflow.engine.recurrence import RecurrenceGenerator
from cashflow.engine.registry import LedgerRegistry
from cashflow.models.audit import AuditEventType
from cashflow.models.drafts import (
    DeleteScope,
    TransactionDraft,
    UpdateScope,
    draft_from_transaction,
    stub_from_recurrence,
)
from cashflow.models.flow import PeriodContext
from cashflow.models.ledger import (
    DebtContract,
    DebtStatus,
    PaymentMethod,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from cashflow.services.storage import InMemoryCollection, NotFoundError, StorageError
from cashflow.validation import InvalidInputError


class FlakyCollection(InMemoryCollection):
    """Fails updates and deletes of the ids listed in ``broken``."""

    def __init__(self, records=None):
        super().__init__(records)
        self.broken: set[str] = set()

    async def update(self, record):
        if record.id in self.broken:
            raise StorageError(f"cannot write {record.id}")
        await super().update(record)

    async def delete(self, record_id):
        if record_id in self.broken:
            raise StorageError(f"cannot delete {record_id}")
        await super().delete(record_id)


@pytest.fixture
def coordinator(storage, audit_logger, settings, clock):
    return DebtInstallmentCoordinator(storage, audit_logger, settings, clock)


def card_draft(ledger_id, card, **overrides) -> TransactionDraft:
    fields = dict(
        ledger_id=ledger_id,
        type=TransactionType.EXPENSE,
        description="TV",
        amount=Decimal("100"),
        method=PaymentMethod.CARD,
        card_id=card.id,
        date=date(2026, 3, 15),
        category="Home",
    )
    fields.update(overrides)
    return TransactionDraft(**fields)


def all_transactions(storage):
    return sorted(run_async(storage.transactions.list_all()), key=lambda tx: tx.date)


def loan(ledger_id, **overrides) -> DebtContract:
    fields = dict(
        ledger_id=ledger_id,
        creditor="Bank",
        description="Car loan",
        installment_amount=Decimal("250"),
        installments_remaining=4,
        total_installments=4,
        total_debt_remaining=Decimal("1000"),
    )
    fields.update(overrides)
    return DebtContract(**fields)


def events_of(audit_storage, event_type):
    return [e for e in audit_storage.events if e.event_type == event_type]


class TestDescriptions:

    def test_installment_suffix(self):
        """Test suffixes are replaced, never stacked."""
        assert installment_description("TV", 1, 4) == "TV (1/4)"
        assert installment_description("TV (1/4)", 2, 6) == "TV (2/6)"
        assert installment_description("", 1, 2) == "(1/2)"
        assert base_description("Sofa (10/12)") == "Sofa"
        assert base_description("Plan (premium)") == "Plan (premium)"


class TestSaveNewTransaction:

    def test_single_transaction(self, coordinator, storage, ledger_id):
        """Test a one-off PIX expense is stored as entered."""
        draft = TransactionDraft(
            ledger_id=ledger_id, type=TransactionType.EXPENSE,
            amount=Decimal("35"), date=date(2026, 3, 20),
        )
        result = run_async(coordinator.save_transaction(draft))

        assert result.transaction.id is not None
        assert result.transaction.reference_month == "2026-03"
        assert result.transaction.origin == TransactionOrigin.MANUAL
        assert result.batch.ok
        assert len(storage.transactions) == 1

    def test_card_installment_series(self, coordinator, storage, ledger_id, card):
        """Test a 4x card purchase becomes four linked monthly records."""
        result = run_async(coordinator.save_transaction(
            card_draft(ledger_id, card, installment_count=4)
        ))

        series = all_transactions(storage)
        main_id = result.transaction.id
        assert len(series) == 4
        assert [tx.description for tx in series] == [
            "TV (1/4)", "TV (2/4)", "TV (3/4)", "TV (4/4)",
        ]
        assert [tx.reference_month for tx in series] == [
            "2026-04", "2026-05", "2026-06", "2026-07",
        ]
        assert [tx.date for tx in series] == [
            date(2026, 3, 15), date(2026, 4, 15), date(2026, 5, 15), date(2026, 6, 15),
        ]
        assert all(tx.recurrence_id == main_id for tx in series)
        assert [tx.installments_info.current for tx in series] == [1, 2, 3, 4]
        assert all(tx.installments_info.total == 4 for tx in series)
        assert all(tx.origin == TransactionOrigin.INSTALLMENT for tx in series)
        assert result.recurrence_id == main_id

    def test_siblings_start_scheduled(self, coordinator, storage, ledger_id, card):
        """Test only the first installment keeps a paid status."""
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, installment_count=3, status=TransactionStatus.PAID,
        )))

        statuses = [tx.status for tx in all_transactions(storage)]
        assert statuses == [
            TransactionStatus.PAID, TransactionStatus.SCHEDULED, TransactionStatus.SCHEDULED,
        ]

    def test_explicit_reference_month_wins(self, coordinator, ledger_id, card):
        """Test a supplied reference month is not recomputed."""
        result = run_async(coordinator.save_transaction(
            card_draft(ledger_id, card, reference_month="2026-03")
        ))
        assert result.transaction.reference_month == "2026-03"

    def test_recurring_creates_rule(self, coordinator, storage, ledger_id, card, audit_logger, settings):
        """Test a recurring card expense creates its rule and is not regenerated."""
        result = run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, description="Gym", amount=Decimal("90"),
            nature=TransactionNature.RECURRING, installment_count=3,
        )))

        rules = run_async(storage.recurrences.list_all())
        assert len(rules) == 1
        rule = rules[0]
        assert rule.day_of_month == 15
        assert rule.card_id == card.id
        assert result.transaction.recurrence_id == rule.id
        assert len(storage.transactions) == 1

        generator = RecurrenceGenerator(storage, audit_logger, settings)
        report = run_async(generator.generate(date(2026, 3, 15)))
        assert len(report.created) == 1
        assert len(storage.transactions) == 2

    def test_invalid_draft_writes_nothing(self, coordinator, storage, ledger_id, audit_storage):
        """Test validation errors raise before any write and are audited."""
        draft = TransactionDraft(
            ledger_id=ledger_id, type=TransactionType.EXPENSE, amount=Decimal("10"),
            method=PaymentMethod.CARD, card_id="amex", date=date(2026, 3, 1),
        )
        with pytest.raises(InvalidInputError):
            run_async(coordinator.save_transaction(draft))

        assert len(storage.transactions) == 0
        assert events_of(audit_storage, AuditEventType.VALIDATION_FAILED)

    def test_warnings_are_returned(self, coordinator, ledger_id):
        """Test non-blocking issues come back with the result."""
        draft = TransactionDraft(
            ledger_id=ledger_id, type=TransactionType.EXPENSE,
            amount=Decimal("0"), date=date(2026, 3, 1),
        )
        result = run_async(coordinator.save_transaction(draft))
        assert result.warnings == ["Amount is zero"]


class TestSaveEdit:

    @pytest.fixture
    def series(self, coordinator, storage, ledger_id, card):
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, installment_count=4)))
        return all_transactions(storage)

    def test_only_this(self, coordinator, storage, series):
        """Test an only-this edit leaves siblings untouched."""
        edit = draft_from_transaction(series[1]).model_copy(update={"amount": Decimal("120")})
        run_async(coordinator.save_transaction(edit, UpdateScope.ONLY_THIS))

        amounts = [tx.amount for tx in all_transactions(storage)]
        assert amounts == [Decimal("100"), Decimal("120"), Decimal("100"), Decimal("100")]

    def test_from_here(self, coordinator, storage, series):
        """Test a from-here edit reaches this and later members only."""
        edit = draft_from_transaction(series[1]).model_copy(update={
            "amount": Decimal("120"),
            "description": "TV 4K",
        })
        result = run_async(coordinator.save_transaction(edit, UpdateScope.FROM_HERE))

        updated = all_transactions(storage)
        assert [tx.amount for tx in updated] == [
            Decimal("100"), Decimal("120"), Decimal("120"), Decimal("120"),
        ]
        assert [tx.description for tx in updated] == [
            "TV (1/4)", "TV 4K (2/4)", "TV 4K (3/4)", "TV 4K (4/4)",
        ]
        assert result.batch.ok
        assert len(result.batch.succeeded) == 2

    def test_all_related(self, coordinator, storage, series):
        """Test an all-related edit reaches every member."""
        edit = draft_from_transaction(series[2]).model_copy(update={"category": "Electronics"})
        run_async(coordinator.save_transaction(edit, UpdateScope.ALL_RELATED))

        assert {tx.category for tx in all_transactions(storage)} == {"Electronics"}

    def test_expansion_adds_trailing_installments(self, coordinator, storage, ledger_id, card):
        """Test raising the total creates only the missing trailing records."""
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, installment_count=2, date=date(2026, 3, 5),
        )))
        first = all_transactions(storage)[0]

        edit = draft_from_transaction(first).model_copy(update={"installment_count": 4})
        run_async(coordinator.save_transaction(edit))

        series = all_transactions(storage)
        assert len(series) == 4
        assert [tx.description for tx in series] == [
            "TV (1/4)", "TV (2/4)", "TV (3/4)", "TV (4/4)",
        ]
        assert [tx.reference_month for tx in series] == [
            "2026-03", "2026-04", "2026-05", "2026-06",
        ]
        assert series[3].date == date(2026, 6, 5)
        assert all(tx.installments_info.total == 4 for tx in series)
        assert all(tx.recurrence_id == first.id for tx in series)

    def test_expansion_from_a_later_installment(self, coordinator, storage, series):
        """Test expanding through the last member keeps dates anchored to the first."""
        edit = draft_from_transaction(series[3]).model_copy(update={"installment_count": 6})
        run_async(coordinator.save_transaction(edit))

        expanded = all_transactions(storage)
        assert len(expanded) == 6
        assert expanded[5].date == date(2026, 8, 15)
        assert expanded[5].reference_month == "2026-09"

    def test_edit_missing_transaction(self, coordinator, series, storage):
        """Test editing a deleted record raises NotFoundError."""
        edit = draft_from_transaction(series[0])
        run_async(storage.transactions.delete(series[0].id))

        with pytest.raises(NotFoundError):
            run_async(coordinator.save_transaction(edit))

    def test_propagation_continues_past_failures(self, storage, ledger_id, card, audit_logger, settings, clock, audit_storage):
        """Test one failing sibling does not stop the others."""
        storage.transactions = FlakyCollection()
        coordinator = DebtInstallmentCoordinator(storage, audit_logger, settings, clock)
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, installment_count=4)))
        series = all_transactions(storage)
        storage.transactions.broken.add(series[2].id)

        edit = draft_from_transaction(series[0]).model_copy(update={"amount": Decimal("80")})
        result = run_async(coordinator.save_transaction(edit, UpdateScope.ALL_RELATED))

        assert len(result.batch.failures) == 1
        assert result.batch.failures[0].record_id == series[2].id
        assert [tx.amount for tx in all_transactions(storage)] == [
            Decimal("80"), Decimal("80"), Decimal("100"), Decimal("80"),
        ]
        assert events_of(audit_storage, AuditEventType.WRITE_FAILED)


class TestSaveRecurrence:

    def test_stub_updates_rule_and_keeps_skips(self, coordinator, storage, ledger_id, card):
        """Test editing a rule through its stub."""
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, nature=TransactionNature.RECURRING,
        )))
        rule = run_async(storage.recurrences.list_all())[0]
        run_async(storage.recurrences.update(rule.model_copy(update={"skipped_months": ["2026-06"]})))

        stub = stub_from_recurrence(rule).model_copy(update={"amount": Decimal("110")})
        updated = run_async(coordinator.save_recurrence(stub))

        assert updated.amount == Decimal("110")
        assert updated.skipped_months == ["2026-06"]

    def test_missing_rule(self, coordinator, storage, ledger_id, card):
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, nature=TransactionNature.RECURRING,
        )))
        rule = run_async(storage.recurrences.list_all())[0]
        run_async(storage.recurrences.delete(rule.id))

        with pytest.raises(NotFoundError):
            run_async(coordinator.save_recurrence(stub_from_recurrence(rule)))


class TestToggle:

    def test_round_trip(self, coordinator, storage, ledger_id, clock):
        """Test paid sets the paid date and un-paying clears it."""
        tx_id = run_async(storage.transactions.add(make_transaction(ledger_id)))

        paid = run_async(coordinator.toggle_status(tx_id))
        assert paid.status == TransactionStatus.PAID
        assert paid.paid_date == clock.today()

        back = run_async(coordinator.toggle_status(tx_id))
        assert back.status == TransactionStatus.SCHEDULED
        assert back.paid_date is None

    def test_overdue_becomes_paid(self, coordinator, storage, ledger_id):
        tx_id = run_async(storage.transactions.add(
            make_transaction(ledger_id, status=TransactionStatus.OVERDUE)
        ))
        assert run_async(coordinator.toggle_status(tx_id)).status == TransactionStatus.PAID

    def test_missing_transaction(self, coordinator):
        with pytest.raises(NotFoundError):
            run_async(coordinator.toggle_status("nope"))

    def test_toggle_audited(self, coordinator, storage, ledger_id, audit_storage):
        tx_id = run_async(storage.transactions.add(make_transaction(ledger_id)))
        run_async(coordinator.toggle_status(tx_id))

        toggled = events_of(audit_storage, AuditEventType.STATUS_TOGGLED)
        assert toggled[0].details == {"old_status": "scheduled", "new_status": "paid"}


class TestInvoiceToggle:

    def invoice(self, storage, settings, clock):
        registry = run_async(LedgerRegistry.load(storage))
        context = PeriodContext(start_month="2026-04", end_month="2026-04", today=clock.today())
        flow = StatisticsAggregator(settings).build_flow(
            run_async(storage.transactions.list_all()), registry, context
        )
        return next(entry for entry in flow if entry.is_group)

    def test_group_toggles_every_member(self, coordinator, storage, ledger_id, card, settings, clock):
        """Test paying an invoice pays each purchase, and un-paying reverts."""
        run_async(coordinator.save_transaction(card_draft(ledger_id, card)))
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, date=date(2026, 3, 20))))

        entry = self.invoice(storage, settings, clock)
        assert entry.status == TransactionStatus.SCHEDULED
        result = run_async(coordinator.toggle_invoice(entry))
        assert len(result.succeeded) == 2

        entry = self.invoice(storage, settings, clock)
        assert entry.status == TransactionStatus.PAID
        run_async(coordinator.toggle_invoice(entry))
        assert all(
            tx.status == TransactionStatus.SCHEDULED for tx in all_transactions(storage)
        )

    def test_partially_paid_invoice(self, coordinator, storage, ledger_id, card, settings, clock):
        """Test members already paid are left alone."""
        first = run_async(coordinator.save_transaction(card_draft(ledger_id, card)))
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, date=date(2026, 3, 20))))
        run_async(coordinator.toggle_status(first.transaction.id))

        result = run_async(coordinator.toggle_invoice(self.invoice(storage, settings, clock)))

        assert len(result.succeeded) == 1
        assert all(tx.status == TransactionStatus.PAID for tx in all_transactions(storage))


class TestDebtContracts:

    @pytest.fixture
    def contract(self, coordinator, ledger_id):
        result = run_async(coordinator.create_debt_contract(loan(ledger_id), date(2026, 3, 10)))
        return result.contract

    def installments(self, storage):
        return all_transactions(storage)

    def stored(self, storage, contract):
        return run_async(storage.debt_contracts.get(contract.id))

    def test_create_schedules_installments(self, contract, storage):
        """Test one boleto installment per remaining month."""
        series = self.installments(storage)

        assert len(series) == 4
        assert [tx.description for tx in series] == [
            "Car loan (1/4)", "Car loan (2/4)", "Car loan (3/4)", "Car loan (4/4)",
        ]
        assert [tx.reference_month for tx in series] == [
            "2026-03", "2026-04", "2026-05", "2026-06",
        ]
        assert all(tx.method == PaymentMethod.BOLETO for tx in series)
        assert all(tx.contract_id == contract.id for tx in series)
        assert all(tx.origin == TransactionOrigin.DEBT for tx in series)

    def test_partially_paid_contract_numbering(self, coordinator, storage, ledger_id):
        """Test numbering continues from installments already paid."""
        run_async(coordinator.create_debt_contract(
            loan(ledger_id, installments_remaining=2, total_installments=10,
                 total_debt_remaining=Decimal("500")),
            date(2026, 3, 10),
        ))
        assert [tx.description for tx in self.installments(storage)] == [
            "Car loan (9/10)", "Car loan (10/10)",
        ]

    def test_card_contract_uses_invoice_months(self, coordinator, storage, ledger_id, card):
        """Test installments billed to a card follow its closing day."""
        run_async(coordinator.create_debt_contract(
            loan(ledger_id, card_id=card.id), date(2026, 3, 15),
        ))
        series = self.installments(storage)
        assert series[0].reference_month == "2026-04"
        assert all(tx.method == PaymentMethod.CARD for tx in series)

    def test_toggle_moves_contract(self, coordinator, storage, contract):
        """Test paying and un-paying one installment round-trips the contract."""
        first = self.installments(storage)[0]

        run_async(coordinator.toggle_status(first.id))
        paid = self.stored(storage, contract)
        assert paid.installments_remaining == 3
        assert paid.total_debt_remaining == Decimal("750")

        run_async(coordinator.toggle_status(first.id))
        reverted = self.stored(storage, contract)
        assert reverted.installments_remaining == 4
        assert reverted.total_debt_remaining == Decimal("1000")

    def test_settles_and_reactivates(self, coordinator, storage, contract, audit_storage):
        """Test the last payment settles and an un-pay reactivates."""
        series = self.installments(storage)
        for tx in series:
            run_async(coordinator.toggle_status(tx.id))

        settled = self.stored(storage, contract)
        assert settled.status == DebtStatus.SETTLED
        assert settled.installments_remaining == 0
        assert settled.total_debt_remaining == Decimal("0")
        assert len(events_of(audit_storage, AuditEventType.CONTRACT_SETTLED)) == 1

        run_async(coordinator.toggle_status(series[-1].id))
        reopened = self.stored(storage, contract)
        assert reopened.status == DebtStatus.ACTIVE
        assert reopened.installments_remaining == 1
        assert reopened.total_debt_remaining == Decimal("250")
        assert events_of(audit_storage, AuditEventType.CONTRACT_REACTIVATED)

    def test_counters_never_go_negative(self, coordinator, storage, ledger_id):
        """Test paying past zero clamps at zero."""
        result = run_async(coordinator.create_debt_contract(
            loan(ledger_id, installments_remaining=1, total_installments=1,
                 total_debt_remaining=Decimal("100")),
            date(2026, 3, 10),
        ))
        extra = run_async(storage.transactions.add(make_transaction(
            ledger_id, contract_id=result.contract.id,
        )))
        installment = next(
            tx for tx in self.installments(storage)
            if tx.origin == TransactionOrigin.DEBT
        )
        assert installment.id != extra

        run_async(coordinator.toggle_status(installment.id))
        run_async(coordinator.toggle_status(extra))

        contract = self.stored(storage, result.contract)
        assert contract.installments_remaining == 0
        assert contract.total_debt_remaining == Decimal("0")

    def test_update_propagates_amount_to_unpaid(self, coordinator, storage, contract):
        """Test a new installment amount reaches only unpaid installments."""
        first = self.installments(storage)[0]
        run_async(coordinator.toggle_status(first.id))
        current = self.stored(storage, contract)

        result = run_async(coordinator.update_debt_contract(
            current.model_copy(update={
                "installment_amount": Decimal("300"),
                "total_debt_remaining": Decimal("900"),
            })
        ))

        amounts = [tx.amount for tx in self.installments(storage)]
        assert amounts == [Decimal("250"), Decimal("300"), Decimal("300"), Decimal("300")]
        assert result.batch.ok
        assert result.drift is None

    def test_update_reports_drift(self, coordinator, storage, contract, audit_storage):
        """Test manual edits that break the debt identity are reported, not fixed."""
        result = run_async(coordinator.update_debt_contract(
            contract.model_copy(update={"total_debt_remaining": Decimal("1100")})
        ))

        assert result.drift is not None
        assert result.drift.difference == Decimal("100")
        assert self.stored(storage, contract).total_debt_remaining == Decimal("1100")
        assert events_of(audit_storage, AuditEventType.CONTRACT_DRIFT_DETECTED)

    def test_update_missing_contract(self, coordinator, ledger_id):
        with pytest.raises(NotFoundError):
            run_async(coordinator.update_debt_contract(loan(ledger_id, id="ghost")))

    def test_reassign_ledger(self, coordinator, storage, contract):
        """Test moving a contract moves its installments."""
        result = run_async(coordinator.reassign_contract_ledger(contract.id, "business"))

        assert result.contract.ledger_id == "business"
        assert {tx.ledger_id for tx in self.installments(storage)} == {"business"}

    def test_delete_cascades(self, coordinator, storage, contract):
        """Test deleting a contract removes its installments."""
        run_async(storage.transactions.add(make_transaction(contract.ledger_id)))
        result = run_async(coordinator.delete_debt_contract(contract.id))

        assert len(result.succeeded) == 4
        assert len(storage.debt_contracts) == 0
        assert len(storage.transactions) == 1

    def test_invalid_contract_rejected(self, coordinator, storage, ledger_id):
        with pytest.raises(InvalidInputError):
            run_async(coordinator.create_debt_contract(
                loan(ledger_id, card_id="amex"), date(2026, 3, 10)
            ))
        assert len(storage.debt_contracts) == 0


class TestDelete:

    def test_missing_is_noop(self, coordinator):
        """Test deleting an unknown id does nothing."""
        result = run_async(coordinator.delete_transaction("nope", DeleteScope.ALL_RELATED))
        assert result.succeeded == []
        assert result.ok

    def test_only_this_installment(self, coordinator, storage, ledger_id, card):
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, installment_count=4)))
        target = all_transactions(storage)[1]

        run_async(coordinator.delete_transaction(target.id))
        assert len(storage.transactions) == 3

    def test_all_related_installments(self, coordinator, storage, ledger_id, card):
        """Test deleting a whole installment series from any member."""
        run_async(coordinator.save_transaction(card_draft(ledger_id, card, installment_count=4)))
        run_async(storage.transactions.add(make_transaction(ledger_id)))
        target = all_transactions(storage)[2]

        result = run_async(coordinator.delete_transaction(target.id, DeleteScope.ALL_RELATED))

        assert len(result.succeeded) == 4
        assert len(storage.transactions) == 1

    def test_only_this_occurrence_suppresses_month(self, coordinator, storage, ledger_id, card, audit_logger, settings, audit_storage):
        """Test a deleted generated occurrence never comes back."""
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, nature=TransactionNature.RECURRING,
        )))
        generator = RecurrenceGenerator(storage, audit_logger, settings)
        generated_id = run_async(generator.generate(date(2026, 3, 15))).created[0]
        generated = run_async(storage.transactions.get(generated_id))

        run_async(coordinator.delete_transaction(generated_id))

        rule = run_async(storage.recurrences.list_all())[0]
        assert rule.skipped_months == [generated.reference_month]
        skipped = events_of(audit_storage, AuditEventType.RECURRENCE_MONTH_SKIPPED)
        assert skipped[0].is_user_action

        report = run_async(RecurrenceGenerator(storage, audit_logger, settings).generate(date(2026, 3, 15)))
        assert report.created == []
        assert report.suppressed == [f"{rule.id}:{generated.reference_month}"]

    def test_all_related_recurring_deletes_rule(self, coordinator, storage, ledger_id, card, audit_logger, settings):
        """Test deleting a recurring series removes the rule and its occurrences."""
        run_async(coordinator.save_transaction(card_draft(
            ledger_id, card, nature=TransactionNature.RECURRING,
        )))
        run_async(RecurrenceGenerator(storage, audit_logger, settings).generate(date(2026, 3, 15)))
        assert len(storage.transactions) == 2

        first = all_transactions(storage)[0]
        run_async(coordinator.delete_transaction(first.id, DeleteScope.ALL_RELATED))

        assert len(storage.transactions) == 0
        assert len(storage.recurrences) == 0

    def test_all_related_contract(self, coordinator, storage, ledger_id):
        """Test deleting all related installments of a contract keeps the contract."""
        run_async(coordinator.create_debt_contract(loan(ledger_id), date(2026, 3, 10)))
        target = all_transactions(storage)[0]

        run_async(coordinator.delete_transaction(target.id, DeleteScope.ALL_RELATED))

        assert len(storage.transactions) == 0
        assert len(storage.debt_contracts) == 1


class TestLegacySeries:
    """Recurring records saved before series keys existed."""

    @pytest.fixture
    def gym(self, storage, ledger_id):
        """Two keyless March and April occurrences, one in another ledger, one one-off."""
        gym = dict(description="Gym", nature=TransactionNature.RECURRING, amount=Decimal("80"))
        records = {
            "mar": make_transaction(ledger_id, **gym),
            "apr": make_transaction(ledger_id, date=date(2026, 4, 5),
                                    reference_month="2026-04", **gym),
            "business": make_transaction("business", **gym),
            "once": make_transaction(ledger_id, description="Gym", amount=Decimal("80")),
        }
        return {
            name: run_async(storage.transactions.add(tx))
            for name, tx in records.items()
        }

    def amounts(self, storage, gym):
        stored = {tx.id: tx.amount for tx in all_transactions(storage)}
        return {name: stored.get(record_id) for name, record_id in gym.items()}

    def test_all_related_edit_matches_description_ledger_and_nature(self, coordinator, storage, gym):
        """Test an edit reaches keyless siblings and nothing else."""
        first = run_async(storage.transactions.get(gym["mar"]))
        edit = draft_from_transaction(first).model_copy(update={"amount": Decimal("95")})

        result = run_async(coordinator.save_transaction(edit, UpdateScope.ALL_RELATED))

        assert result.batch.succeeded == [gym["apr"]]
        assert self.amounts(storage, gym) == {
            "mar": Decimal("95"),
            "apr": Decimal("95"),
            "business": Decimal("80"),
            "once": Decimal("80"),
        }

    def test_all_related_delete_matches_description_ledger_and_nature(self, coordinator, storage, gym):
        """Test a delete removes keyless siblings and nothing else."""
        result = run_async(coordinator.delete_transaction(gym["apr"], DeleteScope.ALL_RELATED))

        assert sorted(result.succeeded) == sorted([gym["mar"], gym["apr"]])
        assert {tx.id for tx in all_transactions(storage)} == {gym["business"], gym["once"]}


class TestTransfers:

    def test_paired_transactions(self, coordinator, storage, ledger_id):
        """Test a transfer writes a paid expense and a paid income sharing a group."""
        group_id, result = run_async(coordinator.record_transfer(
            ledger_id, "business", Decimal("300"), date(2026, 3, 1), "Capital",
        ))

        legs = run_async(storage.transactions.list_all())
        assert result.ok
        assert len(legs) == 2
        assert {tx.type for tx in legs} == {TransactionType.EXPENSE, TransactionType.INCOME}
        assert {tx.ledger_id for tx in legs} == {ledger_id, "business"}
        assert all(tx.transfer_group_id == group_id for tx in legs)
        assert all(tx.status == TransactionStatus.PAID for tx in legs)
        assert all(tx.category == "Transfer" for tx in legs)

    def test_non_positive_amount(self, coordinator, ledger_id):
        with pytest.raises(ValueError):
            run_async(coordinator.record_transfer(
                ledger_id, "business", Decimal("0"), date(2026, 3, 1),
            ))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
