"""Tests for the recurrence generator."""

import pytest
from datetime import date
from decimal import Decimal

from conftest import run_async

from cashflow.engine.recurrence import RecurrenceGenerator
from cashflow.models.audit import AuditEventType
from cashflow.models.ledger import (
    PaymentMethod,
    Recurrence,
    TransactionNature,
    TransactionOrigin,
    TransactionStatus,
    TransactionType,
)
from cashflow.services.storage import InMemoryCollection, StorageError


TODAY = date(2026, 3, 15)


class FailingCollection(InMemoryCollection):
    """Rejects every add while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = True

    async def add(self, record):
        if self.failing:
            raise StorageError("quota exceeded")
        return await super().add(record)


@pytest.fixture
def rule(storage, ledger_id, card):
    """A monthly card subscription on the 5th."""
    rule = Recurrence(
        ledger_id=ledger_id,
        description="Streaming",
        type=TransactionType.EXPENSE,
        amount=Decimal("40"),
        category="Leisure",
        method=PaymentMethod.CARD,
        day_of_month=5,
        card_id=card.id,
    )
    rule_id = run_async(storage.recurrences.add(rule))
    return rule.model_copy(update={"id": rule_id})


@pytest.fixture
def generator(storage, audit_logger, settings):
    return RecurrenceGenerator(storage, audit_logger, settings)


class TestGeneration:

    def test_generates_current_and_next_month(self, generator, storage, rule):
        """Test one transaction per month of the horizon."""
        report = run_async(generator.generate(TODAY))

        assert len(report.created) == 2
        transactions = run_async(storage.transactions.list_all())
        assert sorted(tx.reference_month for tx in transactions) == ["2026-03", "2026-04"]
        for tx in transactions:
            assert tx.origin == TransactionOrigin.RECURRENCE
            assert tx.nature == TransactionNature.RECURRING
            assert tx.status == TransactionStatus.SCHEDULED
            assert tx.recurrence_id == rule.id
            assert tx.card_id == rule.card_id
            assert tx.category == "Leisure"

    def test_generation_is_idempotent(self, generator, storage, rule):
        """Test repeated runs never duplicate transactions."""
        run_async(generator.generate(TODAY))
        second = run_async(generator.generate(TODAY))

        assert second.created == []
        assert len(storage.transactions) == 2

    def test_fresh_generator_trusts_persisted_state(self, storage, rule, audit_logger, settings):
        """Test a new instance (empty guard) still sees existing transactions."""
        run_async(RecurrenceGenerator(storage, audit_logger, settings).generate(TODAY))
        report = run_async(RecurrenceGenerator(storage, audit_logger, settings).generate(TODAY))

        assert report.created == []
        assert len(storage.transactions) == 2

    def test_invoice_month_follows_closing_day(self, generator, storage, rule):
        """Test a rule past the closing day lands on the next invoices."""
        run_async(storage.recurrences.update(rule.model_copy(update={"day_of_month": 20})))
        run_async(generator.generate(TODAY))

        transactions = sorted(
            run_async(storage.transactions.list_all()), key=lambda tx: tx.date
        )
        assert [tx.date for tx in transactions] == [date(2026, 3, 20), date(2026, 4, 20)]
        assert [tx.reference_month for tx in transactions] == ["2026-04", "2026-05"]

    def test_day_clamped_to_month_end(self, generator, storage, rule):
        """Test day 31 falls on the last day of shorter months."""
        run_async(storage.recurrences.update(rule.model_copy(update={"day_of_month": 31})))
        run_async(generator.generate(date(2026, 2, 1)))

        dates = sorted(tx.date for tx in run_async(storage.transactions.list_all()))
        assert dates[0] == date(2026, 2, 28)

    def test_skipped_month_is_suppressed(self, generator, storage, rule):
        """Test months the user deleted are never regenerated."""
        run_async(storage.recurrences.update(
            rule.model_copy(update={"skipped_months": ["2026-04"]})
        ))
        report = run_async(generator.generate(TODAY))

        assert len(report.created) == 1
        assert report.suppressed == [f"{rule.id}:2026-04"]

    @pytest.mark.parametrize("changes", [
        {"is_active": False},
        {"auto_generate": False},
        {"method": PaymentMethod.PIX},
        {"card_id": "missing-card"},
    ])
    def test_ineligible_rules_are_ignored(self, generator, storage, rule, changes):
        """Test inactive, manual, non-card and orphaned rules generate nothing."""
        run_async(storage.recurrences.update(rule.model_copy(update=changes)))
        report = run_async(generator.generate(TODAY))

        assert report.created == []
        assert len(storage.transactions) == 0

    def test_generation_is_audited(self, generator, rule, audit_storage):
        """Test each generated transaction leaves an audit event."""
        run_async(generator.generate(TODAY))

        generated = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.RECURRENCE_GENERATED
        ]
        assert len(generated) == 2


class TestGenerationFailures:

    def test_failed_write_is_reported_and_retried(self, storage, rule, audit_logger, settings, audit_storage):
        """Test a failed write releases its key so the next run retries."""
        failing = FailingCollection()
        storage.transactions = failing
        generator = RecurrenceGenerator(storage, audit_logger, settings)

        report = run_async(generator.generate(TODAY))
        assert report.created == []
        assert len(report.failures) == 2
        assert any(e.event_type == AuditEventType.WRITE_FAILED for e in audit_storage.events)

        failing.failing = False
        retry = run_async(generator.generate(TODAY))
        assert len(retry.created) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
