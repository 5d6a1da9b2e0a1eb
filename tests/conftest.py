"""
Shared fixtures.

Engine code is async; tests stay synchronous and drive coroutines
through run_async, so no async test plugin is needed.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from cashflow.audit import AuditLogger
from cashflow.config import EngineSettings
from cashflow.models.ledger import (
    CreditCard,
    Ledger,
    LedgerType,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from cashflow.services.clock import FixedClock
from cashflow.services.storage import InMemoryAuditStorage, create_memory_storage


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def settings():
    return EngineSettings(
        min_supported_month="2026-01",
        generation_horizon_months=2,
        due_soon_days=7,
        top_categories_limit=3,
        default_category="Other",
    )


@pytest.fixture
def clock():
    return FixedClock(date(2026, 3, 15))


@pytest.fixture
def storage():
    return create_memory_storage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger_id(storage):
    """A personal ledger stored and ready to use."""
    return run_async(storage.ledgers.add(
        Ledger(name="Personal", type=LedgerType.PERSONAL, is_default=True)
    ))


@pytest.fixture
def card(storage, ledger_id):
    """A card closing on the 10th and due on the 20th."""
    card = CreditCard(
        ledger_id=ledger_id,
        name="Visa",
        closing_day=10,
        due_day=20,
        limit=Decimal("5000"),
    )
    card_id = run_async(storage.cards.add(card))
    return card.model_copy(update={"id": card_id})


def make_transaction(ledger_id, **overrides) -> Transaction:
    """A scheduled PIX expense for March 2026 unless overridden."""
    fields = dict(
        ledger_id=ledger_id,
        type=TransactionType.EXPENSE,
        description="Groceries",
        amount=Decimal("100"),
        method=PaymentMethod.PIX,
        status=TransactionStatus.SCHEDULED,
        date=date(2026, 3, 5),
        reference_month="2026-03",
    )
    fields.update(overrides)
    return Transaction(**fields)
