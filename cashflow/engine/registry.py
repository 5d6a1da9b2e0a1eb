"""
Ledger & Card Registry

Read-only reference data every other component consults: ledgers,
credit cards and debt contracts. A registry is a snapshot; rebuild it
with ``LedgerRegistry.load`` after writes that change reference data.

Referential gaps are answered with None and never raised.
"""

from typing import Iterable, Optional

from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    Ledger,
    LedgerType,
    Recurrence,
    Transaction,
)
from cashflow.services.storage.interface import LedgerStorage


class LedgerRegistry:
    """Indexed view over ledgers, cards, contracts and recurrence rules."""

    def __init__(
        self,
        ledgers: Iterable[Ledger] = (),
        cards: Iterable[CreditCard] = (),
        contracts: Iterable[DebtContract] = (),
        recurrences: Iterable[Recurrence] = (),
    ):
        self._ledgers = {ledger.id: ledger for ledger in ledgers if ledger.id}
        self._cards = {c.id: c for c in cards if c.id}
        self._contracts = {c.id: c for c in contracts if c.id}
        self._recurrences = {r.id: r for r in recurrences if r.id}

    @classmethod
    async def load(cls, storage: LedgerStorage) -> "LedgerRegistry":
        """Build a snapshot from the current contents of storage."""
        return cls(
            ledgers=await storage.ledgers.list_all(),
            cards=await storage.cards.list_all(),
            contracts=await storage.debt_contracts.list_all(),
            recurrences=await storage.recurrences.list_all(),
        )

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def ledger(self, ledger_id: Optional[str]) -> Optional[Ledger]:
        return self._ledgers.get(ledger_id) if ledger_id else None

    def card(self, card_id: Optional[str]) -> Optional[CreditCard]:
        return self._cards.get(card_id) if card_id else None

    def contract(self, contract_id: Optional[str]) -> Optional[DebtContract]:
        return self._contracts.get(contract_id) if contract_id else None

    def recurrence(self, recurrence_id: Optional[str]) -> Optional[Recurrence]:
        return self._recurrences.get(recurrence_id) if recurrence_id else None

    @property
    def ledgers(self) -> list[Ledger]:
        return list(self._ledgers.values())

    @property
    def cards(self) -> list[CreditCard]:
        return list(self._cards.values())

    @property
    def contracts(self) -> list[DebtContract]:
        return list(self._contracts.values())

    @property
    def recurrences(self) -> list[Recurrence]:
        return list(self._recurrences.values())

    def default_ledger(self, ledger_type: LedgerType) -> Optional[Ledger]:
        """The default ledger of a type, else the first ledger of that type."""
        of_type = [ledger for ledger in self._ledgers.values() if ledger.type == ledger_type]
        for ledger in of_type:
            if ledger.is_default:
                return ledger
        return of_type[0] if of_type else None

    def cards_for_ledger(self, ledger_id: Optional[str]) -> list[CreditCard]:
        """Cards of one ledger; None means every card."""
        if ledger_id is None:
            return self.cards
        return [c for c in self._cards.values() if c.ledger_id == ledger_id]

    def unclassified_cards(self) -> list[CreditCard]:
        return [c for c in self._cards.values() if not c.ledger_id]

    def contracts_for_ledger(self, ledger_id: Optional[str]) -> list[DebtContract]:
        if ledger_id is None:
            return self.contracts
        return [c for c in self._contracts.values() if c.ledger_id == ledger_id]

    def recurrences_for_ledger(self, ledger_id: Optional[str]) -> list[Recurrence]:
        if ledger_id is None:
            return self.recurrences
        return [r for r in self._recurrences.values() if r.ledger_id == ledger_id]

    # =========================================================================
    # SCOPING
    # =========================================================================

    def resolve_ledger_id(self, transaction: Transaction) -> Optional[str]:
        """
        Ledger a transaction counts toward.

        Contract installments follow their contract, card purchases follow
        their card. None when the reference they depend on is missing or
        the card is unclassified.
        """
        if transaction.contract_id:
            contract = self.contract(transaction.contract_id)
            return contract.ledger_id if contract else None
        if transaction.is_card:
            card = self.card(transaction.card_id)
            return card.ledger_id if card else None
        return transaction.ledger_id

    def is_resolvable(self, transaction: Transaction) -> bool:
        """False for card transactions whose card is gone and for orphaned installments."""
        if transaction.is_card and self.card(transaction.card_id) is None:
            return False
        if transaction.contract_id and self.contract(transaction.contract_id) is None:
            return False
        return True

    def scope_transactions(
        self,
        transactions: Iterable[Transaction],
        ledger_id: Optional[str],
    ) -> list[Transaction]:
        """
        Filter transactions to one ledger (or all ledgers when None).

        Transactions with unresolved references are always dropped.
        """
        scoped = []
        for tx in transactions:
            if not self.is_resolvable(tx):
                continue
            if ledger_id is None or self.resolve_ledger_id(tx) == ledger_id:
                scoped.append(tx)
        return scoped
