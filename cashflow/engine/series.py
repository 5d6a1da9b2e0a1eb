"""
Series membership.

The one place that decides which transactions belong to the same series.
A series is keyed by the recurrence_id its members share; the first
installment of a series may be the key itself. Legacy records without a
key fall back to exact description + ledger + nature matching, which can
under- or over-match and is accepted as best effort.
"""

from typing import Iterable

from cashflow.models.ledger import Transaction


def series_key(transaction: Transaction) -> str:
    """The key a transaction's series is linked by."""
    return transaction.recurrence_id or transaction.id


def is_keyed(transaction: Transaction) -> bool:
    return bool(transaction.recurrence_id)


def resolve_series_membership(
    anchor: Transaction,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """
    Every transaction in the same series as ``anchor``, anchor included.

    ``anchor`` should be the stored version of the record, so an edit
    that renames it still finds its old siblings.
    """
    key = series_key(anchor)
    members = []
    for tx in transactions:
        if tx.id == anchor.id or tx.recurrence_id == key or tx.id == key:
            members.append(tx)
        elif not is_keyed(anchor) and (
            tx.description == anchor.description
            and tx.ledger_id == anchor.ledger_id
            and tx.nature == anchor.nature
        ):
            members.append(tx)
    return members
