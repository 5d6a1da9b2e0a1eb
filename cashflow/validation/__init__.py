"""Entry-point validation of editing items."""

from cashflow.validation.validator import (
    InvalidInputError,
    TransactionValidator,
    parse_editing_item,
)

__all__ = [
    "InvalidInputError",
    "TransactionValidator",
    "parse_editing_item",
]
