"""
Ledger engine.

Registry, recurrence generation, opening balance rollover, aggregation
and the debt & installment coordinator. Import from the submodules.
"""
