"""
Cash-Flow Ledger - Source Package

A reconciliation and recurrence engine for personal and small-business
cash-flow books (ledgers).

DESIGN PRINCIPLES:
1. Generation and rollover are idempotent - safe to run on every view
2. Persisted state is authoritative, in-memory guards are only a fast path
3. Referential gaps are excluded silently, never raised
4. Batch writes continue past single-record failures
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Cash-Flow Ledger Team"
