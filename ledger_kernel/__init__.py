"""
Ledger Kernel - double-entry core of the small-business books.

An append-only accounting core with:
- Balanced, idempotent journal postings
- Compensating reversals instead of mutation
- Balances derived on demand from journal lines
- Organization-scoped chart of accounts
"""

__version__ = "0.1.0"
