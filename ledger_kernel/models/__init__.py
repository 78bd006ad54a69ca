"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalSide,
    SystemAccountRole,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine, TransactionType
from ledger_kernel.models.organization import Organization

__all__ = [
    "Account",
    "AccountType",
    "JournalEntry",
    "JournalLine",
    "NormalSide",
    "Organization",
    "SystemAccountRole",
    "TransactionType",
]
