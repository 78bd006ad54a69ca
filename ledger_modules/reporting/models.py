"""
Financial Reporting Domain Models (``ledger_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects representing report outputs: trial balance,
balance sheet, profit and loss, the transaction journal, and the AR and AP
aging reports.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``ReportingService`` and returned to callers.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ReportType(str, Enum):
    """Types of financial reports."""

    TRIAL_BALANCE = "trial_balance"
    BALANCE_SHEET = "balance_sheet"
    PROFIT_AND_LOSS = "profit_and_loss"
    TRANSACTION_JOURNAL = "transaction_journal"
    AR_AGING = "ar_aging"
    AP_AGING = "ap_aging"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    report_type: ReportType
    organization_id: UUID
    currency: str
    as_of_date: date
    generated_at: str  # ISO format timestamp from injected clock
    period_start: date | None = None
    period_end: date | None = None


# =========================================================================
# Trial balance
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLineItem:
    """
    One account on a statement.

    ``debit_balance`` / ``credit_balance`` hold the net balance in the
    column of its sign; ``net_balance`` is the natural-side balance.
    ``account_id`` is None for synthetic lines (net income on the
    balance sheet).
    """

    account_id: UUID | None
    account_code: str
    account_name: str
    account_type: str
    debit_balance: Decimal
    credit_balance: Decimal
    net_balance: Decimal


@dataclass(frozen=True)
class TrialBalanceReport:
    metadata: ReportMetadata
    lines: tuple[TrialBalanceLineItem, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool  # total_debits == total_credits


# =========================================================================
# Balance sheet / profit and loss
# =========================================================================


@dataclass(frozen=True)
class StatementSection:
    """A section of a statement (e.g., Assets)."""

    label: str
    lines: tuple[TrialBalanceLineItem, ...]
    total: Decimal


@dataclass(frozen=True)
class BalanceSheetReport:
    """Assets = Liabilities + Equity, with net income inside equity."""

    metadata: ReportMetadata
    assets: StatementSection
    liabilities: StatementSection
    equity: StatementSection
    net_income: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class ProfitAndLossReport:
    metadata: ReportMetadata
    income: StatementSection
    expenses: StatementSection
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal


# =========================================================================
# Transaction journal
# =========================================================================


@dataclass(frozen=True)
class JournalTransactionLine:
    account_id: UUID
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    description: str = ""


@dataclass(frozen=True)
class JournalTransaction:
    """One journal entry with the lines that matched the report filter."""

    entry_id: UUID
    seq: int
    transaction_date: date
    transaction_type: str
    source_document_id: UUID
    description: str
    lines: tuple[JournalTransactionLine, ...]
    total_debits: Decimal
    total_credits: Decimal


@dataclass(frozen=True)
class TransactionJournalReport:
    metadata: ReportMetadata
    transactions: tuple[JournalTransaction, ...]
    total_debits: Decimal
    total_credits: Decimal


# =========================================================================
# Aging
# =========================================================================


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    ``max_days`` None means unbounded.  Ages below zero (not yet due) fall
    into the first bucket of ``AGING_BUCKETS``.
    """

    name: str
    min_days: int
    max_days: int | None

    def contains(self, days_past_due: int) -> bool:
        if days_past_due < self.min_days:
            return False
        return self.max_days is None or days_past_due <= self.max_days


AGING_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("current", 0, 0),
    AgeBucket("1-30", 1, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


@dataclass(frozen=True)
class AgedDocument:
    document_id: UUID
    document_number: str
    counterparty_id: UUID
    issue_date: date
    due_date: date
    amount_due: Decimal
    days_past_due: int
    bucket: str


@dataclass(frozen=True)
class AgingRow:
    """
    Open balance of one customer (AR) or vendor (AP).

    ``buckets`` maps every bucket name, in bucket order, to an amount.
    """

    counterparty_id: UUID
    buckets: dict[str, Decimal]
    total: Decimal
    document_count: int


@dataclass(frozen=True)
class AgingReport:
    """
    Open documents bucketed by days past due as of ``metadata.as_of_date``.

    Sum of ``rows[*].total`` == sum of ``bucket_totals`` == ``total``.
    """

    metadata: ReportMetadata
    rows: tuple[AgingRow, ...]
    documents: tuple[AgedDocument, ...]
    bucket_totals: dict[str, Decimal]
    total: Decimal
