"""
Financial reporting: trial balance, balance sheet, profit and loss, the
transaction journal, and AR / AP aging.  Statements derive from journal
lines; aging derives from the open documents.
"""

from ledger_modules.reporting.models import (
    AGING_BUCKETS,
    AgeBucket,
    AgedDocument,
    AgingReport,
    AgingRow,
    BalanceSheetReport,
    JournalTransaction,
    ProfitAndLossReport,
    ReportMetadata,
    ReportType,
    StatementSection,
    TransactionJournalReport,
    TrialBalanceLineItem,
    TrialBalanceReport,
)
from ledger_modules.reporting.service import ReportingService

__all__ = [
    "AGING_BUCKETS",
    "AgeBucket",
    "AgedDocument",
    "AgingReport",
    "AgingRow",
    "BalanceSheetReport",
    "JournalTransaction",
    "ProfitAndLossReport",
    "ReportMetadata",
    "ReportType",
    "ReportingService",
    "StatementSection",
    "TransactionJournalReport",
    "TrialBalanceLineItem",
    "TrialBalanceReport",
]
