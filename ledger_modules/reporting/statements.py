"""
Pure financial statement transformation functions.

These functions transform trial balance data, account metadata and open
documents into structured statements.  ZERO I/O.  ZERO side effects.

All monetary values are Decimal.  All inputs/outputs are frozen dataclasses.

Functions in this module follow the ledger_kernel/domain/ purity convention:
- No database access
- No clock access
- Deterministic: same inputs always produce same outputs
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from ledger_kernel.models.account import AccountType, NormalSide
from ledger_kernel.selectors.balance_calculator import TrialBalanceRow, compute_natural_balance
from ledger_modules.reporting.models import (
    AGING_BUCKETS,
    AgeBucket,
    AgedDocument,
    AgingReport,
    AgingRow,
    BalanceSheetReport,
    JournalTransaction,
    JournalTransactionLine,
    ProfitAndLossReport,
    ReportMetadata,
    StatementSection,
    TransactionJournalReport,
    TrialBalanceLineItem,
    TrialBalanceReport,
)

_ZERO = Decimal("0")

# =========================================================================
# Bridge types
# =========================================================================


@dataclasses.dataclass(frozen=True)
class AccountInfo:
    """
    Snapshot of account metadata needed for classification.

    The service converts Account rows to AccountInfo before calling any
    function here, keeping this module free of ORM dependencies.
    """

    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_side: NormalSide
    parent_id: UUID | None = None


@dataclasses.dataclass(frozen=True)
class JournalLineView:
    """One journal line joined with its entry header and account."""

    entry_id: UUID
    seq: int
    transaction_date: date
    transaction_type: str
    source_document_id: UUID
    entry_description: str
    account_id: UUID
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    description: str = ""


# =========================================================================
# Helpers
# =========================================================================


def enrich_trial_balance(
    rows: Iterable[TrialBalanceRow],
    accounts: dict[UUID, AccountInfo],
    include_zero_balances: bool = True,
) -> tuple[TrialBalanceLineItem, ...]:
    """
    Convert raw TrialBalanceRows to line items with the net balance placed
    in the debit or credit column.  Sorted by account code.
    """
    items: list[TrialBalanceLineItem] = []
    for row in rows:
        acct = accounts.get(row.account_id)
        if acct is None:
            continue

        natural = compute_natural_balance(row.debit_total, row.credit_total, acct.normal_side)
        if not include_zero_balances and natural == _ZERO:
            continue

        net_debit = row.debit_total - row.credit_total
        items.append(
            TrialBalanceLineItem(
                account_id=row.account_id,
                account_code=acct.code,
                account_name=acct.name,
                account_type=acct.account_type.value,
                debit_balance=net_debit if net_debit > 0 else _ZERO,
                credit_balance=-net_debit if net_debit < 0 else _ZERO,
                net_balance=natural,
            )
        )

    return tuple(sorted(items, key=lambda x: x.account_code))


def compute_net_income(
    rows: Iterable[TrialBalanceRow],
    accounts: dict[UUID, AccountInfo],
) -> Decimal:
    """
    Net income = sum(INCOME natural balances) - sum(EXPENSE natural balances).
    """
    income = _ZERO
    expense = _ZERO
    for row in rows:
        acct = accounts.get(row.account_id)
        if acct is None:
            continue
        natural = compute_natural_balance(row.debit_total, row.credit_total, acct.normal_side)
        if acct.account_type == AccountType.INCOME:
            income += natural
        elif acct.account_type == AccountType.EXPENSE:
            expense += natural
    return income - expense


def _make_section(label: str, items: Iterable[TrialBalanceLineItem]) -> StatementSection:
    t = tuple(sorted(items, key=lambda x: x.account_code))
    return StatementSection(
        label=label,
        lines=t,
        total=sum((item.net_balance for item in t), _ZERO),
    )


def _of_type(
    items: tuple[TrialBalanceLineItem, ...],
    account_type: AccountType,
) -> list[TrialBalanceLineItem]:
    return [item for item in items if item.account_type == account_type.value]


# =========================================================================
# 1. TRIAL BALANCE
# =========================================================================


def build_trial_balance(
    rows: list[TrialBalanceRow],
    accounts: dict[UUID, AccountInfo],
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    items = enrich_trial_balance(rows, accounts)
    total_debits = sum((item.debit_balance for item in items), _ZERO)
    total_credits = sum((item.credit_balance for item in items), _ZERO)
    return TrialBalanceReport(
        metadata=metadata,
        lines=items,
        total_debits=total_debits,
        total_credits=total_credits,
        is_balanced=(total_debits == total_credits),
    )


# =========================================================================
# 2. BALANCE SHEET
# =========================================================================


def build_balance_sheet(
    rows: list[TrialBalanceRow],
    accounts: dict[UUID, AccountInfo],
    metadata: ReportMetadata,
) -> BalanceSheetReport:
    """
    Assets, liabilities and equity as of ``metadata.as_of_date``.

    Income and expense accounts are never closed, so their net is shown as
    a synthetic "Net Income" line in equity.  Verifies A = L + E.
    """
    items = enrich_trial_balance(rows, accounts, include_zero_balances=False)
    net_income = compute_net_income(rows, accounts)

    assets = _make_section("Assets", _of_type(items, AccountType.ASSET))
    liabilities = _make_section("Liabilities", _of_type(items, AccountType.LIABILITY))

    equity_items = _of_type(items, AccountType.EQUITY)
    equity_items.append(
        TrialBalanceLineItem(
            account_id=None,
            account_code="",
            account_name="Net Income",
            account_type=AccountType.EQUITY.value,
            debit_balance=-net_income if net_income < 0 else _ZERO,
            credit_balance=net_income if net_income > 0 else _ZERO,
            net_balance=net_income,
        )
    )
    equity = StatementSection(
        label="Equity",
        lines=tuple(equity_items),
        total=sum((item.net_balance for item in equity_items), _ZERO),
    )

    total_l_and_e = liabilities.total + equity.total
    return BalanceSheetReport(
        metadata=metadata,
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        net_income=net_income,
        total_assets=assets.total,
        total_liabilities=liabilities.total,
        total_equity=equity.total,
        total_liabilities_and_equity=total_l_and_e,
        is_balanced=(assets.total == total_l_and_e),
    )


# =========================================================================
# 3. PROFIT AND LOSS
# =========================================================================


def build_profit_and_loss(
    rows: list[TrialBalanceRow],
    accounts: dict[UUID, AccountInfo],
    metadata: ReportMetadata,
) -> ProfitAndLossReport:
    """Income and expense sections for a period; zero-activity accounts omitted."""
    items = enrich_trial_balance(rows, accounts, include_zero_balances=False)
    income = _make_section("Income", _of_type(items, AccountType.INCOME))
    expenses = _make_section("Expenses", _of_type(items, AccountType.EXPENSE))
    return ProfitAndLossReport(
        metadata=metadata,
        income=income,
        expenses=expenses,
        total_income=income.total,
        total_expenses=expenses.total,
        net_income=income.total - expenses.total,
    )


# =========================================================================
# 4. TRANSACTION JOURNAL
# =========================================================================


def build_transaction_journal(
    lines: Iterable[JournalLineView],
    metadata: ReportMetadata,
) -> TransactionJournalReport:
    """
    Group journal lines by entry, preserving input order (date, seq,
    line_seq), with per-transaction and grand totals.
    """
    grouped: dict[UUID, list[JournalLineView]] = {}
    for line in lines:
        grouped.setdefault(line.entry_id, []).append(line)

    transactions: list[JournalTransaction] = []
    for entry_lines in grouped.values():
        head = entry_lines[0]
        out = tuple(
            JournalTransactionLine(
                account_id=line.account_id,
                account_code=line.account_code,
                account_name=line.account_name,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in entry_lines
        )
        transactions.append(
            JournalTransaction(
                entry_id=head.entry_id,
                seq=head.seq,
                transaction_date=head.transaction_date,
                transaction_type=head.transaction_type,
                source_document_id=head.source_document_id,
                description=head.entry_description,
                lines=out,
                total_debits=sum((line.debit for line in out), _ZERO),
                total_credits=sum((line.credit for line in out), _ZERO),
            )
        )

    return TransactionJournalReport(
        metadata=metadata,
        transactions=tuple(transactions),
        total_debits=sum((t.total_debits for t in transactions), _ZERO),
        total_credits=sum((t.total_credits for t in transactions), _ZERO),
    )


# =========================================================================
# 5. AGING
# =========================================================================


@dataclasses.dataclass(frozen=True)
class OpenDocumentView:
    """The part of an open invoice or bill the aging report needs."""

    document_id: UUID
    document_number: str
    counterparty_id: UUID
    issue_date: date
    due_date: date
    amount_due: Decimal


def classify_age(days_past_due: int, buckets: tuple[AgeBucket, ...] = AGING_BUCKETS) -> AgeBucket:
    """Bucket for an age; documents not yet due land in the first bucket."""
    if days_past_due < 0:
        return buckets[0]
    for bucket in buckets:
        if bucket.contains(days_past_due):
            return bucket
    raise ValueError(f"No aging bucket for {days_past_due} days")


def build_aging(
    documents: Iterable[OpenDocumentView],
    as_of: date,
    metadata: ReportMetadata,
    buckets: tuple[AgeBucket, ...] = AGING_BUCKETS,
) -> AgingReport:
    """
    Bucket each document by days past its due date and total the buckets
    per counterparty.  Rows come out in counterparty id order; documents in
    due date order.
    """
    aged: list[AgedDocument] = []
    per_counterparty: dict[UUID, dict[str, Decimal]] = {}
    counts: dict[UUID, int] = {}
    for doc in sorted(documents, key=lambda d: (d.due_date, d.document_number)):
        days = (as_of - doc.due_date).days
        bucket = classify_age(days, buckets)
        aged.append(
            AgedDocument(
                document_id=doc.document_id,
                document_number=doc.document_number,
                counterparty_id=doc.counterparty_id,
                issue_date=doc.issue_date,
                due_date=doc.due_date,
                amount_due=doc.amount_due,
                days_past_due=max(days, 0),
                bucket=bucket.name,
            )
        )
        amounts = per_counterparty.setdefault(
            doc.counterparty_id, {b.name: _ZERO for b in buckets}
        )
        amounts[bucket.name] += doc.amount_due
        counts[doc.counterparty_id] = counts.get(doc.counterparty_id, 0) + 1

    rows = tuple(
        AgingRow(
            counterparty_id=counterparty_id,
            buckets=amounts,
            total=sum(amounts.values(), _ZERO),
            document_count=counts[counterparty_id],
        )
        for counterparty_id, amounts in sorted(per_counterparty.items(), key=lambda kv: str(kv[0]))
    )
    bucket_totals = {
        b.name: sum((row.buckets[b.name] for row in rows), _ZERO) for b in buckets
    }
    return AgingReport(
        metadata=metadata,
        rows=rows,
        documents=tuple(aged),
        bucket_totals=bucket_totals,
        total=sum(bucket_totals.values(), _ZERO),
    )
