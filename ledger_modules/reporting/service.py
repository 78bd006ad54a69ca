"""
Reporting Module Service (``ledger_modules.reporting.service``).

Responsibility
--------------
Bridges the kernel's BalanceCalculator, the journal tables and the open
documents to the pure transformation functions in ``statements.py``.  This
is a **read-only** service: nothing is posted, flushed or committed.

Failure modes
-------------
* ``ValidationError`` when a period ends before it starts.
* Selector query failure -> exception propagates (read-only, nothing to
  roll back).
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, NormalSide
from ledger_kernel.models.journal import JournalEntry, JournalLine, TransactionType
from ledger_kernel.selectors.balance_calculator import BalanceCalculator, DateRange
from ledger_modules.documents.models import DocumentKind
from ledger_modules.documents.selectors import DocumentSelector
from ledger_modules.reporting.models import (
    AgingReport,
    BalanceSheetReport,
    ProfitAndLossReport,
    ReportMetadata,
    ReportType,
    TransactionJournalReport,
    TrialBalanceReport,
)
from ledger_modules.reporting.statements import (
    AccountInfo,
    JournalLineView,
    OpenDocumentView,
    build_aging,
    build_balance_sheet,
    build_profit_and_loss,
    build_transaction_journal,
    build_trial_balance,
)

logger = get_logger("modules.reporting.service")


class ReportingService:
    """
    Report generation for one organization per call.

    Contract
    --------
    * Every public method returns a typed report DTO.
    * All methods are read-only.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._balances = BalanceCalculator(session, self._clock)
        self._documents = DocumentSelector(session, self._clock)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load_accounts(self, context: OrganizationContext) -> dict[UUID, AccountInfo]:
        rows = self._session.execute(
            select(Account).where(Account.organization_id == context.organization_id)
        ).scalars().all()
        accounts = {
            acct.id: AccountInfo(
                account_id=acct.id,
                code=acct.code,
                name=acct.name,
                account_type=AccountType(acct.account_type),
                normal_side=NormalSide(acct.normal_side),
                parent_id=acct.parent_account_id,
            )
            for acct in rows
        }
        logger.debug("accounts_loaded_for_reporting", extra={"account_count": len(accounts)})
        return accounts

    def _build_metadata(
        self,
        context: OrganizationContext,
        report_type: ReportType,
        as_of_date: date,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            organization_id=context.organization_id,
            currency=context.currency.code,
            as_of_date=as_of_date,
            generated_at=self._clock.now().isoformat(),
            period_start=period_start,
            period_end=period_end,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def trial_balance(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> TrialBalanceReport:
        as_of = as_of or self._clock.today()
        rows = self._balances.trial_balance(context, as_of_date=as_of)
        report = build_trial_balance(
            rows,
            self._load_accounts(context),
            self._build_metadata(context, ReportType.TRIAL_BALANCE, as_of),
        )
        logger.info(
            "trial_balance_generated",
            extra={
                "as_of_date": as_of.isoformat(),
                "line_count": len(report.lines),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def balance_sheet(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> BalanceSheetReport:
        as_of = as_of or self._clock.today()
        rows = self._balances.trial_balance(context, as_of_date=as_of)
        report = build_balance_sheet(
            rows,
            self._load_accounts(context),
            self._build_metadata(context, ReportType.BALANCE_SHEET, as_of),
        )
        logger.info(
            "balance_sheet_generated",
            extra={
                "as_of_date": as_of.isoformat(),
                "total_assets": str(report.total_assets),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def profit_and_loss(
        self, context: OrganizationContext, start: date, end: date
    ) -> ProfitAndLossReport:
        period = DateRange(start, end)
        rows = self._balances.trial_balance(
            context, as_of_date=period.end, from_date=period.start
        )
        report = build_profit_and_loss(
            rows,
            self._load_accounts(context),
            self._build_metadata(
                context, ReportType.PROFIT_AND_LOSS, end, period_start=start, period_end=end
            ),
        )
        logger.info(
            "profit_and_loss_generated",
            extra={
                "period_start": start.isoformat(),
                "period_end": end.isoformat(),
                "net_income": str(report.net_income),
            },
        )
        return report

    def transaction_journal(
        self,
        context: OrganizationContext,
        start: date,
        end: date,
        account_id: UUID | None = None,
        transaction_type: TransactionType | str | None = None,
    ) -> TransactionJournalReport:
        """
        Journal lines dated within [start, end], grouped by entry.

        ``account_id`` keeps only that account's lines; ``transaction_type``
        keeps only entries of that type.
        """
        period = DateRange(start, end)
        stmt = (
            select(
                JournalEntry.id.label("entry_id"),
                JournalEntry.seq,
                JournalEntry.transaction_date,
                JournalEntry.transaction_type,
                JournalEntry.source_document_id,
                JournalEntry.description.label("entry_description"),
                JournalLine.account_id,
                Account.code.label("account_code"),
                Account.name.label("account_name"),
                JournalLine.debit_amount,
                JournalLine.credit_amount,
                JournalLine.description,
            )
            .join(JournalLine, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                JournalEntry.transaction_date >= period.start,
                JournalEntry.transaction_date <= period.end,
            )
            .order_by(JournalEntry.transaction_date, JournalEntry.seq, JournalLine.line_seq)
        )
        if account_id is not None:
            stmt = stmt.where(JournalLine.account_id == account_id)
        if transaction_type is not None:
            stmt = stmt.where(
                JournalEntry.transaction_type == TransactionType(transaction_type).value
            )

        lines = [
            JournalLineView(
                entry_id=row.entry_id,
                seq=row.seq,
                transaction_date=row.transaction_date,
                transaction_type=row.transaction_type,
                source_document_id=row.source_document_id,
                entry_description=row.entry_description,
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                debit=row.debit_amount,
                credit=row.credit_amount,
                description=row.description,
            )
            for row in self._session.execute(stmt).all()
        ]
        report = build_transaction_journal(
            lines,
            self._build_metadata(
                context, ReportType.TRANSACTION_JOURNAL, end, period_start=start, period_end=end
            ),
        )
        logger.info(
            "transaction_journal_generated",
            extra={
                "period_start": start.isoformat(),
                "period_end": end.isoformat(),
                "transaction_count": len(report.transactions),
            },
        )
        return report

    def ar_aging(self, context: OrganizationContext, as_of: date | None = None) -> AgingReport:
        """Open invoices per customer in current, 1-30, 31-60, 61-90 and 90+."""
        return self._aging(context, DocumentKind.INVOICE, ReportType.AR_AGING, as_of)

    def ap_aging(self, context: OrganizationContext, as_of: date | None = None) -> AgingReport:
        """Open bills per vendor, bucketed like ``ar_aging``."""
        return self._aging(context, DocumentKind.BILL, ReportType.AP_AGING, as_of)

    def _aging(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        report_type: ReportType,
        as_of: date | None,
    ) -> AgingReport:
        as_of = as_of or self._clock.today()
        documents = [
            OpenDocumentView(
                document_id=doc.id,
                document_number=doc.document_number,
                counterparty_id=doc.counterparty_id,
                issue_date=doc.issue_date,
                due_date=doc.due_date,
                amount_due=doc.amount_due.amount,
            )
            for doc in self._documents.list_open(context, kind, as_of)
        ]
        report = build_aging(
            documents, as_of, self._build_metadata(context, report_type, as_of)
        )
        logger.info(
            f"{report_type.value}_generated",
            extra={
                "as_of_date": as_of.isoformat(),
                "document_count": len(report.documents),
                "total": str(report.total),
            },
        )
        return report
