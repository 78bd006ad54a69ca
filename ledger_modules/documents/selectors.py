"""
DocumentSelector -- read paths for invoices, bills, payments and expenses.

Responsibility:
    Returns document and payment DTOs, derives the OVERDUE status on read,
    and reconciles the cached ``amount_paid`` / ``amount_due`` columns
    against the journal, which stays the source of truth.

Architecture position:
    Modules > Documents.  Read-only: never adds, flushes or commits.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.orm import aliased

from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    ExpenseNotFoundError,
    PaymentNotFoundError,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector
from ledger_modules.documents.lifecycle import allocation_memo, tables_for
from ledger_modules.documents.models import (
    AmountDueReconciliation,
    DocumentKind,
    DocumentRecord,
    DocumentStatus,
    ExpenseRecord,
    PaymentRecord,
)
from ledger_modules.documents.orm import Expense
from ledger_modules.documents.workflows import effective_status, workflow_for


class DocumentSelector(BaseSelector):
    """Read-only queries over documents of one kind at a time."""

    def _get_header(self, context: OrganizationContext, kind: DocumentKind, document_id: UUID):
        header_cls = tables_for(kind).header
        header = self.session.execute(
            select(header_cls).where(
                header_cls.id == document_id,
                header_cls.organization_id == context.organization_id,
            )
        ).scalar_one_or_none()
        if header is None:
            raise DocumentNotFoundError(str(document_id), DocumentKind(kind).value)
        return header

    def get_document(
        self, context: OrganizationContext, kind: DocumentKind, document_id: UUID
    ) -> DocumentRecord:
        return self._get_header(context, kind, document_id).to_dto()

    def get_payment(
        self, context: OrganizationContext, kind: DocumentKind, payment_id: UUID
    ) -> PaymentRecord:
        payment_cls = tables_for(kind).payment
        row = self.session.execute(
            select(payment_cls).where(
                payment_cls.id == payment_id,
                payment_cls.organization_id == context.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise PaymentNotFoundError(str(payment_id))
        return row.to_dto()

    def list_documents(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        status: DocumentStatus | None = None,
        counterparty_id: UUID | None = None,
    ) -> list[DocumentRecord]:
        """Documents ordered by document number. ``status`` is a stored status."""
        header_cls = tables_for(kind).header
        stmt = select(header_cls).where(header_cls.organization_id == context.organization_id)
        if status is not None:
            stmt = stmt.where(header_cls.status == DocumentStatus(status).value)
        if counterparty_id is not None:
            stmt = stmt.where(header_cls.counterparty_id == counterparty_id)
        stmt = stmt.order_by(header_cls.document_number)
        return [row.to_dto() for row in self.session.execute(stmt).scalars().all()]

    # ------------------------------------------------------------------
    # Overdue and open
    # ------------------------------------------------------------------

    def effective_status(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        document_id: UUID,
        as_of: date | None = None,
    ) -> DocumentStatus:
        """Stored status, or OVERDUE for an open document past its due date."""
        header = self._get_header(context, kind, document_id)
        return effective_status(
            kind,
            DocumentStatus(header.status),
            header.due_date,
            header.amount_due,
            as_of or self.clock.today(),
        )

    def list_overdue(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        as_of: date | None = None,
    ) -> list[DocumentRecord]:
        """Open documents with amount_due > 0 and due_date before ``as_of``."""
        header_cls = tables_for(kind).header
        as_of = as_of or self.clock.today()
        rows = self.session.execute(
            select(header_cls)
            .where(
                header_cls.organization_id == context.organization_id,
                header_cls.status.in_(workflow_for(kind).open_states),
                header_cls.due_date < as_of,
                header_cls.amount_due > 0,
            )
            .order_by(header_cls.due_date, header_cls.document_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_open(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        as_of: date | None = None,
    ) -> list[DocumentRecord]:
        """Open documents issued on or before ``as_of`` with amount_due > 0."""
        header_cls = tables_for(kind).header
        as_of = as_of or self.clock.today()
        rows = self.session.execute(
            select(header_cls)
            .where(
                header_cls.organization_id == context.organization_id,
                header_cls.status.in_(workflow_for(kind).open_states),
                header_cls.issue_date <= as_of,
                header_cls.amount_due > 0,
            )
            .order_by(header_cls.counterparty_id, header_cls.due_date, header_cls.document_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def get_expense(self, context: OrganizationContext, expense_id: UUID) -> ExpenseRecord:
        row = self.session.execute(
            select(Expense).where(
                Expense.id == expense_id,
                Expense.organization_id == context.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise ExpenseNotFoundError(str(expense_id))
        return row.to_dto()

    def list_expenses(
        self,
        context: OrganizationContext,
        start_date: date | None = None,
        end_date: date | None = None,
        vendor_id: UUID | None = None,
        include_voided: bool = False,
    ) -> list[ExpenseRecord]:
        """Expenses ordered by date, newest last."""
        stmt = select(Expense).where(Expense.organization_id == context.organization_id)
        if start_date is not None:
            stmt = stmt.where(Expense.expense_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Expense.expense_date <= end_date)
        if vendor_id is not None:
            stmt = stmt.where(Expense.vendor_id == vendor_id)
        if not include_voided:
            stmt = stmt.where(Expense.is_voided.is_(False))
        stmt = stmt.order_by(Expense.expense_date, Expense.created_at)
        return [row.to_dto() for row in self.session.execute(stmt).scalars().all()]

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_amount_due(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        document_id: UUID,
    ) -> AmountDueReconciliation:
        """
        Compare the cached amounts of a document with the journal.

        Journal total: the control-account line of the issue entry, unless
        that entry has been reversed.  Journal paid: the control-account
        lines naming the document in payment entries that have not been
        reversed.  Drafts have posted nothing; their total is the cached
        total.
        """
        kind = DocumentKind(kind)
        tables = tables_for(kind)
        header = self._get_header(context, kind, document_id)
        is_invoice = kind is DocumentKind.INVOICE
        status = DocumentStatus(header.status)

        reversal = aliased(JournalEntry)
        not_reversed = ~exists(
            select(reversal.id).where(reversal.reversal_of_id == JournalEntry.id)
        )

        if status is DocumentStatus.DRAFT:
            journal_total = Decimal(header.total)
        else:
            total_side = JournalLine.debit_amount if is_invoice else JournalLine.credit_amount
            journal_total = self._sum(
                select(func.sum(total_side))
                .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
                .where(
                    JournalEntry.organization_id == context.organization_id,
                    JournalEntry.source_document_id == header.id,
                    JournalEntry.transaction_type == kind.issue_transaction_type.value,
                    JournalLine.account_id == header.control_account_id,
                    not_reversed,
                )
            )

        payment_entries = (
            select(tables.payment.entry_id)
            .join(tables.application, tables.application.payment_id == tables.payment.id)
            .where(
                tables.application.document_id == header.id,
                tables.payment.entry_id.is_not(None),
            )
        )
        paid_side = JournalLine.credit_amount if is_invoice else JournalLine.debit_amount
        journal_paid = self._sum(
            select(func.sum(paid_side))
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                JournalEntry.id.in_(payment_entries),
                JournalLine.account_id == header.control_account_id,
                JournalLine.description == allocation_memo(header.document_number),
                not_reversed,
            )
        )

        if status is DocumentStatus.VOIDED:
            journal_due = Decimal("0")
        else:
            journal_due = journal_total - journal_paid

        money = context.money
        return AmountDueReconciliation(
            document_id=header.id,
            is_voided=status is DocumentStatus.VOIDED,
            cached_amount_paid=money(header.amount_paid).round(),
            journal_amount_paid=money(journal_paid).round(),
            cached_amount_due=money(header.amount_due).round(),
            journal_amount_due=money(journal_due).round(),
        )

    def _sum(self, stmt) -> Decimal:
        return Decimal(self.session.execute(stmt).scalar_one() or 0)
