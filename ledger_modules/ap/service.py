"""
Accounts Payable Module Service.

Thin glue over DocumentLifecycleManager for vendor bills, the payments
made against them, and expenses paid without a bill.  This service owns
the transaction boundary.

Usage:
    service = APService(session, clock)
    bill = service.create_bill(context, draft)
    service.record_bill(context, bill.id)
    service.pay_bills(context, PaymentInput(vendor_id, Decimal("250.00")),
                      [Allocation(bill.id, Decimal("250.00"))])
"""

from __future__ import annotations

from datetime import date
from typing import Sequence
from uuid import UUID

from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.logging_config import get_logger
from ledger_modules.documents.facade import DocumentFacade
from ledger_modules.documents.models import (
    Allocation,
    AmountDueReconciliation,
    DocumentDraft,
    DocumentKind,
    DocumentRecord,
    DocumentStatus,
    ExpenseInput,
    ExpenseRecord,
    PaymentInput,
    PaymentRecord,
)

logger = get_logger("modules.ap.service")

_KIND = DocumentKind.BILL


class APService(DocumentFacade):
    """
    Vendor bills: draft, record, pay, void.

    Transaction boundary: this service commits on success, rolls back on
    failure, and re-runs an operation that lost a concurrent update.
    """

    # =========================================================================
    # Bills
    # =========================================================================

    def create_bill(self, context: OrganizationContext, draft: DocumentDraft) -> DocumentRecord:
        logger.info("ap_create_bill_started", extra={
            "counterparty_id": str(draft.counterparty_id),
            "line_count": len(draft.lines),
        })
        return self._execute(
            "ap_create_bill",
            context,
            lambda: self._lifecycle.create_draft(context, _KIND, draft),
        )

    def record_bill(self, context: OrganizationContext, bill_id: UUID) -> DocumentRecord:
        """Draft -> open. Posts bill_recorded (Dr expense, tax / Cr AP)."""
        return self._execute(
            "ap_record_bill",
            context,
            lambda: self._lifecycle.issue(context, _KIND, bill_id),
            document_id=bill_id,
        )

    def void_bill(self, context: OrganizationContext, bill_id: UUID) -> DocumentRecord:
        return self._execute(
            "ap_void_bill",
            context,
            lambda: self._lifecycle.void(context, _KIND, bill_id),
            document_id=bill_id,
        )

    # =========================================================================
    # Vendor payments
    # =========================================================================

    def pay_bills(
        self,
        context: OrganizationContext,
        payment: PaymentInput,
        allocations: Sequence[Allocation] = (),
    ) -> PaymentRecord:
        """
        Record a vendor payment, applying it to ``allocations`` when given.

        Posts vendor_payment (Dr AP per allocation / Cr cash) once applied.
        """
        logger.info("ap_pay_bills_started", extra={
            "counterparty_id": str(payment.counterparty_id),
            "amount": str(payment.amount),
            "allocation_count": len(allocations),
        })
        return self._execute(
            "ap_pay_bills",
            context,
            lambda: self._lifecycle.record_payment(context, _KIND, payment, allocations),
        )

    def apply_payment(
        self,
        context: OrganizationContext,
        payment_id: UUID,
        allocations: Sequence[Allocation],
    ) -> PaymentRecord:
        return self._execute(
            "ap_apply_payment",
            context,
            lambda: self._lifecycle.apply_payment(context, _KIND, payment_id, allocations),
            payment_id=payment_id,
        )

    def void_payment(self, context: OrganizationContext, payment_id: UUID) -> PaymentRecord:
        return self._execute(
            "ap_void_payment",
            context,
            lambda: self._lifecycle.void_payment(context, _KIND, payment_id),
            payment_id=payment_id,
        )

    # =========================================================================
    # Direct expenses
    # =========================================================================

    def record_expense(self, context: OrganizationContext, expense: ExpenseInput) -> ExpenseRecord:
        """
        Record a spend paid without a bill.

        Posts expense_recorded (Dr expense / Cr payment account).  Retrying
        with the same ``expense_id`` returns the recorded expense.
        """
        logger.info("ap_record_expense_started", extra={
            "amount": str(expense.amount),
            "expense_id": str(expense.expense_id) if expense.expense_id else None,
        })
        return self._execute(
            "ap_record_expense",
            context,
            lambda: self._lifecycle.record_expense(context, expense),
        )

    def void_expense(self, context: OrganizationContext, expense_id: UUID) -> ExpenseRecord:
        return self._execute(
            "ap_void_expense",
            context,
            lambda: self._lifecycle.void_expense(context, expense_id),
            expense_id=expense_id,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_bill(self, context: OrganizationContext, bill_id: UUID) -> DocumentRecord:
        return self._selector.get_document(context, _KIND, bill_id)

    def get_payment(self, context: OrganizationContext, payment_id: UUID) -> PaymentRecord:
        return self._selector.get_payment(context, _KIND, payment_id)

    def list_bills(
        self,
        context: OrganizationContext,
        status: DocumentStatus | None = None,
        vendor_id: UUID | None = None,
    ) -> list[DocumentRecord]:
        return self._selector.list_documents(context, _KIND, status, vendor_id)

    def bill_status(
        self, context: OrganizationContext, bill_id: UUID, as_of: date | None = None
    ) -> DocumentStatus:
        return self._selector.effective_status(context, _KIND, bill_id, as_of)

    def list_overdue_bills(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> list[DocumentRecord]:
        return self._selector.list_overdue(context, _KIND, as_of)

    def reconcile_bill(
        self, context: OrganizationContext, bill_id: UUID
    ) -> AmountDueReconciliation:
        return self._selector.reconcile_amount_due(context, _KIND, bill_id)

    def list_open_bills(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> list[DocumentRecord]:
        return self._selector.list_open(context, _KIND, as_of)

    def get_expense(self, context: OrganizationContext, expense_id: UUID) -> ExpenseRecord:
        return self._selector.get_expense(context, expense_id)

    def list_expenses(
        self,
        context: OrganizationContext,
        start_date: date | None = None,
        end_date: date | None = None,
        vendor_id: UUID | None = None,
    ) -> list[ExpenseRecord]:
        return self._selector.list_expenses(context, start_date, end_date, vendor_id)
