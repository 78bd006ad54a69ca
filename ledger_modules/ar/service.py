"""
Accounts Receivable Module Service.

Thin glue over DocumentLifecycleManager for customer invoices and payments
received.  All computation and posting happens in the lifecycle manager and
the journal engine; this service owns the transaction boundary.

Usage:
    service = ARService(session, clock)
    invoice = service.create_invoice(context, DocumentDraft(
        counterparty_id=customer_id,
        lines=(LineItemInput("Consulting", Decimal("10"), Decimal("500")),),
    ))
    service.issue_invoice(context, invoice.id)
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
    PaymentInput,
    PaymentRecord,
)

logger = get_logger("modules.ar.service")

_KIND = DocumentKind.INVOICE


class ARService(DocumentFacade):
    """
    Customer invoices: draft, issue, view, collect, void.

    Transaction boundary: this service commits on success, rolls back on
    failure, and re-runs an operation that lost a concurrent update.
    """

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(self, context: OrganizationContext, draft: DocumentDraft) -> DocumentRecord:
        logger.info("ar_create_invoice_started", extra={
            "counterparty_id": str(draft.counterparty_id),
            "line_count": len(draft.lines),
        })
        return self._execute(
            "ar_create_invoice",
            context,
            lambda: self._lifecycle.create_draft(context, _KIND, draft),
        )

    def issue_invoice(self, context: OrganizationContext, invoice_id: UUID) -> DocumentRecord:
        """Draft -> sent. Posts invoice_issued (Dr AR / Cr income, tax)."""
        return self._execute(
            "ar_issue_invoice",
            context,
            lambda: self._lifecycle.issue(context, _KIND, invoice_id),
            document_id=invoice_id,
        )

    def mark_invoice_viewed(self, context: OrganizationContext, invoice_id: UUID) -> DocumentRecord:
        return self._execute(
            "ar_mark_invoice_viewed",
            context,
            lambda: self._lifecycle.mark_viewed(context, invoice_id),
            document_id=invoice_id,
        )

    def void_invoice(self, context: OrganizationContext, invoice_id: UUID) -> DocumentRecord:
        """Any non-voided state -> voided. Posts invoice_voided."""
        return self._execute(
            "ar_void_invoice",
            context,
            lambda: self._lifecycle.void(context, _KIND, invoice_id),
            document_id=invoice_id,
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def receive_payment(
        self,
        context: OrganizationContext,
        payment: PaymentInput,
        allocations: Sequence[Allocation] = (),
    ) -> PaymentRecord:
        """
        Record a customer payment, applying it to ``allocations`` when given.

        Posts payment_received (Dr cash / Cr AR per allocation) once applied.
        """
        logger.info("ar_receive_payment_started", extra={
            "counterparty_id": str(payment.counterparty_id),
            "amount": str(payment.amount),
            "allocation_count": len(allocations),
        })
        return self._execute(
            "ar_receive_payment",
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
            "ar_apply_payment",
            context,
            lambda: self._lifecycle.apply_payment(context, _KIND, payment_id, allocations),
            payment_id=payment_id,
        )

    def void_payment(self, context: OrganizationContext, payment_id: UUID) -> PaymentRecord:
        """Reverse the payment entry and un-apply it from open invoices."""
        return self._execute(
            "ar_void_payment",
            context,
            lambda: self._lifecycle.void_payment(context, _KIND, payment_id),
            payment_id=payment_id,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, context: OrganizationContext, invoice_id: UUID) -> DocumentRecord:
        return self._selector.get_document(context, _KIND, invoice_id)

    def get_payment(self, context: OrganizationContext, payment_id: UUID) -> PaymentRecord:
        return self._selector.get_payment(context, _KIND, payment_id)

    def list_invoices(
        self,
        context: OrganizationContext,
        status: DocumentStatus | None = None,
        customer_id: UUID | None = None,
    ) -> list[DocumentRecord]:
        return self._selector.list_documents(context, _KIND, status, customer_id)

    def invoice_status(
        self, context: OrganizationContext, invoice_id: UUID, as_of: date | None = None
    ) -> DocumentStatus:
        return self._selector.effective_status(context, _KIND, invoice_id, as_of)

    def list_overdue_invoices(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> list[DocumentRecord]:
        return self._selector.list_overdue(context, _KIND, as_of)

    def list_open_invoices(
        self, context: OrganizationContext, as_of: date | None = None
    ) -> list[DocumentRecord]:
        return self._selector.list_open(context, _KIND, as_of)

    def reconcile_invoice(
        self, context: OrganizationContext, invoice_id: UUID
    ) -> AmountDueReconciliation:
        return self._selector.reconcile_amount_due(context, _KIND, invoice_id)
