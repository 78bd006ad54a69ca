"""
Tests for ARService, the accounts receivable facade.

Covers:
- Full invoice flow through the facade: create, issue, view, collect
- Commit on success, rollback on failure
- Conflict retry (ConflictError and StaleDataError) up to conflict_retries
- OperationalError surfaced as StorageUnavailableError
- Queries: list by status / customer, payment lookup
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    StorageUnavailableError,
)
from ledger_modules.documents.models import (
    Allocation,
    DocumentDraft,
    DocumentStatus,
    LineItemInput,
    PaymentInput,
)


def usd(amount: str) -> Money:
    return Money.of(amount, "USD")


def _draft(customer_id, amount="5000", tax="400"):
    return DocumentDraft(
        counterparty_id=customer_id,
        lines=(
            LineItemInput(
                "Consulting services", Decimal("1"), Decimal(amount), tax_amount=Decimal(tax)
            ),
        ),
    )


@pytest.fixture
def issued_invoice(ar_service, org_context, customer_id):
    invoice = ar_service.create_invoice(org_context, _draft(customer_id))
    return ar_service.issue_invoice(org_context, invoice.id)


class TestInvoiceFlow:
    """End-to-end receivables flow through the facade."""

    def test_issue_view_collect(
        self, ar_service, balance_calculator, org_context, customer_id, accounts, issued_invoice
    ):
        assert issued_invoice.status is DocumentStatus.SENT
        assert balance_calculator.account_balance(org_context, accounts["1200"].id) == usd("5400")

        ar_service.mark_invoice_viewed(org_context, issued_invoice.id)
        ar_service.receive_payment(
            org_context,
            PaymentInput(counterparty_id=customer_id, amount=Decimal("2000")),
            [Allocation(issued_invoice.id, Decimal("2000"))],
        )
        partial = ar_service.get_invoice(org_context, issued_invoice.id)
        assert partial.status is DocumentStatus.PARTIAL
        assert partial.amount_due == usd("3400")

        ar_service.receive_payment(
            org_context,
            PaymentInput(counterparty_id=customer_id, amount=Decimal("3400")),
            [Allocation(issued_invoice.id, Decimal("3400"))],
        )
        paid = ar_service.get_invoice(org_context, issued_invoice.id)
        assert paid.status is DocumentStatus.PAID
        assert balance_calculator.account_balance(org_context, accounts["1200"].id).is_zero
        assert balance_calculator.account_balance(org_context, accounts["1000"].id) == usd("5400")

    def test_apply_later(self, ar_service, org_context, customer_id, issued_invoice):
        payment = ar_service.receive_payment(
            org_context, PaymentInput(counterparty_id=customer_id, amount=Decimal("5400"))
        )
        assert ar_service.get_payment(org_context, payment.id).entry_id is None

        ar_service.apply_payment(
            org_context, payment.id, [Allocation(issued_invoice.id, Decimal("5400"))]
        )
        assert ar_service.get_invoice(org_context, issued_invoice.id).status is DocumentStatus.PAID

    def test_void_invoice_and_payment(
        self, ar_service, balance_calculator, org_context, customer_id, accounts, issued_invoice
    ):
        payment = ar_service.receive_payment(
            org_context,
            PaymentInput(counterparty_id=customer_id, amount=Decimal("1000")),
            [Allocation(issued_invoice.id, Decimal("1000"))],
        )
        ar_service.void_payment(org_context, payment.id)
        voided = ar_service.void_invoice(org_context, issued_invoice.id)

        assert voided.status is DocumentStatus.VOIDED
        assert voided.amount_paid.is_zero
        for code in ("1000", "1200", "2200", "4000"):
            assert balance_calculator.account_balance(org_context, accounts[code].id).is_zero

    def test_commit_logged(self, captured_logs, ar_service, org_context, customer_id):
        invoice = ar_service.create_invoice(org_context, _draft(customer_id))
        ar_service.issue_invoice(org_context, invoice.id)

        committed = [r for r in captured_logs() if r["message"] == "ar_issue_invoice_committed"]
        assert committed[-1]["document_id"] == str(invoice.id)
        assert committed[-1]["attempt"] == 1
        assert committed[-1]["organization_id"] == str(org_context.organization_id)


class TestQueries:
    """Read paths of the facade."""

    def test_list_by_status(self, ar_service, org_context, customer_id, issued_invoice):
        draft = ar_service.create_invoice(org_context, _draft(customer_id, "10", "0"))

        drafts = ar_service.list_invoices(org_context, status=DocumentStatus.DRAFT)
        sent = ar_service.list_invoices(org_context, status=DocumentStatus.SENT)
        assert [i.id for i in drafts] == [draft.id]
        assert [i.id for i in sent] == [issued_invoice.id]

    def test_list_by_customer(self, ar_service, org_context, customer_id, issued_invoice):
        ar_service.create_invoice(org_context, _draft(uuid4(), "10", "0"))

        mine = ar_service.list_invoices(org_context, customer_id=customer_id)
        everything = ar_service.list_invoices(org_context)
        assert [i.id for i in mine] == [issued_invoice.id]
        assert len(everything) == 2
        assert [i.document_number for i in everything] == sorted(
            i.document_number for i in everything
        )

    def test_other_organization_sees_nothing(
        self, ar_service, other_org_context, issued_invoice
    ):
        assert ar_service.list_invoices(other_org_context) == []


class TestTransactionBoundary:
    """Commit, rollback and retry behavior of DocumentFacade._execute."""

    def test_failure_rolls_back(
        self, ar_service, journal_engine, org_context, customer_id, monkeypatch
    ):
        invoice = ar_service.create_invoice(org_context, _draft(customer_id))
        real_issue = ar_service.lifecycle.issue

        def issue_then_fail(context, kind, document_id):
            real_issue(context, kind, document_id)
            raise RuntimeError("downstream failure")

        monkeypatch.setattr(ar_service.lifecycle, "issue", issue_then_fail)
        with pytest.raises(RuntimeError):
            ar_service.issue_invoice(org_context, invoice.id)

        assert ar_service.get_invoice(org_context, invoice.id).status is DocumentStatus.DRAFT
        assert journal_engine.entries_for_source(org_context, invoice.id) == []

    def test_domain_error_propagates(self, ar_service, org_context, issued_invoice):
        with pytest.raises(InvalidTransitionError):
            ar_service.issue_invoice(org_context, issued_invoice.id)
        assert ar_service.get_invoice(org_context, issued_invoice.id).status is DocumentStatus.SENT

    def test_conflict_retried(
        self, captured_logs, ar_service, org_context, customer_id, monkeypatch
    ):
        invoice = ar_service.create_invoice(org_context, _draft(customer_id))
        real_issue = ar_service.lifecycle.issue
        calls = []

        def flaky_issue(context, kind, document_id):
            calls.append(document_id)
            if len(calls) == 1:
                raise ConflictError("invoice", str(document_id))
            return real_issue(context, kind, document_id)

        monkeypatch.setattr(ar_service.lifecycle, "issue", flaky_issue)
        issued = ar_service.issue_invoice(org_context, invoice.id)

        assert issued.status is DocumentStatus.SENT
        assert len(calls) == 2
        retries = [r for r in captured_logs() if r["message"] == "conflict_retry"]
        assert retries[-1]["operation"] == "ar_issue_invoice"
        assert retries[-1]["attempt"] == 1

    def test_stale_data_treated_as_conflict(
        self, ar_service, org_context, customer_id, monkeypatch
    ):
        invoice = ar_service.create_invoice(org_context, _draft(customer_id))
        real_issue = ar_service.lifecycle.issue
        calls = []

        def stale_once(context, kind, document_id):
            calls.append(document_id)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return real_issue(context, kind, document_id)

        monkeypatch.setattr(ar_service.lifecycle, "issue", stale_once)
        assert ar_service.issue_invoice(org_context, invoice.id).status is DocumentStatus.SENT

    def test_retries_exhausted(self, ar_service, org_context, settings, monkeypatch):
        calls = []

        def always_conflicts(context, kind, document_id):
            calls.append(document_id)
            raise ConflictError("invoice", str(document_id))

        monkeypatch.setattr(ar_service.lifecycle, "issue", always_conflicts)
        with pytest.raises(ConflictError):
            ar_service.issue_invoice(org_context, uuid4())
        assert len(calls) == settings.conflict_retries + 1

    def test_storage_failure_mapped(self, ar_service, org_context, monkeypatch):
        def unavailable(context, kind, document_id):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(ar_service.lifecycle, "issue", unavailable)
        with pytest.raises(StorageUnavailableError) as exc_info:
            ar_service.issue_invoice(org_context, uuid4())
        assert exc_info.value.operation == "ar_issue_invoice"
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"
