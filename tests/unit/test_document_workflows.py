"""
Unit tests for the invoice and bill state machines.

Covers the declared transitions, the amount-driven payment status, and the
derived OVERDUE status.  No database.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import InvalidTransitionError
from ledger_modules.documents.models import DocumentKind, DocumentStatus
from ledger_modules.documents.workflows import (
    BILL_WORKFLOW,
    INVOICE_WORKFLOW,
    effective_status,
    require_transition,
    status_for_amounts,
    workflow_for,
)

INVOICE = DocumentKind.INVOICE
BILL = DocumentKind.BILL


class TestWorkflowDefinitions:
    """Structure of the two workflows."""

    def test_lookup_by_kind(self):
        assert workflow_for(INVOICE) is INVOICE_WORKFLOW
        assert workflow_for("bill") is BILL_WORKFLOW

    def test_initial_state_is_draft(self):
        assert INVOICE_WORKFLOW.initial_state == "draft"
        assert BILL_WORKFLOW.initial_state == "draft"

    def test_every_transition_uses_declared_states(self):
        for workflow in (INVOICE_WORKFLOW, BILL_WORKFLOW):
            for t in workflow.transitions:
                assert t.from_state in workflow.states
                assert t.to_state in workflow.states

    def test_overdue_is_never_a_stored_state(self):
        assert "overdue" not in INVOICE_WORKFLOW.states
        assert "overdue" not in BILL_WORKFLOW.states

    def test_voided_is_terminal(self):
        for workflow in (INVOICE_WORKFLOW, BILL_WORKFLOW):
            assert not any(t.from_state == "voided" for t in workflow.transitions)

    def test_every_other_state_can_be_voided(self):
        for workflow in (INVOICE_WORKFLOW, BILL_WORKFLOW):
            for state in workflow.states:
                if state != "voided":
                    assert workflow.allows(state, "void")

    def test_only_invoices_have_viewed(self):
        assert INVOICE_WORKFLOW.allows("sent", "mark_viewed")
        assert "viewed" not in BILL_WORKFLOW.states


class TestRequireTransition:
    """require_transition() returns the declared transition or raises."""

    def test_issue_invoice(self):
        t = require_transition(INVOICE, uuid4(), DocumentStatus.DRAFT, "issue")
        assert t.to_state == "sent"
        assert t.posts_entry

    def test_issue_bill(self):
        t = require_transition(BILL, uuid4(), DocumentStatus.DRAFT, "issue")
        assert t.to_state == "open"

    def test_reissue_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_transition(INVOICE, uuid4(), DocumentStatus.SENT, "issue")
        assert exc_info.value.current_status == "sent"
        assert exc_info.value.action == "issue"

    def test_payment_on_draft_rejected(self):
        with pytest.raises(InvalidTransitionError):
            require_transition(INVOICE, uuid4(), DocumentStatus.DRAFT, "apply_payment")

    def test_target_narrows_match(self):
        t = require_transition(
            INVOICE, uuid4(), DocumentStatus.VIEWED, "apply_payment", DocumentStatus.PAID
        )
        assert t.to_state == "paid"
        assert t.guard is not None and t.guard.name == "balance_zero"

    def test_unreachable_target_rejected(self):
        with pytest.raises(InvalidTransitionError):
            require_transition(
                INVOICE, uuid4(), DocumentStatus.SENT, "unapply_payment", DocumentStatus.SENT
            )

    def test_unapply_returns_invoice_to_sent(self):
        t = require_transition(
            INVOICE, uuid4(), DocumentStatus.PAID, "unapply_payment", DocumentStatus.SENT
        )
        assert t.to_state == "sent"

    def test_unapply_returns_bill_to_open(self):
        t = require_transition(
            BILL, uuid4(), DocumentStatus.PARTIAL, "unapply_payment", DocumentStatus.OPEN
        )
        assert t.to_state == "open"

    def test_void_voided_rejected(self):
        with pytest.raises(InvalidTransitionError):
            require_transition(BILL, uuid4(), DocumentStatus.VOIDED, "void")

    def test_rejection_is_logged(self, captured_logs):
        document_id = uuid4()
        with pytest.raises(InvalidTransitionError):
            require_transition(INVOICE, document_id, DocumentStatus.VOIDED, "void")
        rejected = [r for r in captured_logs() if r["message"] == "invalid_transition_rejected"]
        assert rejected
        assert rejected[-1]["document_id"] == str(document_id)
        assert rejected[-1]["workflow_name"] == "ar_invoice"


class TestStatusForAmounts:
    """Status derived from total and amount paid."""

    def test_nothing_paid(self):
        assert status_for_amounts(INVOICE, Decimal("100"), Decimal("0")) is DocumentStatus.SENT
        assert status_for_amounts(BILL, Decimal("100"), Decimal("0")) is DocumentStatus.OPEN

    def test_partially_paid(self):
        assert status_for_amounts(INVOICE, Decimal("100"), Decimal("0.01")) is DocumentStatus.PARTIAL

    def test_fully_paid(self):
        assert status_for_amounts(BILL, Decimal("100"), Decimal("100")) is DocumentStatus.PAID


class TestEffectiveStatus:
    """OVERDUE is derived on read."""

    def test_open_past_due_is_overdue(self):
        status = effective_status(
            INVOICE, DocumentStatus.SENT, date(2024, 1, 31), Decimal("10"), date(2024, 2, 1)
        )
        assert status is DocumentStatus.OVERDUE

    def test_due_today_is_not_overdue(self):
        status = effective_status(
            INVOICE, DocumentStatus.PARTIAL, date(2024, 1, 31), Decimal("10"), date(2024, 1, 31)
        )
        assert status is DocumentStatus.PARTIAL

    def test_paid_is_never_overdue(self):
        status = effective_status(
            BILL, DocumentStatus.PAID, date(2024, 1, 1), Decimal("0"), date(2025, 1, 1)
        )
        assert status is DocumentStatus.PAID

    @pytest.mark.parametrize("status", [DocumentStatus.DRAFT, DocumentStatus.VOIDED])
    def test_non_open_states_keep_status(self, status):
        result = effective_status(
            INVOICE, status, date(2024, 1, 1), Decimal("10"), date(2025, 1, 1)
        )
        assert result is status
