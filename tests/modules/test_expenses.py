"""
Tests for expenses paid without a bill.

Covers:
- record_expense(): Dr expense / Cr payment account, cash by default
- Retries with the same expense id post once
- Account type checks and amount validation
- void_expense() reversal
- APService facade: commit, queries, tenant isolation
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    ExpenseNotFoundError,
    InvalidTransitionError,
    ValidationError,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.journal import TransactionType
from ledger_kernel.services.account_directory import AccountSpec
from ledger_modules.documents.models import ExpenseInput, PaymentMethod


def usd(amount: str) -> Money:
    return Money.of(amount, "USD")


def _expense(accounts, amount="75.00", **kwargs):
    return ExpenseInput(expense_account_id=accounts["6000"].id, amount=Decimal(amount), **kwargs)


class TestRecordExpense:
    """DocumentLifecycleManager.record_expense()"""

    def test_posts_against_cash_by_default(
        self, lifecycle, journal_engine, balance_calculator, org_context, accounts
    ):
        record = lifecycle.record_expense(org_context, _expense(accounts))

        assert record.payment_account_id == accounts["1000"].id
        assert record.amount == usd("75.00")
        assert record.expense_date == date(2024, 1, 1)
        assert record.description == "Expense"
        assert record.method is PaymentMethod.OTHER
        assert not record.is_voided

        entry = journal_engine.get_entry(org_context, record.entry_id)
        assert entry.transaction_type is TransactionType.EXPENSE_RECORDED
        assert entry.source_document_id == record.id
        assert [(line.account_id, line.debit, line.credit) for line in entry.lines] == [
            (accounts["6000"].id, usd("75.00"), usd("0")),
            (accounts["1000"].id, usd("0"), usd("75.00")),
        ]
        assert balance_calculator.account_balance(org_context, accounts["6000"].id) == usd("75.00")
        assert balance_calculator.account_balance(org_context, accounts["1000"].id) == usd("-75.00")

    def test_credit_card_liability(
        self, lifecycle, account_directory, balance_calculator, org_context, accounts
    ):
        card = account_directory.create_account(
            org_context,
            AccountSpec(code="2100", name="Company Card", account_type=AccountType.LIABILITY),
        )
        record = lifecycle.record_expense(
            org_context,
            _expense(
                accounts,
                "40",
                payment_account_id=card.id,
                description="Team lunch",
                method=PaymentMethod.CREDIT_CARD,
                reference="RCPT-9",
            ),
        )

        assert record.description == "Team lunch"
        assert record.reference == "RCPT-9"
        assert balance_calculator.account_balance(org_context, card.id) == usd("40.00")

    def test_same_expense_id_posts_once(
        self, lifecycle, journal_engine, org_context, accounts
    ):
        expense_id = uuid4()
        first = lifecycle.record_expense(org_context, _expense(accounts, expense_id=expense_id))
        again = lifecycle.record_expense(org_context, _expense(accounts, expense_id=expense_id))

        assert first.id == expense_id
        assert again == first
        assert journal_engine.entries_for_source(org_context, expense_id) == [first.entry_id]

    def test_expense_id_of_other_organization_rejected(
        self, lifecycle, org_context, other_org_context, accounts
    ):
        expense_id = uuid4()
        lifecycle.record_expense(org_context, _expense(accounts, expense_id=expense_id))

        with pytest.raises(ValidationError, match="another organization"):
            lifecycle.record_expense(
                other_org_context, _expense(accounts, expense_id=expense_id)
            )

    def test_income_account_is_not_an_expense(self, lifecycle, org_context, accounts):
        with pytest.raises(ValidationError, match="not an expense account") as exc_info:
            lifecycle.record_expense(
                org_context,
                ExpenseInput(expense_account_id=accounts["4000"].id, amount=Decimal("10")),
            )
        assert exc_info.value.field == "expense_account_id"

    def test_income_account_cannot_pay(self, lifecycle, org_context, accounts):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.record_expense(
                org_context, _expense(accounts, payment_account_id=accounts["4000"].id)
            )
        assert exc_info.value.field == "payment_account_id"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount_rejected(self, lifecycle, org_context, accounts, amount):
        with pytest.raises(ValidationError):
            lifecycle.record_expense(
                org_context,
                ExpenseInput(expense_account_id=accounts["6000"].id, amount=amount),
            )

    def test_float_amount_rejected(self, lifecycle, org_context, accounts):
        with pytest.raises(ValidationError, match="float"):
            lifecycle.record_expense(
                org_context, ExpenseInput(expense_account_id=accounts["6000"].id, amount=12.5)
            )

    def test_recorded_logged(self, captured_logs, lifecycle, org_context, accounts):
        record = lifecycle.record_expense(org_context, _expense(accounts))

        recorded = [r for r in captured_logs() if r["message"] == "expense_recorded"]
        assert recorded[-1]["expense_id"] == str(record.id)
        assert recorded[-1]["amount"] == "75.00"


class TestVoidExpense:
    """DocumentLifecycleManager.void_expense()"""

    def test_reverses_entry(
        self, lifecycle, journal_engine, balance_calculator, org_context, accounts
    ):
        record = lifecycle.record_expense(org_context, _expense(accounts))
        voided = lifecycle.void_expense(org_context, record.id)

        assert voided.is_voided
        assert voided.voided_at == date(2024, 1, 1)
        entries = journal_engine.entries_for_source(org_context, record.id)
        assert len(entries) == 2
        reversal = journal_engine.get_entry(org_context, entries[1])
        assert reversal.transaction_type is TransactionType.EXPENSE_VOIDED
        assert reversal.reversal_of_id == record.entry_id
        assert balance_calculator.account_balance(org_context, accounts["6000"].id) == usd("0")
        assert balance_calculator.account_balance(org_context, accounts["1000"].id) == usd("0")

    def test_void_twice_rejected(self, lifecycle, org_context, accounts):
        record = lifecycle.record_expense(org_context, _expense(accounts))
        lifecycle.void_expense(org_context, record.id)

        with pytest.raises(InvalidTransitionError):
            lifecycle.void_expense(org_context, record.id)

    def test_unknown_expense(self, lifecycle, org_context):
        with pytest.raises(ExpenseNotFoundError):
            lifecycle.void_expense(org_context, uuid4())


class TestExpenseFacade:
    """APService expense operations."""

    def test_record_commits(self, captured_logs, ap_service, org_context, accounts):
        record = ap_service.record_expense(org_context, _expense(accounts))

        assert ap_service.get_expense(org_context, record.id) == record
        committed = [
            r for r in captured_logs() if r["message"] == "ap_record_expense_committed"
        ]
        assert len(committed) == 1

    def test_list_skips_voided(self, ap_service, org_context, accounts, vendor_id):
        kept = ap_service.record_expense(org_context, _expense(accounts, vendor_id=vendor_id))
        dropped = ap_service.record_expense(org_context, _expense(accounts, "10"))
        ap_service.void_expense(org_context, dropped.id)

        assert [e.id for e in ap_service.list_expenses(org_context)] == [kept.id]
        assert [e.id for e in ap_service.list_expenses(org_context, vendor_id=vendor_id)] == [
            kept.id
        ]
        assert ap_service.list_expenses(org_context, start_date=date(2024, 2, 1)) == []

    def test_other_organization_cannot_read(
        self, ap_service, org_context, other_org_context, accounts
    ):
        record = ap_service.record_expense(org_context, _expense(accounts))

        with pytest.raises(ExpenseNotFoundError):
            ap_service.get_expense(other_org_context, record.id)
        assert ap_service.list_expenses(other_org_context) == []
