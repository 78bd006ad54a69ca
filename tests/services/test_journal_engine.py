"""
Tests for JournalEngine -- the only writer of journal entries.

Covers:
- post_entry(): balance check, line validation, tenant isolation,
  inactive accounts, idempotency per (source document, transaction type),
  store-generated seq
- reverse_entry(): mirrored lines, idempotency, reversal of a reversal,
  adjustments keyed on the original entry
- Append-only enforcement of journal rows
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    CurrencyMismatchError,
    EmptyEntryError,
    EntryNotFoundError,
    ForeignAccountError,
    ImmutabilityViolationError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine, TransactionType
from ledger_kernel.services.journal_engine import EntryLine
from ledger_kernel.services.sequence_service import SequenceCounter


def usd(amount: str) -> Money:
    return Money.of(amount, "USD")


@pytest.fixture
def cash(accounts):
    return accounts["1000"].id


@pytest.fixture
def sales(accounts):
    return accounts["4000"].id


@pytest.fixture
def post_sale(journal_engine, org_context, cash, sales):
    """Post a balanced cash sale adjustment and return its entry id."""

    def _post(amount="100.00", source_document_id=None, transaction_date=None):
        return journal_engine.post_entry(
            org_context,
            TransactionType.ADJUSTMENT,
            source_document_id or uuid4(),
            [EntryLine.dr(cash, usd(amount)), EntryLine.cr(sales, usd(amount))],
            transaction_date=transaction_date,
            description="Cash sale",
        )

    return _post


def _entry_count(session, org_context) -> int:
    return session.execute(
        select(func.count(JournalEntry.id)).where(
            JournalEntry.organization_id == org_context.organization_id
        )
    ).scalar_one()


# =========================================================================
# post_entry()
# =========================================================================


class TestPostEntry:
    """Tests for JournalEngine.post_entry()."""

    def test_balanced_entry_written(self, journal_engine, org_context, post_sale, cash, sales):
        """A balanced entry is written with its lines in order."""
        entry_id = post_sale("250.00")
        entry = journal_engine.get_entry(org_context, entry_id)

        assert entry.seq > 0
        assert entry.transaction_type is TransactionType.ADJUSTMENT
        assert entry.transaction_date == date(2024, 1, 1)
        assert entry.is_balanced
        assert entry.total_debits == usd("250.00")
        assert [line.account_id for line in entry.lines] == [cash, sales]
        assert [line.line_seq for line in entry.lines] == [1, 2]

    def test_explicit_transaction_date(self, journal_engine, org_context, post_sale):
        entry_id = post_sale(transaction_date=date(2023, 12, 15))
        assert journal_engine.get_entry(org_context, entry_id).transaction_date == date(2023, 12, 15)

    def test_seq_increases_in_insertion_order(
        self, journal_engine, org_context, other_org_context, post_sale, account_directory
    ):
        first = post_sale()
        second = post_sale()

        other_cash = account_directory.get_by_code(other_org_context, "1000").id
        other_sales = account_directory.get_by_code(other_org_context, "4000").id
        other = journal_engine.post_entry(
            other_org_context,
            TransactionType.ADJUSTMENT,
            uuid4(),
            [EntryLine.dr(other_cash, usd("1")), EntryLine.cr(other_sales, usd("1"))],
        )
        third = post_sale()

        seqs = [
            journal_engine.get_entry(org_context, first).seq,
            journal_engine.get_entry(org_context, second).seq,
            journal_engine.get_entry(other_org_context, other).seq,
            journal_engine.get_entry(org_context, third).seq,
        ]
        assert seqs == sorted(set(seqs))
        assert seqs[0] > 0

    def test_seq_takes_no_counter_lock(self, session, post_sale):
        post_sale()
        names = session.execute(select(SequenceCounter.name)).scalars().all()
        assert not any(name.startswith("journal_entry") for name in names)
        assert journal_engine.get_entry(org_context, second).seq == 2

        other_cash = account_directory.get_by_code(other_org_context, "1000").id
        other_sales = account_directory.get_by_code(other_org_context, "4000").id
        other = journal_engine.post_entry(
            other_org_context,
            TransactionType.ADJUSTMENT,
            uuid4(),
            [EntryLine.dr(other_cash, usd("1")), EntryLine.cr(other_sales, usd("1"))],
        )
        assert journal_engine.get_entry(other_org_context, other).seq == 1

    def test_unbalanced_rejected_and_nothing_written(
        self, session, journal_engine, org_context, cash, sales
    ):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("100.00")), EntryLine.cr(sales, usd("99.99"))],
            )
        assert exc_info.value.debits == "100.00"
        assert exc_info.value.credits == "99.99"
        assert _entry_count(session, org_context) == 0

    def test_empty_rejected(self, journal_engine, org_context):
        with pytest.raises(EmptyEntryError):
            journal_engine.post_entry(org_context, TransactionType.ADJUSTMENT, uuid4(), [])

    def test_zero_amount_rejected(self, journal_engine, org_context, cash, sales):
        with pytest.raises(ValidationError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("0")), EntryLine.cr(sales, usd("0"))],
            )

    def test_negative_amount_rejected(self, journal_engine, org_context, cash, sales):
        with pytest.raises(ValidationError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("-5")), EntryLine.cr(sales, usd("-5"))],
            )

    def test_line_with_both_sides_rejected(self, journal_engine, org_context, cash):
        with pytest.raises(ValidationError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine(account_id=cash, debit=usd("1"), credit=usd("1"))],
            )

    def test_foreign_currency_rejected(self, journal_engine, org_context, cash, sales):
        with pytest.raises(CurrencyMismatchError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [
                    EntryLine.dr(cash, Money.of("10", "EUR")),
                    EntryLine.cr(sales, Money.of("10", "EUR")),
                ],
            )

    def test_invalid_transaction_type_rejected(self, journal_engine, org_context, cash, sales):
        with pytest.raises(ValidationError):
            journal_engine.post_entry(
                org_context,
                "cash_sale",
                uuid4(),
                [EntryLine.dr(cash, usd("1")), EntryLine.cr(sales, usd("1"))],
            )

    def test_unknown_account_rejected(self, journal_engine, org_context, cash):
        with pytest.raises(AccountNotFoundError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("1")), EntryLine.cr(uuid4(), usd("1"))],
            )

    def test_foreign_account_rejected(
        self, session, journal_engine, org_context, other_org_context, account_directory, cash
    ):
        """An account of another organization can never be posted to."""
        foreign = account_directory.get_by_code(other_org_context, "4000").id
        with pytest.raises(ForeignAccountError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("1")), EntryLine.cr(foreign, usd("1"))],
            )
        assert _entry_count(session, org_context) == 0

    def test_inactive_account_rejected(
        self, journal_engine, org_context, account_directory, accounts, cash
    ):
        other_income = accounts["4500"].id
        account_directory.deactivate_account(org_context, other_income)
        with pytest.raises(AccountInactiveError):
            journal_engine.post_entry(
                org_context,
                TransactionType.ADJUSTMENT,
                uuid4(),
                [EntryLine.dr(cash, usd("1")), EntryLine.cr(other_income, usd("1"))],
            )

    def test_idempotent_per_source_and_type(
        self, session, journal_engine, org_context, post_sale
    ):
        """A repeat post for the same (source, type) returns the existing entry."""
        source = uuid4()
        first = post_sale("100.00", source_document_id=source)
        second = post_sale("100.00", source_document_id=source)

        assert first == second
        assert _entry_count(session, org_context) == 1

    def test_same_source_different_type_is_new_entry(
        self, journal_engine, org_context, cash, sales, accounts
    ):
        source = uuid4()
        ar = accounts["1200"].id
        issued = journal_engine.post_entry(
            org_context,
            TransactionType.INVOICE_ISSUED,
            source,
            [EntryLine.dr(ar, usd("10")), EntryLine.cr(sales, usd("10"))],
        )
        paid = journal_engine.post_entry(
            org_context,
            TransactionType.PAYMENT_RECEIVED,
            source,
            [EntryLine.dr(cash, usd("10")), EntryLine.cr(ar, usd("10"))],
        )
        assert issued != paid
        assert journal_engine.entries_for_source(org_context, source) == [issued, paid]

    def test_balance_validation_logged(self, captured_logs, post_sale):
        post_sale("42.00")
        validated = [r for r in captured_logs() if r["message"] == "balance_validated"]
        assert validated
        assert validated[-1]["sum_debit"] == "42.00"
        assert validated[-1]["balanced"] is True


# =========================================================================
# reverse_entry()
# =========================================================================


class TestReverseEntry:
    """Tests for JournalEngine.reverse_entry()."""

    def test_reversal_mirrors_lines(self, journal_engine, org_context, post_sale, cash, sales):
        original_id = post_sale("75.00")
        reversal_id = journal_engine.reverse_entry(org_context, original_id)
        reversal = journal_engine.get_entry(org_context, reversal_id)

        assert reversal.reversal_of_id == original_id
        assert reversal.is_balanced
        assert reversal.lines[0].account_id == cash
        assert reversal.lines[0].credit == usd("75.00")
        assert reversal.lines[1].account_id == sales
        assert reversal.lines[1].debit == usd("75.00")
        assert reversal.description.startswith("Reversal of entry #1")

    def test_original_untouched(self, journal_engine, org_context, post_sale):
        original_id = post_sale("75.00")
        before = journal_engine.get_entry(org_context, original_id)
        journal_engine.reverse_entry(org_context, original_id)
        assert journal_engine.get_entry(org_context, original_id) == before

    def test_adjustment_reversal_keyed_on_original(self, journal_engine, org_context, post_sale):
        original_id = post_sale()
        reversal = journal_engine.get_entry(
            org_context, journal_engine.reverse_entry(org_context, original_id)
        )
        assert reversal.transaction_type is TransactionType.ADJUSTMENT
        assert reversal.source_document_id == original_id

    def test_document_reversal_keeps_source(
        self, journal_engine, org_context, accounts, sales
    ):
        source = uuid4()
        entry_id = journal_engine.post_entry(
            org_context,
            TransactionType.INVOICE_ISSUED,
            source,
            [EntryLine.dr(accounts["1200"].id, usd("10")), EntryLine.cr(sales, usd("10"))],
        )
        reversal = journal_engine.get_entry(
            org_context, journal_engine.reverse_entry(org_context, entry_id)
        )
        assert reversal.transaction_type is TransactionType.INVOICE_VOIDED
        assert reversal.source_document_id == source

    def test_reversal_is_idempotent(self, session, journal_engine, org_context, post_sale):
        original_id = post_sale()
        first = journal_engine.reverse_entry(org_context, original_id)
        second = journal_engine.reverse_entry(org_context, original_id)
        assert first == second
        assert journal_engine.find_reversal(org_context, original_id) == first
        assert _entry_count(session, org_context) == 2

    def test_reversal_of_reversal_rejected(self, journal_engine, org_context, post_sale):
        reversal_id = journal_engine.reverse_entry(org_context, post_sale())
        with pytest.raises(ValidationError):
            journal_engine.reverse_entry(org_context, reversal_id)

    def test_unknown_entry(self, journal_engine, org_context):
        with pytest.raises(EntryNotFoundError):
            journal_engine.reverse_entry(org_context, uuid4())

    def test_other_organization_cannot_reverse(
        self, journal_engine, org_context, other_org_context, post_sale
    ):
        entry_id = post_sale()
        with pytest.raises(EntryNotFoundError):
            journal_engine.reverse_entry(other_org_context, entry_id)
        with pytest.raises(EntryNotFoundError):
            journal_engine.get_entry(other_org_context, entry_id)

    def test_reversal_allowed_on_inactive_account(
        self, journal_engine, org_context, account_directory, accounts, cash
    ):
        other_income = accounts["4500"].id
        entry_id = journal_engine.post_entry(
            org_context,
            TransactionType.ADJUSTMENT,
            uuid4(),
            [EntryLine.dr(cash, usd("5")), EntryLine.cr(other_income, usd("5"))],
        )
        account_directory.deactivate_account(org_context, other_income)

        reversal_id = journal_engine.reverse_entry(org_context, entry_id)
        assert journal_engine.get_entry(org_context, reversal_id).is_balanced

    def test_net_effect_is_zero(self, journal_engine, balance_calculator, org_context, post_sale):
        source = uuid4()
        entry_id = post_sale("123.45", source_document_id=source)
        journal_engine.reverse_entry(org_context, entry_id)

        effect = balance_calculator.net_effect_for_source(org_context, source)
        assert effect
        assert all(amount.is_zero for amount in effect.values())


# =========================================================================
# Append-only journal
# =========================================================================


class TestJournalImmutability:
    """Journal rows cannot be changed or removed through the ORM."""

    def test_line_amount_update_blocked(self, session, post_sale):
        entry_id = post_sale("10.00")
        line = session.execute(
            select(JournalLine).where(JournalLine.journal_entry_id == entry_id)
        ).scalars().first()

        line.debit_amount = Decimal("999.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entry_update_blocked(self, session, post_sale):
        entry = session.get(JournalEntry, post_sale())
        entry.description = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entry_delete_blocked(self, session, post_sale):
        entry = session.get(JournalEntry, post_sale())
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
