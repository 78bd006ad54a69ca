"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth.  Balances, statements and document
    reconciliation are all derived from these rows.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Idempotency: UNIQUE (organization_id, source_document_id,
      transaction_type).
    - A journal entry is reversed at most once: UNIQUE reversal_of_id.
    - seq is unique across the store and generated on insert by
      SequenceService.next_entry_seq(), with no per-organization lock.
    - Every line carries exactly one positive amount: either debit_amount
      or credit_amount, the other zero (ck_line_one_side).
    - Immutability: rows are append-only (db/immutability.py listeners).

Failure modes:
    - IntegrityError on a duplicate idempotency key or reversal.
    - ImmutabilityViolationError on UPDATE/DELETE of any journal row.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import Amount, CurrencyCode, Sequence


class TransactionType(str, Enum):
    """Business event a journal entry records."""

    INVOICE_ISSUED = "invoice_issued"
    PAYMENT_RECEIVED = "payment_received"
    BILL_RECORDED = "bill_recorded"
    VENDOR_PAYMENT = "vendor_payment"
    INVOICE_VOIDED = "invoice_voided"
    BILL_VOIDED = "bill_voided"
    PAYMENT_VOIDED = "payment_voided"
    VENDOR_PAYMENT_VOIDED = "vendor_payment_voided"
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_VOIDED = "expense_voided"
    ADJUSTMENT = "adjustment"

    @property
    def reversal_type(self) -> "TransactionType":
        """Transaction type of the compensating entry for this type."""
        return _REVERSAL_TYPES[self]


_REVERSAL_TYPES: dict[TransactionType, TransactionType] = {
    TransactionType.INVOICE_ISSUED: TransactionType.INVOICE_VOIDED,
    TransactionType.BILL_RECORDED: TransactionType.BILL_VOIDED,
    TransactionType.PAYMENT_RECEIVED: TransactionType.PAYMENT_VOIDED,
    TransactionType.VENDOR_PAYMENT: TransactionType.VENDOR_PAYMENT_VOIDED,
    TransactionType.EXPENSE_RECORDED: TransactionType.EXPENSE_VOIDED,
    TransactionType.ADJUSTMENT: TransactionType.ADJUSTMENT,
}


class JournalEntry(TrackedBase):
    """
    Journal entry header -- the atomic unit of double-entry accounting.

    Contract:
        Each entry records one business event for one source document.
        Rows are written once and never updated or deleted; corrections are
        compensating entries that point back through reversal_of_id.

    Guarantees:
        - Debits == Credits (checked by JournalEngine before insert; the
          is_balanced property is a read-side convenience).
        - seq orders entries by insertion; it may have gaps.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "source_document_id",
            "transaction_type",
            name="uq_journal_org_source_type",
        ),
        UniqueConstraint("seq", name="uq_journal_seq"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_org_date", "organization_id", "transaction_date"),
        Index("idx_journal_org_source", "organization_id", "source_document_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # Store-generated insertion number
    seq: Mapped[Sequence] = mapped_column(nullable=False)

    # Accounting date (drives as-of balances and report periods)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(30), nullable=False
    )

    # Invoice, bill, payment or (for adjustments) caller-chosen id
    source_document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.seq} {self.transaction_type} {self.source_document_id}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    Individual debit or credit line within a journal entry.

    Guarantees:
        - Exactly one of debit_amount / credit_amount is positive, the other
          is zero.
        - line_seq gives a deterministic order within the entry.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit_amount > 0 AND credit_amount = 0) OR "
            "(credit_amount > 0 AND debit_amount = 0)",
            name="ck_line_one_side",
        ),
        UniqueConstraint("journal_entry_id", "line_seq", name="uq_line_entry_seq"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    debit_amount: Mapped[Amount] = mapped_column(nullable=False, default=Decimal("0"))

    credit_amount: Mapped[Amount] = mapped_column(nullable=False, default=Decimal("0"))

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        side = "Dr" if self.debit_amount else "Cr"
        return f"<JournalLine {self.line_seq} {side} {self.debit_amount or self.credit_amount}>"
