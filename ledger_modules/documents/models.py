"""
Document Domain Models (``ledger_modules.documents.models``).

Responsibility
--------------
Frozen dataclass value objects for invoices, bills, their line items, the
payments applied to them and expenses paid directly.  Inputs
(``DocumentDraft``, ``LineItemInput``, ``PaymentInput``, ``ExpenseInput``)
carry plain Decimals in the organization's functional currency; records
returned to callers carry ``Money``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed and
returned by ``DocumentLifecycleManager``, ``DocumentSelector`` and the AR/AP
facades.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` or ``Money`` -- never ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import Money
from ledger_kernel.models.account import SystemAccountRole
from ledger_kernel.models.journal import TransactionType


class DocumentKind(str, Enum):
    """Which side of the business a document sits on."""

    INVOICE = "invoice"
    BILL = "bill"

    @property
    def control_role(self) -> SystemAccountRole:
        if self is DocumentKind.INVOICE:
            return SystemAccountRole.ACCOUNTS_RECEIVABLE
        return SystemAccountRole.ACCOUNTS_PAYABLE

    @property
    def line_role(self) -> SystemAccountRole:
        """Default account role for line items, shipping and discounts."""
        if self is DocumentKind.INVOICE:
            return SystemAccountRole.INCOME
        return SystemAccountRole.EXPENSE

    @property
    def issue_transaction_type(self) -> TransactionType:
        if self is DocumentKind.INVOICE:
            return TransactionType.INVOICE_ISSUED
        return TransactionType.BILL_RECORDED

    @property
    def payment_transaction_type(self) -> TransactionType:
        if self is DocumentKind.INVOICE:
            return TransactionType.PAYMENT_RECEIVED
        return TransactionType.VENDOR_PAYMENT


class DocumentStatus(str, Enum):
    """
    Lifecycle states of invoices and bills.

    OVERDUE is derived on read and never stored.
    """

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    OPEN = "open"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    VOIDED = "voided"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemInput:
    """
    One requested line of a draft document.

    ``tax_amount`` is supplied by the caller (tax is computed outside the
    ledger).  ``account_id`` defaults to the income (invoice) or expense
    (bill) system account.
    """

    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    account_id: UUID | None = None


@dataclass(frozen=True)
class DocumentDraft:
    """Everything needed to create a draft invoice or bill."""

    counterparty_id: UUID
    lines: tuple[LineItemInput, ...]
    issue_date: date | None = None
    due_date: date | None = None
    discount_amount: Decimal = Decimal("0")
    shipping_amount: Decimal = Decimal("0")
    notes: str = ""


@dataclass(frozen=True)
class PaymentInput:
    """A payment received from a customer or made to a vendor."""

    counterparty_id: UUID
    amount: Decimal
    payment_date: date | None = None
    method: PaymentMethod = PaymentMethod.OTHER
    deposit_account_id: UUID | None = None
    reference: str | None = None


@dataclass(frozen=True)
class Allocation:
    """Part of a payment applied to one document."""

    document_id: UUID
    applied_amount: Decimal


@dataclass(frozen=True)
class ExpenseInput:
    """
    A spend paid on the spot, without a bill.

    ``payment_account_id`` defaults to the system cash account.  A
    caller-chosen ``expense_id`` makes a retried request return the expense
    already recorded under that id.
    """

    expense_account_id: UUID
    amount: Decimal
    expense_date: date | None = None
    payment_account_id: UUID | None = None
    vendor_id: UUID | None = None
    description: str = ""
    method: PaymentMethod = PaymentMethod.OTHER
    reference: str | None = None
    expense_id: UUID | None = None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemRecord:
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Money
    discount_percent: Decimal
    tax_amount: Money
    amount: Money
    account_id: UUID | None


@dataclass(frozen=True)
class DocumentRecord:
    """Immutable view of an invoice or bill."""

    id: UUID
    organization_id: UUID
    kind: DocumentKind
    document_number: str
    counterparty_id: UUID
    issue_date: date
    due_date: date
    subtotal: Money
    tax_amount: Money
    discount_amount: Money
    shipping_amount: Money
    total: Money
    amount_paid: Money
    amount_due: Money
    status: DocumentStatus
    control_account_id: UUID
    notes: str = ""
    lines: tuple[LineItemRecord, ...] = field(default_factory=tuple)
    voided_at: date | None = None


@dataclass(frozen=True)
class AppliedAllocation:
    document_id: UUID
    document_number: str
    applied_amount: Money


@dataclass(frozen=True)
class PaymentRecord:
    """Immutable view of a customer payment or vendor payment."""

    id: UUID
    organization_id: UUID
    kind: DocumentKind
    payment_number: str
    counterparty_id: UUID
    payment_date: date
    amount: Money
    method: PaymentMethod
    deposit_account_id: UUID | None
    reference: str | None
    is_voided: bool
    entry_id: UUID | None
    applications: tuple[AppliedAllocation, ...] = field(default_factory=tuple)

    @property
    def applied_amount(self) -> Money:
        return sum(
            (a.applied_amount for a in self.applications), Money.zero(self.amount.currency)
        )

    @property
    def unapplied_amount(self) -> Money:
        return self.amount - self.applied_amount

    @property
    def is_applied(self) -> bool:
        return self.entry_id is not None


@dataclass(frozen=True)
class ExpenseRecord:
    """Immutable view of a directly recorded expense."""

    id: UUID
    organization_id: UUID
    expense_account_id: UUID
    payment_account_id: UUID
    vendor_id: UUID | None
    expense_date: date
    amount: Money
    description: str
    method: PaymentMethod
    reference: str | None
    is_voided: bool
    entry_id: UUID | None
    voided_at: date | None = None


@dataclass(frozen=True)
class AmountDueReconciliation:
    """
    Cached document amounts next to the amounts derived from the journal.

    Voided documents are compared on amount_due only: a payment voided
    after its document keeps the document's amount_paid.
    """

    document_id: UUID
    is_voided: bool
    cached_amount_paid: Money
    journal_amount_paid: Money
    cached_amount_due: Money
    journal_amount_due: Money

    @property
    def is_consistent(self) -> bool:
        if self.is_voided:
            return self.cached_amount_due == self.journal_amount_due
        return (
            self.cached_amount_paid == self.journal_amount_paid
            and self.cached_amount_due == self.journal_amount_due
        )
