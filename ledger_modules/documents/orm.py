"""
Document ORM Models (``ledger_modules.documents.orm``).

Responsibility
--------------
SQLAlchemy persistence models for invoices, bills, their line items, the
customer and vendor payments applied to them, and directly paid expenses.
Maps to the frozen dataclasses in ``models.py`` via ``to_dto()``.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``ledger_kernel``.

Invariants enforced
-------------------
* ``document_number`` / ``payment_number`` unique per organization.
* Headers carry ``version_id`` as the mapper ``version_id_col``; a write
  against a stale version raises ``StaleDataError`` at flush.
* Documents and payments are never deleted; they are voided.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import Amount, CurrencyCode
from ledger_kernel.domain.values import Money


class _DocumentHeaderColumns:
    """Columns shared by invoice and bill headers."""

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    counterparty_id: Mapped[UUID] = mapped_column(nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Amount] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Amount] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Amount] = mapped_column(default=Decimal("0"))
    shipping_amount: Mapped[Amount] = mapped_column(default=Decimal("0"))
    total: Mapped[Amount] = mapped_column(default=Decimal("0"))
    amount_paid: Mapped[Amount] = mapped_column(default=Decimal("0"))
    amount_due: Mapped[Amount] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default="draft")
    control_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="")
    voided_at: Mapped[date | None] = mapped_column(Date, nullable=True)

    def _header_dto(self, kind, lines):
        from ledger_modules.documents.models import DocumentRecord, DocumentStatus

        def money(amount: Decimal) -> Money:
            return Money.of(amount, self.currency)

        return DocumentRecord(
            id=self.id,
            organization_id=self.organization_id,
            kind=kind,
            document_number=self.document_number,
            counterparty_id=self.counterparty_id,
            issue_date=self.issue_date,
            due_date=self.due_date,
            subtotal=money(self.subtotal),
            tax_amount=money(self.tax_amount),
            discount_amount=money(self.discount_amount),
            shipping_amount=money(self.shipping_amount),
            total=money(self.total),
            amount_paid=money(self.amount_paid),
            amount_due=money(self.amount_due),
            status=DocumentStatus(self.status),
            control_account_id=self.control_account_id,
            notes=self.notes or "",
            lines=tuple(line.to_dto(self.currency) for line in lines),
            voided_at=self.voided_at,
        )


class _LineColumns:
    """Columns shared by invoice and bill line items."""

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Amount] = mapped_column(nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Amount] = mapped_column(default=Decimal("0"))
    amount: Mapped[Amount] = mapped_column(nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )

    def to_dto(self, currency: str):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import LineItemRecord

        return LineItemRecord(
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=Money.of(self.unit_price, currency),
            discount_percent=self.discount_percent,
            tax_amount=Money.of(self.tax_amount, currency),
            amount=Money.of(self.amount, currency),
            account_id=self.account_id,
        )


class _PaymentColumns:
    """Columns shared by customer payments and vendor payments."""

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    counterparty_id: Mapped[UUID] = mapped_column(nullable=False)
    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Amount] = mapped_column(nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), default="other")
    deposit_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_voided: Mapped[bool] = mapped_column(Boolean, default=False)
    voided_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )

    def _payment_dto(self, kind):
        from ledger_modules.documents.models import (
            AppliedAllocation,
            PaymentMethod,
            PaymentRecord,
        )

        return PaymentRecord(
            id=self.id,
            organization_id=self.organization_id,
            kind=kind,
            payment_number=self.payment_number,
            counterparty_id=self.counterparty_id,
            payment_date=self.payment_date,
            amount=Money.of(self.amount, self.currency),
            method=PaymentMethod(self.method),
            deposit_account_id=self.deposit_account_id,
            reference=self.reference,
            is_voided=self.is_voided,
            entry_id=self.entry_id,
            applications=tuple(
                AppliedAllocation(
                    document_id=app.document.id,
                    document_number=app.document.document_number,
                    applied_amount=Money.of(app.applied_amount, self.currency),
                )
                for app in self.applications
            ),
        )


# ---------------------------------------------------------------------------
# 1. Invoices
# ---------------------------------------------------------------------------


class Invoice(_DocumentHeaderColumns, TrackedBase):
    """
    Customer invoice header.

    Guarantees:
        - document_number is unique per organization (uq_invoice_org_number).
        - version_id increments on every UPDATE (optimistic lock).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_invoice_org_number"),
        Index("idx_invoice_org_status", "organization_id", "status"),
        Index("idx_invoice_counterparty", "organization_id", "counterparty_id"),
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="document",
        lazy="selectin",
        order_by="InvoiceLine.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import DocumentKind

        return self._header_dto(DocumentKind.INVOICE, self.lines)

    def __repr__(self) -> str:
        return f"<Invoice {self.document_number} [{self.status}]>"


class InvoiceLine(_LineColumns, TrackedBase):
    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_invoice_line_number"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )

    document: Mapped[Invoice] = relationship(back_populates="lines")


# ---------------------------------------------------------------------------
# 2. Bills
# ---------------------------------------------------------------------------


class Bill(_DocumentHeaderColumns, TrackedBase):
    """
    Vendor bill header.  ``issue_date`` holds the bill date.

    Guarantees:
        - document_number is unique per organization (uq_bill_org_number).
        - version_id increments on every UPDATE (optimistic lock).
    """

    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_bill_org_number"),
        Index("idx_bill_org_status", "organization_id", "status"),
        Index("idx_bill_counterparty", "organization_id", "counterparty_id"),
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    lines: Mapped[list["BillLine"]] = relationship(
        back_populates="document",
        lazy="selectin",
        order_by="BillLine.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import DocumentKind

        return self._header_dto(DocumentKind.BILL, self.lines)

    def __repr__(self) -> str:
        return f"<Bill {self.document_number} [{self.status}]>"


class BillLine(_LineColumns, TrackedBase):
    __tablename__ = "bill_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_bill_line_number"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("bills.id"), nullable=False
    )

    document: Mapped[Bill] = relationship(back_populates="lines")


# ---------------------------------------------------------------------------
# 3. Customer payments
# ---------------------------------------------------------------------------


class Payment(_PaymentColumns, TrackedBase):
    """
    Payment received from a customer.

    ``entry_id`` is set once the payment has been applied and its
    payment_received entry posted; a payment is applied at most once.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("organization_id", "payment_number", name="uq_payment_org_number"),
        Index("idx_payment_counterparty", "organization_id", "counterparty_id"),
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    applications: Mapped[list["PaymentApplication"]] = relationship(
        back_populates="payment",
        lazy="selectin",
        order_by="PaymentApplication.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import DocumentKind

        return self._payment_dto(DocumentKind.INVOICE)

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number}: {self.amount} {self.currency}>"


class PaymentApplication(TrackedBase):
    __tablename__ = "payment_applications"

    __table_args__ = (
        UniqueConstraint("payment_id", "document_id", name="uq_payment_application"),
        Index("idx_payment_application_document", "document_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"), nullable=False)
    document_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_amount: Mapped[Amount] = mapped_column(nullable=False)

    payment: Mapped[Payment] = relationship(back_populates="applications")
    document: Mapped[Invoice] = relationship(lazy="joined")


# ---------------------------------------------------------------------------
# 4. Vendor payments
# ---------------------------------------------------------------------------


class VendorPayment(_PaymentColumns, TrackedBase):
    """Payment made to a vendor against one or more bills."""

    __tablename__ = "vendor_payments"

    __table_args__ = (
        UniqueConstraint("organization_id", "payment_number", name="uq_vendor_payment_org_number"),
        Index("idx_vendor_payment_counterparty", "organization_id", "counterparty_id"),
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    applications: Mapped[list["VendorPaymentApplication"]] = relationship(
        back_populates="payment",
        lazy="selectin",
        order_by="VendorPaymentApplication.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import DocumentKind

        return self._payment_dto(DocumentKind.BILL)

    def __repr__(self) -> str:
        return f"<VendorPayment {self.payment_number}: {self.amount} {self.currency}>"


class VendorPaymentApplication(TrackedBase):
    __tablename__ = "vendor_payment_applications"

    __table_args__ = (
        UniqueConstraint("payment_id", "document_id", name="uq_vendor_payment_application"),
        Index("idx_vendor_payment_application_document", "document_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("vendor_payments.id"), nullable=False
    )
    document_id: Mapped[UUID] = mapped_column(ForeignKey("bills.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_amount: Mapped[Amount] = mapped_column(nullable=False)

    payment: Mapped[VendorPayment] = relationship(back_populates="applications")
    document: Mapped[Bill] = relationship(lazy="joined")


# ---------------------------------------------------------------------------
# 5. Expenses
# ---------------------------------------------------------------------------


class Expense(TrackedBase):
    """
    Spend paid directly from a cash or card account, without a bill.

    The row id is the source id of its expense_recorded entry, so a retried
    request with the same id finds the expense instead of posting twice.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expense_org_date", "organization_id", "expense_date"),
        Index("idx_expense_vendor", "organization_id", "vendor_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    expense_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    payment_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    vendor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Amount] = mapped_column(nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    method: Mapped[str] = mapped_column(String(20), default="other")
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_voided: Mapped[bool] = mapped_column(Boolean, default=False)
    voided_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from ledger_modules.documents.models import ExpenseRecord, PaymentMethod

        return ExpenseRecord(
            id=self.id,
            organization_id=self.organization_id,
            expense_account_id=self.expense_account_id,
            payment_account_id=self.payment_account_id,
            vendor_id=self.vendor_id,
            expense_date=self.expense_date,
            amount=Money.of(self.amount, self.currency),
            description=self.description or "",
            method=PaymentMethod(self.method),
            reference=self.reference,
            is_voided=self.is_voided,
            entry_id=self.entry_id,
            voided_at=self.voided_at,
        )

    def __repr__(self) -> str:
        return f"<Expense {self.expense_date}: {self.amount} {self.currency}>"
