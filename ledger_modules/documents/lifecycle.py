"""
DocumentLifecycleManager -- drives invoices, bills and payments through
their workflows, records direct expenses, and posts the matching journal
entries.

Responsibility:
    Computes document amounts, enforces the transition tables in
    ``workflows.py``, keeps ``amount_paid`` / ``amount_due`` / ``status`` in
    step with payments, and calls JournalEngine for every event that moves
    money: issue, payment application, expense, void.

Architecture position:
    Modules > Documents.  Flushes, never commits; ARService and APService
    own the transaction boundary.

Invariants enforced:
    - total == subtotal + tax_amount + shipping_amount - discount_amount.
    - amount_due == total - amount_paid and 0 <= amount_paid <= total
      (voided documents keep amount_paid and carry amount_due == 0).
    - Every status change matches a declared workflow transition.
    - One journal entry per payment; a payment is applied at most once.
    - One expense_recorded entry per expense, keyed on the expense id.
    - Document rows are locked in sorted id order, after the payment row.

Failure modes:
    - ValidationError on malformed drafts, payments or allocations.
    - InvalidTransitionError when the document state forbids the action.
    - OverpaymentError when an allocation exceeds amount due or payment.
    - DocumentNotFoundError / PaymentNotFoundError / ExpenseNotFoundError.
    - ConflictError when a header was modified concurrently (stale version).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_config import LedgerSettings, get_active_config
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.exceptions import (
    ConflictError,
    CurrencyMismatchError,
    DocumentNotFoundError,
    ExpenseNotFoundError,
    InvalidTransitionError,
    OverpaymentError,
    PaymentNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType, SystemAccountRole
from ledger_kernel.models.journal import TransactionType
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.journal_engine import EntryLine, JournalEngine
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.documents.models import (
    Allocation,
    DocumentDraft,
    DocumentKind,
    DocumentRecord,
    DocumentStatus,
    ExpenseInput,
    ExpenseRecord,
    LineItemInput,
    PaymentInput,
    PaymentMethod,
    PaymentRecord,
)
from ledger_modules.documents.orm import (
    Bill,
    BillLine,
    Expense,
    Invoice,
    InvoiceLine,
    Payment,
    PaymentApplication,
    VendorPayment,
    VendorPaymentApplication,
)
from ledger_modules.documents.workflows import require_transition, status_for_amounts

logger = get_logger("modules.documents.lifecycle")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class _KindTables:
    header: type
    line: type
    payment: type
    application: type
    number_sequence: str
    payment_sequence: str


_TABLES = {
    DocumentKind.INVOICE: _KindTables(
        header=Invoice,
        line=InvoiceLine,
        payment=Payment,
        application=PaymentApplication,
        number_sequence=SequenceService.INVOICE_NUMBER,
        payment_sequence=SequenceService.PAYMENT_NUMBER,
    ),
    DocumentKind.BILL: _KindTables(
        header=Bill,
        line=BillLine,
        payment=VendorPayment,
        application=VendorPaymentApplication,
        number_sequence=SequenceService.BILL_NUMBER,
        payment_sequence=SequenceService.VENDOR_PAYMENT_NUMBER,
    ),
}


def tables_for(kind: DocumentKind) -> _KindTables:
    return _TABLES[DocumentKind(kind)]


def allocation_memo(document_number: str) -> str:
    """Description of the control-account line for one allocation."""
    return f"Applied to {document_number}"


def unapplied_memo(payment_number: str) -> str:
    return f"Unapplied {payment_number}"


class DocumentLifecycleManager:
    """
    Creates, issues, pays and voids invoices and bills; records and voids
    expenses paid without a bill.

    Contract:
        Every call takes an OrganizationContext and only touches rows of
        that organization.  Flushes, never commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings
        self._engine = JournalEngine(session, self._clock)
        self._directory = AccountDirectory(session, self._clock)
        self._sequences = SequenceService(session)

    @property
    def settings(self) -> LedgerSettings:
        if self._settings is None:
            self._settings = get_active_config().settings
        return self._settings

    # =========================================================================
    # Drafts
    # =========================================================================

    def create_draft(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        draft: DocumentDraft,
    ) -> DocumentRecord:
        """
        Create a draft invoice or bill with computed amounts and a number.

        Postconditions:
            - status == draft, amount_paid == 0, amount_due == total.
            - document_number is the next INV-/BILL- number of the
              organization.

        Raises:
            ValidationError: No lines, negative amounts, discount above
                100%, due date before issue date, or a total below zero.
            AccountNotFoundError / ForeignAccountError: Unknown line account.
        """
        kind = DocumentKind(kind)
        tables = tables_for(kind)

        if not draft.lines:
            raise ValidationError("A document needs at least one line", field="lines")

        issue_date = draft.issue_date or self._clock.today()
        due_date = draft.due_date or issue_date + timedelta(
            days=self.settings.payment_terms_days
        )
        if due_date < issue_date:
            raise ValidationError(
                f"Due date {due_date} is before issue date {issue_date}", field="due_date"
            )

        discount_amount = self._amount(context, draft.discount_amount, "discount_amount")
        shipping_amount = self._amount(context, draft.shipping_amount, "shipping_amount")

        line_rows = [
            self._build_line(context, tables, number, item)
            for number, item in enumerate(draft.lines, start=1)
        ]
        subtotal = sum((row.amount for row in line_rows), Decimal("0"))
        tax_amount = sum((row.tax_amount for row in line_rows), Decimal("0"))
        total = subtotal + tax_amount + shipping_amount - discount_amount
        if total < 0:
            raise ValidationError(
                f"Discount {discount_amount} exceeds the document amount", field="discount_amount"
            )

        control = self._directory.resolve_system_account(context, kind.control_role)
        document_number = self._next_document_number(context, kind)

        header = tables.header(
            id=uuid4(),
            organization_id=context.organization_id,
            counterparty_id=draft.counterparty_id,
            document_number=document_number,
            issue_date=issue_date,
            due_date=due_date,
            subtotal=subtotal,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            shipping_amount=shipping_amount,
            total=total,
            amount_paid=Decimal("0"),
            amount_due=total,
            status=DocumentStatus.DRAFT.value,
            control_account_id=control.id,
            currency=context.currency.code,
            notes=draft.notes,
            created_by_id=context.actor_id,
        )
        header.lines.extend(line_rows)
        self._session.add(header)
        self._session.flush()

        logger.info(
            "document_created",
            extra={
                "document_id": str(header.id),
                "kind": kind.value,
                "document_number": document_number,
                "total": str(total),
                "line_count": len(line_rows),
            },
        )
        return header.to_dto()

    def _build_line(
        self,
        context: OrganizationContext,
        tables: _KindTables,
        line_number: int,
        item: LineItemInput,
    ):
        quantity = self._decimal(item.quantity, "quantity")
        discount_percent = self._decimal(item.discount_percent, "discount_percent")
        unit_price = self._amount(context, item.unit_price, "unit_price")
        tax_amount = self._amount(context, item.tax_amount, "tax_amount")

        if quantity <= 0:
            raise ValidationError(f"Line {line_number}: quantity must be positive", field="quantity")
        if not Decimal("0") <= discount_percent <= _HUNDRED:
            raise ValidationError(
                f"Line {line_number}: discount must be between 0 and 100 percent",
                field="discount_percent",
            )
        if item.account_id is not None:
            self._directory.get_account(context, item.account_id)

        gross = quantity * unit_price * (_HUNDRED - discount_percent) / _HUNDRED
        return tables.line(
            line_number=line_number,
            description=item.description,
            quantity=quantity,
            unit_price=unit_price,
            discount_percent=discount_percent,
            tax_amount=tax_amount,
            amount=context.money(gross).round().amount,
            account_id=item.account_id,
            created_by_id=context.actor_id,
        )

    # =========================================================================
    # Issue
    # =========================================================================

    def issue(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        document_id: UUID,
    ) -> DocumentRecord:
        """
        Move a draft to sent (invoice) or open (bill) and post its entry.

        Raises:
            InvalidTransitionError: The document is not a draft.
        """
        kind = DocumentKind(kind)
        with LogContext.bind(document_id=str(document_id)):
            header = self._lock_document(context, kind, document_id)
            transition = require_transition(kind, document_id, header.status, "issue")

            lines = self._issue_lines(context, kind, header)
            entry_id = None
            if lines:
                entry_id = self._engine.post_entry(
                    context,
                    kind.issue_transaction_type,
                    header.id,
                    lines,
                    transaction_date=header.issue_date,
                    description=f"{kind.value.capitalize()} {header.document_number}",
                )

            header.status = transition.to_state
            header.updated_by_id = context.actor_id
            self._flush(kind.value, header.id)

            logger.info(
                "document_issued",
                extra={
                    "kind": kind.value,
                    "document_number": header.document_number,
                    "entry_id": str(entry_id) if entry_id else None,
                    "total": str(header.total),
                },
            )
            return header.to_dto()

    def _issue_lines(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        header,
    ) -> list[EntryLine]:
        """
        Invoice: Dr AR total; Cr income per line, Cr tax, Cr income for
        shipping, Dr income for discount.  Bill: the mirror image on the
        expense and AP accounts.
        """
        is_invoice = kind is DocumentKind.INVOICE
        money = context.money
        default_account = self._directory.resolve_system_account(context, kind.line_role).id

        def natural(account_id, amount, memo=""):
            if is_invoice:
                return EntryLine.cr(account_id, money(amount), memo)
            return EntryLine.dr(account_id, money(amount), memo)

        def contra(account_id, amount, memo=""):
            if is_invoice:
                return EntryLine.dr(account_id, money(amount), memo)
            return EntryLine.cr(account_id, money(amount), memo)

        body: list[EntryLine] = []
        for item in header.lines:
            if item.amount > 0:
                body.append(natural(item.account_id or default_account, item.amount, item.description))
        if header.tax_amount > 0:
            tax_account = self._directory.resolve_system_account(
                context, SystemAccountRole.TAX_LIABILITY
            )
            body.append(natural(tax_account.id, header.tax_amount, "Tax"))
        if header.shipping_amount > 0:
            body.append(natural(default_account, header.shipping_amount, "Shipping"))
        if header.discount_amount > 0:
            body.append(contra(default_account, header.discount_amount, "Discount"))

        if header.total <= 0:
            return []
        control = contra(header.control_account_id, header.total, header.document_number)
        return [control, *body] if is_invoice else [*body, control]

    # =========================================================================
    # Viewed
    # =========================================================================

    def mark_viewed(self, context: OrganizationContext, document_id: UUID) -> DocumentRecord:
        """Move a sent invoice to viewed. Posts nothing."""
        kind = DocumentKind.INVOICE
        with LogContext.bind(document_id=str(document_id)):
            header = self._lock_document(context, kind, document_id)
            transition = require_transition(kind, document_id, header.status, "mark_viewed")
            header.status = transition.to_state
            header.updated_by_id = context.actor_id
            self._flush(kind.value, header.id)
            logger.info("document_viewed", extra={"document_number": header.document_number})
            return header.to_dto()

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        payment: PaymentInput,
        allocations: Sequence[Allocation] = (),
    ) -> PaymentRecord:
        """
        Record a customer payment (invoice) or vendor payment (bill).

        With ``allocations`` the payment is applied immediately; without,
        it waits for ``apply_payment``.

        Raises:
            ValidationError: Non-positive amount, or a deposit account that
                is not an asset account.
        """
        kind = DocumentKind(kind)
        tables = tables_for(kind)

        amount = self._amount(context, payment.amount, "amount")
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")
        try:
            method = PaymentMethod(payment.method)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown payment method: '{payment.method}'", field="method"
            ) from exc
        if payment.deposit_account_id is not None:
            account = self._directory.get_account(context, payment.deposit_account_id)
            if account.account_type is not AccountType.ASSET:
                raise ValidationError(
                    f"Deposit account {account.code} is not an asset account",
                    field="deposit_account_id",
                )

        payment_number = self._next_payment_number(context, kind)
        row = tables.payment(
            id=uuid4(),
            organization_id=context.organization_id,
            counterparty_id=payment.counterparty_id,
            payment_number=payment_number,
            payment_date=payment.payment_date or self._clock.today(),
            amount=amount,
            currency=context.currency.code,
            method=method.value,
            deposit_account_id=payment.deposit_account_id,
            reference=payment.reference,
            is_voided=False,
            created_by_id=context.actor_id,
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(row.id),
                "kind": kind.value,
                "payment_number": payment_number,
                "amount": str(amount),
                "method": method.value,
            },
        )

        if allocations:
            return self._apply(context, kind, row, allocations)
        return row.to_dto()

    def apply_payment(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        payment_id: UUID,
        allocations: Sequence[Allocation],
    ) -> PaymentRecord:
        """
        Apply a recorded payment to one or more open documents.

        Raises:
            PaymentNotFoundError: Unknown payment.
            InvalidTransitionError: The payment is voided or already applied,
                or a target document is draft or voided.
            OverpaymentError: An allocation exceeds the document's amount
                due, or the allocations exceed the payment amount.
            ValidationError: Empty, non-positive or duplicate allocations,
                or a document of another counterparty.
        """
        kind = DocumentKind(kind)
        row = self._lock_payment(context, kind, payment_id)
        if row.is_voided:
            raise InvalidTransitionError(str(payment_id), "voided", "apply_payment")
        if row.entry_id is not None:
            raise InvalidTransitionError(str(payment_id), "applied", "apply_payment")
        return self._apply(context, kind, row, allocations)

    def _apply(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        payment_row,
        allocations: Sequence[Allocation],
    ) -> PaymentRecord:
        tables = tables_for(kind)

        if not allocations:
            raise ValidationError("At least one allocation is required", field="allocations")

        requested: dict[UUID, Decimal] = {}
        for allocation in allocations:
            if allocation.document_id in requested:
                raise ValidationError(
                    f"Document {allocation.document_id} is listed twice", field="allocations"
                )
            applied = self._amount(context, allocation.applied_amount, "applied_amount")
            if applied <= 0:
                raise ValidationError("Allocations must be positive", field="applied_amount")
            requested[allocation.document_id] = applied

        requested_total = sum(requested.values(), Decimal("0"))
        if requested_total > payment_row.amount:
            raise OverpaymentError(
                str(payment_row.id), str(requested_total), str(payment_row.amount)
            )

        documents = self._lock_documents(context, kind, list(requested))

        control_lines: list[EntryLine] = []
        for line_number, (document_id, applied) in enumerate(requested.items(), start=1):
            header = documents[document_id]
            self._check_target(context, kind, header, payment_row)

            status = DocumentStatus(header.status)
            if status is not DocumentStatus.PAID:
                # draft and voided have no apply_payment transition
                require_transition(kind, document_id, status, "apply_payment")
            if applied > header.amount_due:
                raise OverpaymentError(str(document_id), str(applied), str(header.amount_due))

            amount_paid = header.amount_paid + applied
            target = status_for_amounts(kind, header.total, amount_paid)
            transition = require_transition(kind, document_id, status, "apply_payment", target)

            header.amount_paid = amount_paid
            header.amount_due = header.total - amount_paid
            header.status = transition.to_state
            header.updated_by_id = context.actor_id

            payment_row.applications.append(
                tables.application(
                    document=header,
                    line_number=line_number,
                    applied_amount=applied,
                    created_by_id=context.actor_id,
                )
            )
            control_lines.append(
                self._control_line(
                    context, kind, header.control_account_id, applied,
                    allocation_memo(header.document_number),
                )
            )
            logger.debug(
                "payment_allocated",
                extra={
                    "document_id": str(document_id),
                    "applied_amount": str(applied),
                    "amount_due": str(header.amount_due),
                    "status": header.status,
                },
            )

        unapplied = payment_row.amount - requested_total
        if unapplied > 0:
            control = self._directory.resolve_system_account(context, kind.control_role)
            control_lines.append(
                self._control_line(
                    context, kind, control.id, unapplied,
                    unapplied_memo(payment_row.payment_number),
                )
            )

        cash_account_id = payment_row.deposit_account_id or self._directory.resolve_system_account(
            context, SystemAccountRole.CASH
        ).id
        total = context.money(payment_row.amount)
        if kind is DocumentKind.INVOICE:
            lines = [EntryLine.dr(cash_account_id, total, payment_row.payment_number), *control_lines]
        else:
            lines = [*control_lines, EntryLine.cr(cash_account_id, total, payment_row.payment_number)]

        entry_id = self._engine.post_entry(
            context,
            kind.payment_transaction_type,
            payment_row.id,
            lines,
            transaction_date=payment_row.payment_date,
            description=f"Payment {payment_row.payment_number}",
        )
        payment_row.entry_id = entry_id
        payment_row.updated_by_id = context.actor_id
        self._flush("payment", payment_row.id)

        logger.info(
            "payment_applied",
            extra={
                "payment_id": str(payment_row.id),
                "kind": kind.value,
                "entry_id": str(entry_id),
                "allocation_count": len(requested),
                "applied_total": str(requested_total),
                "unapplied": str(unapplied),
            },
        )
        return payment_row.to_dto()

    @staticmethod
    def _control_line(
        context: OrganizationContext,
        kind: DocumentKind,
        account_id: UUID,
        amount: Decimal,
        memo: str,
    ) -> EntryLine:
        if kind is DocumentKind.INVOICE:
            return EntryLine.cr(account_id, context.money(amount), memo)
        return EntryLine.dr(account_id, context.money(amount), memo)

    @staticmethod
    def _check_target(context: OrganizationContext, kind: DocumentKind, header, payment_row) -> None:
        if header.counterparty_id != payment_row.counterparty_id:
            raise ValidationError(
                f"{kind.value.capitalize()} {header.document_number} belongs to another counterparty",
                field="counterparty_id",
            )
        if header.currency != payment_row.currency:
            raise CurrencyMismatchError(payment_row.currency, header.currency)

    # =========================================================================
    # Void
    # =========================================================================

    def void(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        document_id: UUID,
    ) -> DocumentRecord:
        """
        Void a document: reverse every entry posted for it.

        Payments applied to the document are not un-applied; amount_paid is
        kept and amount_due becomes zero.

        Raises:
            InvalidTransitionError: The document is already voided.
        """
        kind = DocumentKind(kind)
        with LogContext.bind(document_id=str(document_id)):
            header = self._lock_document(context, kind, document_id)
            transition = require_transition(kind, document_id, header.status, "void")

            today = self._clock.today()
            reversed_ids = self._reverse_source_entries(context, header.id, today)

            header.amount_due = Decimal("0")
            header.status = transition.to_state
            header.voided_at = today
            header.updated_by_id = context.actor_id
            self._flush(kind.value, header.id)

            logger.info(
                "document_voided",
                extra={
                    "kind": kind.value,
                    "document_number": header.document_number,
                    "reversal_count": len(reversed_ids),
                    "amount_paid": str(header.amount_paid),
                },
            )
            return header.to_dto()

    def void_payment(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        payment_id: UUID,
    ) -> PaymentRecord:
        """
        Void a payment: reverse its entry and un-apply it from every
        document that is not voided.

        Raises:
            PaymentNotFoundError: Unknown payment.
            InvalidTransitionError: The payment is already voided.
        """
        kind = DocumentKind(kind)
        row = self._lock_payment(context, kind, payment_id)
        if row.is_voided:
            raise InvalidTransitionError(str(payment_id), "voided", "void_payment")

        today = self._clock.today()
        reversal_id = None
        if row.entry_id is not None:
            reversal_id = self._engine.reverse_entry(context, row.entry_id, transaction_date=today)

        documents = self._lock_documents(
            context, kind, [app.document.id for app in row.applications]
        )
        for app in row.applications:
            header = documents[app.document.id]
            status = DocumentStatus(header.status)
            if status is DocumentStatus.VOIDED:
                logger.info(
                    "unapply_skipped_voided_document",
                    extra={"document_id": str(header.id), "payment_id": str(payment_id)},
                )
                continue
            amount_paid = header.amount_paid - app.applied_amount
            target = status_for_amounts(kind, header.total, amount_paid)
            transition = require_transition(kind, header.id, status, "unapply_payment", target)
            header.amount_paid = amount_paid
            header.amount_due = header.total - amount_paid
            header.status = transition.to_state
            header.updated_by_id = context.actor_id

        row.is_voided = True
        row.voided_at = today
        row.updated_by_id = context.actor_id
        self._flush("payment", row.id)

        logger.info(
            "payment_voided",
            extra={
                "payment_id": str(payment_id),
                "kind": kind.value,
                "reversal_entry_id": str(reversal_id) if reversal_id else None,
                "application_count": len(row.applications),
            },
        )
        return row.to_dto()

    def _reverse_source_entries(self, context, source_document_id: UUID, transaction_date):
        reversed_ids = []
        for entry_id in self._engine.entries_for_source(context, source_document_id):
            entry = self._engine.get_entry(context, entry_id)
            if entry.reversal_of_id is not None:
                continue
            reversed_ids.append(
                self._engine.reverse_entry(context, entry_id, transaction_date=transaction_date)
            )
        return reversed_ids

    # =========================================================================
    # Expenses
    # =========================================================================

    def record_expense(
        self,
        context: OrganizationContext,
        expense: ExpenseInput,
    ) -> ExpenseRecord:
        """
        Record a spend paid on the spot: Dr expense account, Cr payment
        account, posted as one expense_recorded entry keyed on the expense id.

        A repeated call with the same ``expense_id`` returns the expense
        already recorded and posts nothing.

        Raises:
            ValidationError: Non-positive amount, an expense account that is
                not an expense account, a payment account that is neither an
                asset nor a liability, or an ``expense_id`` owned by another
                organization.
        """
        if expense.expense_id is not None:
            existing = self._find_expense(context, expense.expense_id)
            if existing is not None:
                logger.info("expense_already_recorded", extra={"expense_id": str(existing.id)})
                return existing.to_dto()

        amount = self._amount(context, expense.amount, "amount")
        if amount <= 0:
            raise ValidationError("Expense amount must be positive", field="amount")
        try:
            method = PaymentMethod(expense.method)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown payment method: '{expense.method}'", field="method"
            ) from exc

        expense_account = self._directory.get_account(context, expense.expense_account_id)
        if expense_account.account_type is not AccountType.EXPENSE:
            raise ValidationError(
                f"Account {expense_account.code} is not an expense account",
                field="expense_account_id",
            )
        if expense.payment_account_id is None:
            payment_account = self._directory.resolve_system_account(context, SystemAccountRole.CASH)
        else:
            payment_account = self._directory.get_account(context, expense.payment_account_id)
        if payment_account.account_type not in (AccountType.ASSET, AccountType.LIABILITY):
            raise ValidationError(
                f"Payment account {payment_account.code} is neither an asset nor a liability",
                field="payment_account_id",
            )

        description = expense.description or "Expense"
        row = Expense(
            id=expense.expense_id or uuid4(),
            organization_id=context.organization_id,
            expense_account_id=expense_account.id,
            payment_account_id=payment_account.id,
            vendor_id=expense.vendor_id,
            expense_date=expense.expense_date or self._clock.today(),
            amount=amount,
            currency=context.currency.code,
            description=description,
            method=method.value,
            reference=expense.reference,
            is_voided=False,
            created_by_id=context.actor_id,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = self._find_expense(context, row.id)
            if winner is None:
                raise
            logger.warning("concurrent_expense_conflict", extra={"expense_id": str(row.id)})
            return winner.to_dto()

        total = context.money(amount)
        row.entry_id = self._engine.post_entry(
            context,
            TransactionType.EXPENSE_RECORDED,
            row.id,
            [
                EntryLine.dr(expense_account.id, total, description),
                EntryLine.cr(payment_account.id, total, description),
            ],
            transaction_date=row.expense_date,
            description=description,
        )
        self._flush("expense", row.id)

        logger.info(
            "expense_recorded",
            extra={
                "expense_id": str(row.id),
                "entry_id": str(row.entry_id),
                "amount": str(amount),
                "method": method.value,
            },
        )
        return row.to_dto()

    def void_expense(self, context: OrganizationContext, expense_id: UUID) -> ExpenseRecord:
        """
        Void an expense by reversing its entry.

        Raises:
            ExpenseNotFoundError: Unknown expense.
            InvalidTransitionError: The expense is already voided.
        """
        row = self._session.execute(
            select(Expense)
            .where(
                Expense.id == expense_id,
                Expense.organization_id == context.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise ExpenseNotFoundError(str(expense_id))
        if row.is_voided:
            raise InvalidTransitionError(str(expense_id), "voided", "void_expense")

        today = self._clock.today()
        reversal_id = None
        if row.entry_id is not None:
            reversal_id = self._engine.reverse_entry(context, row.entry_id, transaction_date=today)

        row.is_voided = True
        row.voided_at = today
        row.updated_by_id = context.actor_id
        self._flush("expense", row.id)

        logger.info(
            "expense_voided",
            extra={
                "expense_id": str(expense_id),
                "reversal_entry_id": str(reversal_id) if reversal_id else None,
            },
        )
        return row.to_dto()

    def _find_expense(self, context: OrganizationContext, expense_id: UUID) -> Expense | None:
        row = self._session.get(Expense, expense_id)
        if row is not None and row.organization_id != context.organization_id:
            raise ValidationError(
                f"Expense id {expense_id} belongs to another organization",
                field="expense_id",
            )
        return row

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_document(self, context: OrganizationContext, kind: DocumentKind, document_id: UUID):
        header_cls = tables_for(kind).header
        header = self._session.execute(
            select(header_cls)
            .where(
                header_cls.id == document_id,
                header_cls.organization_id == context.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if header is None:
            raise DocumentNotFoundError(str(document_id), kind.value)
        return header

    def _lock_documents(
        self,
        context: OrganizationContext,
        kind: DocumentKind,
        document_ids: list[UUID],
    ) -> dict:
        """Lock headers in sorted id order and return them keyed by id."""
        header_cls = tables_for(kind).header
        wanted = sorted(set(document_ids))
        if not wanted:
            return {}
        rows = self._session.execute(
            select(header_cls)
            .where(
                header_cls.id.in_(wanted),
                header_cls.organization_id == context.organization_id,
            )
            .order_by(header_cls.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        found = {row.id: row for row in rows}
        for document_id in wanted:
            if document_id not in found:
                raise DocumentNotFoundError(str(document_id), kind.value)
        return found

    def _lock_payment(self, context: OrganizationContext, kind: DocumentKind, payment_id: UUID):
        payment_cls = tables_for(kind).payment
        row = self._session.execute(
            select(payment_cls)
            .where(
                payment_cls.id == payment_id,
                payment_cls.organization_id == context.organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise PaymentNotFoundError(str(payment_id))
        return row

    def _flush(self, entity: str, entity_id: UUID) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            logger.warning(
                "stale_version_detected",
                extra={"entity": entity, "entity_id": str(entity_id)},
            )
            raise ConflictError(entity, str(entity_id)) from exc

    def _next_document_number(self, context: OrganizationContext, kind: DocumentKind) -> str:
        value = self._sequences.next_value(
            SequenceService.scoped(tables_for(kind).number_sequence, context.organization_id)
        )
        if kind is DocumentKind.INVOICE:
            return self.settings.format_invoice_number(value)
        return self.settings.format_bill_number(value)

    def _next_payment_number(self, context: OrganizationContext, kind: DocumentKind) -> str:
        value = self._sequences.next_value(
            SequenceService.scoped(tables_for(kind).payment_sequence, context.organization_id)
        )
        if kind is DocumentKind.INVOICE:
            return self.settings.format_payment_number(value)
        return self.settings.format_vendor_payment_number(value)

    @staticmethod
    def _decimal(value, field_name: str) -> Decimal:
        if isinstance(value, float):
            raise ValidationError(f"{field_name} must not be a float", field=field_name)
        try:
            return Decimal(str(value))
        except ArithmeticError as exc:
            raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name) from exc

    def _amount(self, context: OrganizationContext, value, field_name: str) -> Decimal:
        """Decimal amount rounded to the context currency; negatives rejected."""
        amount = context.money(self._decimal(value, field_name)).round().amount
        if amount < 0:
            raise ValidationError(f"{field_name} must not be negative", field=field_name)
        return amount
