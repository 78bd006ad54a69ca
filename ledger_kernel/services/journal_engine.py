"""
JournalEngine -- the only writer of journal entries and journal lines.

Responsibility:
    Turns a list of debit/credit lines into one balanced, immutable journal
    entry, and turns an existing entry into its compensating reversal.

Architecture position:
    Kernel > Services.  Called by the document lifecycle for every business
    event, and directly by callers posting manual adjustments.

Invariants enforced:
    - Balance: sum(debits) == sum(credits) in the context currency, checked
      before anything is written.
    - Tenant isolation: every line's account belongs to the context's
      organization.
    - Idempotency: at most one entry per (organization, source document,
      transaction type).  A repeat call returns the existing entry id.
    - Append-only: the original of a reversal is never touched; at most one
      reversal exists per entry.
    - Ordering: seq is a store-generated insertion number, allocated as the
      last step before insert without a per-organization lock.

Failure modes:
    - EmptyEntryError / ValidationError / CurrencyMismatchError on bad lines.
    - UnbalancedEntryError when debits != credits.
    - AccountNotFoundError, ForeignAccountError, AccountInactiveError.
    - EntryNotFoundError when reversing an unknown entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.domain.values import Currency, Money
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    CurrencyMismatchError,
    EmptyEntryError,
    EntryNotFoundError,
    ForeignAccountError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine, TransactionType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_engine")


@dataclass(frozen=True)
class EntryLine:
    """
    One line of a posting request: an account and exactly one positive
    amount, on either the debit or the credit side.
    """

    account_id: UUID
    debit: Money | None = None
    credit: Money | None = None
    description: str = ""

    @classmethod
    def dr(cls, account_id: UUID, amount: Money, description: str = "") -> EntryLine:
        return cls(account_id=account_id, debit=amount, description=description)

    @classmethod
    def cr(cls, account_id: UUID, amount: Money, description: str = "") -> EntryLine:
        return cls(account_id=account_id, credit=amount, description=description)

    @property
    def amount(self) -> Money:
        return self.debit if self.debit is not None else self.credit

    @property
    def is_debit(self) -> bool:
        return self.debit is not None


@dataclass(frozen=True)
class JournalLineRecord:
    line_seq: int
    account_id: UUID
    debit: Money
    credit: Money
    description: str


@dataclass(frozen=True)
class JournalEntryRecord:
    """Immutable view of a posted journal entry and its lines."""

    id: UUID
    organization_id: UUID
    seq: int
    transaction_date: date
    transaction_type: TransactionType
    source_document_id: UUID
    reversal_of_id: UUID | None
    description: str
    currency: Currency
    lines: tuple[JournalLineRecord, ...]

    @property
    def total_debits(self) -> Money:
        return sum((line.debit for line in self.lines), Money.zero(self.currency))

    @property
    def total_credits(self) -> Money:
        return sum((line.credit for line in self.lines), Money.zero(self.currency))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalEngine(BaseService[JournalEntry]):
    """
    Posts and reverses journal entries.

    Contract:
        Flushes, never commits.  Every call is scoped to one
        OrganizationContext and writes in that context's currency.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._sequence_service = SequenceService(session)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        context: OrganizationContext,
        transaction_type: TransactionType | str,
        source_document_id: UUID,
        lines: Sequence[EntryLine],
        transaction_date: date | None = None,
        description: str = "",
    ) -> UUID:
        """
        Append one balanced entry and return its id.

        Preconditions:
            - ``lines`` is non-empty; each line carries exactly one positive
              amount in ``context.currency``.

        Postconditions:
            - Exactly one entry exists for (organization, source document,
              transaction type); its id is returned.  A repeat call returns
              the existing id and writes nothing.

        Raises:
            EmptyEntryError: No lines.
            ValidationError: A line with zero, negative, or two amounts.
            CurrencyMismatchError: A line in a foreign currency.
            UnbalancedEntryError: Debits != credits.
            AccountNotFoundError / ForeignAccountError / AccountInactiveError.
        """
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid transaction type: '{transaction_type}'", field="transaction_type"
            ) from exc

        return self._write_entry(
            context,
            tx_type,
            source_document_id,
            lines,
            transaction_date=transaction_date,
            description=description,
        )

    def reverse_entry(
        self,
        context: OrganizationContext,
        entry_id: UUID,
        transaction_date: date | None = None,
    ) -> UUID:
        """
        Post the compensating entry for ``entry_id`` and return its id.

        Every debit of the original becomes a credit on the same account and
        vice versa.  The reversal keeps the original's source document,
        except adjustments, whose reversal is keyed on the original entry id.

        Raises:
            EntryNotFoundError: Unknown entry (or another organization's).
            ValidationError: ``entry_id`` is itself a reversal.
        """
        original = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.organization_id == context.organization_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if original is None:
            raise EntryNotFoundError(str(entry_id))

        if original.reversal_of_id is not None:
            raise ValidationError(
                f"Entry {entry_id} is a reversal and cannot be reversed", field="entry_id"
            )

        existing = self._find_reversal(entry_id)
        if existing is not None:
            logger.info(
                "reversal_idempotent",
                extra={"entry_id": str(entry_id), "reversal_entry_id": str(existing.id)},
            )
            return existing.id

        original_type = TransactionType(original.transaction_type)
        if original_type is TransactionType.ADJUSTMENT:
            source_document_id = original.id
        else:
            source_document_id = original.source_document_id

        currency = context.currency
        mirrored = [
            EntryLine(
                account_id=line.account_id,
                debit=Money.of(line.credit_amount, currency) if line.credit_amount else None,
                credit=Money.of(line.debit_amount, currency) if line.debit_amount else None,
                description=line.description,
            )
            for line in original.lines
        ]

        reversal_id = self._write_entry(
            context,
            original_type.reversal_type,
            source_document_id,
            mirrored,
            transaction_date=transaction_date,
            description=f"Reversal of entry #{original.seq}"
            + (f": {original.description}" if original.description else ""),
            reversal_of_id=original.id,
            allow_inactive=True,
        )

        logger.info(
            "reversal_completed",
            extra={
                "entry_id": str(entry_id),
                "reversal_entry_id": str(reversal_id),
                "transaction_type": original_type.reversal_type.value,
            },
        )
        return reversal_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, context: OrganizationContext, entry_id: UUID) -> JournalEntryRecord:
        """
        Raises:
            EntryNotFoundError: Unknown entry (or another organization's).
        """
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None or entry.organization_id != context.organization_id:
            raise EntryNotFoundError(str(entry_id))
        return self._to_dto(entry, context.currency)

    def entries_for_source(
        self, context: OrganizationContext, source_document_id: UUID
    ) -> list[UUID]:
        """Ids of every entry posted for a source document, in seq order."""
        return list(
            self.session.execute(
                select(JournalEntry.id)
                .where(
                    JournalEntry.organization_id == context.organization_id,
                    JournalEntry.source_document_id == source_document_id,
                )
                .order_by(JournalEntry.seq)
            ).scalars()
        )

    def find_reversal(self, context: OrganizationContext, entry_id: UUID) -> UUID | None:
        reversal = self._find_reversal(entry_id)
        if reversal is None or reversal.organization_id != context.organization_id:
            return None
        return reversal.id

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _to_dto(entry: JournalEntry, currency: Currency) -> JournalEntryRecord:
        return JournalEntryRecord(
            id=entry.id,
            organization_id=entry.organization_id,
            seq=entry.seq,
            transaction_date=entry.transaction_date,
            transaction_type=TransactionType(entry.transaction_type),
            source_document_id=entry.source_document_id,
            reversal_of_id=entry.reversal_of_id,
            description=entry.description,
            currency=currency,
            lines=tuple(
                JournalLineRecord(
                    line_seq=line.line_seq,
                    account_id=line.account_id,
                    debit=Money.of(line.debit_amount, currency),
                    credit=Money.of(line.credit_amount, currency),
                    description=line.description,
                )
                for line in entry.lines
            ),
        )

    def _find_reversal(self, entry_id: UUID) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(JournalEntry.reversal_of_id == entry_id)
        ).scalar_one_or_none()

    def _get_existing_entry(
        self,
        organization_id: UUID,
        source_document_id: UUID,
        transaction_type: TransactionType,
    ) -> JournalEntry | None:
        """Locked lookup of the entry owning an idempotency key."""
        return self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.source_document_id == source_document_id,
                JournalEntry.transaction_type == transaction_type.value,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def _validate_lines(
        self,
        context: OrganizationContext,
        transaction_type: TransactionType,
        source_document_id: UUID,
        lines: Sequence[EntryLine],
    ) -> tuple[Decimal, Decimal]:
        if not lines:
            raise EmptyEntryError(str(source_document_id), transaction_type.value)

        total_debit = Decimal("0")
        total_credit = Decimal("0")
        for index, line in enumerate(lines, start=1):
            if (line.debit is None) == (line.credit is None):
                raise ValidationError(
                    f"Line {index} must carry exactly one of debit or credit",
                    field="lines",
                )
            amount = line.amount
            if amount.currency != context.currency:
                raise CurrencyMismatchError(context.currency.code, amount.currency.code)
            if not amount.is_positive:
                raise ValidationError(
                    f"Line {index} amount must be positive, got {amount.amount}",
                    field="lines",
                )
            if line.is_debit:
                total_debit += amount.amount
            else:
                total_credit += amount.amount

        balanced = total_debit == total_credit
        logger.info(
            "balance_validated",
            extra={
                "source_document_id": str(source_document_id),
                "transaction_type": transaction_type.value,
                "currency": context.currency.code,
                "sum_debit": str(total_debit),
                "sum_credit": str(total_credit),
                "balanced": balanced,
            },
        )
        if not balanced:
            logger.warning(
                "unbalanced_entry",
                extra={
                    "source_document_id": str(source_document_id),
                    "imbalance": str(total_debit - total_credit),
                },
            )
            raise UnbalancedEntryError(
                str(total_debit), str(total_credit), context.currency.code
            )
        return total_debit, total_credit

    def _check_accounts(
        self,
        context: OrganizationContext,
        lines: Sequence[EntryLine],
        allow_inactive: bool,
    ) -> None:
        for account_id in dict.fromkeys(line.account_id for line in lines):
            account = self.session.get(Account, account_id)
            if account is None:
                raise AccountNotFoundError(str(account_id))
            if account.organization_id != context.organization_id:
                logger.warning(
                    "foreign_account_rejected",
                    extra={
                        "account_id": str(account_id),
                        "organization_id": str(context.organization_id),
                    },
                )
                raise ForeignAccountError(str(account_id), str(context.organization_id))
            if not account.is_active and not allow_inactive:
                raise AccountInactiveError(str(account_id))

    def _write_entry(
        self,
        context: OrganizationContext,
        transaction_type: TransactionType,
        source_document_id: UUID,
        lines: Sequence[EntryLine],
        transaction_date: date | None,
        description: str,
        reversal_of_id: UUID | None = None,
        allow_inactive: bool = False,
    ) -> UUID:
        total_debit, _ = self._validate_lines(
            context, transaction_type, source_document_id, lines
        )

        existing = self._get_existing_entry(
            context.organization_id, source_document_id, transaction_type
        )
        if existing is not None:
            logger.info(
                "journal_post_idempotent",
                extra={
                    "entry_id": str(existing.id),
                    "source_document_id": str(source_document_id),
                    "transaction_type": transaction_type.value,
                },
            )
            return existing.id

        self._check_accounts(context, lines, allow_inactive)

        entry = JournalEntry(
            id=uuid4(),
            organization_id=context.organization_id,
            transaction_date=transaction_date or self.clock.today(),
            transaction_type=transaction_type.value,
            source_document_id=source_document_id,
            reversal_of_id=reversal_of_id,
            description=description,
            created_by_id=context.actor_id,
        )
        entry.lines = [
            JournalLine(
                id=uuid4(),
                account_id=line.account_id,
                line_seq=line_seq,
                debit_amount=line.debit.amount if line.is_debit else Decimal("0"),
                credit_amount=Decimal("0") if line.is_debit else line.credit.amount,
                currency=context.currency.code,
                description=line.description,
                created_by_id=context.actor_id,
            )
            for line_seq, line in enumerate(lines, start=1)
        ]

        savepoint = self.session.begin_nested()
        try:
            entry.seq = self._sequence_service.next_entry_seq()
            self.session.add(entry)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "concurrent_insert_conflict",
                extra={
                    "source_document_id": str(source_document_id),
                    "transaction_type": transaction_type.value,
                },
            )
            winner = self._get_existing_entry(
                context.organization_id, source_document_id, transaction_type
            )
            if winner is None and reversal_of_id is not None:
                winner = self._find_reversal(reversal_of_id)
            if winner is None:
                raise
            return winner.id

        for line in entry.lines:
            logger.debug(
                "line_written",
                extra={
                    "entry_id": str(entry.id),
                    "line_seq": line.line_seq,
                    "account_id": str(line.account_id),
                    "debit": str(line.debit_amount),
                    "credit": str(line.credit_amount),
                },
            )

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "organization_id": str(context.organization_id),
                "seq": entry.seq,
                "transaction_type": transaction_type.value,
                "source_document_id": str(source_document_id),
                "transaction_date": str(entry.transaction_date),
                "line_count": len(entry.lines),
                "total": str(total_debit),
                "reversal_of_id": str(reversal_of_id) if reversal_of_id else None,
            },
        )
        return entry.id
