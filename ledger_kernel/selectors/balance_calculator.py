"""
Module: ledger_kernel.selectors.balance_calculator
Responsibility: Derives account balances, per-account ledgers and trial
    balances from journal lines.  Nothing here is cached or stored; every
    figure is computed on demand from the journal.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Natural sign: debit-normal accounts report debits minus credits,
      credit-normal accounts report credits minus debits.
    - Tenant isolation: every query filters on the context's organization.
    - account_ledger streams rows with ``yield_per`` so long histories are
      never fully materialized.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import aliased

from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ForeignAccountError,
    ValidationError,
)
from ledger_kernel.models.account import Account, AccountType, NormalSide
from ledger_kernel.models.journal import JournalEntry, JournalLine, TransactionType
from ledger_kernel.selectors.base import BaseSelector

LEDGER_BATCH_SIZE = 500


def compute_natural_balance(
    debit_total: Decimal,
    credit_total: Decimal,
    normal_side: NormalSide,
) -> Decimal:
    """
    Compute balance adjusted for normal side.

    DEBIT-normal (ASSET, EXPENSE): balance = debit_total - credit_total
    CREDIT-normal (LIABILITY, EQUITY, INCOME): balance = credit_total - debit_total

    Result is positive when the account has its expected normal direction.
    """
    if normal_side == NormalSide.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range. ``start`` must not be after ``end``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                f"Date range start {self.start} is after end {self.end}", field="date_range"
            )

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class LedgerRow:
    """One journal line in an account's history, with the balance after it."""

    transaction_date: date
    description: str
    debit: Money
    credit: Money
    running_balance: Money
    entry_id: UUID
    transaction_type: TransactionType
    seq: int


@dataclass(frozen=True)
class TrialBalanceRow:
    """Debit and credit totals of one account over a period."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    normal_side: NormalSide
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total

    @property
    def natural_balance(self) -> Decimal:
        return compute_natural_balance(self.debit_total, self.credit_total, self.normal_side)


class BalanceCalculator(BaseSelector):
    """
    Read-only balance queries over the journal.

    All amounts are returned in the context's functional currency, rounded
    to its minor unit.
    """

    def _get_owned(self, context: OrganizationContext, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.organization_id != context.organization_id:
            raise ForeignAccountError(str(account_id), str(context.organization_id))
        return account

    def _money(self, context: OrganizationContext, amount: Decimal | None) -> Money:
        return Money.of(amount or Decimal("0"), context.currency).round()

    def _sums(
        self,
        context: OrganizationContext,
        account_id: UUID,
        as_of_date: date,
    ) -> tuple[Decimal, Decimal]:
        row = self.session.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), Decimal("0")),
                func.coalesce(func.sum(JournalLine.credit_amount), Decimal("0")),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                JournalLine.account_id == account_id,
                JournalEntry.transaction_date <= as_of_date,
            )
        ).one()
        return Decimal(row[0] or 0), Decimal(row[1] or 0)

    def account_balance(
        self,
        context: OrganizationContext,
        account_id: UUID,
        as_of_date: date | None = None,
    ) -> Money:
        """
        Natural balance of an account over all lines dated on or before
        ``as_of_date`` (default: the clock's today).

        Raises:
            AccountNotFoundError / ForeignAccountError.
        """
        account = self._get_owned(context, account_id)
        debit, credit = self._sums(context, account_id, as_of_date or self.clock.today())
        return self._money(
            context, compute_natural_balance(debit, credit, NormalSide(account.normal_side))
        )

    def account_ledger(
        self,
        context: OrganizationContext,
        account_id: UUID,
        date_range: DateRange,
    ) -> Iterator[LedgerRow]:
        """
        Lazily yield the account's lines within ``date_range`` ordered by
        (transaction_date, seq, line_seq), each with the running balance.

        The running balance starts from the balance as of the day before
        ``date_range.start``.  Account ownership is checked before the
        iterator is returned.

        Raises:
            AccountNotFoundError / ForeignAccountError.
        """
        account = self._get_owned(context, account_id)
        normal_side = NormalSide(account.normal_side)
        debit, credit = self._sums(
            context, account_id, date_range.start - timedelta(days=1)
        )
        opening = compute_natural_balance(debit, credit, normal_side)
        return self._iter_ledger(context, account_id, date_range, normal_side, opening)

    def _iter_ledger(
        self,
        context: OrganizationContext,
        account_id: UUID,
        date_range: DateRange,
        normal_side: NormalSide,
        opening: Decimal,
    ) -> Iterator[LedgerRow]:
        stmt = (
            select(
                JournalEntry.id,
                JournalEntry.seq,
                JournalEntry.transaction_date,
                JournalEntry.transaction_type,
                JournalEntry.description.label("entry_description"),
                JournalLine.description.label("line_description"),
                JournalLine.debit_amount,
                JournalLine.credit_amount,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                JournalLine.account_id == account_id,
                JournalEntry.transaction_date >= date_range.start,
                JournalEntry.transaction_date <= date_range.end,
            )
            .order_by(
                JournalEntry.transaction_date,
                JournalEntry.seq,
                JournalLine.line_seq,
            )
            .execution_options(yield_per=LEDGER_BATCH_SIZE)
        )

        running = opening
        for row in self.session.execute(stmt):
            debit = Decimal(row.debit_amount)
            credit = Decimal(row.credit_amount)
            running += compute_natural_balance(debit, credit, normal_side)
            yield LedgerRow(
                transaction_date=row.transaction_date,
                description=row.line_description or row.entry_description,
                debit=self._money(context, debit),
                credit=self._money(context, credit),
                running_balance=self._money(context, running),
                entry_id=row.id,
                transaction_type=TransactionType(row.transaction_type),
                seq=row.seq,
            )

    def trial_balance(
        self,
        context: OrganizationContext,
        as_of_date: date | None = None,
        from_date: date | None = None,
    ) -> list[TrialBalanceRow]:
        """
        Debit and credit totals per account for lines dated on or before
        ``as_of_date`` (and on or after ``from_date`` when given).

        Postconditions:
            - One row per account with activity, ordered by account code.
            - Sum of debit_total equals sum of credit_total.
        """
        as_of_date = as_of_date or self.clock.today()
        debit_sum = func.sum(JournalLine.debit_amount).label("debit_total")
        credit_sum = func.sum(JournalLine.credit_amount).label("credit_total")

        query = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                Account.normal_side,
                debit_sum,
                credit_sum,
            )
            .join(JournalLine, JournalLine.account_id == Account.id)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                JournalEntry.transaction_date <= as_of_date,
            )
            .group_by(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                Account.normal_side,
            )
            .order_by(Account.code)
        )
        if from_date is not None:
            query = query.where(JournalEntry.transaction_date >= from_date)

        return [
            TrialBalanceRow(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=AccountType(row.account_type),
                normal_side=NormalSide(row.normal_side),
                debit_total=Decimal(row.debit_total or 0),
                credit_total=Decimal(row.credit_total or 0),
            )
            for row in self.session.execute(query).all()
        ]

    def net_effect_for_source(
        self,
        context: OrganizationContext,
        source_document_id: UUID,
    ) -> dict[UUID, Money]:
        """
        Net (debit - credit) per account over every entry posted for
        ``source_document_id`` plus every reversal of those entries.

        After a void, every value is zero.
        """
        originals = aliased(JournalEntry)
        source_entries = select(originals.id).where(
            originals.organization_id == context.organization_id,
            originals.source_document_id == source_document_id,
        )
        net = func.sum(JournalLine.debit_amount - JournalLine.credit_amount).label("net")
        rows = self.session.execute(
            select(JournalLine.account_id, net)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == context.organization_id,
                or_(
                    JournalEntry.source_document_id == source_document_id,
                    JournalEntry.reversal_of_id.in_(source_entries),
                ),
            )
            .group_by(JournalLine.account_id)
        ).all()
        return {row.account_id: self._money(context, Decimal(row.net or 0)) for row in rows}
