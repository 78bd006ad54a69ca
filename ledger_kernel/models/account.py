"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique per organization (uq_account_org_code).
    - system_role is unique per organization (uq_account_org_role); NULLs
      do not collide, so any number of non-system accounts may exist.
    - Accounts form a tree; cycle prevention lives in AccountDirectory.

Failure modes:
    - IntegrityError on a duplicate code or role within one organization.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import CurrencyCode, ShortCode


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def default_normal_side(self) -> "NormalSide":
        """Debit for assets and expenses, credit for everything else."""
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalSide.DEBIT
        return NormalSide.CREDIT


class NormalSide(str, Enum):
    """Side on which an account's balance increases."""

    DEBIT = "debit"
    CREDIT = "credit"


class SystemAccountRole(str, Enum):
    """Roles the posting rules resolve to a concrete account."""

    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    ACCOUNTS_PAYABLE = "accounts_payable"
    CASH = "cash"
    INCOME = "income"
    EXPENSE = "expense"
    TAX_LIABILITY = "tax_liability"
    RETAINED_EARNINGS = "retained_earnings"


class Account(TrackedBase):
    """
    Chart of accounts entry -- a single node in an organization's ledger tree.

    Guarantees:
        - account_type is one of the AccountType values.
        - normal_side is DEBIT or CREDIT.
        - is_system_account is True for every account seeded with a role.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        UniqueConstraint("organization_id", "system_role", name="uq_account_org_role"),
        Index("idx_account_org_type", "organization_id", "account_type"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # Human-readable account number, e.g. "1200"
    code: Mapped[ShortCode] = mapped_column(nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_side: Mapped[NormalSide] = mapped_column(String(10), nullable=False)

    parent_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    system_role: Mapped[str | None] = mapped_column(String(40), nullable=True)

    is_system_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_side == NormalSide.DEBIT
