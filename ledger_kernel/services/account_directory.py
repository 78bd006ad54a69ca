"""
Module: ledger_kernel.services.account_directory
Responsibility: Chart of accounts maintenance and system-role resolution.
    Owns the rules that keep the account tree well formed: valid types,
    derived normal sides, per-organization ownership, no cycles, and
    protection of seeded system accounts.
Architecture position: Kernel > Services.  Returns AccountRecord DTOs,
    never ORM Account instances.

Invariants enforced:
    - A parent account belongs to the same organization as its child.
    - Following parent links from any account never returns to it.
    - System accounts are never deleted.
    - Accounts referenced by journal lines are never deleted.

Failure modes:
    - InvalidAccountTypeError, AccountCycleError, ValidationError on bad input.
    - ForeignAccountError when an account id belongs to another organization.
    - AccountNotFoundError / SystemAccountNotFoundError on missing accounts.
    - SystemAccountDeletionError / AccountReferencedError on forbidden deletes.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import func, select

from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.exceptions import (
    AccountCycleError,
    AccountNotFoundError,
    AccountReferencedError,
    CurrencyMismatchError,
    ForeignAccountError,
    InvalidAccountTypeError,
    SystemAccountDeletionError,
    SystemAccountNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalSide,
    SystemAccountRole,
)
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_directory")


@dataclass(frozen=True)
class AccountSpec:
    """Input for create_account. ``normal_side`` overrides the derived side."""

    code: str
    name: str
    account_type: AccountType | str
    normal_side: NormalSide | str | None = None
    parent_account_id: UUID | None = None
    system_role: SystemAccountRole | None = None
    currency: str | None = None


@dataclass(frozen=True)
class AccountRecord:
    """Immutable view of an account."""

    id: UUID
    organization_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_side: NormalSide
    parent_account_id: UUID | None
    system_role: SystemAccountRole | None
    is_system_account: bool
    is_active: bool
    currency: str

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_side == NormalSide.DEBIT


class AccountDirectory(BaseService[Account]):
    """
    Chart of accounts service.

    All lookups are scoped to ``context.organization_id``; an id that exists
    in a different organization is reported as ForeignAccountError.
    """

    def _to_dto(self, account: Account) -> AccountRecord:
        return AccountRecord(
            id=account.id,
            organization_id=account.organization_id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            normal_side=NormalSide(account.normal_side),
            parent_account_id=account.parent_account_id,
            system_role=SystemAccountRole(account.system_role) if account.system_role else None,
            is_system_account=account.is_system_account,
            is_active=account.is_active,
            currency=account.currency,
        )

    def _get_owned(self, context: OrganizationContext, account_id: UUID) -> Account:
        """Load an account, enforcing that it belongs to the context's organization."""
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.organization_id != context.organization_id:
            raise ForeignAccountError(str(account_id), str(context.organization_id))
        return account

    def _assert_no_cycle(
        self,
        context: OrganizationContext,
        account_id: UUID,
        parent_account_id: UUID,
    ) -> None:
        """Walk up from the proposed parent; reaching account_id means a cycle."""
        seen: set[UUID] = set()
        current: UUID | None = parent_account_id
        while current is not None:
            if current == account_id or current in seen:
                logger.warning(
                    "account_cycle_rejected",
                    extra={
                        "account_id": str(account_id),
                        "parent_account_id": str(parent_account_id),
                    },
                )
                raise AccountCycleError(str(account_id), str(parent_account_id))
            seen.add(current)
            current = self._get_owned(context, current).parent_account_id

    def create_account(
        self,
        context: OrganizationContext,
        spec: AccountSpec,
        is_system_account: bool = False,
    ) -> AccountRecord:
        """
        Create an account in the context's organization.

        The normal side is debit for assets and expenses and credit for
        liabilities, equity and income unless ``spec.normal_side`` overrides
        it.  Accounts with a system role are always system accounts.

        Raises:
            InvalidAccountTypeError: Unknown account type.
            ValidationError: Blank code/name, duplicate code or role, bad side.
            CurrencyMismatchError: Currency differs from the functional currency.
            ForeignAccountError: Parent belongs to another organization.
            AccountCycleError: Parent would make the account its own ancestor.
        """
        try:
            account_type = AccountType(spec.account_type)
        except ValueError as exc:
            raise InvalidAccountTypeError(str(spec.account_type)) from exc

        if not spec.code or not spec.code.strip():
            raise ValidationError("Account code is required", field="code")
        if not spec.name or not spec.name.strip():
            raise ValidationError("Account name is required", field="name")

        if spec.normal_side is None:
            normal_side = account_type.default_normal_side
        else:
            try:
                normal_side = NormalSide(spec.normal_side)
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid normal side: '{spec.normal_side}'", field="normal_side"
                ) from exc

        currency = (spec.currency or context.currency.code).upper()
        if currency != context.currency.code:
            raise CurrencyMismatchError(context.currency.code, currency)

        code = spec.code.strip()
        duplicate = self.session.execute(
            select(Account.id).where(
                Account.organization_id == context.organization_id,
                Account.code == code,
            )
        ).first()
        if duplicate is not None:
            raise ValidationError(f"Account code '{code}' already exists", field="code")

        role = SystemAccountRole(spec.system_role) if spec.system_role else None
        if role is not None:
            taken = self.session.execute(
                select(Account.id).where(
                    Account.organization_id == context.organization_id,
                    Account.system_role == role.value,
                )
            ).first()
            if taken is not None:
                raise ValidationError(
                    f"System role '{role.value}' is already assigned", field="system_role"
                )

        account = Account(
            id=uuid4(),
            organization_id=context.organization_id,
            code=code,
            name=spec.name.strip(),
            account_type=account_type.value,
            normal_side=normal_side.value,
            system_role=role.value if role else None,
            is_system_account=is_system_account or role is not None,
            is_active=True,
            currency=currency,
            created_by_id=context.actor_id,
        )

        if spec.parent_account_id is not None:
            self._get_owned(context, spec.parent_account_id)
            self._assert_no_cycle(context, account.id, spec.parent_account_id)
            account.parent_account_id = spec.parent_account_id

        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "organization_id": str(context.organization_id),
                "account_id": str(account.id),
                "code": account.code,
                "account_type": account_type.value,
                "system_role": account.system_role,
            },
        )
        return self._to_dto(account)

    def reparent_account(
        self,
        context: OrganizationContext,
        account_id: UUID,
        new_parent_id: UUID | None,
    ) -> AccountRecord:
        """
        Move an account under a new parent (or to the top level with None).

        Raises:
            AccountCycleError: If the move would close a loop.
            ForeignAccountError: If either account belongs elsewhere.
            ValidationError: System accounts keep their place in the chart.
        """
        account = self._get_owned(context, account_id)
        if account.is_system_account:
            raise ValidationError(
                f"System account {account_id} cannot be moved", field="parent_account_id"
            )
        if new_parent_id is not None:
            self._get_owned(context, new_parent_id)
            self._assert_no_cycle(context, account_id, new_parent_id)

        account.parent_account_id = new_parent_id
        account.updated_by_id = context.actor_id
        self.session.flush()

        logger.info(
            "account_reparented",
            extra={
                "account_id": str(account_id),
                "parent_account_id": str(new_parent_id) if new_parent_id else None,
            },
        )
        return self._to_dto(account)

    def resolve_system_account(
        self,
        context: OrganizationContext,
        role: SystemAccountRole,
    ) -> AccountRecord:
        """
        Return the seeded account for ``role``.

        Raises:
            SystemAccountNotFoundError: If no account carries the role.
        """
        role = SystemAccountRole(role)
        account = self.session.execute(
            select(Account).where(
                Account.organization_id == context.organization_id,
                Account.system_role == role.value,
            )
        ).scalar_one_or_none()
        if account is None:
            raise SystemAccountNotFoundError(str(context.organization_id), role.value)
        return self._to_dto(account)

    def delete_account(self, context: OrganizationContext, account_id: UUID) -> None:
        """
        Remove an account that has never been posted to.

        Raises:
            SystemAccountDeletionError: System accounts are permanent.
            AccountReferencedError: The account has journal lines.
            ValidationError: The account still has child accounts.
        """
        account = self._get_owned(context, account_id)
        if account.is_system_account:
            raise SystemAccountDeletionError(str(account_id), account.system_role)

        line_count = self.session.execute(
            select(func.count(JournalLine.id)).where(JournalLine.account_id == account_id)
        ).scalar_one()
        if line_count:
            raise AccountReferencedError(str(account_id), line_count)

        has_children = self.session.execute(
            select(Account.id).where(Account.parent_account_id == account_id)
        ).first()
        if has_children is not None:
            raise ValidationError(
                f"Account {account_id} has child accounts", field="parent_account_id"
            )

        self.session.delete(account)
        self.session.flush()
        logger.info("account_deleted", extra={"account_id": str(account_id)})

    def deactivate_account(
        self, context: OrganizationContext, account_id: UUID
    ) -> AccountRecord:
        """
        Mark an account inactive. Inactive accounts reject new postings.

        Raises:
            ValidationError: System accounts stay active.
        """
        account = self._get_owned(context, account_id)
        if account.is_system_account:
            raise ValidationError(
                f"System account {account_id} cannot be deactivated", field="is_active"
            )
        account.is_active = False
        account.updated_by_id = context.actor_id
        self.session.flush()
        logger.info("account_deactivated", extra={"account_id": str(account_id)})
        return self._to_dto(account)

    def get_account(self, context: OrganizationContext, account_id: UUID) -> AccountRecord:
        return self._to_dto(self._get_owned(context, account_id))

    def get_by_code(self, context: OrganizationContext, code: str) -> AccountRecord:
        """
        Raises:
            AccountNotFoundError: If no account in the organization has ``code``.
        """
        account = self.session.execute(
            select(Account).where(
                Account.organization_id == context.organization_id,
                Account.code == code,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(code)
        return self._to_dto(account)

    def list_accounts(
        self,
        context: OrganizationContext,
        account_type: AccountType | None = None,
        active_only: bool = False,
    ) -> list[AccountRecord]:
        """List the organization's accounts ordered by code."""
        stmt = select(Account).where(Account.organization_id == context.organization_id)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if active_only:
            stmt = stmt.where(Account.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Account.code)
        return [self._to_dto(a) for a in self.session.execute(stmt).scalars().all()]
