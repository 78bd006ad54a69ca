"""
ChartSeeder -- provision an organization's default chart of accounts.

Creates every account of a ``ChartTemplate`` (by default the one from
``ledger_config.get_active_config()``) through AccountDirectory, so the
same validation applies to seeded and user-created accounts.  Seeding is
idempotent: accounts whose code already exists are left as they are.
"""

from __future__ import annotations

from sqlalchemy import select

from ledger_config import ChartTemplate, get_active_config
from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, SystemAccountRole
from ledger_kernel.services.account_directory import (
    AccountDirectory,
    AccountRecord,
    AccountSpec,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.chart_seeder")


class ChartSeeder(BaseService[Account]):
    """Seeds the chart of accounts of one organization at a time."""

    def __init__(self, session, template: ChartTemplate | None = None, clock=None):
        super().__init__(session, clock)
        self._template = template

    @property
    def template(self) -> ChartTemplate:
        if self._template is None:
            self._template = get_active_config().chart
        return self._template

    def seed(self, context: OrganizationContext) -> list[AccountRecord]:
        """
        Create the template's accounts for ``context.organization_id``.

        Postconditions:
            - Every template account exists, with its system role.
            - Returns the accounts created by this call (empty on re-run).
        """
        directory = AccountDirectory(self.session, self.clock)
        existing = {
            code: account_id
            for code, account_id in self.session.execute(
                select(Account.code, Account.id).where(
                    Account.organization_id == context.organization_id
                )
            ).all()
        }

        created: list[AccountRecord] = []
        for seed in self.template.accounts:
            if seed.code in existing:
                continue
            parent_id = existing.get(seed.parent_code) if seed.parent_code else None
            record = directory.create_account(
                context,
                AccountSpec(
                    code=seed.code,
                    name=seed.name,
                    account_type=seed.account_type,
                    parent_account_id=parent_id,
                    system_role=SystemAccountRole(seed.system_role) if seed.system_role else None,
                ),
                is_system_account=seed.is_system,
            )
            existing[record.code] = record.id
            created.append(record)

        logger.info(
            "chart_seeded",
            extra={
                "organization_id": str(context.organization_id),
                "template": self.template.name,
                "created_count": len(created),
            },
        )
        return created
