"""
Module: ledger_kernel.models.organization
Responsibility: ORM persistence for organizations -- the tenant boundary.
Architecture position: Kernel > Models.  May import from db/base.py only.

Every other row in the ledger carries an organization_id that references
this table.  No query reads across organizations.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import CurrencyCode


class Organization(TrackedBase):
    """A business keeping its own books in a single functional currency."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ISO 4217 code every posting of this organization is denominated in
    functional_currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.functional_currency})>"
