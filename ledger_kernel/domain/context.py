"""
OrganizationContext -- the explicit tenant and currency scope of a call.

Every engine, calculator and lifecycle operation receives one of these.
Nothing in the kernel reads the organization or currency from ambient
state; the context is the only tenant boundary a query is built from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from ledger_kernel.domain.values import Currency, Money

# Actor recorded on audit columns when the caller does not name one
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True, slots=True)
class OrganizationContext:
    """
    Organization id, functional currency and acting user for one call.

    Guarantees:
        - currency is a validated Currency (a str is normalized).
        - actor_id defaults to SYSTEM_ACTOR_ID.
    """

    organization_id: UUID
    currency: Currency
    actor_id: UUID = field(default=SYSTEM_ACTOR_ID)

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))

    def money(self, amount) -> Money:
        """Build a Money in this organization's functional currency."""
        return Money.of(amount, self.currency)

    def zero(self) -> Money:
        return Money.zero(self.currency)

    def as_actor(self, actor_id: UUID) -> OrganizationContext:
        """Return a copy of this context acting as another user."""
        return OrganizationContext(self.organization_id, self.currency, actor_id)
