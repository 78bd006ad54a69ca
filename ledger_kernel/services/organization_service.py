"""
Service layer for organizations.

Creates the tenant row and builds the OrganizationContext every other
service takes.  Provisioning workflows (sign-up, billing) live outside the
ledger; this is the minimal surface the ledger itself needs.
"""

from __future__ import annotations

from uuid import UUID

from ledger_kernel.domain.context import SYSTEM_ACTOR_ID, OrganizationContext
from ledger_kernel.domain.values import Currency
from ledger_kernel.exceptions import OrganizationNotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.organization import Organization
from ledger_kernel.services.base import BaseService

logger = get_logger("services.organization")


class OrganizationService(BaseService[Organization]):
    """Create organizations and resolve their contexts."""

    def create_organization(
        self,
        name: str,
        currency: str | Currency,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> OrganizationContext:
        """
        Create an organization keeping its books in ``currency``.

        Raises:
            ValidationError: If name is blank or the currency code is invalid.
        """
        if not name or not name.strip():
            raise ValidationError("Organization name is required", field="name")
        try:
            functional = currency if isinstance(currency, Currency) else Currency(currency)
        except ValueError as exc:
            raise ValidationError(str(exc), field="currency") from exc

        org = Organization(
            name=name.strip(),
            functional_currency=functional.code,
            created_by_id=actor_id,
        )
        self.session.add(org)
        self.session.flush()

        logger.info(
            "organization_created",
            extra={"organization_id": str(org.id), "currency": functional.code},
        )
        return OrganizationContext(org.id, functional, actor_id)

    def context_for(
        self,
        organization_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> OrganizationContext:
        """
        Build the context for an existing organization.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
        """
        org = self.session.get(Organization, organization_id)
        if org is None:
            raise OrganizationNotFoundError(str(organization_id))
        return OrganizationContext(org.id, Currency(org.functional_currency), actor_id)
