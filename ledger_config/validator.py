"""
Structural validation of a parsed LedgerConfiguration.

Returns a list of human-readable problems; an empty list means the
configuration can be used to seed organizations.
"""

from __future__ import annotations

from ledger_config.schema import LedgerConfiguration

ACCOUNT_TYPES = frozenset({"asset", "liability", "equity", "income", "expense"})

REQUIRED_ROLES = frozenset({
    "accounts_receivable",
    "accounts_payable",
    "cash",
    "income",
    "expense",
    "tax_liability",
    "retained_earnings",
})


def validate_configuration(config: LedgerConfiguration) -> list[str]:
    errors: list[str] = []
    settings = config.settings

    if settings.payment_terms_days < 0:
        errors.append("payment_terms_days must not be negative")
    if settings.conflict_retries < 0:
        errors.append("conflict_retries must not be negative")
    if settings.document_number_width < 1:
        errors.append("document number width must be at least 1")

    seen_codes: set[str] = set()
    seen_roles: set[str] = set()
    for account in config.chart.accounts:
        if account.code in seen_codes:
            errors.append(f"duplicate account code {account.code}")
        if account.account_type not in ACCOUNT_TYPES:
            errors.append(f"account {account.code}: unknown type '{account.account_type}'")
        if account.system_role:
            if account.system_role not in REQUIRED_ROLES:
                errors.append(f"account {account.code}: unknown role '{account.system_role}'")
            if account.system_role in seen_roles:
                errors.append(f"role '{account.system_role}' assigned twice")
            seen_roles.add(account.system_role)
        if account.parent_code is not None and account.parent_code not in seen_codes:
            errors.append(
                f"account {account.code}: parent {account.parent_code} must be declared first"
            )
        seen_codes.add(account.code)

    for role in sorted(REQUIRED_ROLES - seen_roles):
        errors.append(f"no account carries system role '{role}'")

    return errors
