"""
LedgerConfiguration schema.

Defines the human-authored, reviewable configuration of the ledger.  YAML
files are parsed into these frozen types by the loader and checked by the
validator before ``get_active_config()`` hands them out.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Tunable behaviour of the document lifecycle and the facades."""

    default_currency: str = "USD"
    payment_terms_days: int = 30
    conflict_retries: int = 3
    invoice_number_prefix: str = "INV-"
    bill_number_prefix: str = "BILL-"
    payment_number_prefix: str = "PMT-"
    vendor_payment_number_prefix: str = "VPMT-"
    document_number_width: int = 6

    def format_invoice_number(self, value: int) -> str:
        return f"{self.invoice_number_prefix}{value:0{self.document_number_width}d}"

    def format_bill_number(self, value: int) -> str:
        return f"{self.bill_number_prefix}{value:0{self.document_number_width}d}"

    def format_payment_number(self, value: int) -> str:
        return f"{self.payment_number_prefix}{value:0{self.document_number_width}d}"

    def format_vendor_payment_number(self, value: int) -> str:
        return f"{self.vendor_payment_number_prefix}{value:0{self.document_number_width}d}"


# ---------------------------------------------------------------------------
# Seed chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeedAccountDef:
    """One account created for every new organization."""

    code: str
    name: str
    account_type: str  # asset, liability, equity, income, expense
    system_role: str | None = None
    parent_code: str | None = None
    is_system: bool = False


@dataclass(frozen=True)
class ChartTemplate:
    """Ordered list of seed accounts. Parents appear before their children."""

    name: str
    accounts: tuple[SeedAccountDef, ...] = field(default_factory=tuple)

    def roles(self) -> frozenset[str]:
        return frozenset(a.system_role for a in self.accounts if a.system_role)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfiguration:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    settings: LedgerSettings
    chart: ChartTemplate
    checksum: str = ""
