"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into typed
``ledger_config.schema`` dataclass instances.  Runtime callers go through
``ledger_config.get_active_config()``; this module is its tooling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    ChartTemplate,
    LedgerConfiguration,
    LedgerSettings,
    SeedAccountDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse LedgerSettings; omitted keys keep their defaults."""
    defaults = LedgerSettings()
    numbering = data.get("document_numbers", {})
    return LedgerSettings(
        default_currency=str(data.get("default_currency", defaults.default_currency)).upper(),
        payment_terms_days=int(data.get("payment_terms_days", defaults.payment_terms_days)),
        conflict_retries=int(data.get("conflict_retries", defaults.conflict_retries)),
        invoice_number_prefix=numbering.get("invoice_prefix", defaults.invoice_number_prefix),
        bill_number_prefix=numbering.get("bill_prefix", defaults.bill_number_prefix),
        payment_number_prefix=numbering.get("payment_prefix", defaults.payment_number_prefix),
        vendor_payment_number_prefix=numbering.get(
            "vendor_payment_prefix", defaults.vendor_payment_number_prefix
        ),
        document_number_width=int(numbering.get("width", defaults.document_number_width)),
    )


def parse_seed_account(data: dict[str, Any]) -> SeedAccountDef:
    return SeedAccountDef(
        code=str(data["code"]),
        name=data["name"],
        account_type=data["type"],
        system_role=data.get("role"),
        parent_code=str(data["parent"]) if data.get("parent") is not None else None,
        is_system=bool(data.get("system", data.get("role") is not None)),
    )


def parse_chart_template(data: dict[str, Any]) -> ChartTemplate:
    return ChartTemplate(
        name=data.get("name", "default"),
        accounts=tuple(parse_seed_account(a) for a in data.get("accounts", [])),
    )


def parse_configuration(data: dict[str, Any]) -> LedgerConfiguration:
    """
    Parse a whole configuration document.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical source dict.
    """
    return LedgerConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        settings=parse_settings(data.get("settings", {})),
        chart=parse_chart_template(data["chart"]),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization. Deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
