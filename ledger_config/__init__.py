"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``: the seed chart of accounts, payment terms,
    document numbering and conflict-retry settings.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel``; the kernel's chart
    seeder consumes the ``ChartTemplate`` it returns.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- structural validation failures.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_configuration
from ledger_config.schema import (
    ChartTemplate,
    LedgerConfiguration,
    LedgerSettings,
    SeedAccountDef,
)
from ledger_config.validator import validate_configuration

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"

__all__ = [
    "ChartTemplate",
    "LedgerConfiguration",
    "LedgerSettings",
    "SeedAccountDef",
    "get_active_config",
]


def get_active_config(path: Path | str | None = None) -> LedgerConfiguration:
    """The public configuration entrypoint.

    Resolution order for the file: the ``path`` argument, then the
    ``LEDGER_CONFIG_PATH`` environment variable, then the bundled
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    config = parse_configuration(load_yaml_file(resolved))

    errors = validate_configuration(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(resolved),
            "seed_account_count": len(config.chart.accounts),
        },
    )
    return config
