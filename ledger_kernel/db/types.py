"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for financial-grade
    column types.  Centralizes precision and rounding so that every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  All monetary amounts use Decimal
      with explicit precision.
    - round_money() is the only sanctioned rounding function for amounts.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# 38 digits total, 9 decimal places
Amount = Annotated[Decimal, Numeric(38, 9)]

# ISO 4217 currency code (e.g., "USD", "EUR", "GBP")
CurrencyCode = Annotated[str, String(3)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def money_from_str(value: str) -> Decimal:
    """
    Create a monetary Decimal from string.

    Raises:
        decimal.InvalidOperation: If value cannot be converted to Decimal.
    """
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to ``decimal_places`` using
        ``rounding`` (ROUND_HALF_UP by default).
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
