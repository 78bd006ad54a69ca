"""Currency -- ISO 4217 registry and precision-derived rounding."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantize_string(self) -> str:
        """String for Decimal.quantize() to round to this currency's precision."""
        if self.decimal_places == 0:
            return "1"
        return "0." + "0" * self.decimal_places


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies an organization may keep its books in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar"),
        "NZD": CurrencyInfo("NZD", 2, "New Zealand Dollar"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "SEK": CurrencyInfo("SEK", 2, "Swedish Krona"),
        "NOK": CurrencyInfo("NOK", 2, "Norwegian Krone"),
        "DKK": CurrencyInfo("DKK", 2, "Danish Krone"),
        "PLN": CurrencyInfo("PLN", 2, "Polish Zloty"),
        "CZK": CurrencyInfo("CZK", 2, "Czech Koruna"),
        "HUF": CurrencyInfo("HUF", 2, "Hungarian Forint"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "ARS": CurrencyInfo("ARS", 2, "Argentine Peso"),
        "COP": CurrencyInfo("COP", 2, "Colombian Peso"),
        "INR": CurrencyInfo("INR", 2, "Indian Rupee"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "HKD": CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar"),
        "PHP": CurrencyInfo("PHP", 2, "Philippine Peso"),
        "THB": CurrencyInfo("THB", 2, "Thai Baht"),
        "MYR": CurrencyInfo("MYR", 2, "Malaysian Ringgit"),
        "IDR": CurrencyInfo("IDR", 2, "Indonesian Rupiah"),
        "ZAR": CurrencyInfo("ZAR", 2, "South African Rand"),
        "NGN": CurrencyInfo("NGN", 2, "Nigerian Naira"),
        "KES": CurrencyInfo("KES", 2, "Kenyan Shilling"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        "ILS": CurrencyInfo("ILS", 2, "Israeli New Shekel"),
        "TRY": CurrencyInfo("TRY", 2, "Turkish Lira"),
        # Zero decimal currencies
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "VND": CurrencyInfo("VND", 0, "Vietnamese Dong"),
        "ISK": CurrencyInfo("ISK", 0, "Icelandic Krona"),
        "UGX": CurrencyInfo("UGX", 0, "Ugandan Shilling"),
        # Three decimal currencies
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial"),
        "TND": CurrencyInfo("TND", 3, "Tunisian Dinar"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is a registered ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places for a currency."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid currency codes."""
        return frozenset(cls._CURRENCIES.keys())
