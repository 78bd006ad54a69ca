"""
Unit tests for the currency registry and the Currency value object.
"""

import pytest

from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.values import Currency


class TestCurrencyRegistry:
    """Tests for the CurrencyRegistry class."""

    @pytest.mark.parametrize(
        "code,places",
        [("USD", 2), ("EUR", 2), ("JPY", 0), ("KRW", 0), ("KWD", 3), ("BHD", 3)],
    )
    def test_decimal_places(self, code, places):
        assert CurrencyRegistry.get_decimal_places(code) == places

    def test_unknown_code_defaults_to_two_places(self):
        assert CurrencyRegistry.get_decimal_places("ZZZ") == 2

    def test_is_valid_normalizes(self):
        assert CurrencyRegistry.is_valid(" usd ")

    @pytest.mark.parametrize("code", ["", None, "XXX", "US", 840])
    def test_is_valid_rejects(self, code):
        assert not CurrencyRegistry.is_valid(code)

    def test_get_info(self):
        info = CurrencyRegistry.get_info("jpy")
        assert info.code == "JPY"
        assert info.quantize_string == "1"

    def test_quantize_string(self):
        assert CurrencyRegistry.get_info("USD").quantize_string == "0.00"
        assert CurrencyRegistry.get_info("KWD").quantize_string == "0.000"

    def test_all_codes(self):
        codes = CurrencyRegistry.all_codes()
        assert {"USD", "EUR", "GBP", "JPY"} <= codes


class TestCurrency:
    """Tests for the Currency value object."""

    def test_normalized_to_upper(self):
        assert Currency(" eur ").code == "EUR"

    def test_invalid_code_raises(self):
        with pytest.raises(ValueError):
            Currency("ABC")

    def test_empty_code_raises(self):
        with pytest.raises(ValueError):
            Currency("")

    def test_equality_and_hash(self):
        assert Currency("usd") == Currency("USD")
        assert hash(Currency("usd")) == hash(Currency("USD"))

    def test_decimal_places_and_name(self):
        c = Currency("JPY")
        assert c.decimal_places == 0
        assert c.name == "Japanese Yen"

    def test_str_and_repr(self):
        assert str(Currency("GBP")) == "GBP"
        assert repr(Currency("GBP")) == "Currency('GBP')"
