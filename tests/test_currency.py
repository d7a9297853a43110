"""
Tests for money handling
"""

import pytest
from decimal import Decimal

from welfare_ledger.currency import (
    Currency, ZERO, to_decimal, decimal_from_string, quantize_amount, decimal_to_json, format_amount
)


class TestToDecimal:
    """Test conversion of stored and user-supplied values"""

    def test_none_reads_as_zero(self):
        assert to_decimal(None) == ZERO
        assert to_decimal(None, default=Decimal('5')) == Decimal('5')

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal('0.1')

    def test_strings_with_symbols(self):
        assert decimal_from_string("₹ 1,00,000.50") == Decimal('100000.50')
        assert decimal_from_string("Rs. 2,500") == Decimal('2500')
        assert decimal_from_string("-USD 12.5") == Decimal('-12.5')

    @pytest.mark.parametrize("value", ["1e3", "12abc34", "1.2.3", "--5", "₹", "NaN"])
    def test_stray_characters_rejected(self, value):
        with pytest.raises(ValueError):
            decimal_from_string(value)

    @pytest.mark.parametrize("value", ["", "abc", True])
    def test_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestQuantize:
    """Test rounding to currency precision"""

    @pytest.mark.parametrize("value,expected", [
        ("450.005", "450.01"),
        ("450.004", "450.00"),
        ("-0.005", "-0.01"),
        ("12", "12.00"),
    ])
    def test_half_up(self, value, expected):
        assert str(quantize_amount(Decimal(value))) == expected

    def test_interest_example(self):
        # 15000 at 3% for a quarter
        assert quantize_amount(Decimal('15000') * Decimal('3.0') / Decimal('100')) == Decimal('450.00')


class TestFormatting:
    """Test display formatting"""

    @pytest.mark.parametrize("value,expected", [
        ("0", "INR 0.00"),
        ("1800", "INR 1,800.00"),
        ("100000", "INR 1,00,000.00"),
        ("12345678.9", "INR 1,23,45,678.90"),
        ("-2500.5", "-INR 2,500.50"),
    ])
    def test_indian_grouping(self, value, expected):
        assert format_amount(Decimal(value)) == expected

    def test_thousands_grouping_for_usd(self):
        assert format_amount(Decimal('1234567.891'), Currency.USD) == "USD 1,234,567.89"

    def test_currency_lookup(self):
        assert Currency.from_code("inr") is Currency.INR
        with pytest.raises(ValueError):
            Currency.from_code("XYZ")

    def test_decimal_to_json(self):
        assert decimal_to_json(Decimal('1.50')) == "1.50"
        assert decimal_to_json(7) == 7
