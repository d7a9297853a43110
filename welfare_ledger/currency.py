"""
Currency and Decimal Helpers

Amounts throughout the ledger are plain Decimal values in a single currency.
This module owns parsing, rounding and display. NEVER uses float for
monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from enum import Enum
from typing import Any, Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    INR = ("INR", 2, "₹")  # Indian Rupee
    USD = ("USD", 2, "$")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        for currency in cls:
            if currency.code == code.upper():
                return currency
        raise ValueError(f"Unsupported currency code: {code}")


def to_decimal(value: Union[Decimal, int, str, float, None], default: Decimal = ZERO) -> Decimal:
    """
    Convert a stored or user-supplied value to Decimal.

    None maps to ``default`` so nullable columns such as late fees read as
    zero. Floats are routed through ``str`` to avoid binary artefacts.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a monetary amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        return decimal_from_string(value)
    raise ValueError(f"Cannot convert {type(value).__name__} to Decimal")


_CURRENCY_MARKS = re.compile(r'(INR|USD|Rs\.?|₹|\$|,|\s)', re.IGNORECASE)
_PLAIN_DECIMAL = re.compile(r'[+-]?(\d+(\.\d*)?|\.\d+)')


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Currency codes and symbols, grouping commas and whitespace are dropped;
    anything else that is not part of a plain signed decimal is rejected.

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = _CURRENCY_MARKS.sub('', value)
    if not _PLAIN_DECIMAL.fullmatch(clean_value):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def quantize_amount(value: Decimal, currency: Currency = Currency.INR) -> Decimal:
    """Round to currency precision using ROUND_HALF_UP"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def decimal_to_json(value: Any) -> Any:
    """Render Decimals as strings for JSON payloads"""
    if isinstance(value, Decimal):
        return str(value)
    return value


def _group_indian(digits: str) -> str:
    # 12345678 -> 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_amount(value: Decimal, currency: Currency = Currency.INR) -> str:
    """
    Format for display

    INR uses lakh/crore grouping (``INR 1,00,000.00``); other currencies use
    thousands grouping.
    """
    amount = quantize_amount(value, currency)
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):.{currency.precision}f}"
    whole, _, fraction = text.partition(".")

    if currency == Currency.INR:
        whole = _group_indian(whole)
    else:
        whole = f"{int(whole):,}"

    body = f"{whole}.{fraction}" if fraction else whole
    return f"{sign}{currency.code} {body}"
