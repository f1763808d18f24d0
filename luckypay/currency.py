"""
Currency Support Module

Naira amounts with proper Decimal precision. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from enum import Enum
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with precision and display symbol"""
    NGN = ("NGN", 2, "₦")  # Nigerian Naira, 2 decimal places
    
    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


def to_decimal(value: Union[Decimal, int, str, float]) -> Decimal:
    """Convert a stored or user supplied value to Decimal via its string form"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a monetary value")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def quantize(value: Decimal, currency: Currency = Currency.NGN) -> Decimal:
    """Round a Decimal to the currency precision"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def format_currency(amount: Union[Decimal, int, str], currency: Currency = Currency.NGN) -> str:
    """Render an amount with the currency symbol and thousands separators"""
    value = quantize(to_decimal(amount), currency)
    sign = "-" if value < 0 else ""
    return f"{sign}{currency.symbol}{abs(value):,.{currency.precision}f}"


def mask_amount(currency: Currency = Currency.NGN) -> str:
    """Placeholder shown while the balance is hidden"""
    return f"{currency.symbol}***,***"
