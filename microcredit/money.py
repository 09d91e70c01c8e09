"""
Monetary Amount Helpers

Decimal conversion and rounding for loan amounts. NEVER uses float for
monetary values; floats handed in by callers are converted through their
string form.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Optional, Union
import re

from .config import get_config

# Set global decimal context for financial precision
getcontext().prec = 28

AmountLike = Union[Decimal, int, float, str]

ZERO = Decimal('0')

CURRENCY_PREFIX = re.compile(r'^(?:[A-Z]{3}|[$€£¥₹])\s*')


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied amount to Decimal

    Args:
        value: Decimal, int, float or numeric string ("1,200.50", "KES 500"
            and "5e3" accepted)

    Returns:
        Decimal value

    Raises:
        ValueError: If the value cannot be converted to a finite Decimal
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        # Drop thousands separators and a leading currency symbol or ISO code
        clean_value = CURRENCY_PREFIX.sub('', value.strip().replace(',', '')).strip()
        try:
            result = Decimal(clean_value)
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    else:
        raise ValueError(f"Cannot convert {value!r} to Decimal")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    if result.as_tuple().exponent > 0:
        # 5E+3 -> 5000 so stored amounts stay in plain notation
        result = result.quantize(Decimal(1))
    return result


def quantize_amount(value: Decimal, precision: Optional[int] = None) -> Decimal:
    """Round to the configured amount precision using ROUND_HALF_UP"""
    if precision is None:
        precision = get_config().amount_precision
    return value.quantize(Decimal('0.1') ** precision, rounding=ROUND_HALF_UP)

