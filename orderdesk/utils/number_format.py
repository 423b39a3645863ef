"""Number parsing utilities for request payloads."""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

DECIMAL_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


def to_decimal(value: Any, default: Optional[Decimal] = Decimal('0')) -> Optional[Decimal]:
    """
    Coerce a JSON/form value to Decimal without losing precision.

    - None and empty strings return `default`
    - floats go through str() so 0.1 stays 0.1
    - NaN and infinities are rejected

    Raises:
        ValueError: if the value cannot be read as a finite number.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f'Invalid number: {value!r}')
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    else:
        cleaned = str(value).strip()
        if not cleaned:
            return default
        if not DECIMAL_PATTERN.match(cleaned):
            raise ValueError(f'Invalid number: {value!r}')
        try:
            number = Decimal(cleaned)
        except (InvalidOperation, ValueError):
            raise ValueError(f'Invalid number: {value!r}')

    if not number.is_finite():
        raise ValueError(f'Invalid number: {value!r}')
    return number


def parse_amount(value: Any, field: str = 'amount') -> Decimal:
    """
    Parse a non-negative monetary amount.

    Raises:
        ValueError: if the value is invalid or negative.
    """
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValueError(f'{field} must be a number')
    if amount < 0:
        raise ValueError(f'{field} cannot be negative')
    return amount


def parse_int(value: Any, field: str = 'value', default: int = 0) -> int:
    """
    Parse a whole number (quantities, points).

    Fractional input is rejected instead of truncated.
    """
    if value is None or value == '':
        return default
    try:
        number = to_decimal(value)
    except ValueError:
        raise ValueError(f'{field} must be a whole number')
    if number != number.to_integral_value():
        raise ValueError(f'{field} must be a whole number')
    return int(number)
