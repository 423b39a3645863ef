"""
Display formatting helpers.

Pricing code keeps full Decimal precision; values are rounded here, at the
edge, when they are rendered or serialized to JSON.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from datetime import date, datetime
from typing import Any, Union

CENT = Decimal('0.01')


def round_money(value: Union[int, float, Decimal, str, None]) -> Decimal:
    """
    Round a monetary value to 2 decimals (half up).

    Examples:
        round_money(Decimal('7.2049')) -> Decimal('7.20')
        round_money(Decimal('0.005')) -> Decimal('0.01')
        round_money(None) -> Decimal('0.00')
    """
    if value is None or value == "":
        return Decimal('0.00')
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal('0.00')
    return number.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a monetary value as a plain 2-decimal string.

    Examples:
        money(Decimal('102.2')) -> "102.20"
        money(36) -> "36.00"
    """
    return f"{round_money(value):.2f}"


def to_json_value(value: Any) -> Any:
    """Recursively convert Decimals and dates so `jsonify` can emit them."""
    if isinstance(value, Decimal):
        return money(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value
