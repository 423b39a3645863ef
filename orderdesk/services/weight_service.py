"""Weight-based pricing for products sold by mass."""
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from orderdesk.exceptions import ValidationError
from orderdesk.models.product import StockManagementType
from orderdesk.utils.number_format import to_decimal

GRAMS_PER_KG = Decimal('1000')

# Accepted spellings -> canonical unit
_UNIT_ALIASES = {
    'g': 'grams',
    'gram': 'grams',
    'grams': 'grams',
    'kg': 'kg',
    'kilogram': 'kg',
    'kilograms': 'kg',
}

WEIGHT_INPUT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-z]+)?$")


def normalize_unit(unit: Optional[str]) -> str:
    """Map a unit spelling to 'grams' or 'kg'."""
    if unit is None:
        return 'grams'
    canonical = _UNIT_ALIASES.get(str(unit).strip().lower())
    if canonical is None:
        raise ValidationError(f"Unsupported weight unit: {unit}")
    return canonical


def convert_to_grams(value: Decimal, unit: Optional[str]) -> Decimal:
    if normalize_unit(unit) == 'kg':
        return value * GRAMS_PER_KG
    return value


def convert_from_grams(grams: Decimal, unit: Optional[str]) -> Decimal:
    if normalize_unit(unit) == 'kg':
        return grams / GRAMS_PER_KG
    return grams


def price_per_gram(price_per_unit, base_weight_unit: Optional[str]) -> Decimal:
    """
    Price of one gram for a product priced per `base_weight_unit`.

    A NULL base unit means the stored price is already per gram. Anything
    other than grams or kg is rejected instead of being read as grams.
    """
    price = to_decimal(price_per_unit)
    if base_weight_unit in (None, ''):
        return price
    if normalize_unit(base_weight_unit) == 'kg':
        return price / GRAMS_PER_KG
    return price


def calculate_weight_based_price(weight, unit: Optional[str], price_per_unit, base_weight_unit: Optional[str]) -> Decimal:
    """
    Price for `weight` (in `unit`) of a product priced per base unit.

    Zero or missing weight prices at 0; callers validate before submitting.
    """
    weight_value = to_decimal(weight)
    if not weight_value or weight_value <= 0:
        return Decimal('0')
    weight_in_grams = convert_to_grams(weight_value, unit)
    return weight_in_grams * price_per_gram(price_per_unit, base_weight_unit)


def parse_weight_input(text: Optional[str], default_unit: str = 'grams') -> Optional[Tuple[Decimal, str]]:
    """
    Parse free-form weight input.

    Examples:
        parse_weight_input("250") -> (Decimal('250'), 'grams')
        parse_weight_input("1.5 kg") -> (Decimal('1.5'), 'kg')
        parse_weight_input("abc") -> None
    """
    if text is None:
        return None
    cleaned = str(text).strip().lower()
    if not cleaned:
        return None

    match = WEIGHT_INPUT_PATTERN.match(cleaned)
    if not match:
        return None

    unit = match.group(2) or default_unit
    if unit not in _UNIT_ALIASES:
        return None
    return Decimal(match.group(1)), normalize_unit(unit)


def validate_weight(value) -> List[str]:
    """Return validation messages for a requested weight (empty when valid)."""
    try:
        weight = to_decimal(value, default=None)
    except ValueError:
        return ['Weight must be a number']
    if weight is None or weight <= 0:
        return ['Please enter a valid weight']
    return []


def format_weight(value, unit: Optional[str] = 'grams') -> str:
    """
    Format a weight with its unit label.

    Examples:
        format_weight(250, 'grams') -> "250.0g"
        format_weight(Decimal('1.5'), 'kg') -> "1.50kg"
    """
    number = to_decimal(value)
    if normalize_unit(unit) == 'kg':
        return f"{number:.2f}kg"
    return f"{number:.1f}g"


def is_weight_based_product(stock_management_type: Optional[str]) -> bool:
    return stock_management_type == StockManagementType.WEIGHT
