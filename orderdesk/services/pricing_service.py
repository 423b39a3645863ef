"""
Order pricing - subtotal, discounts, tax and grand total.

Everything here is pure: callers pass line items and order-level amounts,
and get back an `OrderTotals` value. Amounts are Decimals at full precision;
rounding happens only in `OrderTotals.to_dict()` for display.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, Optional, Tuple

from orderdesk.utils.formatters import round_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')
DUPLICATE_DISCOUNT_TOLERANCE = Decimal('0.01')


class DiscountType:
    AMOUNT = 'amount'
    PERCENTAGE = 'percentage'

    ALL = (AMOUNT, PERCENTAGE)


@dataclass(frozen=True)
class AddonSelection:
    """Addon picked for a line item; title and price are snapshots."""
    addon_id: int
    title: str
    price: Decimal
    quantity: int = 1

    @property
    def line_amount(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class LineItem:
    """
    One order line.

    For weight-based items `unit_price` is already the price of the whole
    weighed amount and `quantity` is always 1.
    """
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int = 1
    variant_id: Optional[int] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    addons: Tuple[AddonSelection, ...] = ()
    is_weight_based: bool = False
    weight_grams: Optional[Decimal] = None
    weight_unit: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return item_subtotal(self)


@dataclass(frozen=True)
class Discount:
    """Manual order discount: flat amount or percentage of the subtotal."""
    type: str = DiscountType.AMOUNT
    value: Decimal = ZERO


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    coupon_discount_amount: Decimal
    discount_amount: Decimal
    points_discount_amount: Decimal
    discounted_subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    duplicate_discount_dropped: bool = field(default=False)

    def to_dict(self) -> dict:
        """Totals rounded to cents, for API responses and display."""
        return {
            'subtotal': round_money(self.subtotal),
            'coupon_discount_amount': round_money(self.coupon_discount_amount),
            'discount_amount': round_money(self.discount_amount),
            'points_discount_amount': round_money(self.points_discount_amount),
            'tax_amount': round_money(self.tax_amount),
            'shipping_amount': round_money(self.shipping_amount),
            'total_amount': round_money(self.total_amount),
        }


def item_subtotal(item: LineItem) -> Decimal:
    """Price of one line: base price times quantity plus addons per unit."""
    quantity = 1 if item.is_weight_based else item.quantity
    total = item.unit_price * quantity
    if item.addons:
        addons_total = sum((addon.line_amount for addon in item.addons), ZERO)
        total += addons_total * quantity
    return total


def calculate_subtotal(items: Iterable[LineItem]) -> Decimal:
    return sum((item_subtotal(item) for item in items), ZERO)


def resolve_discount_amount(subtotal: Decimal, discount: Optional[Discount]) -> Decimal:
    """Turn a manual discount into a currency amount."""
    if discount is None:
        return ZERO
    if discount.type == DiscountType.PERCENTAGE:
        return subtotal * discount.value / HUNDRED
    return discount.value


def is_duplicate_points_discount(discount_amount: Decimal, points_discount_amount: Decimal) -> bool:
    """True when the manual discount looks like a copy of the points discount."""
    return (
        discount_amount > 0
        and points_discount_amount > 0
        and abs(discount_amount - points_discount_amount) < DUPLICATE_DISCOUNT_TOLERANCE
    )


def calculate_totals(
    items: Iterable[LineItem],
    discount: Optional[Discount] = None,
    coupon_discount_amount: Decimal = ZERO,
    points_discount_amount: Decimal = ZERO,
    tax_rate: Decimal = ZERO,
    shipping_amount: Decimal = ZERO,
    dedupe_points_discount: bool = False,
) -> OrderTotals:
    """
    Compute order totals.

    Order of operations:
        subtotal - coupon - (manual discount + points discount)
        -> clamped at 0 -> tax on the clamped base -> + shipping

    Args:
        dedupe_points_discount: edit flow only. Drop the manual discount when
            it is within one cent of the points discount.
    """
    subtotal = calculate_subtotal(items)
    return totals_from_subtotal(
        subtotal,
        discount_amount=resolve_discount_amount(subtotal, discount),
        coupon_discount_amount=coupon_discount_amount,
        points_discount_amount=points_discount_amount,
        tax_rate=tax_rate,
        shipping_amount=shipping_amount,
        dedupe_points_discount=dedupe_points_discount,
    )


def totals_from_subtotal(
    subtotal: Decimal,
    discount_amount: Decimal = ZERO,
    coupon_discount_amount: Decimal = ZERO,
    points_discount_amount: Decimal = ZERO,
    tax_rate: Decimal = ZERO,
    shipping_amount: Decimal = ZERO,
    dedupe_points_discount: bool = False,
) -> OrderTotals:
    """Same as `calculate_totals` for callers that already hold a subtotal."""
    duplicate = False
    if dedupe_points_discount and is_duplicate_points_discount(discount_amount, points_discount_amount):
        logger.warning(
            "Manual discount %s matches points discount %s; treating it as a duplicate",
            discount_amount, points_discount_amount
        )
        discount_amount = ZERO
        duplicate = True

    discounted_subtotal = subtotal - coupon_discount_amount - (discount_amount + points_discount_amount)
    taxable = max(ZERO, discounted_subtotal)
    tax_amount = taxable * tax_rate / HUNDRED
    total_amount = taxable + tax_amount + shipping_amount

    return OrderTotals(
        subtotal=subtotal,
        coupon_discount_amount=coupon_discount_amount,
        discount_amount=discount_amount,
        points_discount_amount=points_discount_amount,
        discounted_subtotal=discounted_subtotal,
        tax_amount=tax_amount,
        shipping_amount=shipping_amount,
        total_amount=max(ZERO, total_amount),
        duplicate_discount_dropped=duplicate,
    )


def calculate_points_to_earn(totals: OrderTotals, settings) -> int:
    """
    Points a customer earns for an order.

    `settings` is a `LoyaltySettings`; the base is the grand total or the
    subtotal depending on its earning basis.
    """
    if not settings.enabled:
        return 0

    base_amount = totals.total_amount if settings.earning_basis == 'total' else totals.subtotal
    if base_amount < settings.minimum_order:
        return 0

    return int((base_amount * settings.earning_rate).to_integral_value(rounding=ROUND_FLOOR))
