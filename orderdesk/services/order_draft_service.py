"""
Order Draft Service - the order being composed in the admin screen.

A draft is an immutable value. Every edit goes through a reducer that
returns a new draft, and totals are always derived with `draft_totals`,
never stored on the draft itself.
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from orderdesk.exceptions import ValidationError, NotFoundError
from orderdesk.models import Product, ProductVariant, ProductAddon, ProductType
from orderdesk.services.pricing_service import (
    AddonSelection, Discount, DiscountType, LineItem, OrderTotals,
    calculate_subtotal, calculate_totals, resolve_discount_amount
)
from orderdesk.services.loyalty_service import (
    LoyaltySettings, select_redemption, select_max_redemption
)
from orderdesk.services import weight_service
from orderdesk.utils.number_format import to_decimal, parse_amount, parse_int

ZERO = Decimal('0')


@dataclass(frozen=True)
class OrderDraft:
    items: Tuple[LineItem, ...] = ()
    discount: Discount = Discount()
    coupon_discount_amount: Decimal = ZERO
    coupon_code: Optional[str] = None
    points_to_redeem: int = 0
    points_discount_amount: Decimal = ZERO
    use_all_points: bool = False
    tax_rate: Decimal = ZERO
    shipping_amount: Decimal = ZERO
    customer_id: Optional[int] = None


def draft_totals(draft: OrderDraft, dedupe_points_discount: bool = False) -> OrderTotals:
    return calculate_totals(
        draft.items,
        discount=draft.discount,
        coupon_discount_amount=draft.coupon_discount_amount,
        points_discount_amount=draft.points_discount_amount,
        tax_rate=draft.tax_rate,
        shipping_amount=draft.shipping_amount,
        dedupe_points_discount=dedupe_points_discount,
    )


def other_discounts(draft: OrderDraft) -> Decimal:
    """Manual plus coupon discount, the part points are redeemed on top of."""
    subtotal = calculate_subtotal(draft.items)
    return resolve_discount_amount(subtotal, draft.discount) + draft.coupon_discount_amount


# =====================================================
# REDUCERS
# =====================================================

def add_item(draft: OrderDraft, item: LineItem) -> OrderDraft:
    return replace(draft, items=draft.items + (item,))


def remove_item(draft: OrderDraft, index: int) -> OrderDraft:
    if not 0 <= index < len(draft.items):
        raise NotFoundError(f'Item #{index} is not in the order')
    return replace(draft, items=draft.items[:index] + draft.items[index + 1:])


def update_item_quantity(draft: OrderDraft, index: int, quantity: int) -> OrderDraft:
    """Change a line quantity; non-positive quantities and weight items are left as is."""
    if not 0 <= index < len(draft.items):
        raise NotFoundError(f'Item #{index} is not in the order')
    item = draft.items[index]
    if quantity <= 0 or item.is_weight_based:
        return draft
    items = list(draft.items)
    items[index] = replace(item, quantity=quantity)
    return replace(draft, items=tuple(items))


def set_discount(draft: OrderDraft, discount_type: str, value: Decimal) -> OrderDraft:
    if discount_type not in DiscountType.ALL:
        raise ValidationError(f'Invalid discount type: {discount_type}')
    if value < 0:
        raise ValidationError('Discount cannot be negative')
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise ValidationError('Percentage discount cannot exceed 100')
    return replace(draft, discount=Discount(type=discount_type, value=value))


def set_coupon_discount(draft: OrderDraft, amount: Decimal, code: Optional[str] = None) -> OrderDraft:
    if amount < 0:
        raise ValidationError('Coupon discount cannot be negative')
    code = (code or '').strip() or None
    if code and len(code) > 64:
        raise ValidationError('Coupon code is too long')
    return replace(draft, coupon_discount_amount=amount, coupon_code=code)


def set_shipping(draft: OrderDraft, amount: Decimal) -> OrderDraft:
    if amount < 0:
        raise ValidationError('Shipping amount cannot be negative')
    return replace(draft, shipping_amount=amount)


def set_tax_rate(draft: OrderDraft, rate: Decimal) -> OrderDraft:
    if rate < 0:
        raise ValidationError('Tax rate cannot be negative')
    return replace(draft, tax_rate=rate)


def apply_points(draft: OrderDraft, requested_points: int, available_points: int, settings: LoyaltySettings) -> OrderDraft:
    selection = select_redemption(
        requested_points, available_points, settings,
        calculate_subtotal(draft.items), other_discounts(draft)
    )
    return replace(
        draft,
        points_to_redeem=selection.points_to_redeem,
        points_discount_amount=selection.points_discount_amount,
        use_all_points=False,
    )


def toggle_use_all_points(draft: OrderDraft, available_points: int, settings: LoyaltySettings) -> OrderDraft:
    if draft.use_all_points:
        return clear_points(draft)
    selection = select_max_redemption(
        available_points, settings,
        calculate_subtotal(draft.items), other_discounts(draft)
    )
    return replace(
        draft,
        points_to_redeem=selection.points_to_redeem,
        points_discount_amount=selection.points_discount_amount,
        use_all_points=True,
    )


def clear_points(draft: OrderDraft) -> OrderDraft:
    return replace(draft, points_to_redeem=0, points_discount_amount=ZERO, use_all_points=False)


# =====================================================
# LINE ITEMS
# =====================================================

def build_line_item(
    product: Optional[Product],
    variant: Optional[ProductVariant] = None,
    quantity: int = 1,
    weight: Optional[Decimal] = None,
    weight_unit: str = 'grams',
    custom_price: Optional[Decimal] = None,
    addons: Iterable[AddonSelection] = (),
) -> LineItem:
    """
    Price a catalog product into a line item.

    Raises:
        ValidationError: with every blocking message at once.
    """
    if product is None:
        raise ValidationError('Please select a product')

    errors: List[str] = []
    addons = tuple(addons) if product.is_group else ()

    if not product.active:
        errors.append(f'Product "{product.name}" is not active')
    if product.product_type == ProductType.VARIABLE and variant is None:
        errors.append('Please select a variant')
    if variant is not None and variant.product_id != product.id:
        errors.append('Variant does not belong to the selected product')

    if product.is_weight_based:
        errors.extend(weight_service.validate_weight(weight))
    elif quantity is None or quantity <= 0:
        errors.append('Please enter a valid quantity')

    base_price = to_decimal(product.price)
    if product.is_group and base_price == 0 and not addons:
        errors.append('Please select at least one addon for this group product')

    if errors:
        raise ValidationError(errors)

    price = to_decimal(variant.price) if variant is not None else base_price
    weight_grams = None
    if product.is_weight_based:
        weight_grams = weight_service.convert_to_grams(to_decimal(weight), weight_unit)
        price = weight_service.calculate_weight_based_price(
            weight, weight_unit, product.price_per_unit, product.base_weight_unit
        )
        quantity = 1

    if custom_price is not None:
        price = custom_price

    return LineItem(
        product_id=product.id,
        product_name=product.name,
        unit_price=price,
        quantity=quantity,
        variant_id=variant.id if variant is not None else None,
        variant_title=variant.title if variant is not None else None,
        sku=(variant.sku if variant is not None and variant.sku else product.sku) or '',
        addons=addons,
        is_weight_based=product.is_weight_based,
        weight_grams=weight_grams,
        weight_unit=weight_service.normalize_unit(weight_unit) if product.is_weight_based else None,
    )


def resolve_line_item(session: Session, data: Dict[str, Any]) -> LineItem:
    """Load product, variant and addons named in `data` and build the line item."""
    errors = []
    try:
        product_id = parse_int(data.get('product_id'), 'product_id', default=None)
        variant_id = parse_int(data.get('variant_id'), 'variant_id', default=None)
        quantity = parse_int(data.get('quantity'), 'quantity', default=1)
    except ValueError as e:
        raise ValidationError(str(e))

    weight = data.get('weight')
    weight_unit = data.get('weight_unit') or 'grams'
    if isinstance(weight, str) and weight.strip():
        parsed = weight_service.parse_weight_input(weight, weight_unit)
        if parsed is None:
            errors.append('Please enter a valid weight')
        else:
            weight, weight_unit = parsed

    custom_price = None
    if data.get('custom_price') not in (None, ''):
        try:
            custom_price = parse_amount(data['custom_price'], 'custom_price')
        except ValueError as e:
            errors.append(str(e))

    if errors:
        raise ValidationError(errors)

    product = None
    if product_id is not None:
        product = session.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f'Product {product_id} not found')

    variant = None
    if variant_id is not None:
        variant = session.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise NotFoundError(f'Variant {variant_id} not found')

    selections = []
    if product is not None:
        selections = _resolve_addons(session, product, data.get('addons') or [])

    return build_line_item(
        product, variant,
        quantity=quantity,
        weight=weight,
        weight_unit=weight_unit,
        custom_price=custom_price,
        addons=selections,
    )


def _resolve_addons(session: Session, product: Product, requested: List[Dict[str, Any]]) -> List[AddonSelection]:
    """Snapshot title and price of each requested addon offered by `product`."""
    if not requested:
        return []

    offered = {
        pa.addon_id: pa
        for pa in session.query(ProductAddon).filter(ProductAddon.product_id == product.id).all()
        if pa.is_active and pa.addon.is_active
    }

    selections = []
    for entry in requested:
        try:
            addon_id = parse_int(entry.get('addon_id'), 'addon_id', default=None)
            quantity = parse_int(entry.get('quantity'), 'addon quantity', default=1)
        except ValueError as e:
            raise ValidationError(str(e))
        if quantity <= 0:
            continue
        product_addon = offered.get(addon_id)
        if product_addon is None:
            raise ValidationError(f'Addon {addon_id} is not available for "{product.name}"')
        selections.append(AddonSelection(
            addon_id=addon_id,
            title=product_addon.addon.title,
            price=to_decimal(product_addon.effective_price),
            quantity=quantity,
        ))
    return selections


# =====================================================
# SERIALIZATION
# =====================================================

def line_item_to_dict(item: LineItem) -> Dict[str, Any]:
    return {
        'product_id': item.product_id,
        'variant_id': item.variant_id,
        'product_name': item.product_name,
        'variant_title': item.variant_title,
        'sku': item.sku,
        'unit_price': str(item.unit_price),
        'quantity': item.quantity,
        'total_price': str(item.total_price),
        'addons': [
            {'addon_id': a.addon_id, 'title': a.title, 'price': str(a.price), 'quantity': a.quantity}
            for a in item.addons
        ],
        'is_weight_based': item.is_weight_based,
        'weight_grams': str(item.weight_grams) if item.weight_grams is not None else None,
        'weight_unit': item.weight_unit,
    }


def line_item_from_dict(data: Dict[str, Any]) -> LineItem:
    try:
        is_weight_based = bool(data.get('is_weight_based', False))
        quantity = parse_int(data.get('quantity'), 'quantity', default=1)
        addons = tuple(
            AddonSelection(
                addon_id=a.get('addon_id'),
                title=a.get('title') or '',
                price=parse_amount(a.get('price'), 'addon price'),
                quantity=parse_int(a.get('quantity'), 'addon quantity', default=1),
            )
            for a in data.get('addons') or []
        )
        item = LineItem(
            product_id=parse_int(data.get('product_id'), 'product_id', default=None),
            product_name=data.get('product_name') or '',
            unit_price=parse_amount(data.get('unit_price'), 'unit_price'),
            quantity=quantity,
            variant_id=parse_int(data.get('variant_id'), 'variant_id', default=None),
            variant_title=data.get('variant_title'),
            sku=data.get('sku'),
            addons=addons,
            is_weight_based=is_weight_based,
            weight_grams=to_decimal(data.get('weight_grams'), default=None),
            weight_unit=data.get('weight_unit'),
        )
    except (ValueError, AttributeError) as e:
        raise ValidationError(str(e))

    errors = []
    if item.product_id is None:
        errors.append('Line item is missing product_id')
    if is_weight_based:
        if item.quantity != 1:
            errors.append('Weight-based items must have quantity 1')
        if not item.weight_grams or item.weight_grams <= 0:
            errors.append('Please enter a valid weight')
    elif item.quantity <= 0:
        errors.append('Please enter a valid quantity')
    if errors:
        raise ValidationError(errors)
    return item


def draft_to_dict(draft: OrderDraft) -> Dict[str, Any]:
    return {
        'items': [line_item_to_dict(item) for item in draft.items],
        'discount': {'type': draft.discount.type, 'value': str(draft.discount.value)},
        'coupon_discount_amount': str(draft.coupon_discount_amount),
        'coupon_code': draft.coupon_code,
        'points_to_redeem': draft.points_to_redeem,
        'points_discount_amount': str(draft.points_discount_amount),
        'use_all_points': draft.use_all_points,
        'tax_rate': str(draft.tax_rate),
        'shipping_amount': str(draft.shipping_amount),
        'customer_id': draft.customer_id,
    }


def draft_from_dict(data: Dict[str, Any], default_tax_rate: Decimal = ZERO, default_shipping: Decimal = ZERO) -> OrderDraft:
    """
    Build a draft from a JSON body.

    Monetary fields go through the same reducers the UI uses, so invalid
    values fail with the same messages.
    """
    if not isinstance(data, dict):
        raise ValidationError('Order draft must be a JSON object')

    items = data.get('items') or []
    if not isinstance(items, list):
        raise ValidationError('items must be a list')

    draft = OrderDraft(items=tuple(line_item_from_dict(item) for item in items))

    discount = data.get('discount') or {}
    if not isinstance(discount, dict):
        raise ValidationError('discount must be an object with type and value')
    try:
        discount_value = to_decimal(discount.get('value'))
        coupon = to_decimal(data.get('coupon_discount_amount'))
        tax_rate = to_decimal(data.get('tax_rate'), default=default_tax_rate)
        shipping = to_decimal(data.get('shipping_amount'), default=default_shipping)
        points = parse_int(data.get('points_to_redeem'), 'points_to_redeem')
        points_discount = parse_amount(data.get('points_discount_amount'), 'points_discount_amount')
        customer_id = parse_int(data.get('customer_id'), 'customer_id', default=None)
    except (ValueError, AttributeError) as e:
        raise ValidationError(str(e))

    draft = set_discount(draft, discount.get('type') or DiscountType.AMOUNT, discount_value)
    coupon_code = data.get('coupon_code')
    if coupon_code is not None and not isinstance(coupon_code, str):
        raise ValidationError('coupon_code must be a string')
    draft = set_coupon_discount(draft, coupon, coupon_code)
    draft = set_tax_rate(draft, tax_rate)
    draft = set_shipping(draft, shipping)

    if points < 0:
        raise ValidationError('points_to_redeem cannot be negative')

    return replace(
        draft,
        points_to_redeem=points,
        points_discount_amount=points_discount,
        use_all_points=bool(data.get('use_all_points', False)),
        customer_id=customer_id,
    )
