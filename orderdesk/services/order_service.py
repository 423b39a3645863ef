"""
Order service with transactional logic.
Persists drafts as orders, edits order-level amounts and advances status.
"""
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from orderdesk.models import Customer, Order, OrderItem, OrderStatus
from orderdesk.exceptions import (
    BusinessLogicError, NotFoundError, ValidationError,
    InsufficientPointsError, RedemptionBelowMinimumError
)
from orderdesk.services import inventory_service, loyalty_service
from orderdesk.services.order_draft_service import OrderDraft, draft_totals, other_discounts
from orderdesk.services.pricing_service import (
    DiscountType, OrderTotals, calculate_subtotal, calculate_points_to_earn, totals_from_subtotal
)
from orderdesk.utils.formatters import round_money
from orderdesk.utils.payloads import dump_item_payload, parse_item_payload

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

_HANDLED_ERRORS = (BusinessLogicError, NotFoundError)


def create_order(
    session: Session,
    draft: OrderDraft,
    email: Optional[str] = None,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    selected_attributes: Optional[Dict[int, Dict[str, str]]] = None,
    item_notes: Optional[Dict[int, str]] = None,
) -> Order:
    """
    Persist a draft as an order.

    Totals and the points redemption are recomputed here; amounts the
    client computed are never trusted.
    """
    try:
        # 1. Idempotency check
        if idempotency_key:
            existing = session.query(Order).filter_by(idempotency_key=idempotency_key).first()
            if existing:
                raise BusinessLogicError(f'This order was already submitted (ID: {existing.id})', status_code=409)

        # 2. Validate draft
        if not draft.items:
            raise ValidationError('Please add at least one product to the order')

        customer = None
        if draft.customer_id is not None:
            customer = session.query(Customer).filter(Customer.id == draft.customer_id).first()
            if not customer:
                raise NotFoundError(f'Customer {draft.customer_id} not found')
            email = email or customer.email

        if not email:
            raise ValidationError('Please provide customer email')

        # 3. Re-select points against the real balance
        settings = loyalty_service.get_loyalty_settings(session)
        if draft.points_to_redeem > 0:
            if customer is None:
                raise ValidationError('Select a customer to redeem loyalty points')
            if not settings.enabled:
                raise BusinessLogicError('Loyalty points system is disabled')
            balance = loyalty_service.get_customer_points(session, customer.id)
            if draft.points_to_redeem > balance.available_points:
                raise InsufficientPointsError(draft.points_to_redeem, balance.available_points)
            selection = loyalty_service.select_redemption(
                draft.points_to_redeem, balance.available_points, settings,
                calculate_subtotal(draft.items), other_discounts(draft)
            )
            if 0 < selection.points_to_redeem < settings.redemption_minimum:
                raise RedemptionBelowMinimumError(selection.points_to_redeem, settings.redemption_minimum)
            draft = replace(
                draft,
                points_to_redeem=selection.points_to_redeem,
                points_discount_amount=selection.points_discount_amount,
            )
        else:
            draft = replace(draft, points_to_redeem=0, points_discount_amount=ZERO)

        # 4. Totals
        totals = draft_totals(draft)
        points_to_earn = calculate_points_to_earn(totals, settings) if customer else 0

        # 5. Create Order
        order = Order(
            customer_id=customer.id if customer else None,
            email=email,
            status=OrderStatus.PENDING,
            discount_type=draft.discount.type,
            discount_value=draft.discount.value,
            coupon_code=draft.coupon_code,
            tax_rate=draft.tax_rate,
            points_to_redeem=draft.points_to_redeem,
            points_to_earn=points_to_earn,
            idempotency_key=idempotency_key,
            notes=notes,
        )
        _apply_totals(order, totals)
        session.add(order)
        session.flush()
        order.order_number = f'ORD-{order.id:06d}'

        # 6. Create OrderItems
        selected_attributes = selected_attributes or {}
        item_notes = item_notes or {}
        order_items = []
        for index, item in enumerate(draft.items):
            order_items.append(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_name=item.product_name,
                variant_title=item.variant_title,
                sku=item.sku,
                price=item.unit_price,
                quantity=item.quantity,
                total_price=round_money(item.total_price),
                is_weight_based=item.is_weight_based,
                weight_quantity=item.weight_grams,
                weight_unit=item.weight_unit,
                addons=dump_item_payload(item.addons, selected_attributes.get(index), item_notes.get(index)),
            ))
        session.add_all(order_items)

        # 7. Take stock
        if inventory_service.stock_management_enabled(session):
            inventory_service.deduct_order_stock(session, order, order_items)

        # 8. Redeem points
        if draft.points_to_redeem > 0:
            loyalty_service.redeem_points(
                session, customer.id, draft.points_to_redeem, draft.points_discount_amount,
                settings, order_id=order.id, description=f'Redeemed on order {order.order_number}'
            )

        session.commit()
        logger.info(f"Order {order.order_number} created: total={order.total_amount} items={len(draft.items)}")
        return order

    except _HANDLED_ERRORS:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception("Error creating order")
        raise


def get_order(session: Session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Order {order_id} not found')
    return order


def edit_order_totals(order: Order, discount_amount: Decimal, shipping_amount: Decimal,
                      points_discount_amount: Decimal, dedupe_points_discount: bool) -> OrderTotals:
    """Totals for the edit screen: stored subtotal and coupon, new manual amounts."""
    return totals_from_subtotal(
        Decimal(order.subtotal),
        discount_amount=discount_amount,
        coupon_discount_amount=Decimal(order.coupon_discount_amount or 0),
        points_discount_amount=points_discount_amount,
        tax_rate=Decimal(order.tax_rate or 0),
        shipping_amount=shipping_amount,
        dedupe_points_discount=dedupe_points_discount,
    )


def update_order(
    session: Session,
    order_id: int,
    discount_amount: Optional[Decimal] = None,
    shipping_amount: Optional[Decimal] = None,
    points_to_redeem: Optional[int] = None,
    dedupe_points_discount: bool = True,
) -> Order:
    """
    Edit order-level amounts and recompute totals.

    Items are not editable here. The points redemption is re-selected against
    the customer's balance plus the points this order already holds on every
    edit, so a larger manual discount shrinks it back under the cap.
    """
    try:
        order = get_order(session, order_id)
        if order.status == OrderStatus.CANCELLED:
            raise BusinessLogicError('Cancelled orders cannot be edited')

        for value, name in ((discount_amount, 'discount_amount'), (shipping_amount, 'shipping_amount')):
            if value is not None and value < 0:
                raise ValidationError(f'{name} cannot be negative')
        if points_to_redeem is not None and points_to_redeem < 0:
            raise ValidationError('points_to_redeem cannot be negative')

        discount_amount = Decimal(order.discount_amount) if discount_amount is None else discount_amount
        shipping_amount = Decimal(order.shipping_amount) if shipping_amount is None else shipping_amount
        previous_points = order.points_to_redeem or 0
        requested = previous_points if points_to_redeem is None else points_to_redeem
        new_points = 0
        points_discount = ZERO

        settings = loyalty_service.get_loyalty_settings(session)
        if requested > 0:
            if order.customer_id is None:
                raise ValidationError('Order has no customer to redeem loyalty points from')

            available = previous_points + loyalty_service.get_customer_points(
                session, order.customer_id
            ).available_points
            if requested > available:
                raise InsufficientPointsError(requested, available)

            discounts = discount_amount + Decimal(order.coupon_discount_amount or 0)
            selection = loyalty_service.select_redemption(
                requested, available, settings, Decimal(order.subtotal), discounts
            )
            new_points = selection.points_to_redeem
            points_discount = selection.points_discount_amount
            if 0 < new_points < settings.redemption_minimum and new_points < requested:
                logger.warning(
                    f"Order {order.order_number}: capped redemption of {new_points} points is below "
                    f"the minimum {settings.redemption_minimum}; releasing it"
                )
                new_points = 0
                points_discount = ZERO

        totals = edit_order_totals(order, discount_amount, shipping_amount, points_discount, dedupe_points_discount)

        if new_points != previous_points:
            loyalty_service.adjust_order_redemption(
                session, order.customer_id, order.id, previous_points, new_points, points_discount, settings
            )

        order.discount_type = DiscountType.AMOUNT
        order.discount_value = totals.discount_amount
        order.points_to_redeem = new_points
        _apply_totals(order, totals)
        if order.customer_id is not None:
            order.points_to_earn = calculate_points_to_earn(totals, settings)

        session.commit()
        logger.info(f"Order {order.order_number} edited: total={order.total_amount}")
        return order

    except _HANDLED_ERRORS:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"Error editing order {order_id}")
        raise


def parse_status(status: Any) -> OrderStatus:
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(f'Invalid order status: {status}')


def update_order_status(session: Session, order_id: int, status: str) -> Order:
    """
    Move an order to a new status.

    Completing an order credits its earned points once. Cancelling returns
    redeemed points, takes back points the order earned and puts its stock
    back on hand.
    """
    try:
        new_status = parse_status(status)
        order = get_order(session, order_id)
        if order.status == OrderStatus.CANCELLED:
            raise BusinessLogicError('Cancelled orders cannot change status')

        settings = loyalty_service.get_loyalty_settings(session)

        if new_status == OrderStatus.COMPLETED and order.customer_id and not order.points_awarded and settings.enabled:
            loyalty_service.award_points(
                session, order.customer_id,
                order_amount=Decimal(order.total_amount),
                subtotal_amount=Decimal(order.subtotal),
                settings=settings,
                order_id=order.id,
            )
            order.points_awarded = True

        if new_status == OrderStatus.CANCELLED:
            if order.customer_id and order.points_to_redeem:
                loyalty_service.adjust_order_redemption(
                    session, order.customer_id, order.id,
                    previous_points=order.points_to_redeem, new_points=0,
                    discount_amount=Decimal('0'), settings=settings
                )
            if order.customer_id and order.points_awarded:
                loyalty_service.revoke_order_points(session, order.customer_id, order.id)
                order.points_awarded = False
            inventory_service.restore_order_stock(session, order)

        order.status = new_status
        session.commit()
        logger.info(f"Order {order.order_number} status -> {new_status.value}")
        return order

    except _HANDLED_ERRORS:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"Error changing status of order {order_id}")
        raise


def order_to_dict(order: Order) -> Dict[str, Any]:
    items = []
    for item in order.items:
        payload = parse_item_payload(item.addons)
        items.append({
            'id': item.id,
            'product_id': item.product_id,
            'variant_id': item.variant_id,
            'product_name': item.product_name,
            'variant_title': item.variant_title,
            'sku': item.sku,
            'price': item.price,
            'quantity': item.quantity,
            'total_price': item.total_price,
            'is_weight_based': item.is_weight_based,
            'weight_grams': _exact(item.weight_quantity),
            'weight_unit': item.weight_unit,
            'addons': [
                {'addon_id': a.addon_id, 'title': a.title, 'price': a.price, 'quantity': a.quantity}
                for a in payload.addons
            ],
            'selected_attributes': payload.selected_attributes,
            'note': payload.note,
        })

    return {
        'id': order.id,
        'order_number': order.order_number,
        'customer_id': order.customer_id,
        'email': order.email,
        'status': order.status.value,
        'subtotal': order.subtotal,
        'coupon_code': order.coupon_code,
        'coupon_discount_amount': order.coupon_discount_amount,
        'discount': {'type': order.discount_type, 'value': _exact(order.discount_value)},
        'discount_amount': order.discount_amount,
        'points_to_redeem': order.points_to_redeem,
        'points_discount_amount': order.points_discount_amount,
        'tax_rate': _exact(order.tax_rate),
        'tax_amount': order.tax_amount,
        'shipping_amount': order.shipping_amount,
        'total_amount': order.total_amount,
        'points_to_earn': order.points_to_earn,
        'notes': order.notes,
        'created_at': order.created_at,
        'items': items,
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _exact(value: Optional[Decimal]) -> Optional[str]:
    """Rates and weights keep their stored scale; only money is rounded to cents."""
    return None if value is None else str(value)


def _apply_totals(order: Order, totals: OrderTotals) -> None:
    """Copy a totals snapshot onto the order, rounded to the column scale."""
    rounded = totals.to_dict()
    order.subtotal = rounded['subtotal']
    order.coupon_discount_amount = rounded['coupon_discount_amount']
    order.discount_amount = rounded['discount_amount']
    order.points_discount_amount = rounded['points_discount_amount']
    order.tax_amount = rounded['tax_amount']
    order.shipping_amount = rounded['shipping_amount']
    order.total_amount = rounded['total_amount']
