"""
Inventory service - stock checks and stock movements for orders.

Orders take their stock when they are created and give it back when they
are cancelled. Weight-based products are counted in grams, everything else
in units. Nothing is checked or moved unless `stock_management_enabled` is on.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from orderdesk.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from orderdesk.models import (
    Order, OrderItem, Product, ProductInventory, ProductVariant,
    StockMove, StockMoveLine, StockMoveType, StockReferenceType
)
from orderdesk.services import settings_service
from orderdesk.services.weight_service import format_weight, is_weight_based_product

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
UNITS = 'units'
GRAMS = 'grams'

DEFAULT_INVENTORY_SETTINGS = {
    'stock_management_enabled': {
        'value': 'false', 'type': 'boolean',
        'description': 'Check and deduct inventory when orders are created',
    },
}

StockKey = Tuple[int, Optional[int]]


@dataclass
class StockRequirement:
    label: str
    unit: str
    amount: Decimal


def stock_management_enabled(session: Session) -> bool:
    return settings_service.get_setting(session, 'stock_management_enabled', False) is True


def describe_amount(amount: Decimal, unit: str) -> str:
    if unit == GRAMS:
        return format_weight(amount, GRAMS)
    return f'{int(amount)}'


def order_requirements(session: Session, items: Iterable[OrderItem]) -> Dict[StockKey, StockRequirement]:
    """
    Stock needed per (product, variant); repeated lines are summed.

    The product row decides between grams and units, not the item snapshot.
    """
    needed: Dict[StockKey, StockRequirement] = {}
    for item in items:
        product = session.get(Product, item.product_id)
        if product is None:
            raise BusinessLogicError(f'Product not found for {item.product_name}')

        if is_weight_based_product(product.stock_management_type):
            unit, amount = GRAMS, Decimal(item.weight_quantity or 0)
        else:
            unit, amount = UNITS, Decimal(item.quantity)

        key = (item.product_id, item.variant_id)
        if key in needed:
            needed[key].amount += amount
        else:
            label = f'{item.product_name} ({item.variant_title})' if item.variant_title else item.product_name
            needed[key] = StockRequirement(label, unit, amount)
    return needed


def deduct_order_stock(session: Session, order: Order, items: Iterable[OrderItem]) -> StockMove:
    """
    Check every line against the stock on hand, then take it out.

    Raises before anything changes when a line has no inventory record or
    not enough stock. Flushes but does not commit.
    """
    needed = order_requirements(session, items)

    inventories = {}
    for key, requirement in needed.items():
        inventory = _lock_inventory(session, *key)
        if inventory is None:
            raise BusinessLogicError(
                f'No inventory record found for {requirement.label}. '
                'Create an inventory record first or disable stock management.'
            )
        available = _level(inventory, requirement.unit)
        if available < requirement.amount:
            raise InsufficientStockError(
                requirement.label,
                describe_amount(requirement.amount, requirement.unit),
                describe_amount(available, requirement.unit),
            )
        inventories[key] = inventory

    move = _apply_move(
        session, StockMoveType.OUT, StockReferenceType.ORDER, order.id,
        needed, inventories, sign=-1, notes=f'Order {order.order_number} created'
    )
    order.stock_deducted = True
    logger.info(f"Stock taken for order {order.order_number}: {len(needed)} line(s)")
    return move


def restore_order_stock(session: Session, order: Order) -> Optional[StockMove]:
    """Put back the stock a cancelled order took. No-op when none was taken."""
    if not order.stock_deducted:
        return None

    needed = order_requirements(session, order.items)
    inventories = {}
    for key, requirement in list(needed.items()):
        inventory = _lock_inventory(session, *key)
        if inventory is None:
            logger.warning(f"No inventory record for {requirement.label}; not restored for order {order.order_number}")
            del needed[key]
            continue
        inventories[key] = inventory

    move = _apply_move(
        session, StockMoveType.IN, StockReferenceType.ORDER, order.id,
        needed, inventories, sign=1, notes=f'Order {order.order_number} cancelled'
    )
    order.stock_deducted = False
    logger.info(f"Stock restored for cancelled order {order.order_number}")
    return move


def get_inventory(session: Session, product_id: int, variant_id: Optional[int] = None) -> Optional[ProductInventory]:
    return _inventory_query(session, product_id, variant_id).first()


def set_stock_level(
    session: Session,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity: Optional[int] = None,
    weight_grams: Optional[Decimal] = None,
    notes: Optional[str] = None,
) -> ProductInventory:
    """
    Set the stock on hand, creating the inventory record if needed.

    The difference is recorded as a manual ADJUST movement. Flushes but
    does not commit.
    """
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')
    if variant_id is not None:
        variant = session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product_id:
            raise NotFoundError(f'Variant {variant_id} not found for product {product_id}')
    if quantity is not None and quantity < 0:
        raise ValidationError('Stock quantity cannot be negative')
    if weight_grams is not None and weight_grams < 0:
        raise ValidationError('Stock weight cannot be negative')

    inventory = _lock_inventory(session, product_id, variant_id)
    if inventory is None:
        inventory = ProductInventory(product_id=product_id, variant_id=variant_id, quantity=0, weight_quantity=ZERO)
        session.add(inventory)
        session.flush()

    move = StockMove(
        type=StockMoveType.ADJUST,
        reference_type=StockReferenceType.MANUAL,
        reference_id=inventory.id,
        notes=notes or 'Manual stock adjustment',
    )
    session.add(move)
    session.flush()

    if quantity is not None:
        session.add(StockMoveLine(
            stock_move_id=move.id, product_id=product_id, variant_id=variant_id,
            qty=Decimal(quantity - (inventory.quantity or 0)), unit=UNITS
        ))
        inventory.quantity = quantity
    if weight_grams is not None:
        session.add(StockMoveLine(
            stock_move_id=move.id, product_id=product_id, variant_id=variant_id,
            qty=weight_grams - Decimal(inventory.weight_quantity or 0), unit=GRAMS
        ))
        inventory.weight_quantity = weight_grams

    session.flush()
    return inventory


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _inventory_query(session: Session, product_id: int, variant_id: Optional[int]):
    query = session.query(ProductInventory).filter(ProductInventory.product_id == product_id)
    if variant_id is None:
        return query.filter(ProductInventory.variant_id.is_(None))
    return query.filter(ProductInventory.variant_id == variant_id)


def _lock_inventory(session: Session, product_id: int, variant_id: Optional[int]) -> Optional[ProductInventory]:
    """Lock the inventory row FOR UPDATE (ignored on SQLite)."""
    return _inventory_query(session, product_id, variant_id).with_for_update().first()


def _level(inventory: ProductInventory, unit: str) -> Decimal:
    if unit == GRAMS:
        return Decimal(inventory.weight_quantity or 0)
    return Decimal(inventory.quantity or 0)


def _apply_move(
    session: Session,
    move_type: StockMoveType,
    reference_type: StockReferenceType,
    reference_id: int,
    needed: Dict[StockKey, StockRequirement],
    inventories: Dict[StockKey, ProductInventory],
    sign: int,
    notes: str,
) -> StockMove:
    move = StockMove(type=move_type, reference_type=reference_type, reference_id=reference_id, notes=notes)
    session.add(move)
    session.flush()

    for (product_id, variant_id), requirement in needed.items():
        inventory = inventories[(product_id, variant_id)]
        if requirement.unit == GRAMS:
            inventory.weight_quantity = Decimal(inventory.weight_quantity or 0) + sign * requirement.amount
        else:
            inventory.quantity = (inventory.quantity or 0) + sign * int(requirement.amount)
        session.add(StockMoveLine(
            stock_move_id=move.id,
            product_id=product_id,
            variant_id=variant_id,
            qty=requirement.amount,
            unit=requirement.unit,
        ))

    session.flush()
    return move
