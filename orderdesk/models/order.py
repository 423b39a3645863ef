"""Order and Order Item models."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, PrimaryKeyType


class OrderStatus(enum.Enum):
    """Order status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Order(Base):
    """
    Confirmed order.

    Monetary columns are a snapshot of the totals computed by the pricing
    service when the order was created or last edited; they are never
    updated independently of each other.
    """

    __tablename__ = 'orders'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    order_number = Column(String(32), nullable=True, unique=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_code = Column(String(64), nullable=True)
    coupon_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_type = Column(String(12), nullable=False, default='amount')  # 'amount' or 'percentage'
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    points_to_redeem = Column(BigInteger, nullable=False, default=0)
    points_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 3), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    points_to_earn = Column(BigInteger, nullable=False, default=0)
    points_awarded = Column(Boolean, nullable=False, default=False)
    stock_deducted = Column(Boolean, nullable=False, default=False)

    # Idempotency key to prevent duplicate orders on double-submit
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.id')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', total={self.total_amount})>"


class OrderItem(Base):
    """
    Order line.

    `addons` holds a versioned JSON payload (see utils.payloads) with the
    addon snapshot, selected variant attributes and an optional note.
    """

    __tablename__ = 'order_item'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    variant_id = Column(BigInteger, ForeignKey('product_variant.id'), nullable=True)

    product_name = Column(String, nullable=False)
    variant_title = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    price = Column(Numeric(12, 4), nullable=False)
    quantity = Column(BigInteger, nullable=False, default=1)
    total_price = Column(Numeric(12, 2), nullable=False)

    is_weight_based = Column(Boolean, nullable=False, default=False)
    weight_quantity = Column(Numeric(12, 3), nullable=True)  # grams
    weight_unit = Column(String(10), nullable=True)  # display unit

    addons = Column(Text, nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
