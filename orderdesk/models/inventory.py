"""Inventory models: stock levels and stock movements."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, PrimaryKeyType


class StockMoveType(enum.Enum):
    """Stock move type enum."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class StockReferenceType(enum.Enum):
    """Stock move reference type enum."""
    ORDER = "ORDER"
    MANUAL = "MANUAL"


class ProductInventory(Base):
    """
    Stock level of a product, or of one variant of it.

    Weight-based products are counted in grams in `weight_quantity`; all
    other products in whole units in `quantity`.
    """

    __tablename__ = 'product_inventory'
    __table_args__ = (
        UniqueConstraint('product_id', 'variant_id', name='uq_product_inventory_product_variant'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(BigInteger, ForeignKey('product_variant.id', ondelete='CASCADE'), nullable=True)
    quantity = Column(BigInteger, nullable=False, default=0)
    weight_quantity = Column(Numeric(12, 3), nullable=False, default=0)  # grams
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return (f"<ProductInventory(product_id={self.product_id}, variant_id={self.variant_id}, "
                f"qty={self.quantity}, grams={self.weight_quantity})>")


class StockMove(Base):
    """Stock movement header (one per order, cancellation or manual adjustment)."""

    __tablename__ = 'stock_move'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    type = Column(Enum(StockMoveType, name='stock_move_type'), nullable=False)
    reference_type = Column(Enum(StockReferenceType, name='stock_ref_type'), nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    lines = relationship('StockMoveLine', back_populates='stock_move', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<StockMove(id={self.id}, type={self.type.value}, reference_type={self.reference_type.value})>"


class StockMoveLine(Base):
    """Stock movement line; `qty` is in `unit` ('units' or 'grams')."""

    __tablename__ = 'stock_move_line'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    stock_move_id = Column(BigInteger, ForeignKey('stock_move.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    variant_id = Column(BigInteger, ForeignKey('product_variant.id'), nullable=True)
    qty = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(10), nullable=False)

    # Relationships
    stock_move = relationship('StockMove', back_populates='lines')
    product = relationship('Product')

    def __repr__(self):
        return f"<StockMoveLine(id={self.id}, product_id={self.product_id}, qty={self.qty} {self.unit})>"
