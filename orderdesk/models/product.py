"""Product and Product Variant models."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, PrimaryKeyType


class ProductType:
    """Product type values stored in `product.product_type`."""
    SIMPLE = 'simple'
    VARIABLE = 'variable'
    GROUP = 'group'


class StockManagementType:
    """How stock and price are tracked for a product."""
    QUANTITY = 'quantity'
    WEIGHT = 'weight'


class Product(Base):
    """Catalog product."""

    __tablename__ = 'product'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    product_type = Column(String(20), nullable=False, default=ProductType.SIMPLE)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    # Weight-based pricing
    stock_management_type = Column(String(20), nullable=False, default=StockManagementType.QUANTITY)
    price_per_unit = Column(Numeric(12, 4), nullable=True)
    base_weight_unit = Column(String(10), nullable=True)  # 'kg' or grams when NULL

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')
    product_addons = relationship('ProductAddon', back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', type='{self.product_type}')>"

    @property
    def is_weight_based(self):
        return self.stock_management_type == StockManagementType.WEIGHT

    @property
    def is_group(self):
        return self.product_type == ProductType.GROUP


class ProductVariant(Base):
    """Priced variant of a product (size, color, ...)."""

    __tablename__ = 'product_variant'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, title='{self.title}')>"
