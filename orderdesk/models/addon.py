"""Addon catalog models."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from orderdesk.database import Base, PrimaryKeyType


class Addon(Base):
    """Optional paid add-on that group products can offer."""

    __tablename__ = 'addon'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Addon(id={self.id}, title='{self.title}', price={self.price})>"


class ProductAddon(Base):
    """
    Link between a group product and an addon.

    `price` overrides the addon catalog price for this product.
    """

    __tablename__ = 'product_addon'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    addon_id = Column(BigInteger, ForeignKey('addon.id', ondelete='CASCADE'), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship('Product', back_populates='product_addons')
    addon = relationship('Addon')

    @property
    def effective_price(self):
        return self.price if self.price is not None else self.addon.price
