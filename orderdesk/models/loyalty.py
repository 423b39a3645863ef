"""Loyalty points models."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from orderdesk.database import Base, PrimaryKeyType


class PointsTransactionType:
    """Values stored in `loyalty_points_history.transaction_type`."""
    EARNED = 'earned'
    REDEEMED = 'redeemed'
    EXPIRED = 'expired'
    MANUAL_ADJUSTMENT = 'manual_adjustment'


class CustomerLoyaltyPoints(Base):
    """Points balance, 1:1 with Customer."""

    __tablename__ = 'customer_loyalty_points'

    customer_id = Column(BigInteger, ForeignKey('customer.id', ondelete='CASCADE'), primary_key=True)
    available_points = Column(BigInteger, nullable=False, default=0)
    total_points_earned = Column(BigInteger, nullable=False, default=0)
    total_points_redeemed = Column(BigInteger, nullable=False, default=0)
    last_earned_at = Column(DateTime(timezone=True), nullable=True)
    last_redeemed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    customer = relationship('Customer', back_populates='loyalty')

    def __repr__(self):
        return f"<CustomerLoyaltyPoints(customer_id={self.customer_id}, available={self.available_points})>"


class LoyaltyPointsHistory(Base):
    """Ledger of every change to a customer's points balance."""

    __tablename__ = 'loyalty_points_history'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id', ondelete='CASCADE'), nullable=False, index=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=True)
    transaction_type = Column(String(32), nullable=False)
    points = Column(BigInteger, nullable=False)  # negative for redeemed/expired
    points_balance = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=True)
    order_amount = Column(Numeric(12, 2), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_expired = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<LoyaltyPointsHistory(id={self.id}, type='{self.transaction_type}', points={self.points})>"
