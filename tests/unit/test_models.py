"""
Unit tests for SQLAlchemy models.
"""
import pytest
from decimal import Decimal

from orderdesk.models import (
    Customer, Order, OrderItem, OrderStatus, Product, ProductAddon, Setting, StockManagementType
)


class TestProductModel:
    """Tests for Product model."""

    def test_create_product_defaults(self, session):
        product = Product(name='Mug', price=Decimal('8.00'))
        session.add(product)
        session.commit()

        assert product.id is not None
        assert product.active is True
        assert product.is_weight_based is False
        assert product.is_group is False

    def test_weight_product_flag(self, weight_product):
        assert weight_product.is_weight_based is True
        assert weight_product.stock_management_type == StockManagementType.WEIGHT

    def test_addon_price_override(self, session, group_product):
        links = session.query(ProductAddon).filter_by(product_id=group_product.id).all()
        prices = sorted(link.effective_price for link in links)

        assert prices == [Decimal('1.50'), Decimal('2.00')]


class TestCustomerModel:
    """Tests for Customer model."""

    def test_customer_email_unique(self, session, customer):
        session.add(Customer(name='Other', email=customer.email))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestOrderModel:
    """Tests for Order and OrderItem models."""

    def test_order_defaults_and_items(self, session, simple_product):
        order = Order(email='buyer@example.com', subtotal=Decimal('20'), total_amount=Decimal('20'))
        session.add(order)
        session.flush()
        session.add(OrderItem(
            order_id=order.id,
            product_id=simple_product.id,
            product_name=simple_product.name,
            price=Decimal('10'),
            quantity=2,
            total_price=Decimal('20'),
        ))
        session.commit()
        session.refresh(order)

        assert order.status == OrderStatus.PENDING
        assert order.points_awarded is False
        assert order.discount_type == 'amount'
        assert len(order.items) == 1
        assert order.items[0].is_weight_based is False

    def test_idempotency_key_unique(self, session):
        session.add(Order(email='a@example.com', idempotency_key='abc'))
        session.add(Order(email='b@example.com', idempotency_key='abc'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestSettingModel:

    def test_setting_key_unique(self, session):
        session.add(Setting(key='loyalty_enabled', value='true', type='boolean'))
        session.commit()
        session.add(Setting(key='loyalty_enabled', value='false', type='boolean'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()
