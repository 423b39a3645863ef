import pytest
from decimal import Decimal

from orderdesk import create_app
from orderdesk import database
from orderdesk.models import (
    Product, ProductVariant, Addon, ProductAddon, Customer, CustomerLoyaltyPoints,
    ProductType, StockManagementType
)
from orderdesk.services import settings_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no cache)."""
    return create_app('config.TestingConfig')


@pytest.fixture(scope='function')
def db(app):
    """Fresh schema for every test."""
    with app.app_context():
        database.create_all()
        yield
        database.get_session().remove()
        database.drop_all()


@pytest.fixture(scope='function')
def client(app, db):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(db):
    """Create database session for testing."""
    session = database.get_session()
    yield session
    session.rollback()


def _saved(session, obj):
    """Commit and reload so column values survive the session being removed."""
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return obj


@pytest.fixture(scope='function')
def simple_product(session):
    return _saved(session, Product(
        name='T-Shirt',
        sku='TSHIRT-001',
        product_type=ProductType.SIMPLE,
        price=Decimal('10.00'),
        active=True
    ))


@pytest.fixture(scope='function')
def variable_product(session):
    product = Product(
        name='Hoodie',
        sku='HOODIE',
        product_type=ProductType.VARIABLE,
        price=Decimal('30.00'),
        active=True
    )
    session.add(product)
    session.flush()
    session.add_all([
        ProductVariant(product_id=product.id, title='Small', sku='HOODIE-S', price=Decimal('28.00')),
        ProductVariant(product_id=product.id, title='Large', sku='HOODIE-L', price=Decimal('32.50')),
    ])
    return _saved(session, product)


@pytest.fixture(scope='function')
def variant_large(session, variable_product):
    return session.query(ProductVariant).filter_by(sku='HOODIE-L').one()


@pytest.fixture(scope='function')
def group_product(session):
    """Gift box priced only through its addons; the ribbon has a product override."""
    product = Product(
        name='Gift Box',
        sku='GIFT',
        product_type=ProductType.GROUP,
        price=Decimal('0'),
        active=True
    )
    card = Addon(title='Greeting Card', price=Decimal('2.00'))
    ribbon = Addon(title='Ribbon', price=Decimal('1.00'))
    session.add_all([product, card, ribbon])
    session.flush()
    session.add_all([
        ProductAddon(product_id=product.id, addon_id=card.id),
        ProductAddon(product_id=product.id, addon_id=ribbon.id, price=Decimal('1.50')),
    ])
    return _saved(session, product)


@pytest.fixture(scope='function')
def group_addons(session, group_product):
    """(card, ribbon) addons offered by the gift box."""
    card = session.query(Addon).filter_by(title='Greeting Card').one()
    ribbon = session.query(Addon).filter_by(title='Ribbon').one()
    return card, ribbon


@pytest.fixture(scope='function')
def weight_product(session):
    """Coffee beans at 24.00 per kg."""
    return _saved(session, Product(
        name='Coffee Beans',
        sku='COFFEE',
        product_type=ProductType.SIMPLE,
        price=Decimal('0'),
        stock_management_type=StockManagementType.WEIGHT,
        price_per_unit=Decimal('24.0000'),
        base_weight_unit='kg',
        active=True
    ))


@pytest.fixture(scope='function')
def customer(session):
    return _saved(session, Customer(name='Ada Buyer', email='ada@example.com'))


@pytest.fixture(scope='function')
def customer_with_points(session, customer):
    """Customer holding 500 available points."""
    session.add(CustomerLoyaltyPoints(
        customer_id=customer.id,
        available_points=500,
        total_points_earned=500,
        total_points_redeemed=0
    ))
    session.commit()
    session.refresh(customer)
    return customer


@pytest.fixture(scope='function')
def loyalty_enabled(session):
    """Loyalty on: 1 point per unit of subtotal, 1 point = 0.01, max 50%, minimum 100 points."""
    settings_service.save_settings(session, {
        'loyalty_enabled': {'value': True, 'type': 'boolean'},
        'points_earning_rate': {'value': '1', 'type': 'number'},
        'points_earning_basis': {'value': 'subtotal', 'type': 'string'},
        'points_redemption_value': {'value': '0.01', 'type': 'number'},
        'points_expiry_months': {'value': '12', 'type': 'number'},
        'points_max_redemption_percent': {'value': '50', 'type': 'number'},
        'points_redemption_minimum': {'value': '100', 'type': 'number'},
    })


@pytest.fixture(scope='function')
def stock_enabled(session):
    """Orders check and take stock on creation."""
    settings_service.save_settings(session, {
        'stock_management_enabled': {'value': True, 'type': 'boolean'},
    })
