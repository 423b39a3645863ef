"""Models package - exports all SQLAlchemy models."""
# Catalog
from orderdesk.models.product import Product, ProductVariant, ProductType, StockManagementType
from orderdesk.models.addon import Addon, ProductAddon

# Inventory
from orderdesk.models.inventory import (
    ProductInventory, StockMove, StockMoveLine, StockMoveType, StockReferenceType
)

# Customers and orders
from orderdesk.models.customer import Customer
from orderdesk.models.order import Order, OrderItem, OrderStatus

# Loyalty and settings
from orderdesk.models.loyalty import CustomerLoyaltyPoints, LoyaltyPointsHistory, PointsTransactionType
from orderdesk.models.setting import Setting

__all__ = [
    # Catalog
    'Product', 'ProductVariant', 'ProductType', 'StockManagementType',
    'Addon', 'ProductAddon',
    # Inventory
    'ProductInventory', 'StockMove', 'StockMoveLine', 'StockMoveType', 'StockReferenceType',
    # Customers and orders
    'Customer', 'Order', 'OrderItem', 'OrderStatus',
    # Loyalty and settings
    'CustomerLoyaltyPoints', 'LoyaltyPointsHistory', 'PointsTransactionType',
    'Setting',
]
