from .auth import User, ROLES
from .catalog import Product, UnitPrice, StockLevel, StockMovement, TIER_LABELS
from .customers import Customer, LoyaltyAccount, LoyaltyTransaction
from .documents import DocumentSequence
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem
from .sales import Sale, SaleItem, PAYMENT_METHODS

__all__ = [
    'User', 'ROLES',
    'Product', 'UnitPrice', 'StockLevel', 'StockMovement', 'TIER_LABELS',
    'Customer', 'LoyaltyAccount', 'LoyaltyTransaction',
    'DocumentSequence',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem',
    'Sale', 'SaleItem', 'PAYMENT_METHODS',
]
