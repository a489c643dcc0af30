from .auth import User
from .tenancy import Shop
from .inventory import Product, ProductShop, StockMovement
from .sales import Sale, SaleItem
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem
from .documents import DocumentSequence

__all__ = [
    'User', 'Shop',
    'Product', 'ProductShop', 'StockMovement',
    'Sale', 'SaleItem',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem',
    'DocumentSequence',
]
