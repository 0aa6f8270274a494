from .auth import User, SessionToken
from .tenancy import Branch, Setting
from .inventory import Category, Supplier, Product, StockMovement
from .customers import Customer
from .sales import Sale, SaleItem, Receipt, ReceiptSequence
from .refunds import Refund, RefundItem

__all__ = [
    'User', 'SessionToken',
    'Branch', 'Setting',
    'Category', 'Supplier', 'Product', 'StockMovement',
    'Customer',
    'Sale', 'SaleItem', 'Receipt', 'ReceiptSequence',
    'Refund', 'RefundItem',
]
