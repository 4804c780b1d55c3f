from .products import Product
from .sales import Sale, SaleItem, SALE_STATUSES, PAYMENT_METHODS
from .documents import DocumentSequence
from .events import ConsumedEvent

__all__ = [
    'Product',
    'Sale', 'SaleItem', 'SALE_STATUSES', 'PAYMENT_METHODS',
    'DocumentSequence',
    'ConsumedEvent',
]
