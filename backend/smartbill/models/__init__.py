from .catalog import Product, Inventory
from .billing import Bill, BillItem
from .customers import Customer

__all__ = [
    'Product', 'Inventory',
    'Bill', 'BillItem',
    'Customer',
]
