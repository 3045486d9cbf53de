from .tenancy import Shop, User
from .taxonomy import Category, SubCategory
from .catalog import Product
from .inventory import StockMovement
from .imports import BulkUpload

__all__ = [
    'Shop', 'User',
    'Category', 'SubCategory',
    'Product',
    'StockMovement',
    'BulkUpload',
]
