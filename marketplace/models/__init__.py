# marketplace/models/__init__.py
from .profile import Profile
from .vendor import Vendor
from .category import Category
from .product import Product
from .product_variant import ProductVariant
from .order import Order
from .order_item import OrderItem
from .order_status_history import OrderStatusHistory
from .refund import Refund
from .inventory_log import InventoryLog

__all__ = [
    "Profile",
    "Vendor",
    "Category",
    "Product",
    "ProductVariant",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Refund",
    "InventoryLog",
]
