from .base import Base
from .cart_item import CartItem
from .order import Order
from .order_item import OrderItem
from .product import Product

__all__ = ["Base", "CartItem", "Order", "OrderItem", "Product"]
