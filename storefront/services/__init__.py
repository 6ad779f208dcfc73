from .cart_service import CartService
from .order_assembler import PricingPolicy, assemble
from .order_service import OrderService

__all__ = ["CartService", "OrderService", "PricingPolicy", "assemble"]
