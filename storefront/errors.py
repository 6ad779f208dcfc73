"""Error kinds raised by the checkout and cancellation paths."""

from __future__ import annotations

from typing import Dict, List, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    kind = "storefront_error"
    http_status = 500

    def details(self) -> Dict:
        return {}


class OrderValidationError(StorefrontError):
    """Input rejected before any storage access."""

    kind = "invalid_order"
    http_status = 400


class EmptyCartError(OrderValidationError):
    kind = "empty_cart"

    def __init__(self) -> None:
        super().__init__("Order must contain at least one item")


class InvalidCartItemError(OrderValidationError):
    kind = "invalid_item"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid cart item #{index}: {reason}")

    def details(self) -> Dict:
        return {"index": self.index}


class InvalidAddressError(OrderValidationError):
    kind = "invalid_address"

    def __init__(self, which: str, missing: List[str]):
        self.which = which
        self.missing = list(missing)
        if self.missing:
            msg = f"{which} address is missing: {', '.join(self.missing)}"
        else:
            msg = f"{which} address is required"
        super().__init__(msg)

    def details(self) -> Dict:
        return {"address": self.which, "missing": self.missing}


class InvalidPaymentError(OrderValidationError):
    kind = "invalid_payment"

    def __init__(self, message: str, method: Optional[str] = None):
        self.method = method
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """Raised when one or more items cannot be reserved.

    ``shortages`` maps product id to ``(requested, available)``; ``available``
    is ``None`` when the product does not exist in the catalog.
    """

    kind = "insufficient_stock"
    http_status = 409

    def __init__(self, shortages: Dict[str, tuple]):
        self.shortages = dict(shortages)
        super().__init__(f"Insufficient stock for: {', '.join(self.product_ids)}")

    @property
    def product_ids(self) -> List[str]:
        return sorted(self.shortages)

    def details(self) -> Dict:
        return {"productIds": self.product_ids}


class InvalidTransitionError(StorefrontError):
    kind = "invalid_transition"
    http_status = 409

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot move order from {current} to {requested}")

    def details(self) -> Dict:
        return {"current": self.current, "requested": self.requested}


class AlreadyCancelledError(InvalidTransitionError):
    kind = "already_cancelled"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("cancelled", "cancelled", "Order is already cancelled")


class OrderNotFoundError(StorefrontError):
    kind = "order_not_found"
    http_status = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class AccessDeniedError(OrderNotFoundError):
    """Actor may not touch the order.

    Subclasses OrderNotFoundError so callers that render it see the same
    kind and message; existence is not revealed to non-owners.
    """

    def __init__(self, order_id: str, actor_id: Optional[str] = None):
        super().__init__(order_id)
        self.actor_id = actor_id


class CartItemNotFoundError(StorefrontError):
    kind = "cart_item_not_found"
    http_status = 404

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class ProductUnavailableError(StorefrontError):
    kind = "product_unavailable"
    http_status = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found or inactive: {product_id}")


class StorageUnavailableError(StorefrontError):
    """Transport/storage failure; the transaction was rolled back."""

    kind = "storage_unavailable"
    http_status = 503


class DuplicateOrderNumberError(StorefrontError):
    kind = "duplicate_order_number"
    http_status = 503

    def __init__(self, order_number: str, attempts: int = 1):
        self.order_number = order_number
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique order number after {attempts} attempt(s)")
