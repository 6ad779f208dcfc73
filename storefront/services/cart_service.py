from typing import Dict, List, Optional, Tuple
from uuid import uuid4
from decimal import Decimal
from sqlalchemy.orm import Session
from ..db.session import get_session
from ..errors import CartItemNotFoundError, ProductUnavailableError
from ..models.product import Product
from ..models.cart_item import CartItem
from ..models.checkout import CartLine, VariantDetails
from ..utils.validators import ensure_positive_int
from .logging import log_event


class CartService:
    """Cart operations backed by DB."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def get_cart(self, *, user_id: str) -> Dict:
        with self._session_factory() as session:
            rows = (
                session.query(CartItem, Product.name)
                .outerjoin(Product, Product.id == CartItem.product_id)
                .filter(CartItem.user_id == user_id)
                .order_by(CartItem.added_at, CartItem.id)
                .all()
            )
            items = [
                {
                    "id": it.id,
                    "product_id": it.product_id,
                    "name": name or "",
                    "variant": it.variant or {},
                    "quantity": it.quantity,
                    "unit_price": float(it.unit_price or 0),
                }
                for it, name in rows
            ]
            subtotal = sum((Decimal(str(it.unit_price)) * it.quantity for it, _ in rows), Decimal("0"))
            return {"items": items, "subtotal": float(subtotal)}

    def add_item(self, *, user_id: str, product_id: str, variant: Optional[dict] = None, quantity: int = 1) -> Dict:
        if not product_id:
            raise ValueError("product_id required")
        qnty = ensure_positive_int(quantity, "quantity")
        with self._session_factory() as session:
            prod = (
                session.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .first()
            )
            if not prod:
                raise ProductUnavailableError(product_id)

            # Merge with an existing line for the same product + variant
            existing = next(
                (
                    it
                    for it in session.query(CartItem)
                    .filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
                    .all()
                    if (it.variant or {}) == (variant or {})
                ),
                None,
            )
            if existing:
                existing.quantity = existing.quantity + qnty
                item_id = existing.id
            else:
                item = CartItem(
                    id=str(uuid4()),
                    user_id=user_id,
                    product_id=product_id,
                    variant=variant or {},
                    quantity=qnty,
                    unit_price=prod.price,
                )
                session.add(item)
                item_id = item.id
            session.flush()
            log_event("debug", "cart.item_added", user_id=user_id, product_id=product_id, quantity=qnty)
            return {"status": "added", "item_id": item_id}

    def update_item(self, *, user_id: str, item_id: str, variant: Optional[dict] = None, quantity: Optional[int] = None) -> Dict:
        with self._session_factory() as session:
            it = session.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
            if not it:
                raise CartItemNotFoundError(item_id)
            if variant is not None:
                it.variant = variant
            if quantity is not None:
                if int(quantity) == 0:
                    session.delete(it)
                    session.flush()
                    return {"status": "removed", "item_id": item_id}
                it.quantity = ensure_positive_int(quantity, "quantity")
            session.flush()
            return {"status": "updated", "item_id": item_id}

    def remove_item(self, *, user_id: str, item_id: str) -> None:
        with self._session_factory() as session:
            it = session.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
            if not it:
                raise CartItemNotFoundError(item_id)
            session.delete(it)
            session.flush()
        return None


def load_cart_lines(session: Session, user_id: str, lock: bool = False) -> List[Tuple[str, CartLine]]:
    """``(cart_item_id, CartLine)`` pairs for the user's cart, oldest first.

    With ``lock`` the cart rows are held until the surrounding transaction ends.
    """
    q = (
        session.query(CartItem, Product.name)
        .outerjoin(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.added_at, CartItem.id)
    )
    if lock:
        q = q.with_for_update(of=CartItem)
    return [
        (
            it.id,
            CartLine(
                product_id=it.product_id,
                quantity=it.quantity,
                unit_price=Decimal(str(it.unit_price)),
                name=name or "",
                variant_details=VariantDetails.from_dict(it.variant),
            ),
        )
        for it, name in q.all()
    ]
