"""Conditional stock updates against the product table.

Every write here is a single UPDATE statement so that concurrent
transactions serialize on the product row instead of on a read-then-write.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..models.product import Product


def reserve_stock(session: Session, product_id: str, quantity: int) -> bool:
    """Decrement stock by ``quantity`` only if enough is on hand.

    Returns False (and changes nothing) when the row is missing or short.
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def restore_stock(session: Session, product_id: str, quantity: int) -> bool:
    """Give ``quantity`` units back. Returns False if the product is gone."""
    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def stock_level(session: Session, product_id: str) -> Optional[int]:
    return session.execute(select(Product.stock_quantity).where(Product.id == product_id)).scalar_one_or_none()


def product_name(session: Session, product_id: str) -> Optional[str]:
    return session.execute(select(Product.name).where(Product.id == product_id)).scalar_one_or_none()
