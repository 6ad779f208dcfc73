import secrets
import string
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4
from sqlalchemy import distinct, func, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from ..db.session import get_session
from ..errors import (
    AccessDeniedError,
    AlreadyCancelledError,
    DuplicateOrderNumberError,
    EmptyCartError,
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    StorageUnavailableError,
)
from ..models.cart_item import CartItem
from ..models.checkout import Actor, CommitResult, OrderDraft, payment_to_dict
from ..models.order import Order
from ..models.order_item import OrderItem
from ..utils.dto import to_order_dto
from ..utils.pagination import normalize_paging, total_pages
from .cart_service import load_cart_lines
from .inventory import product_name, reserve_stock, restore_stock, stock_level
from .logging import log_event
from .order_assembler import PricingPolicy, assemble


STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded")

# forward moves only; cancellation goes through cancel()
TRANSITIONS = {
    "pending": {"confirmed", "processing"},
    "confirmed": {"processing"},
    "processing": {"shipped"},
    "shipped": {"delivered"},
    "delivered": {"refunded"},
    "cancelled": set(),
    "refunded": set(),
}
CANCELLABLE = {"pending", "confirmed", "processing", "shipped"}

_STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

# session -> (draft, ids of the cart rows it was built from)
DraftBuilder = Callable[[Any], Tuple[OrderDraft, Optional[List[str]]]]


def generate_order_number() -> str:
    """ORD-<last 8 digits of epoch ms>-<6 random base36 chars>."""
    stamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{stamp}-{suffix}"


def _stock_before(session, product_id: str, reserved: Dict[str, int]) -> Optional[int]:
    # stock as it was before this transaction reserved any of it
    level = stock_level(session, product_id)
    if level is None:
        return None
    return level + reserved.get(product_id, 0)


class OrderService:
    """Order commit, cancellation and retrieval backed by DB.

    Each public operation runs inside one ``session_factory()`` scope, which
    commits on success and rolls back on any exception, so a failed call
    leaves orders, order items, stock and carts as they were.
    """

    def __init__(
        self,
        session_factory=get_session,
        *,
        pricing: Optional[PricingPolicy] = None,
        currency: str = "INR",
        number_factory: Callable[[], str] = generate_order_number,
        max_number_attempts: int = 3,
    ):
        self._session_factory = session_factory
        self.pricing = pricing or PricingPolicy()
        self._currency = currency
        self._number_factory = number_factory
        self._max_number_attempts = max(1, int(max_number_attempts))

    # -- checkout -------------------------------------------------------

    def place_order(
        self,
        *,
        user_id: str,
        items: Optional[List[Any]],
        shipping_address: Any,
        billing_address: Any,
        payment_method: Optional[str],
        payment_details: Optional[Dict] = None,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CommitResult:
        draft = assemble(
            items,
            {"shipping": shipping_address, "billing": billing_address},
            payment_method,
            notes,
            payment_details=payment_details,
            pricing=self.pricing,
        )
        return self.commit(draft, user_id, idempotency_key=idempotency_key)

    def checkout_cart(
        self,
        *,
        user_id: str,
        shipping_address: Any,
        billing_address: Any,
        payment_method: Optional[str],
        payment_details: Optional[Dict] = None,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CommitResult:
        """Place an order from the user's stored cart.

        The cart is read inside the commit transaction and only the rows read
        there are deleted; a line added meanwhile stays in the cart.
        """
        addresses = {"shipping": shipping_address, "billing": billing_address}

        def build(session):
            rows = load_cart_lines(session, user_id, lock=True)
            draft = assemble(
                [line for _, line in rows],
                addresses,
                payment_method,
                notes,
                payment_details=payment_details,
                pricing=self.pricing,
            )
            return draft, [item_id for item_id, _ in rows]

        return self._commit_with_retries(build, user_id, idempotency_key)

    def commit(self, draft: OrderDraft, user_id: str, idempotency_key: Optional[str] = None) -> CommitResult:
        """Persist ``draft`` for ``user_id`` as one atomic unit.

        Inserts the order header and its items, reserves stock for every
        item and clears the user's cart. A unique-number collision retries
        the whole transaction with a fresh number.
        """
        if not draft.items:
            raise EmptyCartError()
        return self._commit_with_retries(lambda session: (draft, None), user_id, idempotency_key)

    def _commit_with_retries(self, build: DraftBuilder, user_id: str, idempotency_key: Optional[str]) -> CommitResult:
        number = None
        for attempt in range(1, self._max_number_attempts + 1):
            number = self._number_factory()
            try:
                return self._commit_once(build, user_id, number, idempotency_key)
            except DuplicateOrderNumberError:
                log_event("warning", "order.number_collision", order_number=number, attempt=attempt)
        raise DuplicateOrderNumberError(number, attempts=self._max_number_attempts)

    def _commit_once(self, build: DraftBuilder, user_id: str, number: str, idempotency_key: Optional[str]) -> CommitResult:
        try:
            with self._session_factory() as session:
                if idempotency_key:
                    existing = (
                        session.query(Order)
                        .filter(Order.user_id == user_id, Order.idempotency_key == idempotency_key)
                        .first()
                    )
                    if existing:
                        log_event("info", "order.idempotent_replay", order_id=existing.id, user_id=user_id)
                        return CommitResult(existing.id, existing.order_number, existing.total_amount, replayed=True)

                # cart_ids is None when the whole cart is cleared
                draft, cart_ids = build(session)
                oid = str(uuid4())
                session.add(
                    Order(
                        id=oid,
                        order_number=number,
                        user_id=user_id,
                        status="pending",
                        subtotal=draft.subtotal,
                        tax_amount=draft.tax_amount,
                        shipping_amount=draft.shipping_amount,
                        total_amount=draft.total_amount,
                        currency=self._currency,
                        shipping_address=draft.shipping_address.to_dict(),
                        billing_address=draft.billing_address.to_dict(),
                        payment_method=draft.payment_method,
                        payment_details=payment_to_dict(draft.payment_details),
                        payment_status="pending",
                        notes=draft.notes,
                        idempotency_key=idempotency_key,
                    )
                )
                try:
                    session.flush()
                except IntegrityError as exc:
                    # either order_number or (user_id, idempotency_key) collided;
                    # a retry regenerates the number and re-checks the key
                    raise DuplicateOrderNumberError(number) from exc

                requested: Dict[str, int] = {}
                reserved: Dict[str, int] = {}
                short = set()
                for position, line in enumerate(draft.items):
                    session.add(
                        OrderItem(
                            id=str(uuid4()),
                            order_id=oid,
                            position=position,
                            product_id=line.product_id,
                            product_name=line.name or product_name(session, line.product_id) or line.product_id,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            total_price=line.total_price,
                            variant_details=line.variant_details.to_dict() if line.variant_details else None,
                        )
                    )
                    pid = line.product_id
                    requested[pid] = requested.get(pid, 0) + line.quantity
                    if reserve_stock(session, pid, line.quantity):
                        reserved[pid] = reserved.get(pid, 0) + line.quantity
                    else:
                        short.add(pid)
                if short:
                    raise InsufficientStockError(
                        {pid: (requested[pid], _stock_before(session, pid, reserved)) for pid in short}
                    )
                session.flush()

                q = session.query(CartItem).filter(CartItem.user_id == user_id)
                if cart_ids is not None:
                    q = q.filter(CartItem.id.in_(cart_ids))
                cleared = q.delete(synchronize_session=False)
                result = CommitResult(oid, number, draft.total_amount)
        except InsufficientStockError as exc:
            log_event("info", "order.insufficient_stock", user_id=user_id, product_ids=exc.product_ids)
            raise
        except _STORAGE_ERRORS as exc:
            log_event("error", "storage.unavailable", op="commit", user_id=user_id, error=str(exc))
            raise StorageUnavailableError("Storage is temporarily unavailable") from exc
        log_event(
            "info",
            "order.created",
            order_id=result.order_id,
            order_number=number,
            items=len(draft.items),
            total=float(result.total),
            cart_items_cleared=cleared,
        )
        return result

    # -- cancellation & status ------------------------------------------

    def cancel(self, order_id: str, actor: Actor) -> Dict:
        """Cancel an order and return its reserved stock to the catalog."""
        try:
            with self._session_factory() as session:
                order = self._load_for_actor(session, order_id, actor)
                result = self._cancel_in_session(session, order)
        except _STORAGE_ERRORS as exc:
            log_event("error", "storage.unavailable", op="cancel", order_id=order_id, error=str(exc))
            raise StorageUnavailableError("Storage is temporarily unavailable") from exc
        log_event("info", "order.cancelled", order_id=order_id, actor=actor.user_id, restocked=len(result["restocked"]))
        return result

    def _cancel_in_session(self, session, order: Order) -> Dict:
        current = order.status
        if current == "cancelled":
            raise AlreadyCancelledError(order.id)
        if current not in CANCELLABLE:
            raise InvalidTransitionError(current, "cancelled", f"Cannot cancel {current} order")
        self._swap_status(session, order, current, "cancelled")
        restocked = []
        for item in order.items:
            if restore_stock(session, item.product_id, item.quantity):
                restocked.append({"product_id": item.product_id, "quantity": item.quantity})
            else:
                log_event("warning", "order.restock_skipped", order_id=order.id, product_id=item.product_id)
        return {"order_id": order.id, "order_number": order.order_number, "status": "cancelled", "restocked": restocked}

    def _swap_status(self, session, order: Order, current: str, new_status: str, **values) -> None:
        # compare-and-swap on the status column: a concurrent transition wins, this one fails
        swapped = session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current)
            .values(status=new_status, updated_at=func.now(), **values)
            .execution_options(synchronize_session=False)
        ).rowcount
        if swapped != 1:
            now = session.query(Order.status).filter(Order.id == order.id).scalar()
            if now == "cancelled" and new_status == "cancelled":
                raise AlreadyCancelledError(order.id)
            raise InvalidTransitionError(now or current, new_status, "Order status changed concurrently")

    def update_status(
        self,
        order_id: str,
        new_status: str,
        actor: Actor,
        *,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict:
        """Privileged status change; ``cancelled`` restocks like :meth:`cancel`."""
        if not actor.is_privileged:
            raise AccessDeniedError(order_id, actor.user_id)
        new_status = (new_status or "").strip().lower()
        try:
            with self._session_factory() as session:
                order = self._load_for_actor(session, order_id, actor)
                current = order.status
                if new_status not in STATUSES:
                    raise InvalidTransitionError(current, new_status, f"Unknown status: {new_status}")
                extra = {}
                if tracking_number is not None:
                    extra["tracking_number"] = tracking_number
                if notes is not None:
                    extra["notes"] = notes
                if new_status == "cancelled":
                    self._cancel_in_session(session, order)
                    if extra:
                        session.execute(update(Order).where(Order.id == order_id).values(**extra))
                elif new_status == current:
                    if extra:
                        session.execute(update(Order).where(Order.id == order_id).values(updated_at=func.now(), **extra))
                elif new_status in TRANSITIONS[current]:
                    self._swap_status(session, order, current, new_status, **extra)
                else:
                    raise InvalidTransitionError(current, new_status)
        except _STORAGE_ERRORS as exc:
            log_event("error", "storage.unavailable", op="update_status", order_id=order_id, error=str(exc))
            raise StorageUnavailableError("Storage is temporarily unavailable") from exc
        log_event("info", "order.status_changed", order_id=order_id, old=current, new=new_status, actor=actor.user_id)
        return {"order_id": order_id, "previous_status": current, "status": new_status}

    def _load_for_actor(self, session, order_id: str, actor: Actor, lock: bool = True) -> Order:
        q = session.query(Order).filter(Order.id == order_id)
        if lock:
            q = q.with_for_update()
        order = q.first()
        if order is None:
            raise OrderNotFoundError(order_id)
        if not actor.is_privileged and order.user_id != actor.user_id:
            raise AccessDeniedError(order_id, actor.user_id)
        return order

    # -- reads ----------------------------------------------------------

    def get_order(self, order_id: str, actor: Actor) -> Dict:
        with self._session_factory() as session:
            return to_order_dto(self._load_for_actor(session, order_id, actor, lock=False))

    def list_user_orders(self, user_id: str, *, page: int = 1, page_size: int = 10, status: Optional[str] = None) -> Dict:
        return self.list_orders(page=page, page_size=page_size, status=status, user_id=user_id)

    def list_orders(
        self,
        *,
        page: int = 1,
        page_size: int = 10,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict:
        p, ps = normalize_paging(page, page_size)
        with self._session_factory() as session:
            q = session.query(Order)
            if status:
                q = q.filter(Order.status == status)
            if user_id:
                q = q.filter(Order.user_id == user_id)
            total = q.count()
            rows = (
                q.order_by(Order.created_at.desc(), Order.order_number.desc())
                .offset((p - 1) * ps)
                .limit(ps)
                .all()
            )
            items = [to_order_dto(r, include_items=False) for r in rows]
        return {"items": items, "page": p, "page_size": ps, "total": total, "total_pages": total_pages(total, ps)}

    def get_stats(self) -> Dict:
        with self._session_factory() as session:
            count, sales, average, customers = (
                session.query(
                    func.count(Order.id),
                    func.coalesce(func.sum(Order.total_amount), 0),
                    func.avg(Order.total_amount),
                    func.count(distinct(Order.user_id)),
                )
                .filter(Order.status != "cancelled")
                .one()
            )
            breakdown = (
                session.query(Order.status, func.count(Order.id))
                .group_by(Order.status)
                .order_by(Order.status)
                .all()
            )
            recent = session.query(Order).order_by(Order.created_at.desc(), Order.order_number.desc()).limit(5).all()
            return {
                "overview": {
                    "total_orders": int(count or 0),
                    "total_sales": round(float(sales or 0), 2),
                    "average_order_value": round(float(average or 0), 2),
                    "unique_customers": int(customers or 0),
                },
                "status_breakdown": {status: n for status, n in breakdown},
                "recent_orders": [to_order_dto(r, include_items=False) for r in recent],
            }
