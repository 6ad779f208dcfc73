"""Tests for committing orders: totals, stock reservation and atomicity."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from storefront.db.session import make_session_factory
from storefront.errors import (
    DuplicateOrderNumberError,
    EmptyCartError,
    InsufficientStockError,
    StorageUnavailableError,
)
from storefront.models import CartItem, Order, OrderItem
from storefront.models.checkout import OrderDraft
from storefront.services import order_service as order_service_module
from storefront.services.order_assembler import assemble
from storefront.services.order_service import OrderService, generate_order_number

from .conftest import BILLING, SHIPPING


def _place(order_service, user_id, items, checkout, **extra):
    return order_service.place_order(user_id=user_id, items=items, **checkout, **extra)


class TestCommit:
    def test_end_to_end(self, order_service, checkout, db, session_factory):
        result = _place(order_service, "u1", [{"product_id": "P1", "unit_price": 100.00, "quantity": 2}], checkout)

        assert result.total == Decimal("216.00")
        assert result.order_number.startswith("ORD-")
        assert db.stock("P1") == 8

        with session_factory() as session:
            order = session.query(Order).filter(Order.id == result.order_id).one()
            assert order.status == "pending"
            assert order.payment_status == "pending"
            assert order.subtotal == Decimal("200.00")
            assert order.tax_amount == Decimal("16.00")
            assert order.shipping_amount == Decimal("0.00")
            assert order.total_amount == Decimal("216.00")
            assert order.shipping_address["city"] == "Bengaluru"
            assert order.billing_address["zip"] == "700016"
            assert order.payment_details == {"method": "cod"}
            assert len(order.items) == 1
            assert order.items[0].total_price == Decimal("200.00")
            assert order.items[0].quantity == 2

    def test_order_numbers_are_unique(self, order_service, checkout):
        numbers = {
            _place(order_service, "u1", [{"product_id": "P3", "unit_price": 1, "quantity": 1}], checkout).order_number
            for _ in range(5)
        }

        assert len(numbers) == 5

    def test_insufficient_stock(self, order_service, checkout, db):
        with pytest.raises(InsufficientStockError) as exc:
            _place(order_service, "u1", [{"product_id": "P2", "unit_price": 50, "quantity": 5}], checkout)

        assert exc.value.product_ids == ["P2"]
        assert exc.value.shortages["P2"] == (5, 1)
        assert db.orders() == 0
        assert db.order_items() == 0
        assert db.stock("P2") == 1

    def test_all_short_products_are_named(self, order_service, checkout, db):
        items = [
            {"product_id": "P1", "unit_price": 100, "quantity": 1},
            {"product_id": "P2", "unit_price": 50, "quantity": 2},
            {"product_id": "GONE", "unit_price": 5, "quantity": 1},
        ]

        with pytest.raises(InsufficientStockError) as exc:
            _place(order_service, "u1", items, checkout)

        assert exc.value.product_ids == ["GONE", "P2"]
        assert exc.value.shortages["GONE"] == (1, None)
        assert db.stock("P1") == 10

    def test_shortage_sums_lines_of_the_same_product(self, order_service, checkout, db):
        items = [
            {"product_id": "P2", "unit_price": 50, "quantity": 1},
            {"product_id": "P2", "unit_price": 50, "quantity": 1},
        ]

        with pytest.raises(InsufficientStockError) as exc:
            _place(order_service, "u1", items, checkout)

        assert exc.value.shortages == {"P2": (2, 1)}
        assert db.stock("P2") == 1

    def test_exact_stock_can_be_bought(self, order_service, checkout, db):
        _place(order_service, "u1", [{"product_id": "P2", "unit_price": 50, "quantity": 1}], checkout)

        assert db.stock("P2") == 0
        with pytest.raises(InsufficientStockError):
            _place(order_service, "u2", [{"product_id": "P2", "unit_price": 50, "quantity": 1}], checkout)

    def test_empty_cart_touches_no_storage(self, checkout):
        def no_storage():
            raise AssertionError("storage accessed")

        service = OrderService(no_storage)

        with pytest.raises(EmptyCartError):
            service.place_order(user_id="u1", items=[], **checkout)

    def test_commit_rejects_empty_draft(self, order_service, checkout):
        draft = assemble([{"product_id": "P1", "unit_price": 1, "quantity": 1}], {"shipping": SHIPPING, "billing": BILLING}, "cod")
        empty = OrderDraft(**{**draft.__dict__, "items": []})

        with pytest.raises(EmptyCartError):
            order_service.commit(empty, "u1")

    def test_clears_only_the_buyers_cart(self, order_service, cart_service, checkout, db):
        cart_service.add_item(user_id="u1", product_id="P1", quantity=1)
        cart_service.add_item(user_id="u2", product_id="P1", quantity=1)

        _place(order_service, "u1", [{"product_id": "P3", "unit_price": 19.99, "quantity": 1}], checkout)

        assert db.cart_items("u1") == 0
        assert db.cart_items("u2") == 1

    def test_failed_commit_keeps_cart(self, order_service, cart_service, checkout, db):
        cart_service.add_item(user_id="u1", product_id="P2", quantity=3)

        with pytest.raises(InsufficientStockError):
            order_service.checkout_cart(user_id="u1", **checkout)

        assert db.cart_items("u1") == 1

    def test_checkout_from_stored_cart(self, order_service, cart_service, checkout, db, session_factory):
        cart_service.add_item(user_id="u1", product_id="P1", quantity=1, variant={"id": "v-red", "color": "red"})
        cart_service.add_item(user_id="u1", product_id="P3", quantity=2)

        result = order_service.checkout_cart(user_id="u1", **checkout)

        assert result.total == Decimal("151.18")
        assert db.stock("P1") == 9
        assert db.stock("P3") == 3
        assert db.cart_items("u1") == 0
        with session_factory() as session:
            items = {it.product_id: it for it in session.query(OrderItem).filter(OrderItem.order_id == result.order_id)}
            assert items["P1"].product_name == "Product P1"
            assert items["P3"].product_name == "Product P3"
            assert items["P3"].variant_details is None
            assert items["P1"].variant_details == {"variant_id": "v-red", "attributes": {"color": "red"}}

    def test_checkout_keeps_line_added_after_cart_was_read(self, monkeypatch, order_service, cart_service, checkout, db):
        cart_service.add_item(user_id="u1", product_id="P3", quantity=2)
        real = order_service_module.load_cart_lines

        def read_then_add(session, user_id, lock=False):
            rows = real(session, user_id, lock=lock)
            session.add(
                CartItem(id="late-line", user_id=user_id, product_id="P1", variant={}, quantity=1, unit_price=Decimal("100"))
            )
            session.flush()
            return rows

        monkeypatch.setattr(order_service_module, "load_cart_lines", read_then_add)

        result = order_service.checkout_cart(user_id="u1", **checkout)

        assert result.total == Decimal("53.17")
        assert db.stock("P3") == 3
        assert db.stock("P1") == 10
        assert db.cart_items("u1") == 1

    def test_snapshot_name_from_cart_wins(self, order_service, checkout, session_factory):
        result = _place(
            order_service, "u1", [{"product_id": "P1", "name": "Gold Ring", "unit_price": 80, "quantity": 1}], checkout
        )

        with session_factory() as session:
            item = session.query(OrderItem).filter(OrderItem.order_id == result.order_id).one()
            assert item.product_name == "Gold Ring"
            assert item.unit_price == Decimal("80.00")


class TestAtomicity:
    def _failing_reserve(self, monkeypatch, fail_on_call):
        real = order_service_module.reserve_stock
        calls = {"n": 0}

        def reserve(session, product_id, quantity):
            calls["n"] += 1
            if calls["n"] == fail_on_call:
                raise RuntimeError("injected failure")
            return real(session, product_id, quantity)

        monkeypatch.setattr(order_service_module, "reserve_stock", reserve)

    @pytest.mark.parametrize("fail_on_call", [1, 2])
    def test_injected_failure_leaves_no_trace(self, monkeypatch, order_service, cart_service, checkout, db, fail_on_call):
        cart_service.add_item(user_id="u1", product_id="P3", quantity=1)
        self._failing_reserve(monkeypatch, fail_on_call)
        items = [
            {"product_id": "P1", "unit_price": 100, "quantity": 2},
            {"product_id": "P3", "unit_price": 19.99, "quantity": 1},
        ]

        with pytest.raises(RuntimeError):
            _place(order_service, "u1", items, checkout)

        assert db.orders() == 0
        assert db.order_items() == 0
        assert db.stock("P1") == 10
        assert db.stock("P3") == 5
        assert db.cart_items("u1") == 1


class TestOrderNumbers:
    def test_format(self):
        number = generate_order_number()
        prefix, stamp, suffix = number.split("-")

        assert prefix == "ORD"
        assert len(stamp) == 8 and stamp.isdigit()
        assert len(suffix) == 6

    def test_collision_is_retried(self, session_factory, pricing, checkout, db):
        numbers = iter(["ORD-1", "ORD-1", "ORD-2"])
        service = OrderService(session_factory, pricing=pricing, number_factory=lambda: next(numbers))

        first = _place(service, "u1", [{"product_id": "P1", "unit_price": 100, "quantity": 1}], checkout)
        second = _place(service, "u2", [{"product_id": "P1", "unit_price": 100, "quantity": 1}], checkout)

        assert first.order_number == "ORD-1"
        assert second.order_number == "ORD-2"
        assert db.orders() == 2
        assert db.stock("P1") == 8

    def test_collision_attempts_are_bounded(self, session_factory, pricing, checkout, db):
        service = OrderService(session_factory, pricing=pricing, number_factory=lambda: "ORD-SAME", max_number_attempts=2)
        _place(service, "u1", [{"product_id": "P1", "unit_price": 100, "quantity": 1}], checkout)

        with pytest.raises(DuplicateOrderNumberError) as exc:
            _place(service, "u2", [{"product_id": "P1", "unit_price": 100, "quantity": 1}], checkout)

        assert exc.value.attempts == 2
        assert db.orders() == 1
        assert db.stock("P1") == 9


class TestIdempotency:
    def test_same_key_returns_same_order(self, order_service, checkout, db):
        items = [{"product_id": "P1", "unit_price": 100, "quantity": 1}]
        first = _place(order_service, "u1", items, checkout, idempotency_key="k-1")
        again = _place(order_service, "u1", items, checkout, idempotency_key="k-1")

        assert again.order_id == first.order_id
        assert again.replayed is True
        assert db.orders() == 1
        assert db.stock("P1") == 9

    def test_key_is_scoped_to_user(self, order_service, checkout, db):
        items = [{"product_id": "P1", "unit_price": 100, "quantity": 1}]
        first = _place(order_service, "u1", items, checkout, idempotency_key="k-1")
        other = _place(order_service, "u2", items, checkout, idempotency_key="k-1")

        assert other.order_id != first.order_id
        assert db.stock("P1") == 8


class TestStorageFailure:
    def test_unreachable_database(self, checkout):
        engine = create_engine("sqlite:////nonexistent-dir/does/not/exist.db", future=True)
        service = OrderService(make_session_factory(engine))

        with pytest.raises(StorageUnavailableError):
            service.place_order(user_id="u1", items=[{"product_id": "P1", "unit_price": 1, "quantity": 1}], **checkout)
