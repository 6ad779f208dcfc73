"""Pytest fixtures for storefront tests."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func
from sqlalchemy.pool import StaticPool

from storefront.app import create_app
from storefront.config import AppConfig
from storefront.db.session import init_db, make_session_factory
from storefront.models import CartItem, Order, OrderItem, Product
from storefront.services.cart_service import CartService
from storefront.services.order_assembler import FlatRateShipping, PricingPolicy
from storefront.services.order_service import OrderService


SHIPPING = {"street": "12 MG Road", "city": "Bengaluru", "state": "KA", "zip": "560001", "country": "IN"}
BILLING = {"address_line_1": "4 Park St", "city": "Kolkata", "state": "WB", "postal_code": "700016", "country": "IN"}


def seed_products(session_factory, products):
    with session_factory() as session:
        for pid, price, stock in products:
            session.add(
                Product(id=pid, sku=f"SKU-{pid}", name=f"Product {pid}", price=Decimal(price), stock_quantity=stock)
            )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    sf = make_session_factory(engine)
    seed_products(sf, [("P1", "100.00", 10), ("P2", "50.00", 1), ("P3", "19.99", 5)])
    return sf


@pytest.fixture
def pricing():
    return PricingPolicy(tax_rate=Decimal("0.08"), shipping=FlatRateShipping(Decimal("9.99"), Decimal("100")))


@pytest.fixture
def cart_service(session_factory):
    return CartService(session_factory)


@pytest.fixture
def order_service(session_factory, pricing):
    return OrderService(session_factory, pricing=pricing)


@pytest.fixture
def checkout():
    """Keyword arguments for a valid cash-on-delivery checkout."""
    return {
        "shipping_address": dict(SHIPPING),
        "billing_address": dict(BILLING),
        "payment_method": "cod",
    }


@pytest.fixture
def db(session_factory):
    return DbView(session_factory)


class DbView:
    """Read-only helpers for asserting on stored state."""

    def __init__(self, session_factory):
        self._sf = session_factory

    def stock(self, product_id):
        with self._sf() as session:
            return session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()

    def count(self, model):
        with self._sf() as session:
            return session.query(func.count()).select_from(model).scalar()

    def orders(self):
        return self.count(Order)

    def order_items(self):
        return self.count(OrderItem)

    def cart_items(self, user_id):
        with self._sf() as session:
            return session.query(CartItem).filter(CartItem.user_id == user_id).count()

    def order(self, order_id):
        with self._sf() as session:
            return session.query(Order).filter(Order.id == order_id).one()


@pytest.fixture
def app(session_factory):
    config = AppConfig(database_url="sqlite://", secret_key="test", log_level="WARNING", currency="INR")
    flask_app = create_app(config=config, session_factory=session_factory)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
