"""Pytest fixtures for storefront tests."""

import os

# baza w pamieci zamiast postgresa - ustawione przed importem storefront
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.celery_worker import celery_app
from storefront.data.database import Base, SessionLocal, engine, init_db
from storefront.data.models.address import AddressModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductModel
from storefront.data.models.user import UserModel
from storefront.domain.errors import GatewayRequestError

# taski (email) wykonywane lokalnie, bez brokera
celery_app.conf.task_always_eager = True


class FakeMomoClient:
    """Stands in for MomoClient: records calls, never touches the network."""

    def __init__(self, status: str = "PENDING", fail_with: Exception | None = None):
        self.status = status
        self.fail_with = fail_with
        self.requests = []
        self.status_checks = []

    def request_to_pay(self, reference, amount, msisdn, order_context):
        self.requests.append(
            {
                "reference": reference,
                "amount": amount,
                "msisdn": msisdn,
                "order_context": order_context,
            }
        )
        if self.fail_with:
            raise self.fail_with

    def get_status(self, reference):
        self.status_checks.append(reference)
        if isinstance(self.status, Exception):
            raise self.status
        return self.status

    def payment_url(self, reference):
        return f"https://momo.test/{reference}"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def momo():
    return FakeMomoClient()


@pytest.fixture
def failing_momo():
    return FakeMomoClient(fail_with=GatewayRequestError("MoMo payment initiation failed: 500"))


@pytest.fixture
def client(momo):
    from storefront.main import create_app

    app = create_app(momo_client=momo)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user(db):
    u = UserModel(id=1, name="Alice", email="alice@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = UserModel(id=2, name="Bob", email=None)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def address(db, user):
    a = AddressModel(user_id=user.id, street="KN 5 Rd", city="Kigali", district="Gasabo")
    db.add(a)
    db.commit()
    return a


@pytest.fixture
def product(db):
    """Price 1000, 10% discount, 10 in stock."""
    return _make_product(db)


def _make_product(db, name="Kettle", price="1000.00", discount="10", stock=10, reserved=0):
    p = ProductModel(
        name=name,
        price=Decimal(price),
        discount=Decimal(discount) if discount is not None else None,
        stock=stock,
        reserved_stock=reserved,
    )
    db.add(p)
    db.commit()
    return p


def _fill_cart(db, user_id, lines):
    """lines: [(product, quantity), ...]"""
    cart = db.query(CartModel).filter_by(user_id=user_id).one_or_none()
    if cart is None:
        cart = CartModel(user_id=user_id, version=1)
        db.add(cart)
        db.flush()
    for product, quantity in lines:
        db.add(CartItemModel(cart_id=cart.id, product_id=product.id, quantity=quantity))
    db.commit()
    return cart


@pytest.fixture
def cart(db, user, product):
    return _fill_cart(db, user.id, [(product, 2)])


@pytest.fixture
def make_product(db):
    def factory(**kwargs):
        return _make_product(db, **kwargs)

    return factory


@pytest.fixture
def fill_cart(db):
    def factory(user_id, lines):
        return _fill_cart(db, user_id, lines)

    return factory
