"""Tests for order placement and cancellation."""

from decimal import Decimal

import pytest

from conftest import FakeMomoClient
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.notification import NotificationModel
from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.product import ProductModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    EmptyCart,
    ForbiddenError,
    GatewayRequestError,
    InsufficientStock,
    InvalidAddress,
    NotCancellable,
    OrderNotFound,
    PaymentInitiationFailed,
    ValidationError,
)
from storefront.domain.filters import OrderFilter
from storefront.services.order_service import OrderService


def product_counters(db, product_id):
    db.expire_all()
    p = db.get(ProductModel, product_id)
    return p.stock, p.reserved_stock


def cart_items(db, user_id):
    cart = db.query(CartModel).filter_by(user_id=user_id).one()
    return db.query(CartItemModel).filter_by(cart_id=cart.id).all()


@pytest.fixture
def service(db, momo):
    return OrderService(db, momo_client=momo)


class TestCreateOrderCod:
    def test_cod_order(self, db, service, user, address, product, cart):
        result = service.create_order(user.id, address.id, PaymentMethod.COD)

        assert result["total"] == Decimal("2124.00")
        assert result["subtotal"] == Decimal("1800.00")
        assert result["vat_amount"] == Decimal("324.00")
        assert result["status"] == OrderStatus.AWAITING_CONFIRMATION.value
        assert result["items"] == [
            {"product_id": product.id, "quantity": 2, "price": Decimal("900.00")}
        ]
        assert result["order_number"].startswith("ORD-")
        assert result["payment"]["status"] == PaymentStatus.PENDING.value
        assert result["payment"]["method"] == PaymentMethod.COD.value

        assert product_counters(db, product.id) == (8, 0)
        assert cart_items(db, user.id) == []

    def test_cod_does_not_call_gateway(self, service, momo, user, address, cart):
        service.create_order(user.id, address.id, PaymentMethod.COD)
        assert momo.requests == []

    def test_notifies_customer(self, db, service, user, address, cart):
        result = service.create_order(user.id, address.id, PaymentMethod.COD)

        notes = db.query(NotificationModel).filter_by(user_id=user.id).all()
        assert len(notes) == 1
        assert notes[0].title == "Order Placed"
        assert result["order_number"] in notes[0].message

    def test_order_numbers_increase(self, service, user, address, product, fill_cart):
        numbers = []
        for _ in range(3):
            fill_cart(user.id, [(product, 1)])
            numbers.append(service.create_order(user.id, address.id, PaymentMethod.COD)["order_number"])

        sequences = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert sequences == [1, 2, 3]


class TestCreateOrderMomo:
    def test_momo_order(self, db, service, momo, user, address, product, cart):
        result = service.create_order(user.id, address.id, PaymentMethod.MOMO, "0788123456")

        assert result["status"] == OrderStatus.PENDING_PAYMENT.value
        assert result["transaction_id"] == result["payment"]["reference"]
        assert result["payment_url"] == f"https://momo.test/{result['transaction_id']}"
        assert result["payment"]["status"] == PaymentStatus.INITIATED.value

        assert momo.requests[0]["amount"] == Decimal("2124.00")
        assert momo.requests[0]["msisdn"] == "+250788123456"
        assert momo.requests[0]["order_context"] == result["order_number"]

        assert product_counters(db, product.id) == (10, 2)
        assert cart_items(db, user.id) == []

    def test_gateway_failure_keeps_order_and_reservation(self, db, failing_momo, user, address, product, cart):
        service = OrderService(db, momo_client=failing_momo)

        with pytest.raises(PaymentInitiationFailed) as exc_info:
            service.create_order(user.id, address.id, PaymentMethod.MOMO, "0788123456")

        db.expire_all()
        order = db.query(OrderModel).one()
        payment = db.query(PaymentModel).one()
        assert exc_info.value.data["orderId"] == order.id
        assert exc_info.value.data["paymentId"] == payment.id
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.error
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert product_counters(db, product.id) == (10, 2)
        # bez powiadomienia o zlozeniu zamowienia
        assert db.query(NotificationModel).count() == 0

    def test_missing_phone(self, db, service, user, address, product, cart):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order(user.id, address.id, PaymentMethod.MOMO)

        assert exc_info.value.code == "MISSING_PHONE"
        assert db.query(OrderModel).count() == 0


class TestCreateOrderRejected:
    def test_empty_cart(self, db, service, user, address):
        with pytest.raises(EmptyCart):
            service.create_order(user.id, address.id, PaymentMethod.COD)

    def test_foreign_address(self, db, service, user, other_user, cart):
        from storefront.data.models.address import AddressModel

        foreign = AddressModel(user_id=other_user.id, street="x", city="Huye")
        db.add(foreign)
        db.commit()

        with pytest.raises(InvalidAddress):
            service.create_order(user.id, foreign.id, PaymentMethod.COD)

    def test_insufficient_stock_rolls_back(self, db, service, user, address, make_product, fill_cart):
        plenty = make_product(name="Cup", stock=10)
        scarce = make_product(name="Pot", stock=1)
        fill_cart(user.id, [(plenty, 2), (scarce, 3)])

        with pytest.raises(InsufficientStock):
            service.create_order(user.id, address.id, PaymentMethod.COD)

        assert product_counters(db, plenty.id) == (10, 0)
        assert product_counters(db, scarce.id) == (1, 0)
        assert len(cart_items(db, user.id)) == 2
        assert db.query(OrderModel).count() == 0


class TestCancelOrder:
    def test_cancel_cod_restocks(self, db, service, user, address, product, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)

        result = service.cancel_order(order["id"], user.id)

        assert result["status"] == OrderStatus.CANCELLED.value
        assert result["payment"]["status"] == PaymentStatus.CANCELLED.value
        assert product_counters(db, product.id) == (10, 0)

    def test_second_cancel_fails(self, db, service, user, address, product, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)
        service.cancel_order(order["id"], user.id)

        with pytest.raises(NotCancellable):
            service.cancel_order(order["id"], user.id)

        assert product_counters(db, product.id) == (10, 0)

    def test_cancel_momo_releases_reservation(self, db, service, user, address, product, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.MOMO, "0788123456")

        service.cancel_order(order["id"], user.id)

        assert product_counters(db, product.id) == (10, 0)

    def test_cannot_cancel_processing(self, db, service, user, address, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)
        db.get(OrderModel, order["id"]).status = OrderStatus.PROCESSING.value
        db.commit()

        with pytest.raises(NotCancellable):
            service.cancel_order(order["id"], user.id)

    def test_other_user(self, service, user, other_user, address, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)

        with pytest.raises(ForbiddenError):
            service.cancel_order(order["id"], other_user.id)

    def test_unknown_order(self, service, user):
        with pytest.raises(OrderNotFound):
            service.cancel_order(999, user.id)

    def test_notifies_customer(self, db, service, user, address, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)
        service.cancel_order(order["id"], user.id)

        titles = [n.title for n in db.query(NotificationModel).order_by(NotificationModel.id)]
        assert titles == ["Order Placed", "Order Cancelled"]


class TestQueries:
    def test_order_details(self, service, user, address, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)

        details = service.get_order_details(order["id"], user.id)
        assert details["order_number"] == order["order_number"]

    def test_details_other_user(self, service, user, other_user, address, cart):
        order = service.create_order(user.id, address.id, PaymentMethod.COD)

        with pytest.raises(ForbiddenError):
            service.get_order_details(order["id"], other_user.id)

    def test_details_unknown(self, service, user):
        with pytest.raises(OrderNotFound):
            service.get_order_details(404, user.id)

    def test_list_with_status_and_paging(self, db, service, user, address, product, fill_cart):
        for _ in range(3):
            fill_cart(user.id, [(product, 1)])
            service.create_order(user.id, address.id, PaymentMethod.COD)
        fill_cart(user.id, [(product, 1)])
        momo_order = service.create_order(user.id, address.id, PaymentMethod.MOMO, "0788123456")

        orders, total = service.get_user_orders(OrderFilter(user_id=user.id))
        assert total == 4

        pending, total = service.get_user_orders(
            OrderFilter(user_id=user.id, status=OrderStatus.PENDING_PAYMENT)
        )
        assert total == 1
        assert pending[0]["id"] == momo_order["id"]

        page, total = service.get_user_orders(OrderFilter(user_id=user.id, page=2, limit=3))
        assert total == 4
        assert len(page) == 1

    def test_list_only_own_orders(self, service, user, other_user, address, cart):
        service.create_order(user.id, address.id, PaymentMethod.COD)

        orders, total = service.get_user_orders(OrderFilter(user_id=other_user.id))
        assert orders == []
        assert total == 0
