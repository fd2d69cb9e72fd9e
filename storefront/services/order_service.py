# storefront/services/order_service.py
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import (
    ACTIVE_PAYMENT_STATUSES,
    CANCELLABLE_ORDER_STATUSES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.domain.errors import (
    ConflictError,
    EmptyCart,
    ForbiddenError,
    GatewayError,
    InsufficientStock,
    InvalidAddress,
    NotCancellable,
    OrderNotFound,
    PaymentInitiationFailed,
    ValidationError,
)
from storefront.domain.filters import OrderFilter
from storefront.repos.address_repo import AddressRepo
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.inventory_service import InventoryLedger
from storefront.services.momo_client import MomoClient
from storefront.services.momo_service import MomoService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_service import payment_to_dict
from storefront.services.pricing import LineInput, price_lines
from storefront.utils.logging import get_logger
from storefront.utils.order_number import next_order_number
from storefront.utils.payments import generate_reference
from storefront.utils.settings import MTN_MOMO_CURRENCY

logger = get_logger(__name__)


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    payment = order.latest_payment
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "shipping_address_id": order.shipping_address_id,
        "payment_method": order.payment_method,
        "status": order.status,
        "subtotal": order.subtotal,
        "vat_amount": order.vat_amount,
        "total": order.total,
        "items": [
            {
                "product_id": i.product_id,
                "quantity": i.quantity,
                "price": i.price,
            }
            for i in order.items
        ],
        "payment": payment_to_dict(payment) if payment else None,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


class OrderService:
    """
    Orkiestracja zamowienia:

    1. walidacja adresu
    2. jedna transakcja: koszyk -> wycena -> Order + OrderItems + Payment ->
       stan magazynu (COD: zdjecie, MoMo: rezerwacja) -> czyszczenie koszyka
    3. po commit (tylko MoMo): requesttopay do bramki
    4. powiadomienia best-effort

    Wywolanie bramki jest poza transakcja. Jesli sie nie uda, zamowienie zostaje
    w PENDING_PAYMENT z rezerwacja, a rozliczeniem zajmuje sie
    ReconciliationService albo ponowienie przez POST /payments.
    """

    def __init__(
        self,
        db: Session,
        momo_client: MomoClient | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.cart_repo = CartRepo(db)
        self.address_repo = AddressRepo(db)
        self.ledger = InventoryLedger(db)
        self.momo = MomoService(db, momo_client or MomoClient())
        self.notifier = notifier or NotificationService(db)

    #commands
    def create_order(
        self,
        user_id: int,
        shipping_address_id: int,
        payment_method: PaymentMethod,
        momo_phone: str | None = None,
    ) -> Dict[str, Any]:
        is_cod = payment_method == PaymentMethod.COD

        if not is_cod and not momo_phone:
            raise ValidationError(
                "MoMo phone number is required for MoMo payments", code="MISSING_PHONE"
            )

        address = self.address_repo.get_user_address(shipping_address_id, user_id)
        if not address:
            raise InvalidAddress()

        try:
            order, payment = self._place_order(user_id, shipping_address_id, payment_method)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order.order_number} created for user {user_id}, "
            f"method {payment_method.value}, total {order.total}"
        )

        gateway = None
        if not is_cod:
            try:
                gateway = self.momo.initiate_pay(
                    payment.id,
                    payment.reference,
                    payment.amount,
                    momo_phone,
                    order.order_number,
                )
            except (GatewayError, ValidationError) as e:
                # zamowienie i rezerwacja zostaja, Payment jest juz FAILED
                logger.error(f"Payment initiation failed for order {order.order_number}: {e.message}")
                raise PaymentInitiationFailed(
                    e.message,
                    data={
                        "orderId": order.id,
                        "orderNumber": order.order_number,
                        "paymentId": payment.id,
                    },
                ) from e

        self.notifier.notify_order_placed(order)

        result = order_to_dict(order)
        if gateway:
            result["payment_url"] = gateway["payment_url"]
            result["transaction_id"] = gateway["transaction_id"]
        return result

    def _place_order(
        self, user_id: int, shipping_address_id: int, payment_method: PaymentMethod
    ) -> Tuple[OrderModel, PaymentModel]:
        is_cod = payment_method == PaymentMethod.COD

        cart = self.cart_repo.get_cart_by_user(user_id)
        items = self.cart_repo.get_cart_items(cart.id) if cart else []
        if not items:
            raise EmptyCart()

        for item in items:
            available = item.product.stock - item.product.reserved_stock
            if available < item.quantity:
                raise InsufficientStock(
                    product_id=item.product_id,
                    requested=item.quantity,
                    available=available,
                    name=item.product.name,
                )

        pricing = price_lines(
            LineInput(
                unit_price=item.product.price,
                discount=item.product.discount,
                quantity=item.quantity,
                product_id=item.product_id,
            )
            for item in items
        )

        payment = PaymentModel(
            amount=pricing.total,
            currency=MTN_MOMO_CURRENCY,
            method=payment_method.value,
            status=PaymentStatus.PENDING.value,
            reference=generate_reference(),
        )
        order = OrderModel(
            order_number=next_order_number(self.db),
            user_id=user_id,
            shipping_address_id=shipping_address_id,
            payment_method=payment_method.value,
            status=(
                OrderStatus.AWAITING_CONFIRMATION.value
                if is_cod
                else OrderStatus.PENDING_PAYMENT.value
            ),
            subtotal=pricing.subtotal,
            vat_amount=pricing.vat,
            total=pricing.total,
            items=[
                OrderItemModel(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=line.unit_price,
                )
                for line in pricing.lines
            ],
            payments=[payment],
        )
        self.repo.add_order(order)

        for line in pricing.lines:
            if is_cod:
                self.ledger.commit_decrement(line.product_id, line.quantity)
            else:
                self.ledger.reserve(line.product_id, line.quantity)

        self.cart_repo.clear_items(cart.id)

        # Optimistic locking na koszyku - rownolegle zamowienie z tego samego koszyka przegrywa
        rowcount = self.cart_repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )
        if rowcount == 0:
            raise ConflictError(
                "Cart was modified by another operation", code="CART_CONFLICT"
            )

        return order, payment

    def cancel_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        try:
            order = self.repo.get_order(order_id, for_update=True)

            if not order:
                raise OrderNotFound()

            if order.user_id != user_id:
                raise ForbiddenError("Not authorized to cancel this order")

            if order.status not in {s.value for s in CANCELLABLE_ORDER_STATUSES}:
                raise NotCancellable()

            # wszystkie pozycje w jednej transakcji - bez czesciowego zwrotu
            self.ledger.return_order_stock(order)

            for payment in order.payments:
                if payment.status in {s.value for s in ACTIVE_PAYMENT_STATUSES}:
                    payment.status = PaymentStatus.CANCELLED.value

            order.status = OrderStatus.CANCELLED.value
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.order_number} cancelled by user {user_id}")

        self.notifier.notify_order_cancelled(order)
        return order_to_dict(order)

    #query - odczyt
    def get_order_details(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFound()

        if order.user_id != user_id:
            raise ForbiddenError("Not authorized to view this order")

        return order_to_dict(order)

    def get_user_orders(self, criteria: OrderFilter) -> Tuple[List[Dict[str, Any]], int]:
        orders, total = self.repo.list_orders(criteria)

        for order in orders:
            if order.user_id != criteria.user_id:
                raise ForbiddenError("Not authorized to view this order")

        return [order_to_dict(o) for o in orders], total
