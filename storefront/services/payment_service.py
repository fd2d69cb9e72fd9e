# storefront/services/payment_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    ForbiddenError,
    GatewayError,
    OrderNotFound,
    OrderNotPayable,
    PaymentInitiationFailed,
    PaymentInProgress,
    PaymentNotFound,
    ValidationError,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.inventory_service import InventoryLedger
from storefront.services.momo_client import MomoClient
from storefront.services.momo_service import MomoService
from storefront.utils.logging import get_logger
from storefront.utils.payments import generate_reference
from storefront.utils.settings import MTN_MOMO_CURRENCY

logger = get_logger(__name__)

PAYMENT_MESSAGES = {
    PaymentMethod.MOMO: "Payment request sent to your mobile phone. Please check and approve.",
    PaymentMethod.COD: "Order created. Payment expected on delivery",
}


def payment_to_dict(payment: PaymentModel) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "method": payment.method,
        "status": payment.status,
        "reference": payment.reference,
        "transaction_id": payment.transaction_id,
        "error": payment.error,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
    }


class PaymentService:
    """
    Bezposredni dostep do platnosci zamowienia:
    - create_payment: ponowienie platnosci (nowy Payment, nowa referencja)
    - get_payment / verify_payment: odczyt i polling statusu u dostawcy
    """

    def __init__(self, db: Session, momo_client: MomoClient | None = None):
        self.db = db
        self.repo = PaymentRepo(db)
        self.order_repo = OrderRepo(db)
        self.ledger = InventoryLedger(db)
        self.momo = MomoService(db, momo_client or MomoClient())

    def create_payment(
        self,
        user_id: int,
        order_id: int,
        method: PaymentMethod,
        momo_phone: str | None = None,
    ) -> Dict[str, Any]:
        if method == PaymentMethod.MOMO and not momo_phone:
            raise ValidationError(
                "MoMo phone number is required for MoMo payments", code="MISSING_PHONE"
            )

        try:
            order = self.order_repo.get_order(order_id, for_update=True)
            if not order:
                raise OrderNotFound("Order not found or does not belong to the user")
            if order.user_id != user_id:
                raise ForbiddenError("You do not have permission to pay for this order")
            if order.status != OrderStatus.PENDING_PAYMENT.value:
                raise OrderNotPayable(f"Order {order.order_number} is {order.status}")

            active = self.repo.get_active_for_order(order.id)
            if active:
                raise PaymentInProgress(
                    f"Payment {active.reference} is still {active.status}",
                    data={"paymentId": active.id},
                )

            payment = PaymentModel(
                amount=order.total,
                currency=MTN_MOMO_CURRENCY,
                method=method.value,
                status=PaymentStatus.PENDING.value,
                reference=generate_reference(),
            )
            order.payments.append(payment)
            self.db.flush()

            if method == PaymentMethod.COD:
                # przejscie na platnosc przy odbiorze: rezerwacja -> zdjecie ze stanu
                for item in order.items:
                    self.ledger.settle_reservation(item.product_id, item.quantity)
                order.payment_method = PaymentMethod.COD.value
                order.status = OrderStatus.AWAITING_CONFIRMATION.value

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment {payment.id} ({method.value}) created for order {order_id}")

        result = payment_to_dict(payment)
        result["message"] = PAYMENT_MESSAGES[method]

        if method == PaymentMethod.MOMO:
            try:
                gateway = self.momo.initiate_pay(
                    payment.id,
                    payment.reference,
                    payment.amount,
                    momo_phone,
                    order.order_number,
                )
            except (GatewayError, ValidationError) as e:
                raise PaymentInitiationFailed(
                    f"MOMO payment processing failed: {e.message}",
                    data={"orderId": order_id, "paymentId": payment.id},
                ) from e
            result.update(payment_to_dict(payment))
            result["payment_url"] = gateway["payment_url"]

        return result

    def get_payment(self, payment_id: int, user_id: int) -> Dict[str, Any]:
        return payment_to_dict(self._get_owned(payment_id, user_id))

    def verify_payment(self, payment_id: int, user_id: int) -> Dict[str, Any]:
        payment = self._get_owned(payment_id, user_id)

        if payment.method == PaymentMethod.MOMO.value:
            status = self.momo.check_status(payment.reference)
        else:
            # COD rozliczany przy dostawie, nie ma czego odpytywac
            status = PaymentStatus(payment.status)

        if status.value != payment.status:
            try:
                locked = self.repo.get_by_reference(payment.reference, for_update=True)
                self.momo.apply_status(locked, status)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            payment = locked

        return {
            "status": payment.status,
            "payment_id": payment.id,
            "reference": payment.reference,
            "updated_at": payment.updated_at,
        }

    def _get_owned(self, payment_id: int, user_id: int) -> PaymentModel:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFound()
        if payment.order.user_id != user_id:
            raise ForbiddenError("You do not have permission to access this payment")
        return payment
