# storefront/services/momo_service.py
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TERMINAL_PAYMENT_STATUSES,
)
from storefront.domain.errors import GatewayError, PaymentNotFound, PaymentOutcomeUnknown, ValidationError
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.inventory_service import InventoryLedger
from storefront.services.momo_client import MomoClient
from storefront.utils.logging import get_logger
from storefront.utils.payments import map_provider_status, normalize_msisdn

logger = get_logger(__name__)


class MomoService:
    """
    Integracja platnosci MoMo po stronie bazy:
    - initiate_pay: wyslanie requesttopay i zapis wyniku na Payment
    - check_status: odpytanie statusu (bez zapisu)
    - handle_callback / apply_status: rozliczenie statusu z webhooka lub pollingu
    """

    def __init__(self, db: Session, client: MomoClient):
        self.db = db
        self.client = client
        self.repo = PaymentRepo(db)
        self.ledger = InventoryLedger(db)

    def initiate_pay(
        self,
        payment_id: int,
        reference: str,
        amount: Decimal,
        payer_phone: str,
        order_context: str,
    ) -> dict:
        payment = self._get_payment(payment_id)

        try:
            msisdn = normalize_msisdn(payer_phone)
            self.client.request_to_pay(reference, amount, msisdn, order_context)
        except PaymentOutcomeUnknown as e:
            # requesttopay moglo dojsc - o wyniku zdecyduje callback albo sweep
            logger.warning(f"MoMo payment {payment_id} outcome unknown, leaving it in flight: {e.message}")
        except (GatewayError, ValidationError) as e:
            logger.error(f"MoMo payment initiation error for payment {payment_id}: {e.message}")
            payment.status = PaymentStatus.FAILED.value
            payment.error = e.message
            self.db.commit()
            raise

        payment.status = PaymentStatus.INITIATED.value
        payment.transaction_id = reference
        self.db.commit()

        logger.info(f"MoMo payment {payment_id} initiated, reference {reference}")
        return {
            "transaction_id": reference,
            "payment_url": self.client.payment_url(reference),
        }

    def check_status(self, reference: str) -> PaymentStatus:
        try:
            raw_status = self.client.get_status(reference)
        except GatewayError as e:
            # fail-open: chwilowy blad sieci nie moze oznaczyc platnosci jako FAILED
            logger.warning(f"Error checking MoMo status for {reference}: {e.message}")
            return PaymentStatus.PENDING
        return map_provider_status(raw_status)

    def handle_callback(self, reference: str, raw_status: str) -> bool:
        payment = self.repo.get_by_reference(reference, for_update=True)
        if not payment:
            logger.error(f"Payment with reference {reference} not found")
            self.db.rollback()
            return False

        status = map_provider_status(raw_status)
        try:
            self.apply_status(payment, status)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def apply_status(self, payment: PaymentModel, status: PaymentStatus) -> bool:
        """
        Przenosi Payment (i przy PAID zamowienie) do nowego statusu.
        Nie robi commit. Zwraca False, gdy nic sie nie zmienilo.

        Idempotentne: platnosc w stanie terminalnym jest zamrozona, powrot do
        PENDING jest ignorowany.
        """
        current = PaymentStatus(payment.status)
        if current == status:
            return False
        if current in TERMINAL_PAYMENT_STATUSES:
            logger.warning(
                f"Ignoring status {status.value} for payment {payment.id}, already {current.value}"
            )
            return False
        if status == PaymentStatus.PENDING:
            return False

        payment.status = status.value
        logger.info(f"Payment {payment.id} {current.value} -> {status.value}")

        if status == PaymentStatus.PAID:
            self._settle_order(payment)
        return True

    def _settle_order(self, payment: PaymentModel) -> None:
        order: OrderModel = payment.order
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            # np. sweep juz anulowal zamowienie - zwrot pieniedzy recznie
            logger.warning(
                f"Payment {payment.id} PAID but order {order.id} is {order.status}, needs manual refund"
            )
            return

        if order.payment_method == PaymentMethod.MOMO.value:
            for item in order.items:
                self.ledger.settle_reservation(item.product_id, item.quantity)

        order.status = OrderStatus.PROCESSING.value
        logger.info(f"Order {order.id} -> {OrderStatus.PROCESSING.value}")

    def _get_payment(self, payment_id: int) -> PaymentModel:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFound()
        return payment
