# storefront/services/reconciliation_service.py
from datetime import datetime, timedelta, timezone
from typing import Dict

from sqlalchemy.orm import Session

from storefront.domain.enums import (
    ACTIVE_PAYMENT_STATUSES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.inventory_service import InventoryLedger
from storefront.services.momo_client import MomoClient
from storefront.services.momo_service import MomoService
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger
from storefront.utils.settings import PAYMENT_PENDING_TIMEOUT_MINUTES

logger = get_logger(__name__)

EXPIRED_MESSAGE = "Payment expired"


class ReconciliationService:
    """
    Krok kompensujacy sagi zamowienia.

    Zamowienia w PENDING_PAYMENT, ktorych ostatnia platnosc jest starsza niz
    timeout: platnosc w toku jest najpierw odpytywana u dostawcy (moze byc juz
    PAID), w przeciwnym razie zamowienie wygasa - rezerwacja wraca, status
    CANCELLED. Kazde zamowienie w osobnej transakcji.
    """

    def __init__(
        self,
        db: Session,
        momo_client: MomoClient | None = None,
        notifier: NotificationService | None = None,
        timeout_minutes: int = PAYMENT_PENDING_TIMEOUT_MINUTES,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.payment_repo = PaymentRepo(db)
        self.ledger = InventoryLedger(db)
        self.momo = MomoService(db, momo_client or MomoClient())
        self.notifier = notifier or NotificationService(db)
        self.timeout = timedelta(minutes=timeout_minutes)

    def sweep(self, now: datetime | None = None) -> Dict[str, int]:
        now = now or datetime.now(timezone.utc)
        order_ids = self.payment_repo.stale_pending_order_ids(now - self.timeout)
        logger.info(f"Reconciling {len(order_ids)} stale pending orders")

        summary = {"settled": 0, "expired": 0}
        for order_id in order_ids:
            try:
                outcome = self._reconcile(order_id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to reconcile order {order_id}: {e}")
                continue
            if outcome:
                summary[outcome] += 1

        logger.info(f"Reconciliation done: {summary}")
        return summary

    def _reconcile(self, order_id: int) -> str | None:
        order = self.repo.get_order(order_id)
        payment = order.latest_payment if order else None
        if not payment or order.status != OrderStatus.PENDING_PAYMENT.value:
            return None

        # polling poza transakcja, potem lock na zamowieniu
        status = None
        if (
            payment.method == PaymentMethod.MOMO.value
            and payment.status in {s.value for s in ACTIVE_PAYMENT_STATUSES}
        ):
            status = self.momo.check_status(payment.reference)

        order = self.repo.get_order(order_id, for_update=True)
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            self.db.rollback()
            return None
        payment = order.latest_payment

        if status == PaymentStatus.PAID:
            self.momo.apply_status(payment, status)
            self.db.commit()
            logger.info(f"Order {order.order_number} settled by reconciliation")
            return "settled"

        if payment.status in {s.value for s in ACTIVE_PAYMENT_STATUSES}:
            payment.status = PaymentStatus.FAILED.value
            payment.error = EXPIRED_MESSAGE

        self.ledger.return_order_stock(order)
        order.status = OrderStatus.CANCELLED.value
        self.db.commit()

        logger.info(f"Order {order.order_number} expired, reservation released")
        self.notifier.notify_order_cancelled(order)
        return "expired"
