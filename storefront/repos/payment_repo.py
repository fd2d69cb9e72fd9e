# storefront/repos/payment_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import ACTIVE_PAYMENT_STATUSES, OrderStatus


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def get_by_reference(self, reference: str, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.reference == reference)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_active_for_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel)
            .where(
                PaymentModel.order_id == order_id,
                PaymentModel.status.in_([s.value for s in ACTIVE_PAYMENT_STATUSES]),
            )
            .order_by(PaymentModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def stale_pending_order_ids(self, cutoff: datetime) -> List[int]:
        """Zamowienia PENDING_PAYMENT, ktorych ostatnia platnosc powstala przed cutoff."""
        latest = (
            select(PaymentModel.order_id, func.max(PaymentModel.created_at).label("last_created"))
            .group_by(PaymentModel.order_id)
            .subquery()
        )
        rows = self.db.execute(
            select(OrderModel.id)
            .join(latest, latest.c.order_id == OrderModel.id)
            .where(
                OrderModel.status == OrderStatus.PENDING_PAYMENT.value,
                latest.c.last_created < cutoff,
            )
            .order_by(OrderModel.id)
        ).scalars().all()
        return list(rows)
