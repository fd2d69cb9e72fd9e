# storefront/repos/order_repo.py
from typing import List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.domain.filters import OrderFilter


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int, for_update: bool = False) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.payments))
        )
        if for_update:
            stmt = stmt.with_for_update(of=OrderModel).execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_orders(self, criteria: OrderFilter) -> Tuple[List[OrderModel], int]:
        predicates = [OrderModel.user_id == criteria.user_id]
        if criteria.status is not None:
            predicates.append(OrderModel.status == criteria.status.value)

        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*predicates)
        ).scalar_one()

        orders = self.db.execute(
            select(OrderModel)
            .where(*predicates)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.payments))
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(criteria.offset)
            .limit(criteria.limit)
        ).scalars().all()

        return list(orders), total

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
