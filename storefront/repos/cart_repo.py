# storefront/repos/cart_repo.py
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == user_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_items(self, cart_id: int) -> List[CartItemModel]:
        # produkty ladowane razem z pozycjami - potrzebne do wyceny
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .options(selectinload(CartItemModel.product))
                .order_by(CartItemModel.id)
            ).scalars().all()
        )

    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: int, product_id: int) -> int:
        return self.db.execute(
            delete(CartItemModel)
            .where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
            .execution_options(synchronize_session="fetch")
        ).rowcount

    def clear_items(self, cart_id: int) -> int:
        return self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session="fetch")
        ).rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # optimistic locking: update ... where id = :id and version = :old
        return self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        ).rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
