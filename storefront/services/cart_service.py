from typing import Dict, Any

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductModel
from storefront.domain.errors import (
    ConflictError,
    InsufficientStock,
    NotFoundError,
    ProductNotFound,
    ValidationError,
)
from storefront.repos.cart_repo import CartRepo
from storefront.services.pricing import LineInput, effective_price, price_lines
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Prosta implementacja cqrs i proste use case dla domeny cart
    commands (add, update, remove, clear) modyfikuja stan
    query (get) tylko odczyt

    Jeden koszyk na uzytkownika, pozycje bez ceny - cena jest liczona na zywo
    z produktu i zamrazana dopiero w zamowieniu.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CartRepo(db)

    #query - odczyt
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        self.repo.commit()

        items = self.repo.get_cart_items(cart.id)
        pricing = price_lines(
            LineInput(
                unit_price=i.product.price,
                discount=i.product.discount,
                quantity=i.quantity,
                product_id=i.product_id,
            )
            for i in items
        )

        #dict przyksztalcany w jsona
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "version": cart.version,
            "items": [
                {
                    "product_id": i.product_id,
                    "name": i.product.name,
                    "quantity": i.quantity,
                    "price": i.product.price,
                    "final_price": effective_price(i.product.price, i.product.discount),
                    "available": i.product.stock - i.product.reserved_stock >= i.quantity,
                }
                for i in items
            ],
            "subtotal": pricing.subtotal,
            "vat": pricing.vat,
            "total": pricing.total,
        }

    #commands
    def add_product(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        product = self._get_product(product_id)
        cart = self._get_or_create_cart(user_id)

        existing_item = self.repo.get_cart_item(cart.id, product_id)
        new_quantity = quantity + (existing_item.quantity if existing_item else 0)
        self._check_available(product, new_quantity)

        if existing_item:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, quantity "
                f"{existing_item.quantity} -> {new_quantity}"
            )
            existing_item.quantity = new_quantity
            self.repo.add_cart_item(existing_item)
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            self.repo.add_cart_item(
                CartItemModel(cart_id=cart.id, product_id=product_id, quantity=quantity)
            )

        self._bump_version(cart)
        return self.get_cart(user_id)

    def update_item(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self._get_or_create_cart(user_id)
        item = self.repo.get_cart_item(cart.id, product_id)
        if not item:
            raise NotFoundError("Item not found in cart", code="CART_ITEM_NOT_FOUND")

        self._check_available(self._get_product(product_id), quantity)
        item.quantity = quantity
        self.repo.add_cart_item(item)

        self._bump_version(cart)
        return self.get_cart(user_id)

    def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)

        logger.info(f"Removing product {product_id} from cart {cart.id}")
        if self.repo.delete_cart_item(cart.id, product_id) == 0:
            self.repo.rollback()
            raise NotFoundError("Item not found in cart", code="CART_ITEM_NOT_FOUND")

        self._bump_version(cart)
        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        self.repo.clear_items(cart.id)
        self._bump_version(cart)
        return self.get_cart(user_id)

    def _get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart

        logger.info(f"Creating cart for user {user_id}")
        return self.repo.create_cart(CartModel(user_id=user_id, version=1))

    def _get_product(self, product_id: int) -> ProductModel:
        product = self.db.get(ProductModel, product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found")
        return product

    @staticmethod
    def _check_available(product: ProductModel, quantity: int) -> None:
        available = product.stock - product.reserved_stock
        if available < quantity:
            raise InsufficientStock(
                product_id=product.id,
                requested=quantity,
                available=available,
                name=product.name,
            )

    def _bump_version(self, cart: CartModel) -> None:
        # Optimistic locking
        # np w bazie update set version 2 where id 1 and version 1
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )

        if rowcount == 0:
            self.repo.rollback()
            raise ConflictError(
                "Cart was modified by another operation", code="CART_CONFLICT"
            )

        self.repo.commit()
