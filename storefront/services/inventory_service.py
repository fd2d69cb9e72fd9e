# storefront/services/inventory_service.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.domain.enums import OrderStatus
from storefront.domain.errors import ConflictError, InsufficientStock, ProductNotFound, ValidationError
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryLedger:
    """
    Stan magazynu: stock i reserved_stock per produkt.

    Kazda operacja to jeden warunkowy UPDATE (check-then-act w jednym zapytaniu),
    wiec rownolegle transakcje na tym samym produkcie serializuja sie na blokadzie
    wiersza. Ledger nigdy nie robi commit - granica transakcji nalezy do wolajacego.

    Niezmiennik: stock - reserved_stock >= 0 po kazdej operacji.
    """

    def __init__(self, db: Session):
        self.db = db

    def available(self, product_id: int) -> int:
        product = self._get(product_id)
        return product.stock - product.reserved_stock

    def reserve(self, product_id: int, qty: int) -> None:
        """MoMo: trzymaj sztuki do czasu potwierdzenia platnosci."""
        self._apply(
            product_id,
            qty,
            guard=ProductModel.stock - ProductModel.reserved_stock >= qty,
            values={"reserved_stock": ProductModel.reserved_stock + qty},
        )
        logger.info(f"Reserved {qty} of product {product_id}")

    def commit_decrement(self, product_id: int, qty: int) -> None:
        """COD: zdejmij ze stanu od razu, bez fazy rezerwacji."""
        self._apply(
            product_id,
            qty,
            guard=ProductModel.stock - ProductModel.reserved_stock >= qty,
            values={"stock": ProductModel.stock - qty},
        )
        logger.info(f"Decremented stock of product {product_id} by {qty}")

    def release(self, product_id: int, qty: int) -> None:
        """Zwrot na stan przy anulowaniu zamowienia, ktore juz zdjelo stock."""
        self._apply(
            product_id,
            qty,
            guard=None,
            values={"stock": ProductModel.stock + qty},
        )
        logger.info(f"Restocked {qty} of product {product_id}")

    def release_reservation(self, product_id: int, qty: int) -> None:
        """Zwolnij rezerwacje zamowienia, ktore nie zostalo oplacone."""
        self._apply(
            product_id,
            qty,
            guard=ProductModel.reserved_stock >= qty,
            values={"reserved_stock": ProductModel.reserved_stock - qty},
            reservation=True,
        )
        logger.info(f"Released reservation of {qty} for product {product_id}")

    def settle_reservation(self, product_id: int, qty: int) -> None:
        """Platnosc potwierdzona: rezerwacja zamienia sie w zdjecie ze stanu."""
        self._apply(
            product_id,
            qty,
            guard=ProductModel.reserved_stock >= qty,
            values={
                "stock": ProductModel.stock - qty,
                "reserved_stock": ProductModel.reserved_stock - qty,
            },
            reservation=True,
        )
        logger.info(f"Settled reservation of {qty} for product {product_id}")

    def _apply(self, product_id: int, qty: int, guard, values: dict, reservation: bool = False) -> None:
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(f"Quantity must be a positive integer, got {qty!r}")

        stmt = update(ProductModel).where(ProductModel.id == product_id)
        if guard is not None:
            stmt = stmt.where(guard)
        stmt = stmt.values(**values).execution_options(synchronize_session="fetch")

        rowcount = self.db.execute(stmt).rowcount

        # 0 rows affected: albo nie ma produktu, albo warunek nie przeszedl
        if rowcount == 0:
            product = self._get(product_id)
            if reservation:
                raise ConflictError(
                    f"Reservation of product {product_id} is {product.reserved_stock}, cannot release {qty}"
                )
            raise InsufficientStock(
                product_id=product_id,
                requested=qty,
                available=product.stock - product.reserved_stock,
                name=product.name,
            )

    def _get(self, product_id: int) -> ProductModel:
        product = self.db.get(ProductModel, product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found")
        return product

    def return_order_stock(self, order) -> None:
        """
        Oddaje towar anulowanego zamowienia: zamowienie MoMo czekajace na
        platnosc ma tylko rezerwacje, pozostale juz zdjely stock.
        """
        reserved_only = order.status == OrderStatus.PENDING_PAYMENT.value
        for item in order.items:
            if reserved_only:
                self.release_reservation(item.product_id, item.quantity)
            else:
                self.release(item.product_id, item.quantity)
