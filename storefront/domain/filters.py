# storefront/domain/filters.py
from dataclasses import dataclass

from storefront.domain.enums import OrderStatus


@dataclass(frozen=True)
class OrderFilter:
    """Kryteria listy zamowien, tlumaczone na predykaty w OrderRepo."""

    user_id: int
    status: OrderStatus | None = None
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
