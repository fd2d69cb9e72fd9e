# storefront/domain/enums.py
from enum import Enum


class OrderStatus(str, Enum):
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"  # COD
    PENDING_PAYMENT = "PENDING_PAYMENT"  # MoMo, czeka na rozliczenie
    PROCESSING = "PROCESSING"
    CANCELLED = "CANCELLED"
    DELIVERED = "DELIVERED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    INITIATED = "INITIATED"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    MOMO = "MOMO"
    COD = "COD"


CANCELLABLE_ORDER_STATUSES = frozenset(
    {OrderStatus.AWAITING_CONFIRMATION, OrderStatus.PENDING_PAYMENT}
)

ACTIVE_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.INITIATED})
TERMINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)
