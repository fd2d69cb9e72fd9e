# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Generic, List, TypeVar
from decimal import Decimal
from datetime import datetime

from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus

T = TypeVar("T")

# aliasy metod platnosci spotykane u klientow
_PAYMENT_METHOD_ALIASES = {
    "MOMO": PaymentMethod.MOMO,
    "MOBILE_MONEY": PaymentMethod.MOMO,
    "COD": PaymentMethod.COD,
    "CASH_ON_DELIVERY": PaymentMethod.COD,
}

MOMO_PHONE_PATTERN = r"^\+?[0-9]{9,12}$"


class CamelModel(BaseModel):
    """JSON w camelCase, w Pythonie snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _parse_payment_method(value):
    if isinstance(value, PaymentMethod):
        return value
    key = str(value).strip().upper()
    if key == "CARD":
        raise ValueError("Card payments are not supported")
    if key not in _PAYMENT_METHOD_ALIASES:
        raise ValueError(f"Unsupported payment method: {value}")
    return _PAYMENT_METHOD_ALIASES[key]


class Envelope(CamelModel, Generic[T]):
    """Odpowiedz {success, message, data}."""

    success: bool = True
    message: str | None = None
    data: T


# users

class UserCreate(CamelModel):
    """Schema dla tworzenia użytkownika."""

    id: int = Field(..., gt=0, description="ID użytkownika (musi być > 0)")
    name: str = Field(..., min_length=1, max_length=100, description="Imię użytkownika")
    email: str | None = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserRead(CamelModel):
    """Schema dla użytkownika (response)."""

    id: int
    name: str
    email: str | None = None


# addresses

class AddressCreate(CamelModel):
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    district: str | None = Field(None, max_length=100)
    country: str = Field("Rwanda", min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)


class AddressOut(CamelModel):
    id: int
    user_id: int
    street: str
    city: str
    district: str | None = None
    country: str
    phone: str | None = None


# cart

class ItemIn(CamelModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(..., gt=0, description="Ilość produktu (musi być > 0)")


class ItemUpdate(CamelModel):
    quantity: int = Field(..., gt=0)


class CartItemOut(CamelModel):
    """Schema dla produktu w koszyku (response)."""

    product_id: int
    name: str
    quantity: int
    price: Decimal
    final_price: Decimal
    available: bool


class CartOut(CamelModel):
    """Schema dla koszyka (response)."""

    cart_id: int
    user_id: int
    version: int
    items: List[CartItemOut]
    subtotal: Decimal
    vat: Decimal
    total: Decimal


# payments

class PaymentOut(CamelModel):
    id: int
    order_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    reference: str
    transaction_id: str | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentInitiationOut(PaymentOut):
    message: str | None = None
    payment_url: str | None = None


class PaymentCreate(CamelModel):
    order_id: int = Field(..., gt=0)
    payment_method: PaymentMethod
    momo_phone: str | None = Field(None, pattern=MOMO_PHONE_PATTERN)

    @field_validator("payment_method", mode="before")
    @classmethod
    def parse_payment_method(cls, value):
        return _parse_payment_method(value)

    @model_validator(mode="after")
    def require_phone(self):
        if self.payment_method == PaymentMethod.MOMO and not self.momo_phone:
            raise ValueError("MoMo phone number is required for MoMo payments")
        return self


class PaymentVerificationOut(CamelModel):
    status: PaymentStatus
    payment_id: int
    reference: str
    updated_at: datetime


class MomoCallbackIn(CamelModel):
    """Webhook MoMo. Wymagane tylko referenceId i status."""

    reference_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    reason: str | None = None
    external_id: str | None = None
    amount: str | None = None
    currency: str | None = None
    financial_transaction_id: str | None = None


class CallbackAck(CamelModel):
    success: bool
    message: str


# orders

class OrderCreate(CamelModel):
    """Schema dla tworzenia zamówienia z koszyka użytkownika."""

    shipping_address_id: int = Field(..., gt=0)
    payment_method: PaymentMethod
    momo_phone: str | None = Field(None, pattern=MOMO_PHONE_PATTERN)

    @field_validator("payment_method", mode="before")
    @classmethod
    def parse_payment_method(cls, value):
        return _parse_payment_method(value)

    @model_validator(mode="after")
    def require_phone(self):
        if self.payment_method == PaymentMethod.MOMO and not self.momo_phone:
            raise ValueError("MoMo phone number is required for MoMo payments")
        return self


class OrderItemOut(CamelModel):
    product_id: int
    quantity: int
    price: Decimal


class OrderOut(CamelModel):
    """Schema dla zamówienia (response)."""

    id: int
    order_number: str
    user_id: int
    shipping_address_id: int
    payment_method: PaymentMethod
    status: OrderStatus
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    items: List[OrderItemOut]
    payment: PaymentOut | None = None
    payment_url: str | None = None
    transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderListOut(CamelModel):
    success: bool = True
    data: List[OrderOut]
    pagination: Pagination


# notifications

class NotificationOut(CamelModel):
    id: int
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime
