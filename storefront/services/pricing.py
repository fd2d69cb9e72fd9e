"""Order pricing: discounted line prices, subtotal, VAT and total.

All money is ``Decimal`` rounded half-up to two places. Line prices are rounded
before they are multiplied by the quantity, so the stored ``OrderItem.price``
times the quantity always adds up to the stored subtotal.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, List

from storefront.domain.errors import InvalidLineItem
from storefront.utils.settings import VAT_RATE

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidLineItem(f"Not a valid amount: {value!r}") from e


@dataclass(frozen=True)
class LineInput:
    unit_price: Decimal | None
    discount: Decimal | None
    quantity: int
    product_id: int | None = None


@dataclass(frozen=True)
class PricedLine:
    product_id: int | None
    quantity: int
    unit_price: Decimal  # po rabacie
    line_total: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    lines: List[PricedLine]
    subtotal: Decimal
    vat: Decimal
    total: Decimal


def effective_price(price, discount=None) -> Decimal:
    price = to_decimal(price)
    if discount:
        discount = to_decimal(discount)
        if discount < 0 or discount > HUNDRED:
            raise InvalidLineItem(f"Discount must be between 0 and 100, got {discount}")
        return round2(price * (1 - discount / HUNDRED))
    return round2(price)


def _price_line(line: LineInput) -> PricedLine:
    if line.unit_price is None:
        raise InvalidLineItem(f"Missing price for product {line.product_id}")
    if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
        raise InvalidLineItem(f"Quantity must be a positive integer, got {line.quantity!r}")

    price = to_decimal(line.unit_price)
    if price < 0:
        raise InvalidLineItem(f"Negative price for product {line.product_id}")

    unit = effective_price(price, line.discount)
    return PricedLine(
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=unit,
        line_total=unit * line.quantity,
    )


def price_lines(lines: Iterable[LineInput], vat_rate: Decimal = VAT_RATE) -> PriceBreakdown:
    priced = [_price_line(line) for line in lines]

    subtotal = round2(sum((p.line_total for p in priced), Decimal("0.00")))
    vat = round2(subtotal * to_decimal(vat_rate))

    return PriceBreakdown(
        lines=priced,
        subtotal=subtotal,
        vat=vat,
        total=round2(subtotal + vat),
    )
