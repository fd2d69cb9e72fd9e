# storefront/utils/order_number.py
import re
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.order_sequence import OrderSequenceModel

_ORDER_NUMBER_RE = re.compile(r"^ORD-(\d{8})-(\d{4,})$")


def format_order_number(day: date, sequence: int) -> str:
    return f"ORD-{day:%Y%m%d}-{sequence:04d}"


def parse_order_number(order_number: str) -> tuple[date, int]:
    match = _ORDER_NUMBER_RE.match(order_number)
    if not match:
        raise ValueError(f"Not an order number: {order_number!r}")
    day = datetime.strptime(match.group(1), "%Y%m%d").date()
    return day, int(match.group(2))


def _upsert_insert(db: Session):
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


def next_order_number(db: Session, today: date | None = None) -> str:
    """
    Atomowy licznik per dzien: INSERT ... ON CONFLICT DO UPDATE last_value + 1.

    Wiersz licznika zostaje zablokowany do konca transakcji zamowienia, wiec dwa
    rownolegle zamowienia nie dostana tego samego numeru, a rollback cofa licznik.
    """
    today = today or datetime.now(timezone.utc).date()
    day = f"{today:%Y%m%d}"

    insert = _upsert_insert(db)
    table = OrderSequenceModel.__table__
    stmt = insert(table).values(day=day, last_value=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.day],
        set_={"last_value": table.c.last_value + 1},
    )
    db.execute(stmt)

    sequence = db.execute(
        select(OrderSequenceModel.last_value).where(OrderSequenceModel.day == day)
    ).scalar_one()

    return format_order_number(today, sequence)
