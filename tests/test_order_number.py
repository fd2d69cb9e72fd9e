"""Tests for per-day order numbers."""

from datetime import date

import pytest

from storefront.utils.order_number import (
    format_order_number,
    next_order_number,
    parse_order_number,
)


def test_format():
    assert format_order_number(date(2024, 3, 7), 5) == "ORD-20240307-0005"


def test_format_past_four_digits():
    assert format_order_number(date(2024, 3, 7), 12345) == "ORD-20240307-12345"


def test_parse_round_trip():
    number = format_order_number(date(2023, 12, 31), 42)
    assert parse_order_number(number) == (date(2023, 12, 31), 42)


@pytest.mark.parametrize("value", ["", "ORD-2024-0001", "ORD-20240307-01", "INV-20240307-0001"])
def test_parse_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_order_number(value)


def test_sequence_counts_per_day(db):
    day = date(2024, 5, 1)

    numbers = [next_order_number(db, today=day) for _ in range(3)]
    db.commit()

    assert numbers == ["ORD-20240501-0001", "ORD-20240501-0002", "ORD-20240501-0003"]


def test_new_day_starts_from_one(db):
    next_order_number(db, today=date(2024, 5, 1))
    next_order_number(db, today=date(2024, 5, 1))

    assert next_order_number(db, today=date(2024, 5, 2)) == "ORD-20240502-0001"


def test_rollback_returns_the_number(db):
    day = date(2024, 5, 1)
    next_order_number(db, today=day)
    db.commit()

    next_order_number(db, today=day)
    db.rollback()

    assert next_order_number(db, today=day) == "ORD-20240501-0002"
