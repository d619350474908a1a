from decimal import Decimal

from fatura.money import (
    format_money,
    percent_of,
    round_money,
    round_to_step,
    to_decimal,
)


def test_to_decimal_handles_junk():
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("") == Decimal("0")
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal(float("nan")) == Decimal("0")
    assert to_decimal(None, default="1") == Decimal("1")


def test_to_decimal_comma_and_float():
    assert to_decimal("12,5") == Decimal("12.5")
    assert to_decimal(0.1) == Decimal("0.1")


def test_round_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("-2.345")) == Decimal("-2.35")
    assert round_to_step(Decimal("12.5"), Decimal("1")) == Decimal("13")


def test_percent_of():
    assert percent_of(Decimal("3000"), 14) == Decimal("420")


def test_format_money():
    assert format_money(Decimal("1234.5")) == "1 234,50 Kz"
    assert format_money(Decimal("1234567.891")) == "1 234 567,89 Kz"
    assert format_money(Decimal("-570")) == "-570,00 Kz"
    assert format_money(Decimal("12"), currency=None) == "12,00"

