# File: fatura/money.py
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import pandas as pd

from fatura.constants import MONEY_STEP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(x, default: str = "0") -> Decimal:
    """Convert value to Decimal safely.

    Any NaN/None/empty/invalid → Decimal(default).
    Also normalizes comma decimals.
    """
    try:
        if isinstance(x, Decimal):
            return x if x.is_finite() else Decimal(default)
        if isinstance(x, bool):
            return Decimal(int(x))
        if x is None or pd.isna(x):
            return Decimal(default)
        s = str(x).strip().replace(",", ".")
        if not s:
            return Decimal(default)
        d = Decimal(s)
        return d if d.is_finite() else Decimal(default)
    except Exception:
        return Decimal(default)


def round_to_step(
    value: Decimal, step: Decimal, rounding=ROUND_HALF_UP
) -> Decimal:
    """Round ``value`` to the nearest ``step`` (e.g. 0.01 or 0.05)."""
    if step == 0:
        return value
    quant = (value / step).quantize(Decimal("1"), rounding=rounding)
    return (quant * step).quantize(step)


def plain(value: Decimal) -> str:
    """Return ``value`` in positional notation (no exponent)."""
    return format(value, "f")


def round_money(value) -> Decimal:
    """Round an amount for display or export using :data:`MONEY_STEP`."""
    return round_to_step(to_decimal(value), MONEY_STEP)


def percent_of(amount: Decimal, percent) -> Decimal:
    """Return ``percent`` % of ``amount`` without rounding."""
    return amount * to_decimal(percent) / HUNDRED


def format_money(value, currency: str | None = "Kz") -> str:
    """Return ``value`` as ``1 234,50 Kz``.

    Thousands are separated by a space and decimals by a comma.  Pass
    ``currency=None`` to omit the suffix.
    """
    d = round_money(value)
    sign = "-" if d < 0 else ""
    integer, _, frac = format(abs(d), "f").partition(".")
    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    out = sign + " ".join(groups)
    if frac:
        out += "," + frac
    return f"{out} {currency}" if currency else out
