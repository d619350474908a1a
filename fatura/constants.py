"""Project-wide constants."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from os import getenv
import csv


def _env_bool(name: str, default: str | None = None) -> bool:
    """Return a boolean flag read from the environment."""

    value = getenv(name)
    if value is None:
        value = default if default is not None else "0"
    value = str(value).strip().lower()
    return value not in {"0", "false", "no", "off", ""}


def _env_decimal(name: str, default: Decimal | str) -> Decimal:
    """Return a non-negative :class:`Decimal` read from the environment."""

    fallback = Decimal(str(default))
    raw = getenv(name)
    if raw is None or str(raw).strip() == "":
        return abs(fallback)
    try:
        normalized = str(raw).strip().replace(",", ".")
        value = Decimal(normalized)
    except Exception:
        return abs(fallback)
    return abs(value) if value.is_finite() else abs(fallback)


# Retenção na fonte on service sales above the threshold (base currency).
WITHHOLDING_RATE = _env_decimal("FATURA_WITHHOLDING_RATE", "0.065")
WITHHOLDING_THRESHOLD = _env_decimal("FATURA_WITHHOLDING_THRESHOLD", "20000")

# IVA rate applied to new lines and to POS carts (percent).
DEFAULT_TAX_RATE = _env_decimal("FATURA_DEFAULT_TAX_RATE", "14")

BASE_CURRENCY = (getenv("FATURA_BASE_CURRENCY") or "AOA").strip().upper()

# Display/export rounding step; totals are kept unrounded internally.
MONEY_STEP = _env_decimal("FATURA_MONEY_STEP", "0.01")

CLAMP_NEGATIVE_TOTAL = _env_bool("FATURA_CLAMP_NEGATIVE_TOTAL", "0")

# Consumidor final
DEFAULT_NIF = "999999999"
DEFAULT_CLIENT_NAME = "Consumidor Final"

SAFT_VERSION = "1.01_01"

# Default exchange rates to the base currency.
EXCHANGE_RATES: dict[str, Decimal] = {
    "AOA": Decimal("1"),
    "USD": Decimal("850"),
    "EUR": Decimal("920"),
    "EURO": Decimal("920"),
    "BRL": Decimal("170"),
}

# ----------------------------------------------------------------------
#  Optional CSV (currency,rate) with local exchange rate overrides
# ----------------------------------------------------------------------
rates_path = Path(
    getenv("FATURA_EXCHANGE_RATES_FILE")
    or Path(__file__).parent / "data" / "exchange_rates.csv"
)

if rates_path.exists():
    with rates_path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            code = (row.get("currency") or "").strip().upper()
            rate = row.get("rate")
            try:
                rate_dec = Decimal(str(rate).strip().replace(",", "."))
            except Exception:
                continue
            if code and rate_dec.is_finite() and rate_dec > 0:
                EXCHANGE_RATES[code] = rate_dec
