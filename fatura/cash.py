from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Iterable, Mapping

from fatura.models import CashClosure, CashRegister, Document, InvoiceStatus
from fatura.money import ZERO, to_decimal
from fatura.reports import snapshot_totals
from fatura.utils import parse_date
from fatura.documents import new_id

log = logging.getLogger(__name__)


def register_sales(
    register_id: str, invoices: Iterable[Document], day=None
) -> list[Document]:
    """Paid invoices booked on ``register_id`` on ``day`` (default today)."""
    target = parse_date(day) if day is not None else date.today()
    return [
        inv
        for inv in invoices
        if inv.cash_register_id == register_id
        and parse_date(inv.date) == target
        and inv.status == InvoiceStatus.PAID.value
    ]


def compute_cash_closure(
    register: CashRegister,
    invoices: Iterable[Document],
    actual_cash,
    *,
    day=None,
    operator_name: str = "",
    operator_id: str | None = None,
    notes: str = "",
) -> CashClosure:
    """Close ``register`` for ``day``.

    ``expected = initial balance + paid sales`` and
    ``difference = actual - expected``; a negative difference is a shortage.
    """
    sales = register_sales(register.id, invoices, day)
    total_sales = sum((snapshot_totals(inv).total for inv in sales), ZERO)
    expected = register.initial_balance + total_sales
    actual = to_decimal(actual_cash)
    closure = CashClosure(
        id=new_id(),
        date=datetime.now().isoformat(timespec="seconds"),
        cash_register_id=register.id,
        operator_id=operator_id,
        operator_name=operator_name,
        initial_balance=register.initial_balance,
        total_sales=total_sales,
        expected_cash=expected,
        actual_cash=actual,
        difference=actual - expected,
        final_balance=actual,
        sales_count=len(sales),
        notes=notes,
    )
    if closure.difference:
        log.warning(
            "Cash register %s closed with difference %s",
            register.id,
            closure.difference,
        )
    return closure


def closure_history_summary(closures: Iterable[Mapping]) -> dict[str, Decimal]:
    """Sum sales and differences over stored closures."""
    total_sales = ZERO
    total_difference = ZERO
    count = 0
    for c in closures:
        total_sales += to_decimal(c.get("total_sales"))
        total_difference += to_decimal(c.get("difference"))
        count += 1
    return {
        "count": Decimal(count),
        "total_sales": total_sales,
        "total_difference": total_difference,
    }


def register_from_dict(data: Mapping) -> CashRegister:
    return CashRegister(
        id=str(data["id"]),
        name=data.get("name") or "",
        status=data.get("status") or "OPEN",
        balance=to_decimal(data.get("balance")),
        initial_balance=to_decimal(
            data.get("initial_balance", data.get("initialBalance"))
        ),
        operator_id=data.get("operator_id"),
    )
