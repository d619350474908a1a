"""Period reports over already materialized documents.

* :func:`tax_map` – IVA calculation map for sales or purchases.
* :func:`saft_summary` – per document type counts and totals for SAF-T.
* :func:`management_report` – sold vs. returned lines and top products.
* :func:`client_statement` – debits, credits and balance of one client.
* :func:`purchase_list_totals` – filtered purchase list with net/tax/gross.

All amounts are Decimal and in the base currency.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
import logging
from typing import Iterable, Sequence

import pandas as pd

from fatura import constants
from fatura.models import Document, DocumentTotals, InvoiceType, PurchaseType
from fatura.money import ZERO, HUNDRED, percent_of, to_decimal
from fatura.totals import document_totals
from fatura.utils import parse_date

log = logging.getLogger(__name__)

SALES = "SALES"
PURCHASES = "PURCHASES"

TAX_MAP_COLUMNS = [
    "id",
    "date",
    "doc_number",
    "state",
    "entity",
    "nif",
    "base_amount",
    "iva_amount",
    "total_amount",
    "credito",
    "debito",
    "iva",
    "total",
]

REPORT_LINE_COLUMNS = [
    "ln",
    "serial",
    "description",
    "quantity",
    "unit",
    "unit_price",
    "net",
    "tax",
    "total",
    "doc_number",
    "doc_type",
    "date",
    "client",
]


def _dec_sum(values: Iterable) -> Decimal:
    return sum(values, ZERO)


def snapshot_totals(doc: Document) -> DocumentTotals:
    """Stored snapshot totals, or recomputed ones when none were stored."""
    return doc.totals if doc.totals is not None else document_totals(doc)


def in_period(value, start, end) -> bool:
    lo, hi = parse_date(start), parse_date(end)
    if lo is None or hi is None:
        raise ValueError(f"Invalid period {start!r}..{end!r}")
    d = parse_date(value)
    if d is None:
        return False
    return lo <= d <= hi


def to_base(doc: Document, value) -> Decimal:
    """Convert ``value`` from the currency of ``doc`` to the base currency."""
    if doc.currency == constants.BASE_CURRENCY:
        return value
    return value * doc.exchange_rate


def base_amounts(doc: Document) -> tuple[Decimal, Decimal]:
    """Return ``(total, tax)`` of ``doc`` in the base currency.

    Foreign currency documents use the contravalue (falling back to the
    total when none was stored) and convert the tax with the exchange rate.
    """
    totals = snapshot_totals(doc)
    if doc.currency == constants.BASE_CURRENCY:
        return totals.total, totals.tax_amount
    amount = totals.contra_value or totals.total
    return amount, to_base(doc, totals.tax_amount)


def _select_sales(
    invoices: Iterable[Document], start, end, *, accounting: bool = False
) -> list[Document]:
    out = []
    for inv in invoices:
        if not inv.is_certified:
            continue
        when = (inv.accounting_date or inv.date) if accounting else inv.date
        if in_period(when, start, end):
            out.append(inv)
        else:
            log.debug("Invoice %s outside period %s..%s", inv.id, start, end)
    return out


def _select_purchases(purchases: Iterable[Document], start, end) -> list[Document]:
    return [p for p in purchases if in_period(p.date, start, end)]


# ---------------------------------------------------------------------------
# Tax calculation map
# ---------------------------------------------------------------------------


def _sales_row(inv: Document) -> dict:
    amount, tax = base_amounts(inv)
    base = amount - tax
    credito = debito = ZERO
    if inv.is_return:
        debito = base
        iva = -tax
        total = -amount
    else:
        credito = base
        iva = tax
        total = amount
    return {
        "id": inv.id,
        "date": inv.date,
        "doc_number": inv.number,
        "state": inv.status,
        "entity": inv.party_name,
        "nif": inv.party_nif or constants.DEFAULT_NIF,
        "base_amount": debito if inv.is_return else credito,
        "iva_amount": iva,
        "total_amount": total,
        "credito": credito,
        "debito": debito,
        "iva": iva,
        "total": total,
    }


def _purchase_row(pur: Document) -> dict:
    totals = snapshot_totals(pur)
    return {
        "id": pur.id,
        "date": pur.date,
        "doc_number": pur.number,
        "state": pur.status,
        "entity": pur.party_name,
        "nif": pur.party_nif,
        "base_amount": totals.subtotal,
        "iva_amount": totals.tax_amount,
        "total_amount": totals.total,
        "credito": ZERO,
        "debito": totals.subtotal,
        "iva": totals.tax_amount,
        "total": totals.total,
    }


def tax_map(
    invoices: Iterable[Document],
    purchases: Iterable[Document] = (),
    start=None,
    end=None,
    mode: str = SALES,
) -> tuple[pd.DataFrame, dict[str, Decimal]]:
    """Build the IVA calculation map for ``start``..``end`` (inclusive).

    In ``SALES`` mode only certified invoices are included; credit notes
    and cancelled invoices reduce the figures.  ``PURCHASES`` mode includes
    every purchase of the period with its base as debit.

    Returns ``(rows, totals)`` where ``totals`` has ``credito``, ``debito``,
    ``iva`` and ``total``.
    """
    start = start or date.today()
    end = end or date.today()
    if mode == SALES:
        rows = [_sales_row(inv) for inv in _select_sales(invoices, start, end)]
    elif mode == PURCHASES:
        rows = [_purchase_row(p) for p in _select_purchases(purchases, start, end)]
    else:
        raise ValueError(f"Unknown tax map mode: {mode!r}")

    df = pd.DataFrame(rows, columns=TAX_MAP_COLUMNS)
    totals = {col: _dec_sum(df[col]) for col in ("credito", "debito", "iva", "total")}
    return df, totals


# ---------------------------------------------------------------------------
# SAF-T summary
# ---------------------------------------------------------------------------


@dataclass
class SaftSummary:
    mode: str
    documents: list[Document]
    by_type: pd.DataFrame
    record_count: int = 0
    total_value: Decimal = ZERO


def _type_order(mode: str) -> Sequence:
    return list(InvoiceType) if mode == SALES else list(PurchaseType)


def saft_summary(
    invoices: Iterable[Document],
    purchases: Iterable[Document],
    start,
    end,
    mode: str = SALES,
) -> SaftSummary:
    """Count and total documents per type for the SAF-T export.

    Sales are filtered by accounting date and must be certified; purchases
    are filtered by document date.
    """
    if mode == SALES:
        docs = _select_sales(invoices, start, end, accounting=True)
        values = [base_amounts(d)[0] for d in docs]
    elif mode == PURCHASES:
        docs = _select_purchases(purchases, start, end)
        values = [base_amounts(d)[0] for d in docs]
    else:
        raise ValueError(f"Unknown SAF-T mode: {mode!r}")

    frame = pd.DataFrame(
        {"type": [d.type for d in docs], "total": values}, dtype=object
    )
    grouped = frame.groupby("type", sort=False).agg(
        count=("total", "size"), total=("total", _dec_sum)
    )
    rows = []
    for member in _type_order(mode):
        if member.value in grouped.index:
            g = grouped.loc[member.value]
            rows.append(
                {
                    "type": member.value,
                    "label": member.label,
                    "count": int(g["count"]),
                    "total": g["total"],
                }
            )
    by_type = pd.DataFrame(rows, columns=["type", "label", "count", "total"])
    return SaftSummary(
        mode=mode,
        documents=docs,
        by_type=by_type,
        record_count=len(docs),
        total_value=_dec_sum(values),
    )


# ---------------------------------------------------------------------------
# Management report
# ---------------------------------------------------------------------------


@dataclass
class ManagementReport:
    sales: pd.DataFrame
    returns: pd.DataFrame
    top_selling: pd.DataFrame
    totals: dict[str, Decimal] = field(default_factory=dict)


def _report_lines(inv: Document) -> list[dict]:
    rows = []
    for idx, line in enumerate(inv.lines, start=1):
        net = line.total
        tax = percent_of(net, line.tax_rate)
        rows.append(
            {
                "ln": idx,
                "serial": (line.product_id or "N/A")[:5].upper(),
                "description": line.description,
                "quantity": line.quantity,
                "unit": line.unit or "un",
                "unit_price": line.unit_price,
                "net": net,
                "tax": tax,
                "total": net * (1 + line.tax_rate / HUNDRED),
                "doc_number": inv.number,
                "doc_type": inv.type,
                "date": inv.date,
                "client": inv.party_name,
            }
        )
    return rows


def management_report(
    invoices: Iterable[Document], start, end, top: int = 5
) -> ManagementReport:
    """Split certified invoice lines of the period into sales and returns.

    Credit notes are returns.  ``totals`` holds net/tax/gross per bucket and
    the grand totals (sales minus returns); ``top_selling`` lists the
    ``top`` products by sold quantity.
    """
    sales_rows: list[dict] = []
    return_rows: list[dict] = []
    for inv in _select_sales(invoices, start, end):
        target = return_rows if inv.type == InvoiceType.NC.value else sales_rows
        target.extend(_report_lines(inv))

    sales = pd.DataFrame(sales_rows, columns=REPORT_LINE_COLUMNS)
    returns = pd.DataFrame(return_rows, columns=REPORT_LINE_COLUMNS)

    if sales.empty:
        top_selling = pd.DataFrame(columns=["description", "serial", "quantity", "unit"])
    else:
        top_selling = (
            sales.groupby("description", sort=False, as_index=False)
            .agg(
                serial=("serial", "first"),
                quantity=("quantity", _dec_sum),
                unit=("unit", "first"),
            )
            .sort_values("quantity", ascending=False, kind="stable")
            .head(top)
            .reset_index(drop=True)
        )

    totals = {}
    for prefix, df in (("sales", sales), ("returns", returns)):
        totals[f"{prefix}_net"] = _dec_sum(df["net"])
        totals[f"{prefix}_tax"] = _dec_sum(df["tax"])
        totals[f"{prefix}_gross"] = _dec_sum(df["total"])
    for key in ("net", "tax", "gross"):
        totals[f"grand_{key}"] = totals[f"sales_{key}"] - totals[f"returns_{key}"]

    return ManagementReport(
        sales=sales, returns=returns, top_selling=top_selling, totals=totals
    )


def export_frame(df: pd.DataFrame, path: Path | str) -> Path:
    """Write ``df`` to ``.xlsx`` (openpyxl) or ``.csv`` depending on suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".xlsx":
        df.to_excel(path, index=False, engine="openpyxl")
    elif path.suffix.lower() == ".csv":
        df.to_csv(path, index=False)
    else:
        raise ValueError(f"Unsupported export format: {path.suffix}")
    log.info("Exported %s rows to %s", len(df), path)
    return path


# ---------------------------------------------------------------------------
# Client account statement and purchase list
# ---------------------------------------------------------------------------


STATEMENT_COLUMNS = ["date", "doc_number", "type", "debit", "credit", "balance"]

# Document types that settle or reverse a client's debt.
_CREDIT_TYPES = (InvoiceType.NC.value, InvoiceType.RG.value)


@dataclass
class ClientStatement:
    client_id: str
    entries: pd.DataFrame
    initial_balance: Decimal = ZERO
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    balance: Decimal = ZERO


def client_statement(
    invoices: Iterable[Document], client_id: str, initial_balance=ZERO
) -> ClientStatement:
    """Conta corrente of ``client_id`` over its certified invoices.

    Credit notes and receipts are credits, every other document is a debit.
    Amounts are in the base currency.  ``balance`` is the initial balance
    plus debits minus credits; the entries carry the running balance.
    """
    docs = sorted(
        (i for i in invoices if i.party_id == client_id and i.is_certified),
        key=lambda i: (parse_date(i.date) or date.min, i.number),
    )
    running = initial_balance = to_decimal(initial_balance)
    rows = []
    for inv in docs:
        amount = base_amounts(inv)[0]
        debit, credit = (ZERO, amount) if inv.type in _CREDIT_TYPES else (amount, ZERO)
        running += debit - credit
        rows.append(
            {
                "date": inv.date,
                "doc_number": inv.number,
                "type": inv.type,
                "debit": debit,
                "credit": credit,
                "balance": running,
            }
        )
    entries = pd.DataFrame(rows, columns=STATEMENT_COLUMNS)
    debit = _dec_sum(entries["debit"])
    credit = _dec_sum(entries["credit"])
    return ClientStatement(
        client_id=client_id,
        entries=entries,
        initial_balance=initial_balance,
        debit=debit,
        credit=credit,
        balance=initial_balance + debit - credit,
    )


def _matches(pur: Document, search: str) -> bool:
    needle = search.strip().lower()
    return (
        needle in (pur.party_name or "").lower()
        or needle in (pur.number or "").lower()
        or needle in (pur.party_nif or "")
    )


def purchase_list_totals(
    purchases: Iterable[Document],
    start=None,
    end=None,
    status: str | None = None,
    search: str | None = None,
) -> tuple[pd.DataFrame, dict[str, Decimal]]:
    """Filter the purchase list and total its net, tax and gross amounts.

    Net is the subtotal after the global discount.  Open bounds, a missing
    ``status`` or an empty ``search`` do not filter.
    """
    rows = []
    for pur in purchases:
        when = parse_date(pur.date)
        if start is not None and (when is None or when < parse_date(start)):
            continue
        if end is not None and (when is None or when > parse_date(end)):
            continue
        if status and pur.status != status:
            continue
        if search and not _matches(pur, search):
            continue
        totals = snapshot_totals(pur)
        gross, tax = base_amounts(pur)
        rows.append(
            {
                "date": pur.date,
                "type": pur.type,
                "supplier": pur.party_name,
                "nif": pur.party_nif,
                "doc_number": pur.number,
                "net": to_base(pur, totals.subtotal - totals.global_discount_amount),
                "tax": tax,
                "gross": gross,
                "status": pur.status,
            }
        )
    df = pd.DataFrame(
        rows,
        columns=["date", "type", "supplier", "nif", "doc_number",
                 "net", "tax", "gross", "status"],
    )
    return df, {col: _dec_sum(df[col]) for col in ("net", "tax", "gross")}
