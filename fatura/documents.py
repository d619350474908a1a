"""Building, validating and serializing invoice and purchase documents.

A document is built from user input, its totals are recomputed and it is
submitted once as a snapshot.  Certified documents are read-only:
:func:`update_document` refuses to touch them.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
import logging
import uuid
from typing import Iterable, Mapping

from fatura.constants import DEFAULT_CLIENT_NAME, DEFAULT_NIF, DEFAULT_TAX_RATE
from fatura.models import (
    INVOICE,
    PURCHASE,
    CashRegister,
    Document,
    DocumentLine,
    DocumentTotals,
    InvoiceStatus,
    InvoiceType,
    LineType,
    PaymentMethod,
    PurchaseType,
    RetentionType,
)
from fatura.money import plain, to_decimal
from fatura.totals import compute_pos_totals, default_exchange_rate, document_totals
from fatura.utils import norm_nif, normalize_date

log = logging.getLogger(__name__)


class DocumentValidationError(ValueError):
    """Raised when required document fields are missing."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class CertifiedDocumentError(PermissionError):
    """Raised on any attempt to modify a certified document."""


class DocumentNotFoundError(KeyError):
    pass


def new_id() -> str:
    return uuid.uuid4().hex


def _today() -> str:
    return date.today().isoformat()


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------

_LINE_KEYS = {
    "unitPrice": "unit_price",
    "taxRate": "tax_rate",
    "productId": "product_id",
    "expiryDate": "expiry_date",
}


def line_from_dict(data: Mapping) -> DocumentLine:
    """Build a :class:`DocumentLine` from snake_case or camelCase keys."""
    d = {_LINE_KEYS.get(k, k): v for k, v in data.items()}

    def _opt(key):
        value = d.get(key)
        return None if value in (None, "") else to_decimal(value)

    tax_rate = d.get("tax_rate")
    return DocumentLine(
        description=str(d.get("description") or ""),
        quantity=to_decimal(d.get("quantity"), default="1"),
        unit_price=to_decimal(d.get("unit_price")),
        discount=to_decimal(d.get("discount")),
        tax_rate=DEFAULT_TAX_RATE if tax_rate is None else to_decimal(tax_rate),
        type=LineType(str(d.get("type") or "PRODUCT").upper()),
        length=_opt("length"),
        width=_opt("width"),
        height=_opt("height"),
        product_id=d.get("product_id"),
        reference=d.get("reference"),
        unit=d.get("unit") or "un",
        expiry_date=d.get("expiry_date") or None,
    )


def _as_line(value) -> DocumentLine:
    return value if isinstance(value, DocumentLine) else line_from_dict(value)


def line_to_dict(line: DocumentLine) -> dict:
    def _s(v):
        return None if v is None else plain(v)

    return {
        "description": line.description,
        "quantity": plain(line.quantity),
        "unit_price": plain(line.unit_price),
        "discount": plain(line.discount),
        "tax_rate": plain(line.tax_rate),
        "type": line.type.value,
        "length": _s(line.length),
        "width": _s(line.width),
        "height": _s(line.height),
        "product_id": line.product_id,
        "reference": line.reference,
        "unit": line.unit,
        "expiry_date": line.expiry_date,
        "total": plain(line.total),
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_invoice(doc: Document) -> None:
    problems = []
    if not doc.party_id:
        problems.append("client is required")
    if not doc.series_id:
        problems.append("series is required")
    if not doc.lines:
        problems.append("at least one line is required")
    if problems:
        raise DocumentValidationError(problems)


def requires_payment(purchase_type: str) -> bool:
    return purchase_type in (PurchaseType.FR.value, PurchaseType.REC.value)


def validate_purchase(doc: Document) -> None:
    problems = []
    if not doc.party_name:
        problems.append("supplier is required")
    if not doc.number or doc.number == "DRAFT":
        problems.append("document number is required")
    if not doc.lines:
        problems.append("at least one line is required")
    if requires_payment(doc.type) and (
        not doc.payment_method or not doc.cash_register_id
    ):
        problems.append("payment method and cash register are required")
    if not doc.warehouse_id:
        problems.append("warehouse is required")
    if problems:
        raise DocumentValidationError(problems)


def validate_document(doc: Document) -> None:
    if doc.is_invoice:
        validate_invoice(doc)
    else:
        validate_purchase(doc)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def invoice_status(invoice_type: str) -> str:
    if invoice_type in (InvoiceType.FR.value, InvoiceType.RG.value):
        return InvoiceStatus.PAID.value
    return InvoiceStatus.PENDING.value


def purchase_status(purchase_type: str) -> str:
    return "PAID" if requires_payment(purchase_type) else "PENDING"


def _with_totals(doc: Document) -> Document:
    return replace(doc, totals=document_totals(doc))


def build_invoice(
    client_id: str,
    lines: Iterable,
    *,
    series_id: str,
    invoice_type=InvoiceType.FT,
    client_name: str | None = None,
    client_nif: str | None = None,
    invoice_date: str | None = None,
    global_discount=0,
    currency: str = "AOA",
    exchange_rate=None,
    retention_type=RetentionType.NONE,
    company_id: str | None = None,
    doc_id: str | None = None,
    **extra,
) -> Document:
    """Return a validated invoice with derived status and totals.

    ``exchange_rate`` defaults to the configured rate of ``currency``.
    Extra keyword arguments are passed to :class:`Document` (e.g.
    ``cash_register_id``, ``payment_method``, ``notes``).
    """
    inv_type = InvoiceType.parse(invoice_type)
    day = normalize_date(invoice_date or _today())
    accounting_date = extra.pop("accounting_date", None) or day
    due_date = extra.pop("due_date", None) or day
    if extra.get("payment_method"):
        extra["payment_method"] = PaymentMethod(extra["payment_method"])
    rate = (
        default_exchange_rate(currency)
        if exchange_rate is None
        else to_decimal(exchange_rate, default="1")
    )
    doc = Document(
        id=doc_id or new_id(),
        kind=INVOICE,
        type=inv_type.value,
        date=day,
        accounting_date=accounting_date,
        due_date=due_date,
        series_id=series_id,
        party_id=client_id,
        party_name=client_name or DEFAULT_CLIENT_NAME,
        party_nif=norm_nif(client_nif),
        lines=[_as_line(li) for li in lines],
        global_discount=to_decimal(global_discount),
        currency=currency.upper(),
        exchange_rate=rate,
        retention_type=RetentionType(retention_type),
        status=invoice_status(inv_type.value),
        company_id=company_id,
        **extra,
    )
    validate_invoice(doc)
    return _with_totals(doc)


def build_purchase(
    supplier_name: str,
    document_number: str,
    lines: Iterable,
    *,
    warehouse_id: str | None,
    purchase_type=PurchaseType.FT,
    nif: str | None = None,
    purchase_date: str | None = None,
    global_discount=0,
    tax_rate=None,
    manual_tax_amount=None,
    currency: str = "AOA",
    exchange_rate=None,
    retention_type=RetentionType.NONE,
    payment_method: PaymentMethod | str | None = None,
    cash_register_id: str | None = None,
    company_id: str | None = None,
    doc_id: str | None = None,
    **extra,
) -> Document:
    """Return a validated supplier document with derived status and totals."""
    p_type = PurchaseType.parse(purchase_type)
    day = normalize_date(purchase_date or _today())
    due_date = extra.pop("due_date", None) or day
    supplier_id = extra.pop("supplier_id", None)
    doc = Document(
        id=doc_id or new_id(),
        kind=PURCHASE,
        type=p_type.value,
        number=document_number,
        date=day,
        accounting_date=day,
        due_date=due_date,
        party_id=supplier_id,
        party_name=supplier_name,
        party_nif=norm_nif(nif),
        lines=[_as_line(li) for li in lines],
        global_discount=to_decimal(global_discount),
        currency=currency.upper(),
        exchange_rate=(
            default_exchange_rate(currency)
            if exchange_rate is None
            else to_decimal(exchange_rate, default="1")
        ),
        retention_type=RetentionType(retention_type),
        status=purchase_status(p_type.value),
        company_id=company_id,
        cash_register_id=cash_register_id,
        payment_method=PaymentMethod(payment_method) if payment_method else None,
        warehouse_id=warehouse_id,
        tax_rate=DEFAULT_TAX_RATE if tax_rate is None else to_decimal(tax_rate),
        manual_tax_amount=(
            None if manual_tax_amount is None else to_decimal(manual_tax_amount)
        ),
        **extra,
    )
    validate_purchase(doc)
    return _with_totals(doc)


def build_pos_sale(
    cart: Iterable,
    *,
    series_id: str,
    payment_method=PaymentMethod.CASH,
    client: Mapping | None = None,
    cash_registers: Iterable[CashRegister] = (),
    operator_name: str = "",
    company_id: str | None = None,
) -> Document:
    """Issue a certified FR for a tax-inclusive POS cart.

    The sale is booked on the first open cash register.
    """
    lines = [_as_line(li) for li in cart]
    if not lines:
        raise DocumentValidationError(["cart is empty"])
    if not series_id:
        raise DocumentValidationError(["series is required"])
    client = client or {}
    register = next((r for r in cash_registers if r.status == "OPEN"), None)
    day = _today()
    doc = Document(
        id=new_id(),
        kind=INVOICE,
        type=InvoiceType.FR.value,
        number="POS-Gen",
        date=day,
        accounting_date=day,
        due_date=day,
        series_id=series_id,
        party_id=client.get("id") or "CONSUMIDOR_FINAL",
        party_name=client.get("name") or DEFAULT_CLIENT_NAME,
        party_nif=norm_nif(client.get("vat_number") or DEFAULT_NIF),
        lines=lines,
        status=InvoiceStatus.PAID.value,
        is_certified=True,
        company_id=company_id,
        cash_register_id=register.id if register else None,
        payment_method=PaymentMethod(payment_method),
        source="POS",
        notes=f"Operador: {operator_name}" if operator_name else "",
    )
    return replace(doc, totals=compute_pos_totals(lines))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def certify(doc: Document) -> Document:
    """Return a certified copy of ``doc``; certified documents are returned as is."""
    if doc.is_certified:
        return doc
    if doc.is_invoice:
        validate_invoice(doc)
    log.info("Certifying %s %s", doc.kind, doc.id)
    snap = _with_totals(doc)
    return replace(snap, is_certified=True)


def update_document(doc: Document, **changes) -> Document:
    """Return ``doc`` with ``changes`` applied and totals recomputed.

    Raises :class:`CertifiedDocumentError` for certified documents.
    """
    if doc.is_certified:
        raise CertifiedDocumentError(
            f"{doc.kind} {doc.number or doc.id} is certified and read-only"
        )
    if "lines" in changes:
        changes["lines"] = [_as_line(li) for li in changes["lines"]]
    if "type" in changes:
        if doc.is_invoice:
            changes["type"] = InvoiceType.parse(changes["type"]).value
            changes.setdefault("status", invoice_status(changes["type"]))
        else:
            changes["type"] = PurchaseType.parse(changes["type"]).value
            changes.setdefault("status", purchase_status(changes["type"]))
    return _with_totals(replace(doc, **changes))


def parse_purchase_qr(payload: str) -> dict:
    """Read a supplier invoice QR code ``hash*date*total*nif*supplier*doc``.

    Returns keyword arguments for :func:`build_purchase` with one line
    valued at the scanned total.
    """
    parts = (payload or "").split("*")
    if len(parts) < 6:
        raise ValueError("QR code has an unknown format")
    qr_hash, qr_date, qr_total, qr_nif, qr_supplier, qr_doc = parts[:6]
    total = to_decimal(qr_total)
    return {
        "supplier_name": qr_supplier.strip(),
        "nif": qr_nif.strip(),
        "document_number": qr_doc.strip(),
        "purchase_date": normalize_date(qr_date),
        "hash": qr_hash.strip(),
        "lines": [
            {
                "description": "Mercadoria Diversa (QR)",
                "quantity": 1,
                "unit_price": total,
                "discount": 0,
            }
        ],
    }


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def _totals_to_dict(totals: DocumentTotals | None) -> dict | None:
    if totals is None:
        return None
    return {
        k: (plain(v) if isinstance(v, Decimal) else v)
        for k, v in totals.as_dict().items()
    }


def _totals_from_dict(data: Mapping | None) -> DocumentTotals | None:
    if not data:
        return None
    return DocumentTotals(
        subtotal=to_decimal(data.get("subtotal")),
        tax_amount=to_decimal(data.get("tax_amount")),
        withholding_amount=to_decimal(data.get("withholding_amount")),
        retention_amount=to_decimal(data.get("retention_amount")),
        total=to_decimal(data.get("total")),
        contra_value=to_decimal(data.get("contra_value")),
        has_withholding=bool(data.get("has_withholding")),
        global_discount_amount=to_decimal(data.get("global_discount_amount")),
    )


def document_to_dict(doc: Document) -> dict:
    """Return a JSON-ready snapshot of ``doc`` (Decimals as strings)."""
    return {
        "id": doc.id,
        "kind": doc.kind,
        "type": doc.type,
        "number": doc.number,
        "date": doc.date,
        "accounting_date": doc.accounting_date,
        "due_date": doc.due_date,
        "series_id": doc.series_id,
        "party_id": doc.party_id,
        "party_name": doc.party_name,
        "party_nif": doc.party_nif,
        "lines": [line_to_dict(li) for li in doc.lines],
        "global_discount": plain(doc.global_discount),
        "currency": doc.currency,
        "exchange_rate": plain(doc.exchange_rate),
        "retention_type": RetentionType(doc.retention_type).value,
        "status": doc.status,
        "is_certified": doc.is_certified,
        "company_id": doc.company_id,
        "cash_register_id": doc.cash_register_id,
        "payment_method": doc.payment_method.value if doc.payment_method else None,
        "warehouse_id": doc.warehouse_id,
        "source": doc.source,
        "tax_rate": plain(doc.tax_rate),
        "manual_tax_amount": (
            None if doc.manual_tax_amount is None else plain(doc.manual_tax_amount)
        ),
        "hash": doc.hash,
        "notes": doc.notes,
        "totals": _totals_to_dict(doc.totals),
    }


def document_from_dict(data: Mapping) -> Document:
    """Inverse of :func:`document_to_dict`; derived line totals are ignored."""
    kind = data.get("kind") or INVOICE
    enum = InvoiceType if kind == INVOICE else PurchaseType
    status = data.get("status") or InvoiceStatus.PENDING.value
    if kind == INVOICE:
        status = InvoiceStatus.parse(status).value
    manual = data.get("manual_tax_amount")
    tax_rate = data.get("tax_rate")
    return Document(
        id=str(data["id"]),
        kind=kind,
        type=enum.parse(data.get("type") or "FT").value,
        number=str(data.get("number") or "DRAFT"),
        date=normalize_date(data.get("date") or ""),
        accounting_date=data.get("accounting_date"),
        due_date=data.get("due_date"),
        series_id=data.get("series_id"),
        party_id=data.get("party_id"),
        party_name=data.get("party_name") or "",
        party_nif=norm_nif(data.get("party_nif")),
        lines=[line_from_dict(li) for li in data.get("lines") or []],
        global_discount=to_decimal(data.get("global_discount")),
        currency=(data.get("currency") or "AOA").upper(),
        exchange_rate=to_decimal(data.get("exchange_rate"), default="1"),
        retention_type=RetentionType(data.get("retention_type") or "NONE"),
        status=status,
        is_certified=bool(data.get("is_certified")),
        company_id=data.get("company_id"),
        cash_register_id=data.get("cash_register_id"),
        payment_method=(
            PaymentMethod(data["payment_method"])
            if data.get("payment_method")
            else None
        ),
        warehouse_id=data.get("warehouse_id"),
        source=data.get("source") or "MANUAL",
        tax_rate=DEFAULT_TAX_RATE if tax_rate is None else to_decimal(tax_rate),
        manual_tax_amount=None if manual is None else to_decimal(manual),
        hash=data.get("hash"),
        notes=data.get("notes") or "",
        totals=_totals_from_dict(data.get("totals")),
    )
