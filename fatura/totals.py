"""Line and document total calculations for invoices, purchases and POS.

All functions accept plain numbers, strings or :class:`~decimal.Decimal`
values and return unrounded ``Decimal`` figures.  Rounding to the currency
step happens only when amounts are displayed or exported (see
:func:`fatura.money.round_money`).

Invoice rules
-------------
``line_total = qty * length * width * height * price * (1 - discount/100)``
where a missing or non-positive metric factor counts as ``1``.

``total = subtotal + tax - subtotal * global_discount/100 - withholding -
retention`` and ``contra_value = total * exchange_rate``.
"""
from __future__ import annotations

from decimal import Decimal
import logging
from typing import Iterable, Mapping

from fatura import constants
from fatura.money import ZERO, HUNDRED, to_decimal, percent_of
from fatura.models import (
    Document,
    DocumentLine,
    DocumentTotals,
    LineType,
    RetentionType,
)

log = logging.getLogger(__name__)

ONE = Decimal("1")

# Share of the output VAT captured per cativação category.
RETENTION_SHARE = {
    RetentionType.NONE: ZERO,
    RetentionType.CAT_50: Decimal("0.5"),
    RetentionType.CAT_100: ONE,
}


def _metric(value) -> Decimal:
    """Return a metric factor, treating ``None``/zero/negative as ``1``."""
    d = to_decimal(value, default="1")
    return d if d > 0 else ONE


def compute_line_total(
    quantity, length, width, height, unit_price, discount_percent
) -> Decimal:
    """Return the discounted value of one line.

    >>> compute_line_total(2, 0, 0, 0, 100, 0)
    Decimal('200')
    """
    base = (
        to_decimal(quantity)
        * _metric(length)
        * _metric(width)
        * _metric(height)
        * to_decimal(unit_price)
    )
    return base - percent_of(base, discount_percent)


def _field(line, name: str, default=None):
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


def line_total(line) -> Decimal:
    """Total of a :class:`DocumentLine` or a mapping with the same keys.

    Mappings may use the camelCase keys of stored snapshots
    (``unitPrice``, ``taxRate``).
    """
    if isinstance(line, DocumentLine):
        return line.total
    return compute_line_total(
        _field(line, "quantity", 0),
        _field(line, "length"),
        _field(line, "width"),
        _field(line, "height"),
        _field(line, "unit_price", _field(line, "unitPrice", 0)),
        _field(line, "discount", 0),
    )


def _line_tax_rate(line) -> Decimal:
    rate = _field(line, "tax_rate", _field(line, "taxRate"))
    if rate is None:
        return constants.DEFAULT_TAX_RATE
    return to_decimal(rate)


def _is_service(line) -> bool:
    value = _field(line, "type", LineType.PRODUCT)
    return str(getattr(value, "value", value)).upper() == LineType.SERVICE.value


def retention_amount(tax_amount, category) -> Decimal:
    """Return the captured VAT for ``category`` (``NONE``/``CAT_50``/``CAT_100``)."""
    try:
        cat = RetentionType(getattr(category, "value", category) or "NONE")
    except ValueError:
        log.warning("Unknown retention category %r, using NONE", category)
        cat = RetentionType.NONE
    return to_decimal(tax_amount) * RETENTION_SHARE[cat]


def withholding_amount(subtotal, has_withholding: bool) -> Decimal:
    return to_decimal(subtotal) * constants.WITHHOLDING_RATE if has_withholding else ZERO


def derive_has_withholding(lines: Iterable, subtotal=None) -> bool:
    """Return ``True`` when a service line is present and the subtotal
    exceeds :data:`~fatura.constants.WITHHOLDING_THRESHOLD`.

    The flag is always recomputed from the lines; it is never an input of
    an uncertified document.
    """
    lines = list(lines)
    if subtotal is None:
        subtotal = sum((line_total(li) for li in lines), ZERO)
    has_service = any(_is_service(li) for li in lines)
    return has_service and to_decimal(subtotal) > constants.WITHHOLDING_THRESHOLD


def _finish_total(total: Decimal) -> Decimal:
    if total < 0 and constants.CLAMP_NEGATIVE_TOTAL:
        log.warning("Negative document total %s clamped to 0", total)
        return ZERO
    return total


def compute_document_totals(
    lines: Iterable,
    global_discount_percent=0,
    has_withholding: bool = False,
    retention_category=RetentionType.NONE,
    exchange_rate=1,
) -> DocumentTotals:
    """Aggregate invoice ``lines`` and the document-level modifiers.

    Parameters
    ----------
    lines:
        :class:`DocumentLine` objects or mappings with ``quantity``,
        ``unit_price``, ``discount``, ``tax_rate`` and optional metric
        factors.
    global_discount_percent:
        Discount on the subtotal, subtracted after tax.
    has_withholding:
        Apply the 6.5 % retenção na fonte on the subtotal.  Use
        :func:`derive_has_withholding` for uncertified documents.
    retention_category:
        VAT cativação category.
    exchange_rate:
        Rate used for the contravalue in the base currency.
    """
    subtotal = ZERO
    tax_amount = ZERO
    for li in lines:
        value = line_total(li)
        subtotal += value
        tax_amount += percent_of(value, _line_tax_rate(li))

    discount_amount = percent_of(subtotal, global_discount_percent)
    withholding = withholding_amount(subtotal, has_withholding)
    retention = retention_amount(tax_amount, retention_category)

    total = _finish_total(
        subtotal + tax_amount - discount_amount - withholding - retention
    )
    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        withholding_amount=withholding,
        retention_amount=retention,
        total=total,
        contra_value=total * to_decimal(exchange_rate, default="1"),
        has_withholding=bool(has_withholding),
        global_discount_amount=discount_amount,
    )


def compute_purchase_totals(
    lines: Iterable,
    global_discount_percent=0,
    tax_rate=None,
    retention_category=RetentionType.NONE,
    exchange_rate=1,
    manual_tax_amount=None,
) -> DocumentTotals:
    """Aggregate a supplier document.

    Purchases apply the global discount before a single document tax rate
    and have no withholding.  ``manual_tax_amount`` replaces the computed
    tax when the supplier document states a different figure.
    """
    subtotal = sum((line_total(li) for li in lines), ZERO)
    discount_amount = percent_of(subtotal, global_discount_percent)
    taxable = subtotal - discount_amount

    if manual_tax_amount is not None:
        tax_amount = to_decimal(manual_tax_amount)
    else:
        rate = constants.DEFAULT_TAX_RATE if tax_rate is None else tax_rate
        tax_amount = percent_of(taxable, rate)

    retention = retention_amount(tax_amount, retention_category)
    total = _finish_total(taxable + tax_amount - retention)
    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        withholding_amount=ZERO,
        retention_amount=retention,
        total=total,
        contra_value=total * to_decimal(exchange_rate, default="1"),
        has_withholding=False,
        global_discount_amount=discount_amount,
    )


def compute_pos_totals(cart: Iterable, tax_rate=None) -> DocumentTotals:
    """Split a tax-inclusive POS cart into net and IVA."""
    rate = constants.DEFAULT_TAX_RATE if tax_rate is None else to_decimal(tax_rate)
    total = sum((line_total(li) for li in cart), ZERO)
    subtotal = total / (ONE + rate / HUNDRED)
    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=total - subtotal,
        withholding_amount=ZERO,
        retention_amount=ZERO,
        total=total,
        contra_value=total,
    )


def default_exchange_rate(currency: str | None) -> Decimal:
    """Return the configured rate for ``currency`` (``1`` if unknown)."""
    code = (currency or constants.BASE_CURRENCY).strip().upper()
    if code == constants.BASE_CURRENCY:
        return ONE
    return constants.EXCHANGE_RATES.get(code, ONE)


def _stored_withholding(doc: Document) -> bool:
    if doc.totals is None:
        return False
    return doc.totals.has_withholding or doc.totals.withholding_amount > 0


def document_totals(doc: Document) -> DocumentTotals:
    """Recompute the totals of ``doc``.

    Uncertified invoices derive the withholding flag from their lines.  A
    certified invoice keeps the flag of its stored snapshot.  POS sales are
    tax-inclusive and split with :func:`compute_pos_totals`.
    """
    if not doc.is_invoice:
        return compute_purchase_totals(
            doc.lines,
            doc.global_discount,
            doc.tax_rate,
            doc.retention_type,
            doc.exchange_rate,
            doc.manual_tax_amount,
        )

    if doc.source == "POS":
        return compute_pos_totals(doc.lines)

    if doc.is_certified:
        flag = _stored_withholding(doc)
    else:
        flag = derive_has_withholding(doc.lines)
        if flag != _stored_withholding(doc):
            log.debug("Withholding for %s switched to %s", doc.id, flag)
    return compute_document_totals(
        doc.lines,
        doc.global_discount,
        flag,
        doc.retention_type,
        doc.exchange_rate,
    )
