"""SAF-T (AO) audit file writer."""
from __future__ import annotations

from pathlib import Path
import logging
from typing import Iterable, Mapping

from lxml import etree as LET

from fatura import constants
from fatura.models import Document
from fatura.money import ZERO, round_money
from fatura.reports import (
    PURCHASES,
    SALES,
    base_amounts,
    saft_summary,
    snapshot_totals,
    to_base,
)
from fatura.utils import parse_date

log = logging.getLogger(__name__)

NS = "urn:OECD:StandardAuditFile-Tax:AO_1.01_01"


def _sub(parent: LET._Element, tag: str, text=None) -> LET._Element:
    el = LET.SubElement(parent, f"{{{NS}}}{tag}")
    if text is not None:
        el.text = str(text)
    return el


def _amount(value) -> str:
    return format(round_money(value), "f")


def saft_filename(mode: str, start, end) -> str:
    return f"SAFT_{mode}_{parse_date(start)}_{parse_date(end)}.xml"


def _header(root: LET._Element, company: Mapping, start, end) -> None:
    header = _sub(root, "Header")
    _sub(header, "AuditFileVersion", constants.SAFT_VERSION)
    _sub(header, "CompanyID", company.get("id", ""))
    _sub(header, "TaxRegistrationNumber", company.get("nif", ""))
    _sub(header, "TaxAccountingBasis", "F")
    _sub(header, "CompanyName", company.get("name", ""))
    _sub(header, "FiscalYear", parse_date(start).year)
    _sub(header, "StartDate", parse_date(start).isoformat())
    _sub(header, "EndDate", parse_date(end).isoformat())
    _sub(header, "CurrencyCode", constants.BASE_CURRENCY)
    _sub(header, "TaxEntity", "Global")
    _sub(header, "ProductCompanyTaxID", company.get("nif", ""))


def _lines(parent: LET._Element, doc: Document, debit: bool) -> None:
    for idx, line in enumerate(doc.lines, start=1):
        el = _sub(parent, "Line")
        _sub(el, "LineNumber", idx)
        _sub(el, "ProductCode", line.product_id or line.reference or "N/A")
        _sub(el, "ProductDescription", line.description)
        _sub(el, "Quantity", line.quantity)
        _sub(el, "UnitOfMeasure", line.unit or "un")
        _sub(el, "UnitPrice", _amount(to_base(doc, line.unit_price)))
        _sub(el, "Description", line.description)
        amount = _amount(to_base(doc, line.total))
        _sub(el, "DebitAmount" if debit else "CreditAmount", amount)
        tax = _sub(el, "Tax")
        _sub(tax, "TaxType", "IVA")
        _sub(tax, "TaxCountryRegion", "AO")
        _sub(tax, "TaxCode", "NOR" if line.tax_rate else "ISE")
        _sub(tax, "TaxPercentage", line.tax_rate)


def _document_totals(parent: LET._Element, doc: Document) -> None:
    totals = snapshot_totals(doc)
    gross, tax = base_amounts(doc)
    net = to_base(doc, totals.subtotal - totals.global_discount_amount)
    el = _sub(parent, "DocumentTotals")
    _sub(el, "TaxPayable", _amount(tax))
    _sub(el, "NetTotal", _amount(net))
    _sub(el, "GrossTotal", _amount(gross))
    if doc.currency != constants.BASE_CURRENCY:
        cur = _sub(el, "Currency")
        _sub(cur, "CurrencyCode", doc.currency)
        _sub(cur, "CurrencyAmount", _amount(totals.total))
        _sub(cur, "ExchangeRate", doc.exchange_rate)
    if totals.withholding_amount:
        wt = _sub(parent, "WithholdingTax")
        _sub(wt, "WithholdingTaxType", "IRT")
        withheld = to_base(doc, totals.withholding_amount)
        _sub(wt, "WithholdingTaxAmount", _amount(withheld))


def _base_subtotal(doc: Document):
    return to_base(doc, snapshot_totals(doc).subtotal)


def _sales_block(parent: LET._Element, docs: list[Document]) -> None:
    block = _sub(parent, "SalesInvoices")
    _sub(block, "NumberOfEntries", len(docs))
    debit = sum((_base_subtotal(d) for d in docs if d.is_return), ZERO)
    credit = sum((_base_subtotal(d) for d in docs if not d.is_return), ZERO)
    _sub(block, "TotalDebit", _amount(debit))
    _sub(block, "TotalCredit", _amount(credit))
    for doc in docs:
        inv = _sub(block, "Invoice")
        _sub(inv, "InvoiceNo", f"{doc.type} {doc.number}")
        status = _sub(inv, "DocumentStatus")
        _sub(status, "InvoiceStatus", "A" if doc.status == "CANCELLED" else "N")
        _sub(status, "InvoiceStatusDate", doc.date)
        _sub(status, "SourceBilling", "P")
        _sub(inv, "Hash", doc.hash or "0")
        _sub(inv, "InvoiceDate", doc.date)
        _sub(inv, "InvoiceType", doc.type)
        _sub(inv, "SystemEntryDate", doc.accounting_date or doc.date)
        _sub(inv, "CustomerID", doc.party_id or "CONSUMIDOR_FINAL")
        _lines(inv, doc, debit=doc.is_return)
        _document_totals(inv, doc)


def _purchase_block(parent: LET._Element, docs: list[Document], total_value) -> None:
    block = _sub(parent, "PurchaseInvoices")
    _sub(block, "NumberOfEntries", len(docs))
    _sub(block, "TotalValue", _amount(total_value))
    for doc in docs:
        totals = snapshot_totals(doc)
        gross, tax = base_amounts(doc)
        inv = _sub(block, "Invoice")
        _sub(inv, "InvoiceNo", doc.number)
        _sub(inv, "Hash", doc.hash or "0")
        _sub(inv, "InvoiceDate", doc.date)
        _sub(inv, "InvoiceType", doc.type)
        _sub(inv, "SupplierID", doc.party_nif)
        _sub(inv, "SupplierName", doc.party_name)
        net = to_base(doc, totals.subtotal - totals.global_discount_amount)
        _sub(inv, "NetTotal", _amount(net))
        _sub(inv, "TaxPayable", _amount(tax))
        _sub(inv, "GrossTotal", _amount(gross))


def build_saft_xml(
    company: Mapping,
    invoices: Iterable[Document],
    purchases: Iterable[Document],
    start,
    end,
    mode: str = SALES,
) -> LET._Element:
    """Return the ``AuditFile`` element for the period.

    ``company`` provides ``id``, ``name`` and ``nif``.  Sales include
    certified invoices by accounting date; purchases all supplier documents
    by date.
    """
    summary = saft_summary(invoices, purchases, start, end, mode)
    root = LET.Element(f"{{{NS}}}AuditFile", nsmap={None: NS})
    _header(root, company, start, end)
    source = _sub(root, "SourceDocuments")
    if mode == PURCHASES:
        _purchase_block(source, summary.documents, summary.total_value)
    else:
        _sales_block(source, summary.documents)
    log.debug(
        "SAF-T %s: %s records, total %s",
        mode,
        summary.record_count,
        summary.total_value,
    )
    return root


def write_saft(
    out_dir: Path | str,
    company: Mapping,
    invoices: Iterable[Document],
    purchases: Iterable[Document],
    start,
    end,
    mode: str = SALES,
) -> Path:
    """Write the SAF-T file into ``out_dir`` and return its path."""
    root = build_saft_xml(company, invoices, purchases, start, end, mode)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / saft_filename(mode, start, end)
    LET.ElementTree(root).write(
        str(path), encoding="Windows-1252", xml_declaration=True, pretty_print=True
    )
    log.info("SAF-T written to %s", path)
    return path
