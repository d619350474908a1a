from decimal import Decimal

import pytest

from fatura.documents import build_invoice, build_purchase, certify
from fatura.reports import PURCHASES, SALES, saft_summary


def _certified(invoice_type, price, day, accounting_date=None, **kw):
    return certify(
        build_invoice(
            "C1",
            [{"quantity": 1, "unit_price": price, "tax_rate": 0}],
            series_id="S1",
            invoice_type=invoice_type,
            invoice_date=day,
            accounting_date=accounting_date,
            **kw,
        )
    )


def test_sales_grouped_by_type_in_enum_order():
    invoices = [
        _certified("NC", 100, "2024-05-03"),
        _certified("FT", 1000, "2024-05-04"),
        _certified("FR", 500, "2024-05-05"),
        _certified("FT", 2000, "2024-05-06"),
    ]
    summary = saft_summary(invoices, [], "2024-05-01", "2024-05-31", SALES)
    assert list(summary.by_type["type"]) == ["FT", "FR", "NC"]
    ft = summary.by_type.iloc[0]
    assert ft["label"] == "Fatura"
    assert ft["count"] == 2
    assert ft["total"] == Decimal("3000")
    assert summary.record_count == 4
    assert summary.total_value == Decimal("3600")


def test_sales_use_accounting_date():
    inv = _certified("FT", 1000, "2024-04-28", accounting_date="2024-05-02")
    assert saft_summary([inv], [], "2024-05-01", "2024-05-31").record_count == 1
    assert saft_summary([inv], [], "2024-04-01", "2024-04-30").record_count == 0


def test_uncertified_sales_excluded():
    draft = build_invoice(
        "C1", [{"quantity": 1, "unit_price": 10}], series_id="S1",
        invoice_date="2024-05-02",
    )
    summary = saft_summary([draft], [], "2024-05-01", "2024-05-31")
    assert summary.record_count == 0
    assert summary.by_type.empty


def test_foreign_sales_counted_in_base_currency():
    inv = _certified("FT", 10, "2024-05-02", currency="EUR", exchange_rate="920")
    summary = saft_summary([inv], [], "2024-05-01", "2024-05-31")
    assert summary.total_value == Decimal("9200")


def test_purchases_summary():
    purchases = [
        build_purchase("A", "FT 1", [{"quantity": 1, "unit_price": 100}],
                       warehouse_id="W1", tax_rate=0, purchase_date="2024-05-02"),
        build_purchase("B", "NC 1", [{"quantity": 1, "unit_price": 40}],
                       warehouse_id="W1", tax_rate=0, purchase_type="NC",
                       purchase_date="2024-05-09"),
        build_purchase("C", "FT 2", [{"quantity": 1, "unit_price": 999}],
                       warehouse_id="W1", tax_rate=0, purchase_date="2024-06-09"),
    ]
    summary = saft_summary([], purchases, "2024-05-01", "2024-05-31", PURCHASES)
    assert summary.record_count == 2
    assert list(summary.by_type["type"]) == ["FT", "NC"]
    assert summary.total_value == Decimal("140")


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        saft_summary([], [], "2024-05-01", "2024-05-31", "BOTH")
