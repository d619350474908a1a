import logging
from decimal import Decimal

from fatura.models import RetentionType
from fatura.totals import compute_document_totals, retention_amount


def test_retention_categories():
    tax = Decimal("1400")
    assert retention_amount(tax, RetentionType.NONE) == Decimal("0")
    assert retention_amount(tax, "CAT_50") == Decimal("700")
    assert retention_amount(tax, RetentionType.CAT_100) == Decimal("1400")


def test_unknown_category_logs_and_uses_none(caplog):
    with caplog.at_level(logging.WARNING):
        assert retention_amount(Decimal("1400"), "CAT_75") == Decimal("0")
    assert "CAT_75" in caplog.text


def test_retention_reduces_total():
    lines = [{"quantity": 10, "unit_price": 1000, "tax_rate": 14}]
    totals = compute_document_totals(lines, retention_category="CAT_50")
    assert totals.tax_amount == Decimal("1400")
    assert totals.retention_amount == Decimal("700")
    assert totals.total == Decimal("10700")
