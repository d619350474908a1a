from decimal import Decimal

from fatura.documents import build_purchase
from fatura.reports import purchase_list_totals


def _purchases():
    return [
        build_purchase("Alfa Lda", "FT 1", [{"quantity": 2, "unit_price": 500}],
                       warehouse_id="W1", tax_rate=14, global_discount=10,
                       nif="5001", purchase_date="2024-05-03"),
        build_purchase("Beta SA", "FR 9", [{"quantity": 1, "unit_price": 200}],
                       warehouse_id="W1", tax_rate=0, purchase_type="FR",
                       payment_method="CASH", cash_register_id="R1",
                       nif="5002", purchase_date="2024-05-20"),
        build_purchase("Gama", "FT 3", [{"quantity": 1, "unit_price": 50}],
                       warehouse_id="W1", tax_rate=14, nif="5003",
                       purchase_date="2024-06-01"),
    ]


def test_totals_net_after_global_discount():
    df, totals = purchase_list_totals(_purchases())
    assert len(df) == 3
    assert totals["net"] == Decimal("1150")
    assert totals["tax"] == Decimal("133")
    assert totals["gross"] == Decimal("1283")


def test_date_and_status_filters():
    df, totals = purchase_list_totals(
        _purchases(), start="2024-05-01", end="2024-05-31", status="PENDING"
    )
    assert list(df["doc_number"]) == ["FT 1"]
    assert totals["gross"] == Decimal("1026")


def test_search_by_supplier_number_or_nif():
    assert list(purchase_list_totals(_purchases(), search="beta")[0]["doc_number"]) == ["FR 9"]
    assert list(purchase_list_totals(_purchases(), search="ft 3")[0]["supplier"]) == ["Gama"]
    assert len(purchase_list_totals(_purchases(), search="5001")[0]) == 1


def test_empty_list():
    df, totals = purchase_list_totals([], search="x")
    assert df.empty
    assert totals == {"net": Decimal("0"), "tax": Decimal("0"), "gross": Decimal("0")}
