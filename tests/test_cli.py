import json

from click.testing import CliRunner

import fatura.cli as cli
from fatura.documents import (
    build_invoice,
    build_pos_sale,
    build_purchase,
    certify,
    document_to_dict,
)


LINE = {"description": "Cimento", "quantity": 3, "unit_price": 1000, "tax_rate": 14}


def _write(path, doc):
    path.write_text(json.dumps(document_to_dict(doc)), encoding="utf-8")
    return path


def _certified(day="2024-05-10", **kw):
    return certify(
        build_invoice("C1", [LINE], series_id="S1", invoice_date=day, **kw)
    )


def test_cli_totals(tmp_path):
    doc = _write(tmp_path / "inv.json", build_invoice("C1", [LINE], series_id="S1"))
    result = CliRunner().invoke(cli.main, ["totals", str(doc)])
    assert result.exit_code == 0
    assert "3 420,00 Kz" in result.output
    assert "DIFERENÇA" not in result.output


def test_cli_totals_bad_json(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{nope")
    result = CliRunner().invoke(cli.main, ["totals", str(bad)])
    assert result.exit_code == 1
    assert "[ERRO] bad.json" in result.output


def test_cli_submit_and_tax_map(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    store = tmp_path / "store"
    doc = _write(tmp_path / "inv.json", _certified(doc_id="inv1"))

    runner = CliRunner()
    result = runner.invoke(cli.main, ["submit", str(doc), "--store", str(store)])
    assert result.exit_code == 0
    assert "[OK] invoice inv1" in result.output
    assert (store / "ACME" / "invoices" / "inv1.json").exists()

    result = runner.invoke(
        cli.main,
        ["tax-map", "--from", "2024-05-01", "--to", "2024-05-31",
         "--store", str(store)],
    )
    assert result.exit_code == 0
    assert "Total: 3 420,00 Kz" in result.output
    assert "IVA: 420,00 Kz" in result.output


def test_cli_submit_certified_twice(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    doc = _write(tmp_path / "inv.json", _certified(doc_id="inv1"))
    args = ["submit", str(doc), "--store", str(tmp_path / "store")]
    runner = CliRunner()
    assert runner.invoke(cli.main, args).exit_code == 0
    result = runner.invoke(cli.main, args)
    assert result.exit_code == 1
    assert "[CERTIFICADO]" in result.output


def test_cli_submit_invalid(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    data = document_to_dict(build_invoice("C1", [LINE], series_id="S1"))
    data["party_id"] = None
    doc = tmp_path / "inv.json"
    doc.write_text(json.dumps(data), encoding="utf-8")
    result = CliRunner().invoke(
        cli.main, ["submit", str(doc), "--store", str(tmp_path / "store")]
    )
    assert result.exit_code == 1
    assert "[INVÁLIDO] client is required" in result.output


def test_cli_requires_company(monkeypatch, tmp_path):
    monkeypatch.delenv("FATURA_COMPANY_ID", raising=False)
    doc = _write(tmp_path / "inv.json", build_invoice("C1", [LINE], series_id="S1"))
    result = CliRunner().invoke(
        cli.main, ["submit", str(doc), "--store", str(tmp_path / "store")]
    )
    assert result.exit_code != 0
    assert "company id is required" in result.output


def test_cli_saft_and_report(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    store = tmp_path / "store"
    runner = CliRunner()
    doc = _write(tmp_path / "inv.json", _certified())
    assert runner.invoke(cli.main, ["submit", str(doc), "--store", str(store)]).exit_code == 0

    out = tmp_path / "saft"
    result = runner.invoke(
        cli.main,
        ["saft", "--from", "2024-05-01", "--to", "2024-05-31", "--out", str(out),
         "--company-name", "Acme", "--store", str(store)],
    )
    assert result.exit_code == 0
    assert (out / "SAFT_SALES_2024-05-01_2024-05-31.xml").exists()

    result = runner.invoke(
        cli.main,
        ["report", "--from", "2024-05-01", "--to", "2024-05-31", "--store", str(store)],
    )
    assert result.exit_code == 0
    assert "Cimento" in result.output
    assert "3 420,00 Kz" in result.output


def test_cli_cash_close(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    store = tmp_path / "store"
    runner = CliRunner()
    sale = _certified(
        invoice_type="FR", cash_register_id="R1", payment_method="CASH"
    )
    doc = _write(tmp_path / "sale.json", sale)
    assert runner.invoke(cli.main, ["submit", str(doc), "--store", str(store)]).exit_code == 0

    register = tmp_path / "register.json"
    register.write_text(json.dumps({"id": "R1", "initialBalance": "1000"}))
    result = runner.invoke(
        cli.main,
        ["cash-close", str(register), "--actual", "4400", "--day", "2024-05-10",
         "--store", str(store)],
    )
    assert result.exit_code == 0
    assert "Esperado:  4 420,00 Kz" in result.output
    assert "Diferença: -20,00 Kz" in result.output
    assert len(list((store / "ACME" / "closures").glob("*.json"))) == 1


def test_cli_totals_reports_stored_mismatch(tmp_path):
    data = document_to_dict(build_invoice("C1", [LINE], series_id="S1"))
    data["totals"]["total"] = "3400"
    doc = tmp_path / "inv.json"
    doc.write_text(json.dumps(data), encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["totals", str(doc)])
    assert result.exit_code == 0
    assert "[DIFERENÇA] total guardado 3 400,00 Kz" in result.output


def test_cli_cash_history(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    store = tmp_path / "store"
    register = tmp_path / "register.json"
    register.write_text(json.dumps({"id": "R1", "initial_balance": "500"}))
    runner = CliRunner()
    for actual in ("500", "480"):
        result = runner.invoke(
            cli.main,
            ["cash-close", str(register), "--actual", actual, "--store", str(store)],
        )
        assert result.exit_code == 0
    result = runner.invoke(cli.main, ["cash-history", "--store", str(store)])
    assert result.exit_code == 0
    assert "Fechos:     2" in result.output
    assert "Diferenças: -20,00 Kz" in result.output


def test_cli_totals_unrounded_snapshot_matches(tmp_path):
    inv = build_invoice(
        "C1", [{"quantity": 1, "unit_price": "33.333", "tax_rate": 14}],
        series_id="S1",
    )
    doc = _write(tmp_path / "inv.json", inv)
    result = CliRunner().invoke(cli.main, ["totals", str(doc)])
    assert result.exit_code == 0
    assert "38,00 Kz" in result.output
    assert "DIFERENÇA" not in result.output


def test_cli_totals_pos_sale(tmp_path):
    sale = build_pos_sale([{"quantity": 1, "unit_price": 114}], series_id="POS")
    doc = _write(tmp_path / "pos.json", sale)
    result = CliRunner().invoke(cli.main, ["totals", str(doc)])
    assert result.exit_code == 0
    assert "Total:           114,00 Kz" in result.output
    assert "DIFERENÇA" not in result.output


def test_cli_statement_and_purchases(monkeypatch, tmp_path):
    monkeypatch.setenv("FATURA_COMPANY_ID", "ACME")
    store = tmp_path / "store"
    runner = CliRunner()
    docs = [
        _certified(doc_id="ft"),
        build_purchase("Fornecedor", "FT 7", [{"quantity": 2, "unit_price": 500}],
                       warehouse_id="W1", tax_rate=14, purchase_date="2024-05-03"),
    ]
    for i, d in enumerate(docs):
        path = _write(tmp_path / f"doc{i}.json", d)
        assert runner.invoke(cli.main, ["submit", str(path), "--store", str(store)]).exit_code == 0

    result = runner.invoke(
        cli.main, ["statement", "C1", "--initial", "100", "--store", str(store)]
    )
    assert result.exit_code == 0
    assert "Saldo final:   3 520,00 Kz" in result.output

    result = runner.invoke(
        cli.main, ["purchases", "--search", "forn", "--store", str(store)]
    )
    assert result.exit_code == 0
    assert "Líquido: 1 000,00 Kz  IVA: 140,00 Kz  Total: 1 140,00 Kz" in result.output
