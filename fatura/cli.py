# File: fatura/cli.py
import json
import logging
import os
from pathlib import Path

import click

from fatura.cash import (
    closure_history_summary,
    compute_cash_closure,
    register_from_dict,
)
from fatura.documents import (
    CertifiedDocumentError,
    DocumentValidationError,
    document_from_dict,
    validate_document,
)
from fatura.models import INVOICE, PURCHASE
from fatura.money import format_money, round_money
from fatura.reports import (
    PURCHASES,
    SALES,
    client_statement,
    export_frame,
    management_report,
    purchase_list_totals,
    tax_map,
)
from fatura.saft import write_saft
from fatura.store import DocumentStore, resolve_company_id
from fatura.totals import document_totals

_DATE = click.DateTime(formats=["%Y-%m-%d", "%d/%m/%Y"])


def _open_store(store, company) -> DocumentStore:
    root = store or os.getenv("FATURA_STORE_DIR", "store")
    try:
        return DocumentStore(root, resolve_company_id(company))
    except ValueError as exc:
        raise click.ClickException(str(exc))


def _same_total(stored, computed) -> bool:
    return round_money(stored) == round_money(computed)


def _store_options(func):
    func = click.option(
        "--company",
        default=None,
        help="ID da empresa (ou FATURA_COMPANY_ID)",
    )(func)
    func = click.option(
        "--store",
        type=click.Path(file_okay=False),
        default=None,
        help="Pasta dos documentos (ou FATURA_STORE_DIR)",
    )(func)
    return func


def _period_options(func):
    func = click.option("--to", "end", type=_DATE, required=True)(func)
    func = click.option("--from", "start", type=_DATE, required=True)(func)
    return func


@click.group()
def main():
    """fatura – cálculo de totais, mapas de IVA e SAF-T."""
    logging.basicConfig(level=logging.INFO)
    pass


@main.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
def totals(document):
    """Recalcular os totais de um documento JSON."""
    try:
        doc = document_from_dict(json.loads(Path(document).read_text("utf-8")))
    except (ValueError, KeyError) as e:
        click.echo(f"[ERRO] {Path(document).name}: {e}")
        raise SystemExit(1)

    t = document_totals(doc)
    stored = doc.totals
    click.echo(f"Subtotal:        {format_money(t.subtotal)}")
    click.echo(f"Desconto global: {format_money(t.global_discount_amount)}")
    click.echo(f"Imposto (IVA):   {format_money(t.tax_amount)}")
    click.echo(f"Retenção 6,5%:   {format_money(t.withholding_amount)}")
    click.echo(f"Cativação:       {format_money(t.retention_amount)}")
    click.echo(f"Total:           {format_money(t.total)}")
    if doc.currency and doc.exchange_rate != 1:
        click.echo(
            f"Contravalor:     {format_money(t.contra_value)} "
            f"({doc.currency} x {doc.exchange_rate})"
        )
    if stored is not None and not _same_total(stored.total, t.total):
        click.echo(
            f"[DIFERENÇA] total guardado {format_money(stored.total)} "
            f"!= calculado {format_money(t.total)}"
        )


@main.command(name="tax-map")
@_period_options
@click.option("--purchases", "purchases_mode", is_flag=True, default=False,
              help="Mapa de compras em vez de vendas")
@click.option("--out", type=click.Path(dir_okay=False), default=None,
              help="Exportar para .xlsx ou .csv")
@_store_options
def tax_map_cmd(start, end, purchases_mode, out, store, company):
    """Mapa de cálculo de impostos do período."""
    st = _open_store(store, company)
    mode = PURCHASES if purchases_mode else SALES
    df, sums = tax_map(
        st.list_documents(INVOICE),
        st.list_documents(PURCHASE),
        start.date(),
        end.date(),
        mode,
    )
    if df.empty:
        click.echo("Sem documentos no período.")
    else:
        click.echo(df[["date", "doc_number", "entity", "base_amount",
                       "iva_amount", "total_amount"]].to_string(index=False))
    click.echo(
        f"Crédito: {format_money(sums['credito'])}  "
        f"Débito: {format_money(sums['debito'])}  "
        f"IVA: {format_money(sums['iva'])}  "
        f"Total: {format_money(sums['total'])}"
    )
    if out:
        try:
            export_frame(df, out)
        except ValueError as e:
            click.echo(f"[ERRO] {e}")
            raise SystemExit(1)


@main.command()
@_period_options
@click.option("--purchases", "purchases_mode", is_flag=True, default=False,
              help="Ficheiro de aquisições em vez de faturação")
@click.option("--out", type=click.Path(file_okay=False), default=".",
              help="Pasta de destino")
@click.option("--company-name", default=None,
              help="Nome da empresa (ou FATURA_COMPANY_NAME)")
@click.option("--company-nif", default=None,
              help="NIF da empresa (ou FATURA_COMPANY_NIF)")
@_store_options
def saft(start, end, purchases_mode, out, company_name, company_nif, store, company):
    """Gerar o ficheiro SAF-T (AO) do período."""
    st = _open_store(store, company)
    info = {
        "id": st.company_id,
        "name": company_name or os.getenv("FATURA_COMPANY_NAME", ""),
        "nif": company_nif or os.getenv("FATURA_COMPANY_NIF", ""),
    }
    path = write_saft(
        out,
        info,
        st.list_documents(INVOICE),
        st.list_documents(PURCHASE),
        start.date(),
        end.date(),
        PURCHASES if purchases_mode else SALES,
    )
    click.echo(f"[OK] {path}")


@main.command()
@_period_options
@_store_options
def report(start, end, store, company):
    """Relatório de gestão comercial (vendas, devoluções, mais vendidos)."""
    st = _open_store(store, company)
    rep = management_report(st.list_documents(INVOICE), start.date(), end.date())
    t = rep.totals
    click.echo("Produtos mais vendidos:")
    if rep.top_selling.empty:
        click.echo("  (nenhum)")
    else:
        click.echo(rep.top_selling.to_string(index=False))
    click.echo(
        f"Vendas:     {format_money(t['sales_net'])} + IVA "
        f"{format_money(t['sales_tax'])} = {format_money(t['sales_gross'])}"
    )
    click.echo(
        f"Devoluções: {format_money(t['returns_net'])} + IVA "
        f"{format_money(t['returns_tax'])} = {format_money(t['returns_gross'])}"
    )
    click.echo(
        f"Total:      {format_money(t['grand_net'])} + IVA "
        f"{format_money(t['grand_tax'])} = {format_money(t['grand_gross'])}"
    )


@main.command()
@click.argument("client_id")
@click.option("--initial", default="0", help="Saldo inicial do cliente")
@_store_options
def statement(client_id, initial, store, company):
    """Extrato de conta corrente de um cliente."""
    st = _open_store(store, company)
    stm = client_statement(st.list_documents(INVOICE), client_id, initial)
    if stm.entries.empty:
        click.echo("Sem documentos certificados.")
    else:
        click.echo(stm.entries.to_string(index=False))
    click.echo(f"Saldo inicial: {format_money(stm.initial_balance)}")
    click.echo(f"Débito:        {format_money(stm.debit)}")
    click.echo(f"Crédito:       {format_money(stm.credit)}")
    click.echo(f"Saldo final:   {format_money(stm.balance)}")


@main.command()
@click.option("--from", "start", type=_DATE, default=None)
@click.option("--to", "end", type=_DATE, default=None)
@click.option("--status", default=None, help="PAID, PENDING ...")
@click.option("--search", default=None, help="Fornecedor, NIF ou nº do documento")
@_store_options
def purchases(start, end, status, search, store, company):
    """Listagem de compras com totais."""
    st = _open_store(store, company)
    df, sums = purchase_list_totals(
        st.list_documents(PURCHASE),
        start.date() if start else None,
        end.date() if end else None,
        status,
        search,
    )
    if df.empty:
        click.echo("Sem compras.")
    else:
        click.echo(df[["date", "type", "supplier", "doc_number", "gross"]]
                   .to_string(index=False))
    click.echo(
        f"Líquido: {format_money(sums['net'])}  "
        f"IVA: {format_money(sums['tax'])}  "
        f"Total: {format_money(sums['gross'])}"
    )


@main.command(name="cash-close")
@click.argument("register", type=click.Path(exists=True, dir_okay=False))
@click.option("--actual", type=str, required=True, help="Dinheiro contado")
@click.option("--day", type=_DATE, default=None, help="Dia do fecho (hoje)")
@click.option("--operator", default="", help="Nome do operador")
@_store_options
def cash_close(register, actual, day, operator, store, company):
    """Fecho de caixa: esperado vs. contado."""
    st = _open_store(store, company)
    try:
        reg = register_from_dict(json.loads(Path(register).read_text("utf-8")))
    except (ValueError, KeyError) as e:
        click.echo(f"[ERRO] {Path(register).name}: {e}")
        raise SystemExit(1)
    closure = compute_cash_closure(
        reg,
        st.list_documents(INVOICE),
        actual,
        day=day.date() if day else None,
        operator_name=operator,
    )
    st.save_closure(closure)
    click.echo(f"Vendas:    {format_money(closure.total_sales)} ({closure.sales_count})")
    click.echo(f"Esperado:  {format_money(closure.expected_cash)}")
    click.echo(f"Contado:   {format_money(closure.actual_cash)}")
    click.echo(f"Diferença: {format_money(closure.difference)}")


@main.command(name="cash-history")
@_store_options
def cash_history(store, company):
    """Resumo dos fechos de caixa guardados."""
    st = _open_store(store, company)
    s = closure_history_summary(st.list_closures())
    click.echo(f"Fechos:     {s['count']}")
    click.echo(f"Vendas:     {format_money(s['total_sales'])}")
    click.echo(f"Diferenças: {format_money(s['total_difference'])}")


@main.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@_store_options
def submit(document, store, company):
    """Guardar um documento JSON no arquivo da empresa."""
    st = _open_store(store, company)
    try:
        doc = document_from_dict(json.loads(Path(document).read_text("utf-8")))
        validate_document(doc)
        saved = st.save(doc)
    except CertifiedDocumentError as e:
        click.echo(f"[CERTIFICADO] {e}")
        raise SystemExit(1)
    except DocumentValidationError as e:
        click.echo(f"[INVÁLIDO] {e}")
        raise SystemExit(1)
    except (ValueError, KeyError) as e:
        click.echo(f"[ERRO] {Path(document).name}: {e}")
        raise SystemExit(1)
    click.echo(f"[OK] {saved.kind} {saved.id}: {format_money(saved.totals.total)}")


if __name__ == "__main__":
    main()
