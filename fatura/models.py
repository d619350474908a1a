"""Document data structures shared by the calculators, store and reports."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum

from fatura.constants import DEFAULT_NIF, DEFAULT_TAX_RATE
from fatura.money import ZERO


class _LabelledEnum(str, Enum):
    """Enum whose members carry a human label next to the stored code."""

    def __new__(cls, code: str, label: str):
        obj = str.__new__(cls, code)
        obj._value_ = code
        obj.label = label
        return obj

    @classmethod
    def parse(cls, value):
        """Return the member matching ``value`` by code or label."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text.upper() == member.value or text == member.label:
                return member
        raise ValueError(f"Unknown {cls.__name__}: {value!r}")


class LineType(str, Enum):
    PRODUCT = "PRODUCT"
    SERVICE = "SERVICE"


class RetentionType(str, Enum):
    """Cativação de IVA categories."""

    NONE = "NONE"
    CAT_50 = "CAT_50"
    CAT_100 = "CAT_100"


class InvoiceType(_LabelledEnum):
    FT = ("FT", "Fatura")
    FR = ("FR", "Fatura/Recibo")
    PP = ("PP", "Fatura Pró-forma")
    OR = ("OR", "Orçamento")
    GR = ("GR", "Guia de Remessa")
    GT = ("GT", "Guia de Transporte")
    GE = ("GE", "Guia de Entrega")
    NE = ("NE", "Nota de Encomenda")
    NC = ("NC", "Nota de Crédito")
    ND = ("ND", "Nota de Débito")
    RG = ("RG", "Recibo")
    VD = ("VD", "Venda a Dinheiro")
    FS = ("FS", "Fatura Simplificada")


class PurchaseType(_LabelledEnum):
    FT = ("FT", "Fatura Fornecedor")
    FR = ("FR", "Fatura/Recibo Fornecedor")
    ND = ("ND", "Nota de Débito")
    NC = ("NC", "Nota de Crédito")
    VD = ("VD", "Venda a Dinheiro")
    REC = ("REC", "Recibo")


class InvoiceStatus(_LabelledEnum):
    DRAFT = ("DRAFT", "Rascunho")
    PENDING = ("PENDING", "Pendente")
    PAID = ("PAID", "Pago")
    PARTIAL = ("PARTIAL", "Parcelar")
    OVERDUE = ("OVERDUE", "Vencido")
    CANCELLED = ("CANCELLED", "Anulado")


class PaymentMethod(str, Enum):
    CASH = "CASH"
    MULTICAIXA = "MULTICAIXA"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    MCX_EXPRESS = "MCX_EXPRESS"
    OTHERS = "OTHERS"
    CREDIT_ACCOUNT = "CREDIT_ACCOUNT"


INVOICE = "invoice"
PURCHASE = "purchase"
DOCUMENT_KINDS = (INVOICE, PURCHASE)


@dataclass
class DocumentLine:
    """Single invoice or purchase line.

    ``length``, ``width`` and ``height`` are optional metric factors; the
    line total treats a missing or non-positive factor as ``1``.
    """

    description: str = ""
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = ZERO
    discount: Decimal = ZERO
    tax_rate: Decimal = DEFAULT_TAX_RATE
    type: LineType = LineType.PRODUCT
    length: Decimal | None = None
    width: Decimal | None = None
    height: Decimal | None = None
    product_id: str | None = None
    reference: str | None = None
    unit: str = "un"
    expiry_date: str | None = None

    @property
    def total(self) -> Decimal:
        from fatura.totals import compute_line_total

        return compute_line_total(
            self.quantity,
            self.length,
            self.width,
            self.height,
            self.unit_price,
            self.discount,
        )

    @property
    def is_service(self) -> bool:
        return self.type == LineType.SERVICE


@dataclass(frozen=True)
class DocumentTotals:
    """Derived document figures; never stored independently of the lines."""

    subtotal: Decimal
    tax_amount: Decimal
    withholding_amount: Decimal
    retention_amount: Decimal
    total: Decimal
    contra_value: Decimal
    has_withholding: bool = False
    global_discount_amount: Decimal = ZERO

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class Document:
    """Invoice or purchase as submitted to the store.

    ``totals`` holds the figures of the last snapshot.  Use
    :func:`fatura.totals.document_totals` to get current values.
    """

    id: str
    kind: str = INVOICE
    type: str = InvoiceType.FT.value
    number: str = "DRAFT"
    date: str = ""
    accounting_date: str | None = None
    due_date: str | None = None
    series_id: str | None = None
    party_id: str | None = None
    party_name: str = ""
    party_nif: str = DEFAULT_NIF
    lines: list[DocumentLine] = field(default_factory=list)
    global_discount: Decimal = ZERO
    currency: str = "AOA"
    exchange_rate: Decimal = Decimal("1")
    retention_type: RetentionType = RetentionType.NONE
    status: str = InvoiceStatus.PENDING.value
    is_certified: bool = False
    company_id: str | None = None
    cash_register_id: str | None = None
    payment_method: PaymentMethod | None = None
    warehouse_id: str | None = None
    source: str = "MANUAL"
    # purchases only: single document rate and optional typed-in tax
    tax_rate: Decimal = DEFAULT_TAX_RATE
    manual_tax_amount: Decimal | None = None
    hash: str | None = None
    notes: str = ""
    totals: DocumentTotals | None = None

    @property
    def is_invoice(self) -> bool:
        return self.kind == INVOICE

    @property
    def is_return(self) -> bool:
        """Credit notes and cancelled documents reduce the period figures."""
        return (
            self.type == InvoiceType.NC.value
            or self.status == InvoiceStatus.CANCELLED.value
        )


@dataclass
class CashRegister:
    id: str
    name: str = ""
    status: str = "OPEN"
    balance: Decimal = ZERO
    initial_balance: Decimal = ZERO
    operator_id: str | None = None


@dataclass
class CashClosure:
    id: str
    date: str
    cash_register_id: str
    operator_id: str | None
    operator_name: str
    initial_balance: Decimal
    total_sales: Decimal
    expected_cash: Decimal
    actual_cash: Decimal
    difference: Decimal
    final_balance: Decimal
    sales_count: int = 0
    status: str = "CLOSED"
    notes: str = ""

    def as_dict(self) -> dict:
        return asdict(self)
