from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from billing.domain.errors import ValidationError

MOVEMENT_ENTRY = "entry"
MOVEMENT_EXIT = "exit"


class InvoiceTxState(str, Enum):
    STARTED = "started"
    LINES_VALIDATED = "lines_validated"
    STOCK_RESERVED = "stock_reserved"
    PERSISTED = "persisted"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class Product:
    id: int
    code: str
    name: str
    price: Decimal
    category: str
    stock: int
    active: int = 1


@dataclass(frozen=True)
class Customer:
    id: int
    identification: str
    full_name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class InvoiceLine:
    id: Optional[int]
    invoice_id: Optional[int]
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Invoice:
    id: Optional[int]
    number: str
    issued_at: datetime
    customer_id: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    payment_terms: str
    due_date: Optional[date] = None
    lines: tuple[InvoiceLine, ...] = ()


@dataclass(frozen=True)
class Movement:
    id: int
    product_id: int
    movement_type: str
    quantity: int
    date: date
    observation: Optional[str]


@dataclass(frozen=True)
class CompanyProfile:
    name: str
    address: str
    phone: str
    email: str
    legal_id: str


@dataclass(frozen=True)
class DocumentLine:
    product_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class InvoiceDocument:
    """Read-only aggregate handed to renderers (PDF, print)."""

    invoice: Invoice
    customer: Customer
    lines: tuple[DocumentLine, ...]
    company: CompanyProfile


@dataclass(frozen=True)
class LineRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class InvoiceRequest:
    customer_id: int
    payment_terms: str
    lines: tuple[LineRequest, ...] = field(default_factory=tuple)
    due_date: Optional[date] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "InvoiceRequest":
        """
        payload: {customer_id, payment_terms, due_date?, lines: [{product_id, quantity}]}

        Price keys sent by the client are ignored; prices always come from the catalog.
        """
        customer_id = _as_int(payload.get("customer_id"), "customer_id")
        terms = str(payload.get("payment_terms") or "")

        raw_lines = payload.get("lines") or []
        if not isinstance(raw_lines, (list, tuple)):
            raise ValidationError("Lines must be a list.", field="lines")
        lines = []
        for idx, raw in enumerate(raw_lines):
            if not isinstance(raw, Mapping):
                raise ValidationError("Each line must be an object.", field=f"lines[{idx}]")
            lines.append(
                LineRequest(
                    product_id=_as_int(raw.get("product_id"), f"lines[{idx}].product_id"),
                    quantity=_as_int(raw.get("quantity"), f"lines[{idx}].quantity"),
                )
            )

        due = payload.get("due_date")
        if isinstance(due, str) and due.strip():
            try:
                due = date.fromisoformat(due.strip())
            except ValueError as exc:
                raise ValidationError("Due date must be YYYY-MM-DD.", field="due_date") from exc
        elif not isinstance(due, date):
            due = None

        return cls(customer_id=customer_id, payment_terms=terms, lines=tuple(lines), due_date=due)


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer.", field=field_name)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be an integer.", field=field_name) from exc
    if not isinstance(value, (int, str)) and number != value:
        raise ValidationError(f"{field_name} must be an integer.", field=field_name)
    return number
