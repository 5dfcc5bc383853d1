from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from billing.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from billing.domain.models import Invoice, InvoiceLine, LineRequest
from billing.domain.money import ZERO, tax_for, to_money
from billing.services.catalog_service import CatalogReader
from billing.services.invoice_numbers import InvoiceNumberGenerator

MAX_PAYMENT_TERMS_LENGTH = 50


class InvoiceAssembler:
    """Turns a line-item request into an unsaved Invoice. Pure apart from catalog reads."""

    def __init__(
        self,
        catalog: CatalogReader,
        numbers: InvoiceNumberGenerator,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.catalog = catalog
        self.numbers = numbers
        self.clock = clock

    def build(
        self,
        customer_id: int,
        payment_terms: str,
        lines: Iterable[LineRequest],
        due_date: Optional[date] = None,
    ) -> Invoice:
        if isinstance(customer_id, bool) or not isinstance(customer_id, int):
            raise ValidationError("Customer id must be an integer.", field="customer_id")

        lines = list(lines)
        if not lines:
            raise ValidationError("no line items", field="lines")

        terms = (payment_terms or "").strip()
        if not terms:
            raise ValidationError("Payment terms are required.", field="payment_terms")
        if len(terms) > MAX_PAYMENT_TERMS_LENGTH:
            raise ValidationError(
                f"Payment terms cannot exceed {MAX_PAYMENT_TERMS_LENGTH} characters.", field="payment_terms"
            )

        # Aggregate by product so repeated lines cannot oversell
        qty_by_product: Counter[int] = Counter()
        built: list[InvoiceLine] = []
        subtotal = ZERO
        for idx, line in enumerate(lines):
            qty = line.quantity
            if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
                raise ValidationError("Quantity must be >= 1.", field=f"lines[{idx}].quantity")

            try:
                product = self.catalog.resolve(line.product_id)
            except NotFoundError as exc:
                raise ValidationError("product not found", field=f"lines[{idx}].product_id") from exc

            qty_by_product[product.id] += qty
            if qty_by_product[product.id] > int(product.stock):
                raise InsufficientStockError(product.id, product.name, int(product.stock), qty_by_product[product.id])

            unit_price = to_money(product.price)
            line_subtotal = unit_price * qty
            subtotal += line_subtotal
            built.append(
                InvoiceLine(
                    id=None,
                    invoice_id=None,
                    product_id=product.id,
                    quantity=qty,
                    unit_price=unit_price,
                    subtotal=line_subtotal,
                )
            )

        tax = tax_for(subtotal)
        return Invoice(
            id=None,
            number=self.numbers.next_number(),
            issued_at=self.clock().replace(microsecond=0),
            customer_id=customer_id,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            payment_terms=terms,
            due_date=due_date,
            lines=tuple(built),
        )
