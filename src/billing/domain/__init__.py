from .models import (
    Customer,
    Invoice,
    InvoiceDocument,
    InvoiceLine,
    InvoiceRequest,
    LineRequest,
    Movement,
    Product,
)
from .errors import ValidationError, NotFoundError, InsufficientStockError, TransactionFailure

__all__ = [
    "Customer",
    "Invoice",
    "InvoiceDocument",
    "InvoiceLine",
    "InvoiceRequest",
    "LineRequest",
    "Movement",
    "Product",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "TransactionFailure",
]
