from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Not enough stock for '{product_name}'. Available: {available}, requested: {requested}."
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class TransactionFailure(AppError):
    """Persistence failed and the unit of work was rolled back. Safe to retry."""

    def __init__(self, message: str = "The invoice could not be saved. Please try again."):
        super().__init__(message)
