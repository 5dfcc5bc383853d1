from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from billing.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from billing.domain.models import MOVEMENT_ENTRY, MOVEMENT_EXIT, Movement
from billing.repositories.unit_of_work import UnitOfWork

log = logging.getLogger("billing.stock")


class StockLedger:
    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    def apply_delta(self, uow: UnitOfWork, product_id: int, signed_quantity: int, observation: Optional[str]) -> Movement:
        """
        Adds signed_quantity to the product stock and appends the matching movement.

        Runs inside the caller's unit of work and never commits on its own.
        """
        delta = int(signed_quantity)
        if delta == 0:
            raise ValidationError("Quantity must be non-zero.", field="quantity")

        product = uow.get_product(product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found.")

        stock_after = uow.add_to_stock(product.id, delta)
        if stock_after is None:
            current = uow.get_product(product.id)
            available = int(current.stock) if current else 0
            log.warning(
                "stock_rejected product_id=%s delta=%s available=%s", product.id, delta, available
            )
            raise InsufficientStockError(product.id, product.name, available, -delta)

        movement_type = MOVEMENT_EXIT if delta < 0 else MOVEMENT_ENTRY
        moved_on = self.today()
        movement_id = uow.insert_movement(product.id, movement_type, abs(delta), moved_on, observation)
        log.info(
            "stock_moved product_id=%s type=%s qty=%s stock_after=%s",
            product.id,
            movement_type,
            abs(delta),
            stock_after,
        )
        return Movement(
            id=movement_id,
            product_id=product.id,
            movement_type=movement_type,
            quantity=abs(delta),
            date=moved_on,
            observation=observation,
        )
