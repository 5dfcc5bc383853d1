from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Optional

from billing.domain.errors import NotFoundError, ValidationError
from billing.domain.models import MOVEMENT_ENTRY, MOVEMENT_EXIT, Movement, Product
from billing.domain.money import to_money
from billing.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from billing.services.stock_ledger import StockLedger

log = logging.getLogger(__name__)

MAX_OBSERVATION_LENGTH = 200


class InventoryService:
    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        ledger: StockLedger | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo.db_path, timeout=repo.timeout))
        self.ledger = ledger or StockLedger()

    def list_products(self, search: Optional[str] = None) -> list[Product]:
        return self.repo.list_products(search)

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id), include_inactive=True)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(self, name: str, price, category: str, initial_stock: int = 0) -> Product:
        name = (name or "").strip()
        category = (category or "").strip()
        if not name or not category:
            raise ValidationError("Name and Category are required.")
        price = self._validate_price(price)
        if initial_stock < 0:
            raise ValidationError("Stock must be >= 0.", field="initial_stock")

        with self.uow_factory() as uow:
            product = uow.insert_product(name, price, category)
            if initial_stock > 0:
                self.ledger.apply_delta(uow, product.id, int(initial_stock), "Initial stock")
        log.info("product_created id=%s code=%s stock=%s", product.id, product.code, initial_stock)
        return self.get_product(product.id)

    def update_product(
        self,
        product_id: int,
        name: str,
        price,
        category: str,
        entry_quantity: int = 0,
        observation: Optional[str] = None,
    ) -> None:
        """
        Stock is not editable here. A positive entry_quantity is recorded as an
        entry movement in the same transaction as the field changes.
        """
        name = (name or "").strip()
        category = (category or "").strip()
        if not name or not category:
            raise ValidationError("Name and Category are required.")
        price = self._validate_price(price)

        if isinstance(entry_quantity, bool) or int(entry_quantity) < 0:
            raise ValidationError("Entry quantity must be >= 0.", field="entry_quantity")

        with self.uow_factory() as uow:
            if not uow.update_product(int(product_id), name, price, category):
                raise NotFoundError("Product not found.")
            if int(entry_quantity) > 0:
                self.ledger.apply_delta(uow, int(product_id), int(entry_quantity), observation)

    def deactivate_product(self, product_id: int) -> None:
        removed = self.repo.deactivate_product(int(product_id))
        if not removed:
            raise NotFoundError("Product not found.")

    def register_movement(
        self, product_id: int, movement_type: str, quantity: int, observation: Optional[str] = None
    ) -> Movement:
        movement_type = (movement_type or "").strip().lower()
        if movement_type not in (MOVEMENT_ENTRY, MOVEMENT_EXIT):
            raise ValidationError("Movement type must be 'entry' or 'exit'.", field="movement_type")
        if isinstance(quantity, bool) or int(quantity) <= 0:
            raise ValidationError("Quantity must be > 0.", field="quantity")
        if observation and len(observation) > MAX_OBSERVATION_LENGTH:
            raise ValidationError(
                f"Observation cannot exceed {MAX_OBSERVATION_LENGTH} characters.", field="observation"
            )

        product = self.repo.get_product_by_id(int(product_id))
        if not product:
            raise NotFoundError("Product not found.")

        delta = int(quantity) if movement_type == MOVEMENT_ENTRY else -int(quantity)
        with self.uow_factory() as uow:
            return self.ledger.apply_delta(uow, product.id, delta, observation)

    def movement_history(self, product_id: int) -> list[Movement]:
        self.get_product(product_id)
        return self.repo.movements_for_product(int(product_id))

    @staticmethod
    def _validate_price(price) -> Decimal:
        try:
            amount = to_money(price)
        except ValueError as exc:
            raise ValidationError("Price must be a number.", field="price") from exc
        if amount < 0:
            raise ValidationError("Price must be >= 0.", field="price")
        return amount
