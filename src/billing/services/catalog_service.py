from __future__ import annotations

from typing import Optional, Protocol

from billing.domain.errors import NotFoundError
from billing.domain.models import Product


class ProductSource(Protocol):
    def get_product(self, product_id: int) -> Optional[Product]: ...


class CatalogReader:
    """Read-only product lookups. Inside a unit of work, pass the uow as source."""

    def __init__(self, source: ProductSource):
        self.source = source

    def resolve(self, product_id: int) -> Product:
        product = self._lookup(product_id)
        if not product or not product.active:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def resolve_any(self, product_id: int) -> Product:
        product = self._lookup(product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def _lookup(self, product_id) -> Optional[Product]:
        # a non-numeric id can never name a product
        if isinstance(product_id, bool):
            return None
        try:
            pid = int(product_id)
        except (TypeError, ValueError):
            return None
        if not isinstance(product_id, (int, str)) and pid != product_id:
            return None
        return self.source.get_product(pid)
