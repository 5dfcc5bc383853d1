from __future__ import annotations

import logging

from openpyxl import load_workbook

from billing.domain.errors import ValidationError

log = logging.getLogger(__name__)


class ExcelService:
    def __init__(self, repo, inventory_service):
        self.repo = repo
        self.inventory = inventory_service

    def import_catalog_excel(self, path: str) -> tuple[int, int]:
        """
        The stock column is an ENTRY to add, not absolute stock.
        Headers:
          code | name | price | category | stock

        Rows with a known code update name/price/category; anything else creates a product.
        """
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        required = ["code", "name", "price", "category", "stock"]
        for r in required:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            try:
                code = ws.cell(row=row, column=headers["code"]).value
                name = ws.cell(row=row, column=headers["name"]).value
                price = ws.cell(row=row, column=headers["price"]).value
                category = ws.cell(row=row, column=headers["category"]).value
                entry_qty = ws.cell(row=row, column=headers["stock"]).value

                if not name or not category or price is None:
                    skipped += 1
                    continue

                code = str(code).strip() if code else ""
                entry_qty = int(float(entry_qty or 0))
                if entry_qty < 0:
                    skipped += 1
                    continue

                existing = self.repo.get_product_by_code(code) if code else None
                if existing:
                    self.inventory.update_product(
                        existing.id,
                        str(name),
                        price,
                        str(category),
                        entry_quantity=entry_qty,
                        observation=f"Excel import (+{entry_qty}) for {existing.code}",
                    )
                else:
                    created = self.inventory.add_product(str(name), price, str(category), initial_stock=entry_qty)
                    if code:
                        log.info("excel_import_new_code given=%s assigned=%s", code, created.code)

                ok += 1
            except Exception as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        return ok, skipped
