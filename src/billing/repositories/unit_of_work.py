from __future__ import annotations

import secrets
import sqlite3
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional, Protocol

from billing.domain.models import Invoice, InvoiceLine, Product
from billing.repositories.sqlite_repo import PRODUCT_COLUMNS, product_from_row


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def commit(self) -> None: ...
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def add_to_stock(self, product_id: int, delta: int) -> Optional[int]: ...
    def insert_movement(self, product_id: int, movement_type: str, quantity: int, moved_on: date, observation: Optional[str]) -> int: ...
    def insert_product(self, name: str, price: Decimal, category: str) -> Product: ...
    def update_product(self, product_id: int, name: str, price: Decimal, category: str) -> bool: ...
    def insert_invoice(self, invoice: Invoice) -> int: ...
    def insert_invoice_line(self, invoice_id: int, line: InvoiceLine) -> int: ...


class SqliteUnitOfWork:
    """One connection, one write transaction.

    BEGIN IMMEDIATE takes the database write lock up front, so every read made
    through this object already sees the state it is going to write against.
    Commits on clean exit, rolls back on any exception (interrupts included).
    """

    def __init__(self, db_path: Path | str, timeout: float = 10.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            conn.execute("BEGIN IMMEDIATE")
        except Exception:
            conn.close()
            raise
        self._conn = conn
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self._conn
        if conn is None:
            return None
        try:
            if exc_type is None and conn.in_transaction:
                conn.execute("COMMIT")
            elif conn.in_transaction:
                conn.execute("ROLLBACK")
        finally:
            conn.close()
            self._conn = None
        return None

    @property
    def cursor(self) -> sqlite3.Cursor:
        if self._conn is None:
            raise RuntimeError("Unit of work is not active.")
        return self._conn.cursor()

    def commit(self) -> None:
        self.cursor.execute("COMMIT")

    # ---------- Reads ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        cur = self.cursor
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
        r = cur.fetchone()
        return product_from_row(r) if r else None

    # ---------- Writes ----------
    def add_to_stock(self, product_id: int, delta: int) -> Optional[int]:
        """Returns the new stock, or None when the row is missing or would go negative."""
        cur = self.cursor
        cur.execute(
            "UPDATE products SET stock = stock + ? WHERE id = ? AND stock + ? >= 0",
            (int(delta), int(product_id), int(delta)),
        )
        if cur.rowcount == 0:
            return None
        cur.execute("SELECT stock FROM products WHERE id=?", (int(product_id),))
        return int(cur.fetchone()[0])

    def insert_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        moved_on: date,
        observation: Optional[str],
    ) -> int:
        cur = self.cursor
        cur.execute(
            """
            INSERT INTO movements (product_id, movement_type, quantity, date, observation)
            VALUES (?, ?, ?, ?, ?)
            """,
            (int(product_id), movement_type, int(quantity), moved_on.isoformat(), observation),
        )
        return int(cur.lastrowid)

    def insert_product(self, name: str, price: Decimal, category: str) -> Product:
        cur = self.cursor
        # code is derived from the row id, so insert with a placeholder first
        cur.execute(
            """
            INSERT INTO products (code, name, price, category, stock, active)
            VALUES (?, ?, ?, ?, 0, 1)
            """,
            (f"PENDING-{secrets.token_hex(8)}", name, str(price), category),
        )
        pid = int(cur.lastrowid)
        code = f"PROD-{pid:05d}"
        cur.execute("UPDATE products SET code=? WHERE id=?", (code, pid))
        return Product(id=pid, code=code, name=name, price=price, category=category, stock=0, active=1)

    def update_product(self, product_id: int, name: str, price: Decimal, category: str) -> bool:
        cur = self.cursor
        cur.execute(
            "UPDATE products SET name=?, price=?, category=? WHERE id=?",
            (name, str(price), category, int(product_id)),
        )
        return cur.rowcount > 0

    def insert_invoice(self, invoice: Invoice) -> int:
        cur = self.cursor
        cur.execute(
            """
            INSERT INTO invoices (number, issued_at, customer_id, subtotal, tax, total, payment_terms, due_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                invoice.number,
                invoice.issued_at.isoformat(sep=" "),
                int(invoice.customer_id),
                str(invoice.subtotal),
                str(invoice.tax),
                str(invoice.total),
                invoice.payment_terms,
                invoice.due_date.isoformat() if invoice.due_date else None,
            ),
        )
        return int(cur.lastrowid)

    def insert_invoice_line(self, invoice_id: int, line: InvoiceLine) -> int:
        cur = self.cursor
        cur.execute(
            """
            INSERT INTO invoice_details (invoice_id, product_id, quantity, unit_price, subtotal)
            VALUES (?, ?, ?, ?, ?)
            """,
            (int(invoice_id), int(line.product_id), int(line.quantity), str(line.unit_price), str(line.subtotal)),
        )
        return int(cur.lastrowid)
