from __future__ import annotations

import sqlite3
import shutil
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional

from billing.domain.models import (
    CompanyProfile,
    Customer,
    DocumentLine,
    Invoice,
    InvoiceLine,
    Movement,
    Product,
)

PRODUCT_COLUMNS = "id, code, name, price, category, stock, active"
CUSTOMER_COLUMNS = "id, identification, full_name, address, phone, email"
INVOICE_COLUMNS = "id, number, issued_at, customer_id, subtotal, tax, total, payment_terms, due_date"
LINE_COLUMNS = "id, invoice_id, product_id, quantity, unit_price, subtotal"
MOVEMENT_COLUMNS = "id, product_id, movement_type, quantity, date, observation"


def product_from_row(r) -> Product:
    return Product(
        id=int(r[0]),
        code=str(r[1]),
        name=str(r[2]),
        price=Decimal(str(r[3])),
        category=str(r[4]),
        stock=int(r[5]),
        active=int(r[6]),
    )


def customer_from_row(r) -> Customer:
    return Customer(
        id=int(r[0]),
        identification=str(r[1]),
        full_name=str(r[2]),
        address=r[3],
        phone=r[4],
        email=r[5],
    )


def invoice_from_row(r, lines: tuple[InvoiceLine, ...] = ()) -> Invoice:
    return Invoice(
        id=int(r[0]),
        number=str(r[1]),
        issued_at=datetime.fromisoformat(str(r[2])),
        customer_id=int(r[3]),
        subtotal=Decimal(str(r[4])),
        tax=Decimal(str(r[5])),
        total=Decimal(str(r[6])),
        payment_terms=str(r[7]),
        due_date=(date.fromisoformat(str(r[8])) if r[8] else None),
        lines=lines,
    )


def line_from_row(r) -> InvoiceLine:
    return InvoiceLine(
        id=int(r[0]),
        invoice_id=int(r[1]),
        product_id=int(r[2]),
        quantity=int(r[3]),
        unit_price=Decimal(str(r[4])),
        subtotal=Decimal(str(r[5])),
    )


def movement_from_row(r) -> Movement:
    return Movement(
        id=int(r[0]),
        product_id=int(r[1]),
        movement_type=str(r[2]),
        quantity=int(r[3]),
        date=date.fromisoformat(str(r[4])),
        observation=r[5],
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str, timeout: float = 10.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_append_only_and_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            code TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            price TEXT NOT NULL CHECK(CAST(price AS REAL) >= 0),
            category TEXT NOT NULL,
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1))
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            identification TEXT UNIQUE NOT NULL,
            full_name TEXT NOT NULL,
            address TEXT,
            phone TEXT,
            email TEXT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS invoices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            number TEXT UNIQUE NOT NULL,
            issued_at TEXT NOT NULL,
            customer_id INTEGER NOT NULL,
            subtotal TEXT NOT NULL,
            tax TEXT NOT NULL,
            total TEXT NOT NULL,
            payment_terms TEXT NOT NULL,
            due_date TEXT,
            FOREIGN KEY(customer_id) REFERENCES customers(id) ON DELETE RESTRICT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS invoice_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            invoice_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            unit_price TEXT NOT NULL CHECK(CAST(unit_price AS REAL) >= 0),
            subtotal TEXT NOT NULL,
            FOREIGN KEY(invoice_id) REFERENCES invoices(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE RESTRICT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            movement_type TEXT NOT NULL CHECK(movement_type IN ('entry','exit')),
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            date TEXT NOT NULL,
            observation TEXT,
            FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE RESTRICT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS company_profile (
            id INTEGER PRIMARY KEY CHECK(id = 1),
            name TEXT NOT NULL,
            address TEXT NOT NULL,
            phone TEXT NOT NULL,
            email TEXT NOT NULL,
            legal_id TEXT NOT NULL
        )
        """
        )

    def _migration_v2_append_only_and_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS ix_movements_product ON movements(product_id, date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoices_issued_at ON invoices(issued_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoice_details_invoice ON invoice_details(invoice_id)")

        # Movements are an audit trail; invoices never change once issued.
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS movements_no_update
            BEFORE UPDATE ON movements
            BEGIN
                SELECT RAISE(ABORT, 'movements are append-only');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS movements_no_delete
            BEFORE DELETE ON movements
            BEGIN
                SELECT RAISE(ABORT, 'movements are append-only');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS invoices_no_update
            BEFORE UPDATE ON invoices
            BEGIN
                SELECT RAISE(ABORT, 'invoices are immutable');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS invoice_details_no_update
            BEFORE UPDATE ON invoice_details
            BEGIN
                SELECT RAISE(ABORT, 'invoice lines are immutable');
            END
            """
        )

    # ---------- Products ----------
    def list_products(self, search: Optional[str] = None) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        sql = f"SELECT {PRODUCT_COLUMNS} FROM products WHERE active = 1"
        params: tuple = ()
        term = (search or "").strip().upper()
        if term:
            sql += " AND (UPPER(code) LIKE ? OR UPPER(name) LIKE ? OR UPPER(category) LIKE ?)"
            params = (f"%{term}%",) * 3
        cur.execute(sql + " ORDER BY name", params)
        rows = cur.fetchall()
        conn.close()
        return [product_from_row(r) for r in rows]

    def get_product_by_id(self, product_id: int, include_inactive: bool = False) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        sql = f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?"
        if not include_inactive:
            sql += " AND active=1"
        cur.execute(sql, (int(product_id),))
        r = cur.fetchone()
        conn.close()
        return product_from_row(r) if r else None

    def get_product_by_code(self, code: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE code=?", (code,))
        r = cur.fetchone()
        conn.close()
        return product_from_row(r) if r else None

    def deactivate_product(self, product_id: int) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE products
            SET active=0
            WHERE id=? AND active=1
            """,
            (int(product_id),),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    # ---------- Customers ----------
    def add_customer(
        self,
        identification: str,
        full_name: str,
        address: Optional[str],
        phone: Optional[str],
        email: Optional[str],
    ) -> int:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                INSERT INTO customers (identification, full_name, address, phone, email)
                VALUES (?, ?, ?, ?, ?)
                """,
                (identification, full_name, address, phone, email),
            )
            cid = int(cur.lastrowid)
            conn.commit()
            return cid
        finally:
            conn.close()

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id=?", (int(customer_id),))
        r = cur.fetchone()
        conn.close()
        return customer_from_row(r) if r else None

    def update_customer(
        self,
        customer_id: int,
        identification: str,
        full_name: str,
        address: Optional[str],
        phone: Optional[str],
        email: Optional[str],
    ) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                UPDATE customers
                SET identification=?, full_name=?, address=?, phone=?, email=?
                WHERE id=?
                """,
                (identification, full_name, address, phone, email, int(customer_id)),
            )
            changed = cur.rowcount > 0
            conn.commit()
            return bool(changed)
        finally:
            conn.close()

    def list_customers(self, search: Optional[str] = None) -> list[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        sql = f"SELECT {CUSTOMER_COLUMNS} FROM customers"
        params: tuple = ()
        term = (search or "").strip().upper()
        if term:
            sql += " WHERE UPPER(identification) LIKE ? OR UPPER(full_name) LIKE ?"
            params = (f"%{term}%", f"%{term}%")
        cur.execute(sql + " ORDER BY full_name", params)
        rows = cur.fetchall()
        conn.close()
        return [customer_from_row(r) for r in rows]

    def delete_customer(self, customer_id: int) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("DELETE FROM customers WHERE id=?", (int(customer_id),))
            changed = cur.rowcount > 0
            conn.commit()
            return bool(changed)
        finally:
            conn.close()

    # ---------- Company ----------
    def get_company_profile(self) -> Optional[CompanyProfile]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT name, address, phone, email, legal_id FROM company_profile WHERE id=1")
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return CompanyProfile(name=str(r[0]), address=str(r[1]), phone=str(r[2]), email=str(r[3]), legal_id=str(r[4]))

    def save_company_profile(self, profile: CompanyProfile) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO company_profile (id, name, address, phone, email, legal_id)
            VALUES (1, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, address=excluded.address, phone=excluded.phone,
                email=excluded.email, legal_id=excluded.legal_id
            """,
            (profile.name, profile.address, profile.phone, profile.email, profile.legal_id),
        )
        conn.commit()
        conn.close()

    # ---------- Invoices ----------
    def get_invoice_header(self, invoice_id: int) -> Optional[Invoice]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {INVOICE_COLUMNS} FROM invoices WHERE id=?", (int(invoice_id),))
        r = cur.fetchone()
        conn.close()
        return invoice_from_row(r) if r else None

    def invoice_lines_for_invoice(self, invoice_id: int) -> list[InvoiceLine]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {LINE_COLUMNS} FROM invoice_details WHERE invoice_id=? ORDER BY id",
            (int(invoice_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [line_from_row(r) for r in rows]

    def document_lines_for_invoice(self, invoice_id: int) -> list[DocumentLine]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT p.code, p.name, d.quantity, d.unit_price, d.subtotal
            FROM invoice_details d
            JOIN products p ON p.id = d.product_id
            WHERE d.invoice_id = ?
            ORDER BY d.id
            """,
            (int(invoice_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [
            DocumentLine(
                product_code=str(r[0]),
                product_name=str(r[1]),
                quantity=int(r[2]),
                unit_price=Decimal(str(r[3])),
                subtotal=Decimal(str(r[4])),
            )
            for r in rows
        ]

    def list_invoices(self, search: Optional[str] = None) -> list[Invoice]:
        conn = self._conn()
        cur = conn.cursor()
        columns = ", ".join(f"i.{c.strip()}" for c in INVOICE_COLUMNS.split(","))
        sql = f"SELECT {columns} FROM invoices i JOIN customers c ON c.id = i.customer_id"
        params: tuple = ()
        term = (search or "").strip().upper()
        if term:
            sql += " WHERE UPPER(i.number) LIKE ? OR UPPER(c.full_name) LIKE ?"
            params = (f"%{term}%", f"%{term}%")
        sql += " ORDER BY i.issued_at DESC, i.id DESC"
        cur.execute(sql, params)
        rows = cur.fetchall()
        conn.close()
        return [invoice_from_row(r) for r in rows]

    def list_invoices_between(self, start_iso: str, end_iso: str) -> list[Invoice]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {INVOICE_COLUMNS}
            FROM invoices
            WHERE issued_at >= ? AND issued_at < ?
            ORDER BY issued_at, id
            """,
            (start_iso, end_iso),
        )
        rows = cur.fetchall()
        conn.close()
        return [invoice_from_row(r) for r in rows]

    # ---------- Movements ----------
    def movements_for_product(self, product_id: int) -> list[Movement]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {MOVEMENT_COLUMNS}
            FROM movements
            WHERE product_id=?
            ORDER BY date DESC, id DESC
            """,
            (int(product_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [movement_from_row(r) for r in rows]
