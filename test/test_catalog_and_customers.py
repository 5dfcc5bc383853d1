from decimal import Decimal
from pathlib import Path

import pytest
from conftest import add_customer, make_repo

from billing.domain.errors import NotFoundError, ValidationError
from billing.domain.models import InvoiceRequest, LineRequest
from billing.repositories.unit_of_work import SqliteUnitOfWork
from billing.services.catalog_service import CatalogReader
from billing.services.customer_service import CustomerService
from billing.services.inventory_service import InventoryService
from billing.services.invoice_service import InvoiceService


def test_product_codes_are_generated_from_id(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)

    first = inv.add_product("Lapiz", "0.35", "Papeleria")
    second = inv.add_product("Borrador", 0.2, "Papeleria", initial_stock=12)

    assert first.code == "PROD-00001"
    assert second.code == "PROD-00002"
    assert second.price == Decimal("0.20")
    assert second.stock == 12
    assert [m.observation for m in inv.movement_history(second.id)] == ["Initial stock"]
    assert inv.movement_history(first.id) == []


def test_product_validation(tmp_path: Path):
    inv = InventoryService(make_repo(tmp_path))

    with pytest.raises(ValidationError):
        inv.add_product("", "1.00", "X")
    with pytest.raises(ValidationError, match="Price must be >= 0"):
        inv.add_product("Lapiz", "-1", "Papeleria")
    with pytest.raises(ValidationError, match="Price must be a number"):
        inv.add_product("Lapiz", "gratis", "Papeleria")
    with pytest.raises(ValidationError):
        inv.add_product("Lapiz", "1.00", "Papeleria", initial_stock=-1)


def test_inactive_products_leave_listing_but_stay_resolvable(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)
    keep = inv.add_product("Activo", "1.00", "A")
    gone = inv.add_product("Inactivo", "1.00", "A")

    inv.deactivate_product(gone.id)

    assert [p.id for p in inv.list_products()] == [keep.id]
    assert inv.get_product(gone.id).active == 0
    with SqliteUnitOfWork(repo.db_path) as uow:
        catalog = CatalogReader(uow)
        with pytest.raises(NotFoundError):
            catalog.resolve(gone.id)
        assert catalog.resolve_any(gone.id).name == "Inactivo"
        assert catalog.resolve(keep.id).name == "Activo"
    with pytest.raises(NotFoundError):
        inv.deactivate_product(gone.id)


def test_customer_identification_is_unique(tmp_path: Path):
    repo = make_repo(tmp_path)
    customers = CustomerService(repo)
    customers.add_customer("1-1111-1111", "Ana Mora")

    with pytest.raises(ValidationError, match="already exists"):
        customers.add_customer("1-1111-1111", "Otra Persona")


def test_customer_field_validation(tmp_path: Path):
    customers = CustomerService(make_repo(tmp_path))

    with pytest.raises(ValidationError):
        customers.add_customer("", "Sin Cedula")
    with pytest.raises(ValidationError):
        customers.add_customer("2-2222-2222", "  ")
    with pytest.raises(ValidationError) as exc_info:
        customers.add_customer("2-2222-2222", "Correo Malo", email="no-es-correo")
    assert exc_info.value.field == "email"


def test_customer_with_invoices_cannot_be_deleted(tmp_path: Path):
    repo = make_repo(tmp_path)
    customers = CustomerService(repo)
    pid = InventoryService(repo).add_product("Taza", "3.00", "Hogar", initial_stock=2).id
    billed = add_customer(repo)
    unbilled = add_customer(repo, identification="9-9999-9999", name="Sin Facturas")
    InvoiceService(repo).create_invoice(InvoiceRequest(billed, "Contado", (LineRequest(pid, 1),)))

    with pytest.raises(ValidationError, match="cannot be deleted"):
        customers.delete_customer(billed)
    customers.delete_customer(unbilled)

    assert [c.id for c in customers.list_customers()] == [billed]
    with pytest.raises(NotFoundError):
        customers.get_customer(unbilled)


def test_invoiced_product_cannot_be_hard_deleted(tmp_path: Path):
    repo = make_repo(tmp_path)
    pid = InventoryService(repo).add_product("Vaso", "1.00", "Hogar", initial_stock=1).id
    cid = add_customer(repo)
    InvoiceService(repo).create_invoice(InvoiceRequest(cid, "Contado", (LineRequest(pid, 1),)))

    conn = repo._conn()
    with pytest.raises(Exception, match="FOREIGN KEY"):
        conn.execute("DELETE FROM products WHERE id=?", (pid,))
    conn.close()


def test_customer_edit(tmp_path: Path):
    repo = make_repo(tmp_path)
    customers = CustomerService(repo)
    ana = add_customer(repo)
    beto = add_customer(repo, identification="3-3333-3333", name="Beto Solis")

    customers.update_customer(ana, "1-0101-0101", "Ana Mora Rojas", email="ana.mora@example.com")

    edited = customers.get_customer(ana)
    assert edited.full_name == "Ana Mora Rojas"
    assert edited.email == "ana.mora@example.com"
    with pytest.raises(ValidationError, match="already exists"):
        customers.update_customer(beto, "1-0101-0101", "Beto Solis")
    with pytest.raises(NotFoundError):
        customers.update_customer(9999, "4-4444-4444", "Nadie")


def test_customer_and_product_search(tmp_path: Path):
    repo = make_repo(tmp_path)
    customers = CustomerService(repo)
    inv = InventoryService(repo)
    ana = add_customer(repo)
    beto = add_customer(repo, identification="3-3333-3333", name="Beto Solis")
    lapiz = inv.add_product("Lapiz", "0.35", "Papeleria")
    silla = inv.add_product("Silla", "80.00", "Muebles")

    assert [c.id for c in customers.list_customers("solis")] == [beto]
    assert [c.id for c in customers.list_customers("0101")] == [ana]
    assert len(customers.list_customers("  ")) == 2
    assert [p.id for p in inv.list_products("mueb")] == [silla.id]
    assert [p.id for p in inv.list_products(lapiz.code.lower())] == [lapiz.id]
