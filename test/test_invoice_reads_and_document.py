from datetime import datetime
from decimal import Decimal
from itertools import count
from pathlib import Path

import pytest
from conftest import add_customer, make_repo

from billing.domain.errors import NotFoundError
from billing.domain.models import CompanyProfile, InvoiceRequest, LineRequest
from billing.services.inventory_service import InventoryService
from billing.services.invoice_service import InvoiceService


def _clock():
    ticks = count()
    return lambda: datetime(2030, 3, 1, 9, 0, next(ticks))


def _setup(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)
    p = inv.add_product("Silla", "45.00", "Muebles", initial_stock=10)
    ana = add_customer(repo, identification="1-0000-0001", name="Ana Mora")
    beto = add_customer(repo, identification="1-0000-0002", name="Beto Solis")
    invoices = InvoiceService(repo, clock=_clock())
    return repo, inv, p, ana, beto, invoices


def test_list_invoices_newest_first_and_searchable(tmp_path: Path):
    _repo, _inv, p, ana, beto, invoices = _setup(tmp_path)
    first = invoices.create_invoice(InvoiceRequest(ana, "Contado", (LineRequest(p.id, 1),)))
    second = invoices.create_invoice(InvoiceRequest(beto, "Contado", (LineRequest(p.id, 2),)))

    assert [i.number for i in invoices.list_invoices()] == [second.number, first.number]
    assert [i.id for i in invoices.list_invoices("beto")] == [second.id]
    assert [i.id for i in invoices.list_invoices(first.number.lower())] == [first.id]
    assert invoices.list_invoices("nadie") == []


def test_document_bundles_customer_lines_and_company(tmp_path: Path):
    repo, inv, p, ana, _beto, invoices = _setup(tmp_path)
    created = invoices.create_invoice(InvoiceRequest(ana, "Credito 15 dias", (LineRequest(p.id, 2),)))
    repo.save_company_profile(
        CompanyProfile("Muebles SA", "Heredia", "2260-0000", "ventas@muebles.example", "3-101-000000")
    )
    inv.update_product(p.id, "Silla Ejecutiva", "99.00", "Muebles")

    doc = invoices.invoice_document(created.id)

    assert doc.invoice == created
    assert doc.customer.full_name == "Ana Mora"
    assert doc.company.name == "Muebles SA"
    assert len(doc.lines) == 1
    assert doc.lines[0].product_code == p.code
    assert doc.lines[0].unit_price == Decimal("45.00")
    assert doc.lines[0].subtotal == Decimal("90.00")


def test_document_requires_company_profile(tmp_path: Path):
    _repo, _inv, p, ana, _beto, invoices = _setup(tmp_path)
    created = invoices.create_invoice(InvoiceRequest(ana, "Contado", (LineRequest(p.id, 1),)))

    with pytest.raises(NotFoundError, match="Company profile"):
        invoices.invoice_document(created.id)


def test_missing_invoice_is_not_found(tmp_path: Path):
    _repo, _inv, _p, _ana, _beto, invoices = _setup(tmp_path)

    with pytest.raises(NotFoundError):
        invoices.get_invoice(123)


def test_issued_invoices_cannot_be_updated(tmp_path: Path):
    repo, _inv, p, ana, _beto, invoices = _setup(tmp_path)
    created = invoices.create_invoice(InvoiceRequest(ana, "Contado", (LineRequest(p.id, 1),)))

    conn = repo._conn()
    with pytest.raises(Exception, match="immutable"):
        conn.execute("UPDATE invoices SET total='0.00' WHERE id=?", (created.id,))
    with pytest.raises(Exception, match="immutable"):
        conn.execute("UPDATE invoice_details SET unit_price='0.00' WHERE invoice_id=?", (created.id,))
    conn.close()
