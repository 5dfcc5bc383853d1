from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

from conftest import add_customer, make_repo

from billing.domain.errors import ValidationError
from billing.domain.models import InvoiceRequest, LineRequest
from billing.services.excel_service import ExcelService
from billing.services.inventory_service import InventoryService
from billing.services.invoice_service import InvoiceService
from billing.services.reporting_service import ReportingService
from billing.services.stock_ledger import StockLedger


class BrokenLedger(StockLedger):
    def apply_delta(self, uow, product_id, signed_quantity, observation):
        raise RuntimeError("ledger unavailable")


def _write_sheet(path: Path, rows) -> None:
    wb = Workbook()
    ws = wb.active
    for r in rows:
        ws.append(r)
    wb.save(path)


def test_import_updates_existing_and_records_entries(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)
    excel = ExcelService(repo, inv)
    existing = inv.add_product("Grapadora", "7.00", "Oficina", initial_stock=3)

    path = tmp_path / "catalog.xlsx"
    _write_sheet(path, [
        ["code", "name", "price", "category", "stock"],
        [existing.code, "Grapadora Pro", 8.5, "Oficina", 5],
        [None, "Perforadora", "6.25", "Oficina", 4],
        ["PROD-00999", "Clips", 1, "Oficina", 0],
        [None, None, 1, "Oficina", 1],
        [None, "Negativo", 1, "Oficina", -2],
    ])

    ok, skipped = excel.import_catalog_excel(str(path))

    assert (ok, skipped) == (3, 2)
    updated = inv.get_product(existing.id)
    assert updated.name == "Grapadora Pro"
    assert updated.price == Decimal("8.50")
    assert updated.stock == 8
    assert inv.movement_history(existing.id)[0].observation == f"Excel import (+5) for {existing.code}"

    names = {p.name: p for p in inv.list_products()}
    assert names["Perforadora"].stock == 4
    assert names["Clips"].stock == 0
    assert names["Clips"].code != "PROD-00999"


def test_import_row_update_and_entry_share_one_transaction(tmp_path: Path):
    repo = make_repo(tmp_path)
    existing = InventoryService(repo).add_product("Grapadora", "7.00", "Oficina", initial_stock=3)
    inv = InventoryService(repo, ledger=BrokenLedger())

    path = tmp_path / "catalog.xlsx"
    _write_sheet(path, [
        ["code", "name", "price", "category", "stock"],
        [existing.code, "Grapadora Pro", 8.5, "Oficina", 5],
    ])

    ok, skipped = ExcelService(repo, inv).import_catalog_excel(str(path))

    assert (ok, skipped) == (0, 1)
    unchanged = inv.get_product(existing.id)
    assert unchanged.name == "Grapadora"
    assert unchanged.price == Decimal("7.00")
    assert unchanged.stock == 3


def test_import_requires_headers(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)
    path = tmp_path / "bad.xlsx"
    _write_sheet(path, [["code", "name", "price"], ["X", "Y", 1]])

    with pytest.raises(ValidationError, match="Missing column header: category"):
        ExcelService(repo, inv).import_catalog_excel(str(path))


def test_invoice_report_lists_every_line(tmp_path: Path):
    repo = make_repo(tmp_path)
    inv = InventoryService(repo)
    a = inv.add_product("Cable HDMI", "10.00", "Cables", initial_stock=10)
    b = inv.add_product("Adaptador", "5.00", "Accesorios", initial_stock=10)
    cid = add_customer(repo)
    invoices = InvoiceService(repo)
    invoices.create_invoice(InvoiceRequest(cid, "Contado", (LineRequest(a.id, 2), LineRequest(b.id, 1))))
    invoices.create_invoice(InvoiceRequest(cid, "Contado", (LineRequest(b.id, 4),)))

    reporting = ReportingService(repo)
    count, subtotal, tax, total = reporting.invoice_totals_between("2000-01-01 00:00:00", "2100-01-01 00:00:00")
    assert count == 2
    assert subtotal == Decimal("45.00")
    assert tax == Decimal("5.85")
    assert total == Decimal("50.85")

    out = tmp_path / "report.xlsx"
    reporting.export_invoices_excel(str(out), "2000-01-01 00:00:00", "2100-01-01 00:00:00")

    wb = load_workbook(out)
    assert wb.sheetnames == ["Summary", "Invoice Detail"]
    assert wb["Summary"]["B5"].value == 2
    assert wb["Summary"]["B8"].value == pytest.approx(50.85)
    detail = wb["Invoice Detail"]
    assert detail.max_row == 4
    assert {detail.cell(row=r, column=5).value for r in range(2, 5)} == {a.code, b.code}
