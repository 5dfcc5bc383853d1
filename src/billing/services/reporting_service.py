from __future__ import annotations

from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from billing.domain.money import ZERO


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def invoice_totals_between(self, start_iso: str, end_iso: str) -> tuple[int, Decimal, Decimal, Decimal]:
        invoices = self.repo.list_invoices_between(start_iso, end_iso)
        subtotal = sum((i.subtotal for i in invoices), ZERO)
        tax = sum((i.tax for i in invoices), ZERO)
        total = sum((i.total for i in invoices), ZERO)
        return len(invoices), subtotal, tax, total

    def export_invoices_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        invoices = self.repo.list_invoices_between(start_iso, end_iso)
        count, subtotal, tax, total = self.invoice_totals_between(start_iso, end_iso)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Invoices", count, "int"),
            ("Subtotal", float(subtotal), "money"),
            ("Tax", float(tax), "money"),
            ("Total", float(total), "money"),
        ]

        start_row = 5
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])

        set_widths(ws, {"A": 20, "B": 34})

        # -------- 2) Invoice Detail --------
        ws2 = wb.create_sheet("Invoice Detail")
        ws2.append([
            "Invoice", "Issued", "Customer", "Payment Terms",
            "Code", "Product Name",
            "Qty", "Unit Price", "Line Subtotal",
        ])
        bold_row(ws2, 1)

        customers: dict[int, str] = {}
        out_row = 2
        for inv in invoices:
            if inv.customer_id not in customers:
                c = self.repo.get_customer(inv.customer_id)
                customers[inv.customer_id] = c.full_name if c else ""
            for it in self.repo.document_lines_for_invoice(int(inv.id)):
                ws2.append([
                    inv.number, inv.issued_at.isoformat(sep=" "), customers[inv.customer_id], inv.payment_terms,
                    it.product_code, it.product_name,
                    int(it.quantity), float(it.unit_price), float(it.subtotal),
                ])
                money(ws2[f"H{out_row}"])
                money(ws2[f"I{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 24, "B": 20, "C": 30, "D": 16,
            "E": 12, "F": 34,
            "G": 6, "H": 14, "I": 16,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "InvoiceDetail", 1, 1, ws2.max_row, 9)

        wb.save(path)
