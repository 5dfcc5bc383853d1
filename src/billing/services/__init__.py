from .catalog_service import CatalogReader
from .stock_ledger import StockLedger
from .invoice_assembler import InvoiceAssembler
from .invoice_numbers import InvoiceNumberGenerator
from .invoice_service import InvoiceService
from .inventory_service import InventoryService
from .customer_service import CustomerService
from .excel_service import ExcelService
from .reporting_service import ReportingService

__all__ = [
    "CatalogReader",
    "StockLedger",
    "InvoiceAssembler",
    "InvoiceNumberGenerator",
    "InvoiceService",
    "InventoryService",
    "CustomerService",
    "ExcelService",
    "ReportingService",
]
