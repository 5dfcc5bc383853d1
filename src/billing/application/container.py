from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from billing.config import BillingSettings, get_app_paths, load_settings
from billing.logging_config import setup_logging
from billing.repositories.sqlite_repo import SqliteRepository
from billing.services.customer_service import CustomerService
from billing.services.excel_service import ExcelService
from billing.services.inventory_service import InventoryService
from billing.services.invoice_service import InvoiceService
from billing.services.reporting_service import ReportingService

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    inventory: InventoryService
    customers: CustomerService
    invoices: InvoiceService
    excel: ExcelService
    reporting: ReportingService


def build_container(db_path: Path | str, settings: BillingSettings | None = None) -> AppContainer:
    settings = settings or BillingSettings()
    repo = SqliteRepository(db_path, timeout=settings.busy_timeout_seconds)
    repo.init_db()

    inventory = InventoryService(repo)
    customers = CustomerService(repo)
    invoices = InvoiceService(repo)
    excel = ExcelService(repo, inventory)
    reporting = ReportingService(repo)

    return AppContainer(
        repo=repo,
        inventory=inventory,
        customers=customers,
        invoices=invoices,
        excel=excel,
        reporting=reporting,
    )


def bootstrap(level: int = logging.INFO) -> AppContainer:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=level)
    container = build_container(paths.db_path, load_settings())
    log.info("billing_ready db=%s", paths.db_path)
    return container
