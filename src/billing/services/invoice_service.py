from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from billing.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from billing.domain.models import Invoice, InvoiceDocument, InvoiceLine, InvoiceRequest, InvoiceTxState
from billing.repositories.sqlite_repo import SqliteRepository
from billing.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from billing.services.catalog_service import CatalogReader
from billing.services.invoice_assembler import InvoiceAssembler
from billing.services.invoice_numbers import InvoiceNumberGenerator, default_generator
from billing.services.stock_ledger import StockLedger

log = logging.getLogger("billing.invoices")


class InvoiceService:
    def __init__(
        self,
        repo: SqliteRepository,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        ledger: StockLedger | None = None,
        numbers: InvoiceNumberGenerator | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo.db_path, timeout=repo.timeout))
        self.ledger = ledger or StockLedger()
        self.numbers = numbers or default_generator
        self.clock = clock

    def create_invoice(self, request: InvoiceRequest, actor: Optional[str] = None) -> Invoice:
        """
        Validates, decrements stock, and saves the invoice as one unit of work.

        Raises ValidationError, InsufficientStockError or TransactionFailure; on
        any of them nothing has been written.
        """
        state = InvoiceTxState.STARTED
        number = None
        try:
            with self.uow_factory() as uow:
                assembler = InvoiceAssembler(CatalogReader(uow), self.numbers, self.clock)
                draft = assembler.build(
                    request.customer_id,
                    request.payment_terms,
                    request.lines,
                    due_date=request.due_date,
                )
                number = draft.number
                state = self._advance(number, InvoiceTxState.LINES_VALIDATED)

                observation = f"Sale - Invoice {draft.number}"
                for line in draft.lines:
                    self.ledger.apply_delta(uow, line.product_id, -line.quantity, observation)
                state = self._advance(number, InvoiceTxState.STOCK_RESERVED)

                invoice_id = uow.insert_invoice(draft)
                saved_lines: list[InvoiceLine] = []
                for line in draft.lines:
                    line_id = uow.insert_invoice_line(invoice_id, line)
                    saved_lines.append(replace(line, id=line_id, invoice_id=invoice_id))
                state = self._advance(number, InvoiceTxState.PERSISTED)

                uow.commit()
                state = self._advance(number, InvoiceTxState.COMMITTED)
        except (ValidationError, InsufficientStockError) as exc:
            self._rolled_back(number, state, exc)
            raise
        except NotFoundError as exc:
            # product vanished between assembly and the stock update
            self._rolled_back(number, state, exc)
            raise ValidationError("product not found") from exc
        except Exception as exc:
            self._rolled_back(number, state, exc)
            log.exception("invoice_tx_failed number=%s state=%s", number, state.value)
            raise TransactionFailure() from exc

        invoice = replace(draft, id=invoice_id, lines=tuple(saved_lines))
        log.info(
            "invoice_created number=%s customer_id=%s lines=%s total=%s actor=%s",
            invoice.number,
            invoice.customer_id,
            len(invoice.lines),
            invoice.total,
            actor,
        )
        return invoice

    @staticmethod
    def _advance(number: Optional[str], state: InvoiceTxState) -> InvoiceTxState:
        log.debug("invoice_tx number=%s state=%s", number, state.value)
        return state

    @staticmethod
    def _rolled_back(number: Optional[str], state: InvoiceTxState, exc: BaseException) -> None:
        log.warning(
            "invoice_tx number=%s state=%s from=%s error=%s",
            number,
            InvoiceTxState.ROLLED_BACK.value,
            state.value,
            exc,
        )

    def get_invoice(self, invoice_id: int) -> Invoice:
        header = self.repo.get_invoice_header(invoice_id)
        if not header:
            raise NotFoundError("Invoice not found.")
        return replace(header, lines=tuple(self.repo.invoice_lines_for_invoice(invoice_id)))

    def invoice_lines_for_invoice(self, invoice_id: int) -> list[InvoiceLine]:
        return self.repo.invoice_lines_for_invoice(invoice_id)

    def list_invoices(self, search: Optional[str] = None) -> list[Invoice]:
        return self.repo.list_invoices(search)

    def invoice_document(self, invoice_id: int) -> InvoiceDocument:
        invoice = self.get_invoice(invoice_id)
        customer = self.repo.get_customer(invoice.customer_id)
        if not customer:
            raise NotFoundError("Customer not found.")
        company = self.repo.get_company_profile()
        if not company:
            raise NotFoundError("Company profile is not configured.")
        return InvoiceDocument(
            invoice=invoice,
            customer=customer,
            lines=tuple(self.repo.document_lines_for_invoice(invoice_id)),
            company=company,
        )
