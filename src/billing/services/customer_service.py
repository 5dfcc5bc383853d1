from __future__ import annotations

import re
import sqlite3
from typing import Optional

from billing.domain.errors import NotFoundError, ValidationError
from billing.domain.models import Customer

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CustomerService:
    def __init__(self, repo):
        self.repo = repo

    def add_customer(
        self,
        identification: str,
        full_name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        identification, full_name, email = self._validate(identification, full_name, email)
        try:
            return self.repo.add_customer(identification, full_name, address, phone, email)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"A customer with identification '{identification}' already exists.", field="identification"
            ) from exc

    def update_customer(
        self,
        customer_id: int,
        identification: str,
        full_name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> None:
        identification, full_name, email = self._validate(identification, full_name, email)
        try:
            updated = self.repo.update_customer(int(customer_id), identification, full_name, address, phone, email)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"A customer with identification '{identification}' already exists.", field="identification"
            ) from exc
        if not updated:
            raise NotFoundError("Customer not found.")

    def get_customer(self, customer_id: int) -> Customer:
        c = self.repo.get_customer(int(customer_id))
        if not c:
            raise NotFoundError("Customer not found.")
        return c

    def list_customers(self, search: Optional[str] = None) -> list[Customer]:
        return self.repo.list_customers(search)

    def delete_customer(self, customer_id: int) -> None:
        try:
            removed = self.repo.delete_customer(int(customer_id))
        except sqlite3.IntegrityError as exc:
            raise ValidationError("Customer has invoices and cannot be deleted.") from exc
        if not removed:
            raise NotFoundError("Customer not found.")

    @staticmethod
    def _validate(identification: str, full_name: str, email: Optional[str]) -> tuple[str, str, Optional[str]]:
        identification = (identification or "").strip()
        full_name = (full_name or "").strip()
        if not identification:
            raise ValidationError("Identification number is required.", field="identification")
        if not full_name:
            raise ValidationError("Full name is required.", field="full_name")
        email = (email or "").strip() or None
        if email and not _EMAIL_RE.match(email):
            raise ValidationError("Email format is not valid.", field="email")
        return identification, full_name, email
