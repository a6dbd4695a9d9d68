from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...constants import SALES_REP_ROLE
from ...modules.ledger.errors import DomainError, NotFoundError, ValidationError
from .document_helpers import DbPathRepo


@dataclass
class Customer:
    customer_id: int | None
    name: str
    contact_info: str
    address: str | None


@dataclass
class SalesRep:
    user_id: int | None
    username: str
    full_name: str
    role: str


class PartiesRepo(DbPathRepo):
    """
    Lookups for the parties documents point at. Customer and user management
    live elsewhere; the ledger only needs to create minimal rows and verify
    references before it writes a document.
    """

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if value is None or value.strip() == "":
            raise ValidationError(f"{field_label} cannot be empty.")

    # ---- customers --------------------------------------------------------

    def add_customer(self, name: str, contact_info: str = "", address: str | None = None) -> int:
        name = self._normalize_text(name)
        self._ensure_non_empty(name, "Customer name")
        with self._write() as con:
            cur = con.execute(
                "INSERT INTO customers(name, contact_info, address) VALUES (?, ?, ?)",
                (name, self._normalize_text(contact_info) or "", self._normalize_text(address)),
            )
            return int(cur.lastrowid)

    def get_customer(self, customer_id: int) -> Customer | None:
        with self._read() as con:
            row = con.execute(
                "SELECT customer_id, name, contact_info, address FROM customers WHERE customer_id=?",
                (customer_id,),
            ).fetchone()
        return Customer(**row) if row else None

    # ---- sales reps -------------------------------------------------------

    def add_sales_rep(self, username: str, full_name: str, role: str = SALES_REP_ROLE) -> int:
        username = self._normalize_text(username)
        full_name = self._normalize_text(full_name)
        self._ensure_non_empty(username, "Username")
        self._ensure_non_empty(full_name, "Full name")
        try:
            with self._write() as con:
                cur = con.execute(
                    "INSERT INTO users(username, full_name, role, is_active) VALUES (?, ?, ?, 1)",
                    (username, full_name, role),
                )
                return int(cur.lastrowid)
        except sqlite3.IntegrityError as e:
            raise DomainError(f"Username '{username}' is already taken.") from e

    def get_sales_rep(self, user_id: int) -> SalesRep | None:
        with self._read() as con:
            row = con.execute(
                "SELECT user_id, username, full_name, role FROM users WHERE user_id=?",
                (user_id,),
            ).fetchone()
        return SalesRep(**row) if row else None


# ---- checks used inside other repositories' transactions ------------------

def ensure_customer(con: sqlite3.Connection, customer_id: int) -> None:
    row = con.execute(
        "SELECT is_active FROM customers WHERE customer_id=?", (customer_id,)
    ).fetchone()
    if row is None:
        raise NotFoundError(f"Customer '{customer_id}' does not exist.")
    if not row["is_active"]:
        raise ValidationError("Customer is inactive.")


def ensure_sales_rep(con: sqlite3.Connection, user_id: int | None, *, required: bool = True) -> None:
    if user_id is None:
        if required:
            raise ValidationError("Valid salesRepId is required.")
        return
    row = con.execute(
        "SELECT role, is_active FROM users WHERE user_id=?", (user_id,)
    ).fetchone()
    if row is None:
        raise NotFoundError(f"Sales representative '{user_id}' does not exist.")
    if row["role"] != SALES_REP_ROLE:
        raise ValidationError("User is not a Sales Representative.")
    if not row["is_active"]:
        raise ValidationError("Sales representative is inactive.")
