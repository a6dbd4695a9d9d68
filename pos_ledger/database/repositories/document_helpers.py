from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional, Sequence
import sqlite3

from .. import connect
from ...modules.ledger.calculations import LineItem, MoneySummary, to_money
from ...constants import PAYMENT_METHODS
from ...modules.ledger.errors import DomainError, NotFoundError, ValidationError

# item tables share one column layout; keyed by their parent column
ITEM_TABLES: dict[str, str] = {
    "invoice_items": "invoice_id",
    "invoice_edit_items": "edit_id",
    "receipt_items": "receipt_id",
    "estimate_items": "estimate_id",
    "credit_note_items": "credit_note_id",
    "refund_items": "refund_id",
}

# RAISE(ABORT, ...) texts from schema triggers -> user-facing DomainError
_TRIGGER_MESSAGES = (
    "append-only",
    "immutable",
    "cannot return to draft",
    "can be deleted",
    "cannot be deleted",
    "sequence must be contiguous",
    "Cumulative deposit",
    "Receipt edit does not belong",
    "Receipt requires an edit",
)


class DbPathRepo:
    """
    Base for repositories that open a short-lived connection per operation.

    _write(): BEGIN IMMEDIATE, so concurrent writers queue on SQLite's write
              lock (up to the busy timeout) instead of interleaving.
              A trigger abort surfaces as DomainError.
    _read():  one deferred transaction, so every SELECT inside sees the same
              snapshot (a header never comes from one edit and its log from another).
    """

    def __init__(self, db_path: str | Path, *, timeout: Optional[float] = None):
        self.db_path = str(db_path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        return connect(self.db_path, self.timeout)

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            con.execute("BEGIN IMMEDIATE")
            try:
                yield con
            except sqlite3.IntegrityError as e:
                con.rollback()
                err = domain_error_from_integrity(e)
                if err is e:
                    raise
                raise err from e
            except BaseException:
                con.rollback()
                raise
            con.commit()
        finally:
            con.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            con.execute("BEGIN")
            yield con
        finally:
            con.rollback()
            con.close()


# ---- items ----------------------------------------------------------------

def insert_items(con: sqlite3.Connection, table: str, parent_id: int, items: Sequence[LineItem]) -> None:
    fk = ITEM_TABLES[table]
    con.executemany(
        f"""
        INSERT INTO {table} (
            {fk}, line_no, product_code, description,
            quantity, unit_price, discount_percent, amount
        ) VALUES (?,?,?,?,?,?,?,?)
        """,
        [
            (
                parent_id,
                line_no,
                it.product_code,
                it.description,
                str(it.quantity),
                str(it.unit_price),
                str(it.discount_percent),
                str(it.amount),
            )
            for line_no, it in enumerate(items, start=1)
        ],
    )


def load_items(con: sqlite3.Connection, table: str, parent_id: int) -> list[LineItem]:
    fk = ITEM_TABLES[table]
    rows = con.execute(
        f"""
        SELECT product_code, description, quantity, unit_price, discount_percent
          FROM {table}
         WHERE {fk} = ?
         ORDER BY line_no
        """,
        (parent_id,),
    ).fetchall()
    return [
        LineItem(
            product_code=r["product_code"],
            description=r["description"],
            quantity=Decimal(r["quantity"]),
            unit_price=Decimal(r["unit_price"]),
            discount_percent=Decimal(r["discount_percent"]),
        )
        for r in rows
    ]


def delete_items(con: sqlite3.Connection, table: str, parent_id: int) -> None:
    fk = ITEM_TABLES[table]
    con.execute(f"DELETE FROM {table} WHERE {fk} = ?", (parent_id,))


# ---- rows -----------------------------------------------------------------

def summary_from_row(row: sqlite3.Row) -> MoneySummary:
    """
    Build a MoneySummary from a header row. Families without tax/deposit
    columns (estimates, credit notes, refunds) read them as zero.
    """
    keys = row.keys()

    def get(name: str) -> Decimal:
        return to_money(row[name]) if name in keys and row[name] is not None else Decimal("0.00")

    total = get("total")
    return MoneySummary(
        subtotal=get("subtotal"),
        discount_total=get("discount_total"),
        tax=get("tax"),
        total=total,
        deposit_received=get("deposit_received"),
        balance_due=get("balance_due") if "balance_due" in keys else total,
    )


def payment_method_or(value: Optional[str], default: Optional[str]) -> Optional[str]:
    if value is None or str(value).strip() == "":
        return default
    method = str(value).strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Unsupported payment method: {value}. Allowed: {', '.join(PAYMENT_METHODS)}"
        )
    return method


def require_signature(value: Optional[str]) -> str:
    sig = (value or "").strip()
    if not sig:
        raise ValidationError("Signature is required.")
    return sig


def require_row(row: Optional[sqlite3.Row], what: str, key) -> sqlite3.Row:
    if row is None:
        raise NotFoundError(f"{what} '{key}' does not exist.")
    return row


def domain_error_from_integrity(e: sqlite3.IntegrityError) -> Exception:
    """Turn a trigger abort into a DomainError; leave other integrity errors alone."""
    text = str(e)
    if any(m in text for m in _TRIGGER_MESSAGES):
        return DomainError(text)
    return e
