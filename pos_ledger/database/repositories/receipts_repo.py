from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...constants import DEFAULT_PAYMENT_METHOD, DOC_RECEIPT
from ...modules.ledger.calculations import (
    LineItem,
    MoneySummary,
    build_line_items,
    compute_receipt_summary,
    payment_summary,
    to_money,
)
from ...modules.ledger.errors import ReceiptGenerationError, ValidationError
from ...modules.ledger.status import ensure_transition
from ...utils.helpers import now_iso
from .document_helpers import (
    DbPathRepo,
    insert_items,
    load_items,
    payment_method_or,
    require_row,
    summary_from_row,
)
from .parties_repo import ensure_customer
from .references_repo import ReferencesRepo

_log = logging.getLogger(__name__)

PAYMENT_LINE_CODE = "PAYMENT"

_ONE_PER_EDIT = "UNIQUE constraint failed: receipts.invoice_id, receipts.invoice_edit_id"


@dataclass
class Receipt:
    receipt_id: int
    receipt_number: str
    invoice_id: int | None
    invoice_edit_id: int | None
    customer_id: int | None
    payment_method: str | None
    items: list[LineItem]
    summary: MoneySummary
    status: str
    message: str | None
    signature: str | None
    created_at: str


@dataclass(frozen=True)
class ReceiptResult:
    receipt: Receipt
    already_existed: bool


class ReceiptsRepo(DbPathRepo):
    """
    Receipts, standalone or generated from a deposit-bearing invoice edit.

    (invoice_id, invoice_edit_id) is the idempotency key: the partial UNIQUE
    index idx_receipts_one_per_edit allows at most one receipt per edit, so a
    retried or concurrent request gets the existing receipt back.
    """

    def __init__(self, db_path: str | Path, *, timeout: Optional[float] = None):
        super().__init__(db_path, timeout=timeout)
        self.references = ReferencesRepo(db_path, timeout=timeout)

    # ---- generate from an invoice edit ------------------------------------

    def generate_from_edit(self, invoice_id: int, edit_id: int) -> ReceiptResult:
        """
        Returns the receipt for this edit, creating it on first call.
        `already_existed` tells the caller whether this call created it.

        Raises ReceiptGenerationError if the edit is not part of the invoice
        or did not add a deposit.
        """
        try:
            with self._write() as con:
                found = self._find(con, invoice_id, edit_id)
                if found is not None:
                    return ReceiptResult(self._hydrate(con, found), True)
                receipt_id = self._generate_in(con, invoice_id, edit_id)
        except sqlite3.IntegrityError as e:
            if _ONE_PER_EDIT not in str(e):
                raise
            # lost the race; the other writer's receipt is committed by now
            _log.info("Receipt for invoice %s edit %s created concurrently", invoice_id, edit_id)
            existing = self.find_for_edit(invoice_id, edit_id)
            if existing is None:
                raise
            return ReceiptResult(existing, True)
        return ReceiptResult(self.get_receipt(receipt_id), False)

    def _generate_in(self, con: sqlite3.Connection, invoice_id: int, edit_id: int) -> int:
        invoice = require_row(
            con.execute("SELECT * FROM invoices WHERE invoice_id=?", (invoice_id,)).fetchone(),
            "Invoice",
            invoice_id,
        )
        edit = con.execute("SELECT * FROM invoice_edits WHERE edit_id=?", (edit_id,)).fetchone()
        if edit is None or int(edit["invoice_id"]) != int(invoice_id):
            raise ReceiptGenerationError(
                f"Edit {edit_id} does not belong to invoice {invoice['reference']}."
            )
        amount = to_money(edit["deposit_added"])
        if amount <= 0:
            raise ReceiptGenerationError(
                f"Edit #{edit['seq']} on {invoice['reference']} did not add a deposit; no receipt to generate."
            )

        method = edit["payment_method"] or DEFAULT_PAYMENT_METHOD
        line = LineItem(
            product_code=PAYMENT_LINE_CODE,
            description=f"Deposit on {invoice['reference']} ({method})",
            quantity=Decimal("1"),
            unit_price=amount,
        )
        summary = payment_summary(amount)
        row = summary.to_row()
        stamp = now_iso()

        def _insert(receipt_number: str) -> int:
            cur = con.execute(
                """
                INSERT INTO receipts (
                    receipt_number, invoice_id, invoice_edit_id, customer_id, payment_method,
                    subtotal, discount_total, tax, total, deposit_received, balance_due,
                    status, message, signature, created_at
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,'completed',?,?,?)
                """,
                (
                    receipt_number,
                    invoice_id,
                    edit_id,
                    invoice["customer_id"],
                    method,
                    row["subtotal"],
                    row["discount_total"],
                    row["tax"],
                    row["total"],
                    row["deposit_received"],
                    row["balance_due"],
                    f"Payment received for invoice {invoice['reference']}",
                    invoice["signature"],
                    stamp,
                ),
            )
            return int(cur.lastrowid)

        receipt_number, receipt_id = self.references.insert_with_reference(con, DOC_RECEIPT, _insert)
        insert_items(con, "receipt_items", receipt_id, [line])
        _log.info(
            "Generated receipt %s for %s edit #%s (%s)",
            receipt_number, invoice["reference"], edit["seq"], amount,
        )
        return receipt_id

    # ---- standalone -------------------------------------------------------

    def create_receipt(
        self,
        *,
        customer_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        deposit_received: Any = 0,
        signature: Optional[str] = None,
        message: Optional[str] = None,
        payment_method: Optional[str] = None,
        save_as_draft: bool = False,
    ) -> Receipt:
        line_items = build_line_items(items)
        summary = compute_receipt_summary(line_items, deposit_received or 0)
        method = payment_method_or(payment_method, DEFAULT_PAYMENT_METHOD)
        status = "draft" if save_as_draft else "completed"
        if not save_as_draft and not (signature or "").strip():
            raise ValidationError("Signature is required to complete a receipt.")
        row = summary.to_row()
        stamp = now_iso()

        with self._write() as con:
            ensure_customer(con, customer_id)

            def _insert(receipt_number: str) -> int:
                cur = con.execute(
                    """
                    INSERT INTO receipts (
                        receipt_number, customer_id, payment_method,
                        subtotal, discount_total, tax, total, deposit_received, balance_due,
                        status, message, signature, created_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        receipt_number,
                        customer_id,
                        method,
                        row["subtotal"],
                        row["discount_total"],
                        row["tax"],
                        row["total"],
                        row["deposit_received"],
                        row["balance_due"],
                        status,
                        message,
                        signature,
                        stamp,
                    ),
                )
                return int(cur.lastrowid)

            receipt_number, receipt_id = self.references.insert_with_reference(con, DOC_RECEIPT, _insert)
            insert_items(con, "receipt_items", receipt_id, line_items)
        _log.info("Created receipt %s (%s, total %s)", receipt_number, status, summary.total)
        return self.get_receipt(receipt_id)

    def complete_receipt(self, receipt_id: int, signature: Optional[str] = None) -> Receipt:
        with self._write() as con:
            row = self._row(con, receipt_id)
            ensure_transition("receipt", row["status"], "completed")
            signed = (signature or row["signature"] or "").strip()
            if not signed:
                raise ValidationError("Signature is required to complete a receipt.")
            con.execute(
                "UPDATE receipts SET status='completed', signature=? WHERE receipt_id=?",
                (signed, receipt_id),
            )
        _log.info("Completed receipt %s", row["receipt_number"])
        return self.get_receipt(receipt_id)

    # ---- read -------------------------------------------------------------

    def get_receipt(self, receipt_id: int) -> Receipt:
        with self._read() as con:
            return self._hydrate(con, self._row(con, receipt_id))

    def find_for_edit(self, invoice_id: int, edit_id: int) -> Receipt | None:
        with self._read() as con:
            row = self._find(con, invoice_id, edit_id)
            return self._hydrate(con, row) if row is not None else None

    def list_receipts(self, invoice_id: Optional[int] = None) -> list[dict]:
        sql = """
          SELECT receipt_id, receipt_number, invoice_id, invoice_edit_id, customer_id,
                 payment_method, total, status, created_at
          FROM receipts
        """
        params: tuple = ()
        if invoice_id is not None:
            sql += " WHERE invoice_id = ?"
            params = (invoice_id,)
        sql += " ORDER BY created_at, receipt_id"
        with self._read() as con:
            return [dict(r) for r in con.execute(sql, params).fetchall()]

    # ---- internals --------------------------------------------------------

    @staticmethod
    def _row(con: sqlite3.Connection, receipt_id: int) -> sqlite3.Row:
        return require_row(
            con.execute("SELECT * FROM receipts WHERE receipt_id=?", (receipt_id,)).fetchone(),
            "Receipt",
            receipt_id,
        )

    @staticmethod
    def _find(con: sqlite3.Connection, invoice_id: int, edit_id: int) -> Optional[sqlite3.Row]:
        return con.execute(
            "SELECT * FROM receipts WHERE invoice_id=? AND invoice_edit_id=?",
            (invoice_id, edit_id),
        ).fetchone()

    @staticmethod
    def _hydrate(con: sqlite3.Connection, row: sqlite3.Row) -> Receipt:
        return Receipt(
            receipt_id=int(row["receipt_id"]),
            receipt_number=row["receipt_number"],
            invoice_id=row["invoice_id"],
            invoice_edit_id=row["invoice_edit_id"],
            customer_id=row["customer_id"],
            payment_method=row["payment_method"],
            items=load_items(con, "receipt_items", row["receipt_id"]),
            summary=summary_from_row(row),
            status=row["status"],
            message=row["message"],
            signature=row["signature"],
            created_at=row["created_at"],
        )
