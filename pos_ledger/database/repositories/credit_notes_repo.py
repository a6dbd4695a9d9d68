from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...constants import CREDIT_NOTE_SOURCES, DOC_CREDIT_NOTE
from ...modules.ledger.calculations import LineItem, MoneySummary, build_line_items, compute_summary
from ...modules.ledger.errors import NotFoundError, ValidationError
from ...modules.ledger.status import DRAFT as INVOICE_DRAFT, ensure_transition
from ...utils.helpers import now_iso
from .document_helpers import (
    DbPathRepo,
    delete_items,
    insert_items,
    load_items,
    require_row,
    require_signature,
    summary_from_row,
)
from .parties_repo import ensure_customer, ensure_sales_rep
from .references_repo import ReferencesRepo

_log = logging.getLogger(__name__)

DRAFT = "DRAFT"
APPROVED = "APPROVED"
FROM_INVOICE = "FROM_INVOICE"
STANDALONE = "STANDALONE"


@dataclass
class CreditNote:
    credit_note_id: int
    reference: str
    source: str
    invoice_id: int | None
    customer_id: int
    sales_rep_id: int
    message: str | None
    signature: str
    status: str
    items: list[LineItem]
    summary: MoneySummary
    approved_at: str | None
    created_at: str
    updated_at: str


class CreditNotesRepo(DbPathRepo):
    """
    Credit notes, standalone or against an issued invoice.
    Editable only while DRAFT; APPROVED is terminal (enforced here and by triggers).
    """

    def __init__(self, db_path: str | Path, *, timeout: Optional[float] = None):
        super().__init__(db_path, timeout=timeout)
        self.references = ReferencesRepo(db_path, timeout=timeout)

    def create_credit_note(
        self,
        *,
        customer_id: int,
        sales_rep_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        signature: str,
        message: Optional[str] = None,
        source: str = STANDALONE,
        invoice_id: Optional[int] = None,
        save_draft: bool = False,
    ) -> CreditNote:
        if source not in CREDIT_NOTE_SOURCES:
            raise ValidationError(f"Invalid source. Allowed: {', '.join(CREDIT_NOTE_SOURCES)}")
        if source == FROM_INVOICE and invoice_id is None:
            raise ValidationError("invoiceId is required when source is FROM_INVOICE.")
        if source == STANDALONE and invoice_id is not None:
            raise ValidationError("A standalone credit note cannot reference an invoice.")
        sig = require_signature(signature)
        line_items = build_line_items(items, require_description=False)
        summary = compute_summary(line_items, apply_tax=False)
        status = DRAFT if save_draft else APPROVED
        stamp = now_iso()

        with self._write() as con:
            ensure_customer(con, customer_id)
            ensure_sales_rep(con, sales_rep_id)
            if invoice_id is not None:
                self._check_invoice(con, invoice_id, customer_id)

            def _insert(reference: str) -> int:
                cur = con.execute(
                    """
                    INSERT INTO credit_notes (
                        reference, source, invoice_id, customer_id, sales_rep_id,
                        message, signature, status, subtotal, discount_total, total,
                        approved_at, created_at, updated_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        reference,
                        source,
                        invoice_id,
                        customer_id,
                        sales_rep_id,
                        message,
                        sig,
                        DRAFT,
                        str(summary.subtotal),
                        str(summary.discount_total),
                        str(summary.total),
                        None,
                        stamp,
                        stamp,
                    ),
                )
                return int(cur.lastrowid)

            reference, credit_note_id = self.references.insert_with_reference(con, DOC_CREDIT_NOTE, _insert)
            insert_items(con, "credit_note_items", credit_note_id, line_items)
            if status == APPROVED:
                # lines go in while the note is still a draft; approval locks them
                con.execute(
                    "UPDATE credit_notes SET status=?, approved_at=? WHERE credit_note_id=?",
                    (APPROVED, stamp, credit_note_id),
                )
        _log.info("Created credit note %s (%s, total %s)", reference, status, summary.total)
        return self.get_credit_note(credit_note_id)

    def update_credit_note(
        self,
        credit_note_id: int,
        *,
        items: Optional[Iterable[LineItem | Mapping[str, Any]]] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        save_draft: bool = True,
    ) -> CreditNote:
        """Edit a DRAFT credit note; save_draft=False approves it in the same step."""
        line_items = build_line_items(items, require_description=False) if items is not None else None
        with self._write() as con:
            row = self._row(con, credit_note_id)
            target = DRAFT if save_draft else APPROVED
            if row["status"] != DRAFT or target != DRAFT:
                ensure_transition("credit_note", row["status"], target)
            stamp = now_iso()
            sets = ["updated_at=?", "status=?"]
            params: list = [stamp, target]
            if target == APPROVED:
                sets.append("approved_at=?")
                params.append(stamp)
            if line_items is not None:
                summary = compute_summary(line_items, apply_tax=False)
                sets += ["subtotal=?", "discount_total=?", "total=?"]
                params += [str(summary.subtotal), str(summary.discount_total), str(summary.total)]
                delete_items(con, "credit_note_items", credit_note_id)
                insert_items(con, "credit_note_items", credit_note_id, line_items)
            if message is not None:
                sets.append("message=?")
                params.append(message)
            if signature is not None:
                sets.append("signature=?")
                params.append(require_signature(signature))
            params.append(credit_note_id)
            con.execute(f"UPDATE credit_notes SET {', '.join(sets)} WHERE credit_note_id=?", params)
        return self.get_credit_note(credit_note_id)

    def approve(self, credit_note_id: int) -> CreditNote:
        with self._write() as con:
            row = self._row(con, credit_note_id)
            ensure_transition("credit_note", row["status"], APPROVED)
            stamp = now_iso()
            con.execute(
                "UPDATE credit_notes SET status=?, approved_at=?, updated_at=? WHERE credit_note_id=?",
                (APPROVED, stamp, stamp, credit_note_id),
            )
        _log.info("Approved credit note %s", row["reference"])
        return self.get_credit_note(credit_note_id)

    # ---- read -------------------------------------------------------------

    def get_credit_note(self, credit_note_id: int) -> CreditNote:
        with self._read() as con:
            row = self._row(con, credit_note_id)
            return CreditNote(
                credit_note_id=int(row["credit_note_id"]),
                reference=row["reference"],
                source=row["source"],
                invoice_id=row["invoice_id"],
                customer_id=int(row["customer_id"]),
                sales_rep_id=int(row["sales_rep_id"]),
                message=row["message"],
                signature=row["signature"],
                status=row["status"],
                items=load_items(con, "credit_note_items", credit_note_id),
                summary=summary_from_row(row),
                approved_at=row["approved_at"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )

    def list_credit_notes(self, status: Optional[str] = None) -> list[dict]:
        sql = "SELECT credit_note_id, reference, source, invoice_id, customer_id, status, total FROM credit_notes"
        params: tuple = ()
        if status:
            sql += " WHERE status = ?"
            params = (status.upper(),)
        sql += " ORDER BY created_at DESC, credit_note_id DESC"
        with self._read() as con:
            return [dict(r) for r in con.execute(sql, params).fetchall()]

    # ---- internals --------------------------------------------------------

    @staticmethod
    def _row(con: sqlite3.Connection, credit_note_id: int) -> sqlite3.Row:
        return require_row(
            con.execute("SELECT * FROM credit_notes WHERE credit_note_id=?", (credit_note_id,)).fetchone(),
            "Credit note",
            credit_note_id,
        )

    @staticmethod
    def _check_invoice(con: sqlite3.Connection, invoice_id: int, customer_id: int) -> None:
        inv = con.execute(
            "SELECT reference, customer_id, status FROM invoices WHERE invoice_id=?", (invoice_id,)
        ).fetchone()
        if inv is None:
            raise NotFoundError(f"Invoice '{invoice_id}' does not exist.")
        if inv["status"] == INVOICE_DRAFT:
            raise ValidationError(f"Invoice {inv['reference']} is a draft; credit notes need an issued invoice.")
        if int(inv["customer_id"]) != int(customer_id):
            raise ValidationError(f"Invoice {inv['reference']} belongs to a different customer.")
