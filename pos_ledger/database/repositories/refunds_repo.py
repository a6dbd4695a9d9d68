from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...constants import DOC_REFUND, REFUND_SOURCES
from ...modules.ledger.calculations import LineItem, MoneySummary, build_line_items, compute_summary
from ...modules.ledger.errors import NotFoundError, ValidationError
from ...modules.ledger.status import ensure_transition
from ...utils.helpers import now_iso
from .credit_notes_repo import APPROVED as CREDIT_NOTE_APPROVED
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
REFUNDED = "REFUNDED"
FROM_CREDITNOTE = "FROM_CREDITNOTE"
STANDALONE = "STANDALONE"


@dataclass
class Refund:
    refund_id: int
    reference: str
    source: str
    credit_note_id: int | None
    customer_id: int
    sales_rep_id: int
    message: str | None
    signature: str
    status: str
    items: list[LineItem]
    summary: MoneySummary
    refunded_at: str | None
    created_at: str
    updated_at: str


class RefundsRepo(DbPathRepo):
    """Money paid back to a customer; FROM_CREDITNOTE refunds need an approved credit note."""

    def __init__(self, db_path: str | Path, *, timeout: Optional[float] = None):
        super().__init__(db_path, timeout=timeout)
        self.references = ReferencesRepo(db_path, timeout=timeout)

    def create_refund(
        self,
        *,
        customer_id: int,
        sales_rep_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        signature: str,
        message: Optional[str] = None,
        source: str = STANDALONE,
        credit_note_id: Optional[int] = None,
        save_draft: bool = False,
    ) -> Refund:
        if source not in REFUND_SOURCES:
            raise ValidationError(f"Invalid source. Allowed: {', '.join(REFUND_SOURCES)}")
        if source == FROM_CREDITNOTE and credit_note_id is None:
            raise ValidationError("creditNoteId is required when source is FROM_CREDITNOTE.")
        if source == STANDALONE and credit_note_id is not None:
            raise ValidationError("A standalone refund cannot reference a credit note.")
        sig = require_signature(signature)
        line_items = build_line_items(items, require_description=False)
        summary = compute_summary(line_items, apply_tax=False)
        status = DRAFT if save_draft else REFUNDED
        stamp = now_iso()

        with self._write() as con:
            ensure_customer(con, customer_id)
            ensure_sales_rep(con, sales_rep_id)
            if credit_note_id is not None:
                self._check_credit_note(con, credit_note_id, customer_id)

            def _insert(reference: str) -> int:
                cur = con.execute(
                    """
                    INSERT INTO refunds (
                        reference, source, credit_note_id, customer_id, sales_rep_id,
                        message, signature, status, subtotal, discount_total, total,
                        refunded_at, created_at, updated_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        reference,
                        source,
                        credit_note_id,
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

            reference, refund_id = self.references.insert_with_reference(con, DOC_REFUND, _insert)
            insert_items(con, "refund_items", refund_id, line_items)
            if status == REFUNDED:
                con.execute(
                    "UPDATE refunds SET status=?, refunded_at=? WHERE refund_id=?",
                    (REFUNDED, stamp, refund_id),
                )
        _log.info("Created refund %s (%s, total %s)", reference, status, summary.total)
        return self.get_refund(refund_id)

    def update_refund(
        self,
        refund_id: int,
        *,
        items: Optional[Iterable[LineItem | Mapping[str, Any]]] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        save_draft: bool = True,
    ) -> Refund:
        line_items = build_line_items(items, require_description=False) if items is not None else None
        with self._write() as con:
            row = self._row(con, refund_id)
            target = DRAFT if save_draft else REFUNDED
            if row["status"] != DRAFT or target != DRAFT:
                ensure_transition("refund", row["status"], target)
            stamp = now_iso()
            sets = ["updated_at=?", "status=?"]
            params: list = [stamp, target]
            if target == REFUNDED:
                sets.append("refunded_at=?")
                params.append(stamp)
            if line_items is not None:
                summary = compute_summary(line_items, apply_tax=False)
                sets += ["subtotal=?", "discount_total=?", "total=?"]
                params += [str(summary.subtotal), str(summary.discount_total), str(summary.total)]
                delete_items(con, "refund_items", refund_id)
                insert_items(con, "refund_items", refund_id, line_items)
            if message is not None:
                sets.append("message=?")
                params.append(message)
            if signature is not None:
                sets.append("signature=?")
                params.append(require_signature(signature))
            params.append(refund_id)
            con.execute(f"UPDATE refunds SET {', '.join(sets)} WHERE refund_id=?", params)
        return self.get_refund(refund_id)

    def mark_refunded(self, refund_id: int) -> Refund:
        with self._write() as con:
            row = self._row(con, refund_id)
            ensure_transition("refund", row["status"], REFUNDED)
            stamp = now_iso()
            con.execute(
                "UPDATE refunds SET status=?, refunded_at=?, updated_at=? WHERE refund_id=?",
                (REFUNDED, stamp, stamp, refund_id),
            )
        _log.info("Refund %s marked refunded", row["reference"])
        return self.get_refund(refund_id)

    def get_refund(self, refund_id: int) -> Refund:
        with self._read() as con:
            row = self._row(con, refund_id)
            return Refund(
                refund_id=int(row["refund_id"]),
                reference=row["reference"],
                source=row["source"],
                credit_note_id=row["credit_note_id"],
                customer_id=int(row["customer_id"]),
                sales_rep_id=int(row["sales_rep_id"]),
                message=row["message"],
                signature=row["signature"],
                status=row["status"],
                items=load_items(con, "refund_items", refund_id),
                summary=summary_from_row(row),
                refunded_at=row["refunded_at"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )

    def list_refunds(self, status: Optional[str] = None) -> list[dict]:
        sql = "SELECT refund_id, reference, source, credit_note_id, customer_id, status, total FROM refunds"
        params: tuple = ()
        if status:
            sql += " WHERE status = ?"
            params = (status.upper(),)
        sql += " ORDER BY created_at DESC, refund_id DESC"
        with self._read() as con:
            return [dict(r) for r in con.execute(sql, params).fetchall()]

    @staticmethod
    def _row(con: sqlite3.Connection, refund_id: int) -> sqlite3.Row:
        return require_row(
            con.execute("SELECT * FROM refunds WHERE refund_id=?", (refund_id,)).fetchone(),
            "Refund",
            refund_id,
        )

    @staticmethod
    def _check_credit_note(con: sqlite3.Connection, credit_note_id: int, customer_id: int) -> None:
        cn = con.execute(
            "SELECT reference, customer_id, status FROM credit_notes WHERE credit_note_id=?",
            (credit_note_id,),
        ).fetchone()
        if cn is None:
            raise NotFoundError(f"Credit note '{credit_note_id}' does not exist.")
        if cn["status"] != CREDIT_NOTE_APPROVED:
            raise ValidationError(f"Credit note {cn['reference']} must be approved before it can be refunded.")
        if int(cn["customer_id"]) != int(customer_id):
            raise ValidationError(f"Credit note {cn['reference']} belongs to a different customer.")
