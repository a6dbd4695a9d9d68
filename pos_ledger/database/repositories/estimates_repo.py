from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...constants import DOC_ESTIMATE
from ...modules.ledger.calculations import LineItem, MoneySummary, build_line_items, compute_summary
from ...modules.ledger.errors import DocumentLockedError, ValidationError
from ...modules.ledger.status import ensure_transition, is_terminal
from ...utils.helpers import now_iso, today_str
from .document_helpers import (
    DbPathRepo,
    delete_items,
    insert_items,
    load_items,
    require_row,
    summary_from_row,
)
from .invoices_repo import Invoice, InvoicesRepo
from .parties_repo import ensure_customer, ensure_sales_rep
from .references_repo import ReferencesRepo

_log = logging.getLogger(__name__)

EDITABLE = ("draft", "pending")
OPEN = ("draft", "pending", "accepted")


@dataclass
class Estimate:
    estimate_id: int
    reference: str
    customer_id: int
    sales_rep_id: int | None
    status: str
    expiry_date: str | None
    message: str | None
    signature: str | None
    items: list[LineItem]
    summary: MoneySummary
    converted_invoice_id: int | None
    created_at: str
    updated_at: str


def _expiry(value: Optional[str | date]) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid expiry date: {value!r} (expected YYYY-MM-DD).") from None


class EstimatesRepo(DbPathRepo):
    """
    Quotes before an invoice exists. No tax and no deposits; conversion
    creates the invoice (with its own reference and money) in the same
    transaction that marks the estimate converted.
    """

    def __init__(self, db_path: str | Path, *, timeout: Optional[float] = None):
        super().__init__(db_path, timeout=timeout)
        self.references = ReferencesRepo(db_path, timeout=timeout)
        self.invoices = InvoicesRepo(db_path, timeout=timeout)

    # ---- write ------------------------------------------------------------

    def create_estimate(
        self,
        *,
        customer_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        sales_rep_id: Optional[int] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        status: str = "draft",
        expiry_date: Optional[str | date] = None,
    ) -> Estimate:
        if status not in EDITABLE:
            raise ValidationError(f"New estimates must be draft or pending, not {status!r}.")
        line_items = build_line_items(items)
        summary = compute_summary(line_items, apply_tax=False)
        expiry = _expiry(expiry_date)
        stamp = now_iso()

        with self._write() as con:
            ensure_customer(con, customer_id)
            ensure_sales_rep(con, sales_rep_id, required=False)

            def _insert(reference: str) -> int:
                cur = con.execute(
                    """
                    INSERT INTO estimates (
                        reference, customer_id, sales_rep_id, status, expiry_date,
                        message, signature, subtotal, discount_total, tax, total,
                        created_at, updated_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        reference,
                        customer_id,
                        sales_rep_id,
                        status,
                        expiry,
                        message,
                        signature,
                        str(summary.subtotal),
                        str(summary.discount_total),
                        str(summary.tax),
                        str(summary.total),
                        stamp,
                        stamp,
                    ),
                )
                return int(cur.lastrowid)

            reference, estimate_id = self.references.insert_with_reference(con, DOC_ESTIMATE, _insert)
            insert_items(con, "estimate_items", estimate_id, line_items)
        _log.info("Created estimate %s (%s, total %s)", reference, status, summary.total)
        return self.get_estimate(estimate_id)

    def update_estimate(
        self,
        estimate_id: int,
        *,
        items: Optional[Iterable[LineItem | Mapping[str, Any]]] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        expiry_date: Optional[str | date] = None,
    ) -> Estimate:
        """Replace items and/or header fields. Only draft and pending estimates change."""
        line_items = build_line_items(items) if items is not None else None
        with self._write() as con:
            row = self._row(con, estimate_id)
            if row["status"] not in EDITABLE:
                if is_terminal("estimate", row["status"]):
                    raise DocumentLockedError(f"Estimate {row['reference']} is {row['status']} and can no longer be changed.")
                raise ValidationError(f"Estimate {row['reference']} is {row['status']} and cannot be edited.")
            sets = ["updated_at=?"]
            params: list = [now_iso()]
            if line_items is not None:
                summary = compute_summary(line_items, apply_tax=False)
                sets += ["subtotal=?", "discount_total=?", "tax=?", "total=?"]
                params += [str(summary.subtotal), str(summary.discount_total), str(summary.tax), str(summary.total)]
                delete_items(con, "estimate_items", estimate_id)
                insert_items(con, "estimate_items", estimate_id, line_items)
            if message is not None:
                sets.append("message=?")
                params.append(message)
            if signature is not None:
                sets.append("signature=?")
                params.append(signature)
            if expiry_date is not None:
                sets.append("expiry_date=?")
                params.append(_expiry(expiry_date))
            params.append(estimate_id)
            con.execute(f"UPDATE estimates SET {', '.join(sets)} WHERE estimate_id=?", params)
        return self.get_estimate(estimate_id)

    def submit(self, estimate_id: int) -> Estimate:
        return self._move(estimate_id, "pending")

    def accept(self, estimate_id: int) -> Estimate:
        return self._move(estimate_id, "accepted")

    def expire(self, estimate_id: int) -> Estimate:
        return self._move(estimate_id, "expired")

    def expire_overdue(self, today: Optional[str | date] = None) -> int:
        """Expire every open estimate whose expiry_date is before `today`. Returns the count."""
        cutoff = _expiry(today) or today_str()
        with self._write() as con:
            cur = con.execute(
                f"""
                UPDATE estimates
                   SET status='expired', updated_at=?
                 WHERE expiry_date IS NOT NULL
                   AND expiry_date < ?
                   AND status IN ({', '.join('?' for _ in OPEN)})
                """,
                (now_iso(), cutoff, *OPEN),
            )
            count = cur.rowcount
        if count:
            _log.info("Expired %d overdue estimate(s) before %s", count, cutoff)
        return count

    def convert_to_invoice(
        self,
        estimate_id: int,
        *,
        deposit_received: Any = 0,
        payment_terms: Optional[str] = None,
    ) -> Invoice:
        """pending|accepted -> converted, creating the invoice in the same transaction."""
        with self._write() as con:
            row = self._row(con, estimate_id)
            ensure_transition("estimate", row["status"], "converted")
            items = load_items(con, "estimate_items", estimate_id)
            invoice_id = self.invoices.create_invoice_in(
                con,
                customer_id=row["customer_id"],
                items=items,
                sales_rep_id=row["sales_rep_id"],
                deposit_received=deposit_received,
                payment_terms=payment_terms,
                message=row["message"],
                signature=row["signature"],
                estimate_reference=row["reference"],
                converted_from_estimate=estimate_id,
            )
            con.execute(
                "UPDATE estimates SET status='converted', converted_invoice_id=?, updated_at=? WHERE estimate_id=?",
                (invoice_id, now_iso(), estimate_id),
            )
        _log.info("Converted estimate %s to invoice id %s", row["reference"], invoice_id)
        return self.invoices.get_invoice(invoice_id)

    def _move(self, estimate_id: int, target: str) -> Estimate:
        with self._write() as con:
            row = self._row(con, estimate_id)
            ensure_transition("estimate", row["status"], target)
            con.execute(
                "UPDATE estimates SET status=?, updated_at=? WHERE estimate_id=?",
                (target, now_iso(), estimate_id),
            )
        _log.info("Estimate %s: %s -> %s", row["reference"], row["status"], target)
        return self.get_estimate(estimate_id)

    # ---- read -------------------------------------------------------------

    def get_estimate(self, estimate_id: int) -> Estimate:
        with self._read() as con:
            row = self._row(con, estimate_id)
            return Estimate(
                estimate_id=int(row["estimate_id"]),
                reference=row["reference"],
                customer_id=int(row["customer_id"]),
                sales_rep_id=row["sales_rep_id"],
                status=row["status"],
                expiry_date=row["expiry_date"],
                message=row["message"],
                signature=row["signature"],
                items=load_items(con, "estimate_items", estimate_id),
                summary=summary_from_row(row),
                converted_invoice_id=row["converted_invoice_id"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )

    def list_estimates(self, status: Optional[str] = None) -> list[dict]:
        sql = "SELECT estimate_id, reference, customer_id, status, expiry_date, total FROM estimates"
        params: tuple = ()
        if status and status != "all":
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY created_at DESC, estimate_id DESC"
        with self._read() as con:
            return [dict(r) for r in con.execute(sql, params).fetchall()]

    @staticmethod
    def _row(con: sqlite3.Connection, estimate_id: int) -> sqlite3.Row:
        return require_row(
            con.execute("SELECT * FROM estimates WHERE estimate_id=?", (estimate_id,)).fetchone(),
            "Estimate",
            estimate_id,
        )
