from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...constants import (
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_PAYMENT_TERMS,
    DOC_INVOICE,
    PAYMENT_TERMS,
)
from ...modules.ledger.calculations import (
    LineItem,
    MoneySummary,
    balance_after_deposit,
    build_line_items,
    compute_summary,
    to_money,
)
from ...modules.ledger.deposit_guard import _UNSET, DepositDecision, check_deposit_acceptable
from ...modules.ledger.edits import LedgerView, fold_edits
from ...modules.ledger.errors import DepositRejected, DomainError, InvalidTransition, ValidationError
from ...modules.ledger.status import DRAFT, is_valid, next_invoice_status, normalize
from ...utils.helpers import now_iso
from .document_helpers import (
    DbPathRepo,
    delete_items,
    insert_items,
    load_items,
    payment_method_or,
    require_row,
    summary_from_row,
)
from .parties_repo import ensure_customer, ensure_sales_rep
from .references_repo import ReferencesRepo

_log = logging.getLogger(__name__)


@dataclass
class InvoiceEdit:
    edit_id: int
    invoice_id: int
    seq: int
    created_at: str
    items: list[LineItem]
    deposit_added: Decimal
    payment_method: str | None
    summary: MoneySummary
    status: str
    note: str | None

    @property
    def deposit_received(self) -> Decimal:
        """Cumulative deposit after this edit (never just the delta)."""
        return self.summary.deposit_received

    @property
    def total(self) -> Decimal:
        return self.summary.total

    @property
    def balance_due(self) -> Decimal:
        return self.summary.balance_due


@dataclass
class Invoice:
    invoice_id: int
    reference: str
    customer_id: int
    sales_rep_id: int | None
    payment_terms: str
    message: str | None
    signature: str | None
    estimate_reference: str | None
    converted_from_estimate: int | None
    issued_at: str
    due_date: str | None
    base_items: list[LineItem]
    initial_deposit: Decimal
    initial_status: str
    items: list[LineItem]
    summary: MoneySummary
    status: str
    edit_count: int
    created_at: str
    updated_at: str
    edits: list[InvoiceEdit] = field(default_factory=list)

    def ledger_view(self) -> LedgerView:
        """Current state recomputed by folding creation values and the edit log."""
        return fold_edits(self.base_items, self.initial_deposit, self.initial_status, self.edits)


def due_date_for(issued_on: date, payment_terms: str) -> str:
    return (issued_on + timedelta(days=PAYMENT_TERMS[payment_terms])).isoformat()


class InvoicesRepo(DbPathRepo):
    """
    Invoices and their append-only edit ledger.

    Rules:
      • Creation writes the header, the creation items and the creation
        deposit once. Those values never change afterwards.
      • Every later change (items, deposit, issuing a draft) is a new row in
        invoice_edits with seq = last + 1; nothing is updated in place.
      • The header's current columns (totals/status/edit_count) are a cache of
        the latest edit, written in the SAME transaction as the edit, so a
        reader never sees totals from one edit next to a longer edit list.
      • The deposit guard runs inside the write transaction against the
        committed state; its decision is final.

    DB-side (see schema.py): UPDATE/DELETE on invoice_edits abort, the seq and
    cumulative-deposit laws are checked on insert, and an issued invoice
    cannot be set back to draft.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        tolerance: Optional[Decimal] | Any = _UNSET,
        timeout: Optional[float] = None,
    ):
        super().__init__(db_path, timeout=timeout)
        self.tolerance = tolerance
        self.references = ReferencesRepo(db_path, timeout=timeout)

    # ---------------------------------------------------------------------
    # Validation helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def _payment_terms(value: Optional[str]) -> str:
        terms = value or DEFAULT_PAYMENT_TERMS
        if terms not in PAYMENT_TERMS:
            raise ValidationError(
                f"Invalid payment terms '{terms}'. Allowed: {', '.join(PAYMENT_TERMS)}"
            )
        return terms

    def _guard(self, projected_balance: Decimal, proposed: Decimal, existing: Decimal) -> DepositDecision:
        return check_deposit_acceptable(projected_balance, proposed, existing, tolerance=self.tolerance)

    # ---------------------------------------------------------------------
    # WRITE: creation
    # ---------------------------------------------------------------------
    def create_invoice(
        self,
        *,
        customer_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        sales_rep_id: Optional[int] = None,
        deposit_received: Any = 0,
        payment_terms: Optional[str] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        save_as_draft: bool = False,
        estimate_reference: Optional[str] = None,
        converted_from_estimate: Optional[int] = None,
    ) -> Invoice:
        with self._write() as con:
            invoice_id = self.create_invoice_in(
                con,
                customer_id=customer_id,
                items=items,
                sales_rep_id=sales_rep_id,
                deposit_received=deposit_received,
                payment_terms=payment_terms,
                message=message,
                signature=signature,
                save_as_draft=save_as_draft,
                estimate_reference=estimate_reference,
                converted_from_estimate=converted_from_estimate,
            )
        return self.get_invoice(invoice_id)

    def create_invoice_in(
        self,
        con: sqlite3.Connection,
        *,
        customer_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        sales_rep_id: Optional[int] = None,
        deposit_received: Any = 0,
        payment_terms: Optional[str] = None,
        message: Optional[str] = None,
        signature: Optional[str] = None,
        save_as_draft: bool = False,
        estimate_reference: Optional[str] = None,
        converted_from_estimate: Optional[int] = None,
    ) -> int:
        """
        Create an invoice inside the caller's write transaction (used directly
        by estimate conversion). Returns invoice_id.
        """
        line_items = build_line_items(items)
        deposit = to_money(deposit_received or 0)
        terms = self._payment_terms(payment_terms)
        if deposit < 0:
            raise ValidationError("Deposit received cannot be negative.")
        if save_as_draft and deposit > 0:
            raise ValidationError("A draft invoice cannot record a deposit; issue it first.")

        ensure_customer(con, customer_id)
        ensure_sales_rep(con, sales_rep_id, required=False)

        summary = compute_summary(line_items, 0, apply_tax=True)
        if deposit > 0:
            decision = self._guard(summary.balance_due, deposit, Decimal("0.00"))
            if not decision.allowed:
                _log.warning("Invoice creation rejected: %s", decision.reason)
                raise DepositRejected(decision.reason or "Deposit rejected.", decision)
            summary = balance_after_deposit(summary, deposit)
        status = next_invoice_status(None, summary, save_as_draft=save_as_draft)

        stamp = now_iso()
        issued_on = datetime.fromisoformat(stamp).date()
        row = summary.to_row()

        def _insert(reference: str) -> int:
            cur = con.execute(
                """
                INSERT INTO invoices (
                    reference, customer_id, sales_rep_id, payment_terms,
                    message, signature, estimate_reference, converted_from_estimate,
                    issued_at, due_date, initial_deposit, initial_status,
                    subtotal, discount_total, tax, total, deposit_received, balance_due,
                    status, edit_count, created_at, updated_at
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,0,?,?)
                """,
                (
                    reference,
                    customer_id,
                    sales_rep_id,
                    terms,
                    message,
                    signature,
                    estimate_reference,
                    converted_from_estimate,
                    stamp,
                    due_date_for(issued_on, terms),
                    str(deposit),
                    status,
                    row["subtotal"],
                    row["discount_total"],
                    row["tax"],
                    row["total"],
                    row["deposit_received"],
                    row["balance_due"],
                    status,
                    stamp,
                    stamp,
                ),
            )
            return int(cur.lastrowid)

        reference, invoice_id = self.references.insert_with_reference(
            con, DOC_INVOICE, _insert, year=issued_on.year
        )
        insert_items(con, "invoice_items", invoice_id, line_items)
        _log.info("Created invoice %s (%s, total %s)", reference, status, summary.total)
        return invoice_id

    # ---------------------------------------------------------------------
    # WRITE: edit ledger
    # ---------------------------------------------------------------------
    def preview_edit(
        self,
        invoice_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        deposit_delta: Any = 0,
    ) -> tuple[MoneySummary, DepositDecision]:
        """
        Advisory preview for the edit screen: totals with the new items and the
        guard's verdict on the new deposit. Writes nothing; append_edit decides.
        """
        line_items = build_line_items(items)
        delta = to_money(deposit_delta or 0)
        with self._read() as con:
            header = self._header(con, invoice_id)
        existing = to_money(header["deposit_received"])
        projected = compute_summary(line_items, existing, apply_tax=True)
        decision = self._guard(projected.balance_due, existing + delta, existing)
        if decision.allowed:
            return balance_after_deposit(projected, existing + delta), decision
        return projected, decision

    def append_edit(
        self,
        invoice_id: int,
        items: Iterable[LineItem | Mapping[str, Any]],
        deposit_delta: Any = 0,
        payment_method: Optional[str] = None,
        note: Optional[str] = None,
        *,
        save_as_draft: bool = False,
    ) -> InvoiceEdit:
        """
        Validate items, recompute totals with `existing + deposit_delta`, run
        the deposit guard, and only if accepted append the edit and refresh
        the header cache, all in one transaction.

        Raises:
            ValidationError: malformed items / method, or a deposit on a draft save.
            DepositRejected: the guard refused; nothing was written.
            InvalidTransition: an issued invoice asked to go back to draft.
        """
        line_items = build_line_items(items)
        delta = to_money(deposit_delta or 0)
        method = payment_method_or(payment_method, DEFAULT_PAYMENT_METHOD if delta > 0 else None)
        if save_as_draft and delta != 0:
            raise ValidationError("A draft invoice cannot record a deposit; issue it first.")

        with self._write() as con:
            header = self._header(con, invoice_id)
            edit = self._append_in(con, header, line_items, delta, method, note, save_as_draft)

        _log.info(
            "Invoice %s edit #%d: +%s deposit -> %s (balance %s)",
            header["reference"], edit.seq, edit.deposit_added, edit.status, edit.balance_due,
        )
        return edit

    def issue_invoice(self, invoice_id: int, note: Optional[str] = "Issued") -> InvoiceEdit:
        """Move a draft to its money-derived status by appending an edit with the current items."""
        with self._write() as con:
            header = self._header(con, invoice_id)
            if header["status"] != DRAFT:
                raise InvalidTransition(f"Invoice {header['reference']} is already issued.")
            items = self._current_items(con, header)
            edit = self._append_in(con, header, items, Decimal("0.00"), None, note, False)
        _log.info("Issued invoice %s as %s", header["reference"], edit.status)
        return edit

    def _append_in(
        self,
        con: sqlite3.Connection,
        header: sqlite3.Row,
        items: list[LineItem],
        delta: Decimal,
        method: Optional[str],
        note: Optional[str],
        save_as_draft: bool,
    ) -> InvoiceEdit:
        invoice_id = int(header["invoice_id"])
        existing = to_money(header["deposit_received"])
        projected = compute_summary(items, existing, apply_tax=True)

        decision = self._guard(projected.balance_due, existing + delta, existing)
        if not decision.allowed:
            _log.warning("Invoice %s edit rejected: %s", header["reference"], decision.reason)
            raise DepositRejected(decision.reason or "Deposit rejected.", decision)

        summary = balance_after_deposit(projected, existing + delta)
        status = next_invoice_status(header["status"], summary, save_as_draft=save_as_draft)
        seq = int(header["edit_count"]) + 1
        stamp = now_iso()
        row = summary.to_row()

        cur = con.execute(
            """
            INSERT INTO invoice_edits (
                invoice_id, seq, created_at, deposit_added, deposit_received, payment_method,
                subtotal, discount_total, tax, total, balance_due, status, note
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                invoice_id,
                seq,
                stamp,
                str(delta),
                row["deposit_received"],
                method,
                row["subtotal"],
                row["discount_total"],
                row["tax"],
                row["total"],
                row["balance_due"],
                status,
                note,
            ),
        )
        edit_id = int(cur.lastrowid)
        insert_items(con, "invoice_edit_items", edit_id, items)

        cur = con.execute(
            """
            UPDATE invoices
               SET subtotal=?, discount_total=?, tax=?, total=?,
                   deposit_received=?, balance_due=?, status=?,
                   edit_count=?, updated_at=?
             WHERE invoice_id=? AND edit_count=?
            """,
            (
                row["subtotal"],
                row["discount_total"],
                row["tax"],
                row["total"],
                row["deposit_received"],
                row["balance_due"],
                status,
                seq,
                stamp,
                invoice_id,
                seq - 1,
            ),
        )
        if cur.rowcount != 1:
            raise DomainError(f"Invoice {header['reference']} changed while edit #{seq} was being written.")
        return InvoiceEdit(
            edit_id=edit_id,
            invoice_id=invoice_id,
            seq=seq,
            created_at=stamp,
            items=list(items),
            deposit_added=delta,
            payment_method=method,
            summary=summary,
            status=status,
            note=note,
        )

    def delete_invoice(self, invoice_id: int) -> None:
        """Only drafts that never received an edit can be deleted."""
        with self._write() as con:
            header = self._header(con, invoice_id)
            if header["status"] != DRAFT or int(header["edit_count"]) > 0:
                raise InvalidTransition("Only draft invoices without edits can be deleted.")
            delete_items(con, "invoice_items", invoice_id)
            con.execute("DELETE FROM invoices WHERE invoice_id=?", (invoice_id,))
        _log.info("Deleted draft invoice %s", header["reference"])

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_invoice(self, invoice_id: int) -> Invoice:
        with self._read() as con:
            header = self._header(con, invoice_id)
            return self._hydrate(con, header)

    def get_by_reference(self, reference: str) -> Invoice:
        with self._read() as con:
            header = require_row(
                con.execute("SELECT * FROM invoices WHERE reference=?", (reference.strip(),)).fetchone(),
                "Invoice",
                reference,
            )
            return self._hydrate(con, header)

    def list_edits(self, invoice_id: int) -> list[InvoiceEdit]:
        """Edits in creation order (seq ascending)."""
        with self._read() as con:
            self._header(con, invoice_id)
            return self._edits(con, invoice_id)

    def list_invoices(self, status: Optional[str] = None, customer_id: Optional[int] = None) -> list[dict]:
        where: list[str] = []
        params: list = []
        if status and status != "all":
            if not is_valid(status):
                raise ValidationError(f"Unknown invoice status {status!r}.")
            where.append("i.status = ?")
            params.append(normalize(status))
        if customer_id is not None:
            where.append("i.customer_id = ?")
            params.append(customer_id)
        sql = """
          SELECT i.invoice_id, i.reference, i.issued_at, i.due_date, c.name AS customer_name,
                 i.total, i.deposit_received, i.balance_due, i.status, i.edit_count
          FROM invoices i
          JOIN customers c ON c.customer_id = i.customer_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY i.issued_at DESC, i.invoice_id DESC"
        with self._read() as con:
            return [dict(r) for r in con.execute(sql, params).fetchall()]

    # ---- internals --------------------------------------------------------

    @staticmethod
    def _header(con: sqlite3.Connection, invoice_id: int) -> sqlite3.Row:
        return require_row(
            con.execute("SELECT * FROM invoices WHERE invoice_id=?", (invoice_id,)).fetchone(),
            "Invoice",
            invoice_id,
        )

    @staticmethod
    def _current_items(con: sqlite3.Connection, header: sqlite3.Row) -> list[LineItem]:
        last = con.execute(
            "SELECT edit_id FROM invoice_edits WHERE invoice_id=? ORDER BY seq DESC LIMIT 1",
            (header["invoice_id"],),
        ).fetchone()
        if last is None:
            return load_items(con, "invoice_items", header["invoice_id"])
        return load_items(con, "invoice_edit_items", last["edit_id"])

    def _edit_from_row(self, con: sqlite3.Connection, row: sqlite3.Row) -> InvoiceEdit:
        return InvoiceEdit(
            edit_id=int(row["edit_id"]),
            invoice_id=int(row["invoice_id"]),
            seq=int(row["seq"]),
            created_at=row["created_at"],
            items=load_items(con, "invoice_edit_items", row["edit_id"]),
            deposit_added=to_money(row["deposit_added"]),
            payment_method=row["payment_method"],
            summary=summary_from_row(row),
            status=row["status"],
            note=row["note"],
        )

    def _edits(self, con: sqlite3.Connection, invoice_id: int) -> list[InvoiceEdit]:
        rows = con.execute(
            "SELECT * FROM invoice_edits WHERE invoice_id=? ORDER BY seq", (invoice_id,)
        ).fetchall()
        return [self._edit_from_row(con, r) for r in rows]

    def _hydrate(self, con: sqlite3.Connection, header: sqlite3.Row) -> Invoice:
        invoice_id = int(header["invoice_id"])
        base_items = load_items(con, "invoice_items", invoice_id)
        edits = self._edits(con, invoice_id)
        return Invoice(
            invoice_id=invoice_id,
            reference=header["reference"],
            customer_id=int(header["customer_id"]),
            sales_rep_id=header["sales_rep_id"],
            payment_terms=header["payment_terms"],
            message=header["message"],
            signature=header["signature"],
            estimate_reference=header["estimate_reference"],
            converted_from_estimate=header["converted_from_estimate"],
            issued_at=header["issued_at"],
            due_date=header["due_date"],
            base_items=base_items,
            initial_deposit=to_money(header["initial_deposit"]),
            initial_status=header["initial_status"],
            items=list(edits[-1].items) if edits else list(base_items),
            summary=summary_from_row(header),
            status=header["status"],
            edit_count=int(header["edit_count"]),
            created_at=header["created_at"],
            updated_at=header["updated_at"],
            edits=edits,
        )
