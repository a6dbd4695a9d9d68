# tests/test_credit_notes_refunds.py
from decimal import Decimal
import sqlite3

import pytest

from pos_ledger.modules.ledger.errors import (
    DocumentLockedError,
    DomainError,
    NotFoundError,
    ValidationError,
)

D = Decimal

RETURN_LINE = [{"productCode": "W-1", "quantity": 1, "unitPrice": 50}]


@pytest.fixture()
def issued(invoices, ids, two_widgets):
    return invoices.create_invoice(customer_id=ids["customer"], items=two_widgets)


# ---------- credit notes ----------

def test_standalone_credit_note_is_approved_without_tax(credit_notes, ids):
    cn = credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr"
    )
    assert cn.reference.startswith("CN-")
    assert cn.status == "APPROVED"
    assert cn.approved_at is not None
    assert cn.summary.total == D("50.00")
    assert cn.summary.tax == D("0.00")
    assert cn.items[0].description == ""
    assert len(cn.items) == 1


def test_credit_note_from_invoice(credit_notes, ids, issued):
    cn = credit_notes.create_credit_note(
        customer_id=ids["customer"],
        sales_rep_id=ids["sales_rep"],
        items=RETURN_LINE,
        signature="Mgr",
        source="FROM_INVOICE",
        invoice_id=issued.invoice_id,
        save_draft=True,
    )
    assert cn.status == "DRAFT"
    assert cn.invoice_id == issued.invoice_id


def test_credit_note_source_rules(credit_notes, invoices, ids, issued, two_widgets):
    base = dict(customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr")
    with pytest.raises(ValidationError, match="invoiceId is required"):
        credit_notes.create_credit_note(**base, source="FROM_INVOICE")
    with pytest.raises(ValidationError, match="Invalid source"):
        credit_notes.create_credit_note(**base, source="FROM_ESTIMATE")
    with pytest.raises(NotFoundError):
        credit_notes.create_credit_note(**base, source="FROM_INVOICE", invoice_id=999)

    draft = invoices.create_invoice(customer_id=ids["customer"], items=two_widgets, save_as_draft=True)
    with pytest.raises(ValidationError, match="draft"):
        credit_notes.create_credit_note(**base, source="FROM_INVOICE", invoice_id=draft.invoice_id)

    with pytest.raises(ValidationError, match="different customer"):
        credit_notes.create_credit_note(
            **dict(base, customer_id=ids["other_customer"]), source="FROM_INVOICE", invoice_id=issued.invoice_id
        )


def test_signature_and_sales_rep_are_required(credit_notes, ids):
    with pytest.raises(ValidationError, match="Signature"):
        credit_notes.create_credit_note(
            customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="  "
        )
    with pytest.raises(ValidationError, match="not a Sales Representative"):
        credit_notes.create_credit_note(
            customer_id=ids["customer"], sales_rep_id=ids["cashier"], items=RETURN_LINE, signature="Mgr"
        )


def test_draft_credit_note_edit_then_lock(credit_notes, ids, conn):
    cn = credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr", save_draft=True
    )
    cn = credit_notes.update_credit_note(
        cn.credit_note_id, items=[{"productCode": "W-1", "quantity": 2, "unitPrice": 50, "discount": 50}]
    )
    assert cn.status == "DRAFT"
    assert cn.summary.total == D("50.00")
    assert cn.summary.discount_total == D("50.00")

    approved = credit_notes.approve(cn.credit_note_id)
    assert approved.status == "APPROVED"
    with pytest.raises(DocumentLockedError):
        credit_notes.update_credit_note(cn.credit_note_id, message="change")
    with pytest.raises(DocumentLockedError):
        credit_notes.approve(cn.credit_note_id)

    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("UPDATE credit_notes SET total='0.00' WHERE credit_note_id=?", (cn.credit_note_id,))
    conn.rollback()


def test_update_can_approve_in_one_step(credit_notes, ids):
    cn = credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr", save_draft=True
    )
    done = credit_notes.update_credit_note(cn.credit_note_id, message="ok", save_draft=False)
    assert done.status == "APPROVED"
    assert done.message == "ok"
    assert [r["status"] for r in credit_notes.list_credit_notes("approved")] == ["APPROVED"]


# ---------- refunds ----------

@pytest.fixture()
def approved_cn(credit_notes, ids):
    return credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr"
    )


def test_refund_from_approved_credit_note(refunds, ids, approved_cn):
    rf = refunds.create_refund(
        customer_id=ids["customer"],
        sales_rep_id=ids["sales_rep"],
        items=RETURN_LINE,
        signature="Mgr",
        source="FROM_CREDITNOTE",
        credit_note_id=approved_cn.credit_note_id,
    )
    assert rf.reference.startswith("REF-")
    assert rf.status == "REFUNDED"
    assert rf.refunded_at is not None
    assert rf.summary.total == D("50.00")
    assert [i.product_code for i in rf.items] == ["W-1"]


def test_refund_needs_approved_credit_note(refunds, credit_notes, ids):
    draft_cn = credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr", save_draft=True
    )
    with pytest.raises(ValidationError, match="must be approved"):
        refunds.create_refund(
            customer_id=ids["customer"],
            sales_rep_id=ids["sales_rep"],
            items=RETURN_LINE,
            signature="Mgr",
            source="FROM_CREDITNOTE",
            credit_note_id=draft_cn.credit_note_id,
        )
    with pytest.raises(ValidationError, match="creditNoteId is required"):
        refunds.create_refund(
            customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE,
            signature="Mgr", source="FROM_CREDITNOTE",
        )


def test_draft_refund_lifecycle(refunds, ids, conn):
    rf = refunds.create_refund(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr", save_draft=True
    )
    assert rf.status == "DRAFT" and rf.refunded_at is None
    rf = refunds.update_refund(rf.refund_id, message="cash back")
    assert rf.message == "cash back"
    done = refunds.mark_refunded(rf.refund_id)
    assert done.status == "REFUNDED"
    with pytest.raises(DocumentLockedError):
        refunds.update_refund(rf.refund_id, items=RETURN_LINE)
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("DELETE FROM refunds WHERE refund_id=?", (rf.refund_id,))
    conn.rollback()


def test_locked_rows_surface_as_domain_errors_through_repos(refunds, ids):
    rf = refunds.create_refund(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr"
    )
    with pytest.raises(DomainError, match="immutable"):
        with refunds._write() as con:
            con.execute("UPDATE refunds SET message='x' WHERE refund_id=?", (rf.refund_id,))


def test_final_documents_keep_their_lines_in_storage(credit_notes, refunds, ids, conn):
    cn = credit_notes.create_credit_note(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr"
    )
    rf = refunds.create_refund(
        customer_id=ids["customer"], sales_rep_id=ids["sales_rep"], items=RETURN_LINE, signature="Mgr"
    )
    assert conn.execute(
        "SELECT COUNT(*) FROM credit_note_items WHERE credit_note_id=?", (cn.credit_note_id,)
    ).fetchone()[0] == 1
    assert conn.execute("SELECT COUNT(*) FROM refund_items WHERE refund_id=?", (rf.refund_id,)).fetchone()[0] == 1
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute(
            "INSERT INTO credit_note_items(credit_note_id, line_no, product_code, description, quantity, unit_price, amount)"
            " VALUES (?, 2, 'W-2', '', '1', '1.00', '1.00')",
            (cn.credit_note_id,),
        )
    conn.rollback()
