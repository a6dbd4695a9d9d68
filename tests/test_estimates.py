# tests/test_estimates.py
from decimal import Decimal
import sqlite3

import pytest

from pos_ledger.modules.ledger.errors import (
    DepositRejected,
    DocumentLockedError,
    InvalidTransition,
    ValidationError,
)

D = Decimal


@pytest.fixture()
def estimate(estimates, ids, two_widgets):
    return estimates.create_estimate(
        customer_id=ids["customer"],
        sales_rep_id=ids["sales_rep"],
        items=two_widgets,
        message="Valid for 30 days",
        signature="J. Smith",
        expiry_date="2030-01-31",
    )


def test_estimate_has_no_tax(estimate):
    assert estimate.reference.startswith("EST-")
    assert estimate.status == "draft"
    assert estimate.summary.tax == D("0.00")
    assert estimate.summary.total == D("100.00")
    assert estimate.expiry_date == "2030-01-31"


def test_new_estimate_status_is_draft_or_pending(estimates, ids, two_widgets):
    assert estimates.create_estimate(customer_id=ids["customer"], items=two_widgets, status="pending").status == "pending"
    with pytest.raises(ValidationError):
        estimates.create_estimate(customer_id=ids["customer"], items=two_widgets, status="accepted")
    with pytest.raises(ValidationError, match="expiry date"):
        estimates.create_estimate(customer_id=ids["customer"], items=two_widgets, expiry_date="31/01/2030")


def test_update_replaces_items(estimates, estimate):
    updated = estimates.update_estimate(
        estimate.estimate_id,
        items=[{"productCode": "X", "description": "x", "quantity": 4, "unitPrice": "2.50", "discount": 10}],
        message="revised",
    )
    assert updated.summary.subtotal == D("10.00")
    assert updated.summary.total == D("9.00")
    assert updated.message == "revised"
    assert [i.product_code for i in updated.items] == ["X"]


def test_workflow_and_conversion(estimates, invoices, estimate):
    estimates.submit(estimate.estimate_id)
    estimates.accept(estimate.estimate_id)
    with pytest.raises(ValidationError):
        estimates.update_estimate(estimate.estimate_id, message="too late")

    invoice = estimates.convert_to_invoice(estimate.estimate_id, deposit_received="12.50", payment_terms="net15")
    assert invoice.reference.startswith("INV-")
    assert invoice.estimate_reference == estimate.reference
    assert invoice.converted_from_estimate == estimate.estimate_id
    assert invoice.signature == "J. Smith"
    assert invoice.summary.total == D("112.50")  # VAT applies once invoiced
    assert invoice.status == "partial"
    assert invoice.payment_terms == "net15"

    converted = estimates.get_estimate(estimate.estimate_id)
    assert converted.status == "converted"
    assert converted.converted_invoice_id == invoice.invoice_id


def test_conversion_happens_once(estimates, estimate, conn):
    estimates.submit(estimate.estimate_id)
    estimates.convert_to_invoice(estimate.estimate_id)
    with pytest.raises(DocumentLockedError):
        estimates.convert_to_invoice(estimate.estimate_id)
    with pytest.raises(DocumentLockedError):
        estimates.update_estimate(estimate.estimate_id, message="x")
    assert conn.execute("SELECT COUNT(*) FROM invoices").fetchone()[0] == 1


def test_draft_cannot_be_converted(estimates, estimate):
    with pytest.raises(InvalidTransition):
        estimates.convert_to_invoice(estimate.estimate_id)


def test_rejected_conversion_rolls_back(estimates, estimate, conn):
    estimates.submit(estimate.estimate_id)
    with pytest.raises(DepositRejected):
        estimates.convert_to_invoice(estimate.estimate_id, deposit_received=500)
    assert estimates.get_estimate(estimate.estimate_id).status == "pending"
    assert conn.execute("SELECT COUNT(*) FROM invoices").fetchone()[0] == 0


def test_expire_overdue(estimates, ids, two_widgets, estimate):
    old = estimates.create_estimate(customer_id=ids["customer"], items=two_widgets, expiry_date="2020-01-01")
    estimates.submit(old.estimate_id)
    assert estimates.expire_overdue("2025-06-01") == 1
    assert estimates.get_estimate(old.estimate_id).status == "expired"
    assert estimates.get_estimate(estimate.estimate_id).status == "draft"
    with pytest.raises(DocumentLockedError):
        estimates.accept(old.estimate_id)


def test_locked_estimate_items_in_storage(estimates, estimate, conn):
    estimates.expire(estimate.estimate_id)
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("DELETE FROM estimate_items WHERE estimate_id=?", (estimate.estimate_id,))
    conn.rollback()


def test_listing(estimates, estimate):
    estimates.submit(estimate.estimate_id)
    assert [r["reference"] for r in estimates.list_estimates("pending")] == [estimate.reference]
    assert estimates.list_estimates("draft") == []
