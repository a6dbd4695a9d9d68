# tests/test_calculations.py
from decimal import Decimal

import pytest

from pos_ledger.modules.ledger.calculations import (
    LineItem,
    MoneySummary,
    balance_after_deposit,
    build_line_item,
    build_line_items,
    compute_invoice,
    compute_receipt_summary,
    compute_summary,
    payment_summary,
    to_money,
)
from pos_ledger.modules.ledger.errors import ValidationError

D = Decimal


def _item(qty, price, discount=0, code="P-1"):
    return LineItem(code, "thing", D(str(qty)), D(str(price)), D(str(discount)))


# ---------- to_money ----------

@pytest.mark.parametrize(
    "raw, expected",
    [
        (0, "0.00"),
        ("112.5", "112.50"),
        (0.1, "0.10"),
        (D("2.345"), "2.35"),   # half-up, not banker's
        (D("2.335"), "2.34"),
        ("-1.005", "-1.01"),
    ],
)
def test_to_money_rounds_half_up(raw, expected):
    assert str(to_money(raw)) == expected


@pytest.mark.parametrize("bad", [None, "abc", True, float("nan"), "inf"])
def test_to_money_rejects_non_numbers(bad):
    with pytest.raises(ValidationError):
        to_money(bad)


# ---------- line items ----------

def test_line_amount_applies_discount_and_rounds_per_line():
    it = _item(3, "3.33", 10)
    assert it.gross == D("9.99")
    assert it.amount == D("8.99")  # 8.991 -> 8.99


def test_build_line_item_accepts_camel_case_payload():
    it = build_line_item({"productCode": " A1 ", "description": "Cable", "qty": "2", "price": "9.5", "discount": 5})
    assert it.product_code == "A1"
    assert it.quantity == D("2")
    assert it.unit_price == D("9.50")
    assert it.discount_percent == D("5")


def test_build_line_item_reports_every_failing_field_with_line_number():
    with pytest.raises(ValidationError) as e:
        build_line_item({"productCode": "", "quantity": 0, "unitPrice": -1, "discount": 120}, index=2)
    msg = str(e.value)
    assert msg.startswith("Item 3:")
    for part in (
        "productCode is required",
        "description is required",
        "quantity must be > 0",
        "price must be >= 0",
        "discount must be between 0 and 100",
    ):
        assert part in msg


def test_description_optional_when_not_required():
    it = build_line_item({"productCode": "X", "quantity": 1, "unitPrice": 1}, require_description=False)
    assert it.description == ""


@pytest.mark.parametrize(
    "line",
    [
        {"productCode": "X", "description": "x", "quantity": 1, "unitPrice": "1e30"},
        {"productCode": "X", "description": "x", "quantity": "1e27", "unitPrice": 1},
        {"productCode": "X", "description": "x", "quantity": "1000000", "unitPrice": "1000000"},
    ],
)
def test_huge_amounts_are_validation_errors(line):
    with pytest.raises(ValidationError, match="Item 2: amount too large"):
        build_line_items([{"productCode": "A", "description": "a", "quantity": 1, "unitPrice": 1}, line])


def test_largest_line_amount_still_computes():
    items = build_line_items([{"productCode": "X", "description": "x", "quantity": 1, "unitPrice": "999999999999.99"}])
    assert compute_summary(items, 0, apply_tax=True).total == D("1124999999999.99")


def test_to_money_rejects_amounts_it_cannot_hold():
    with pytest.raises(ValidationError, match="too large"):
        to_money("1e30")


def test_build_line_items_requires_at_least_one():
    with pytest.raises(ValidationError, match="At least one item"):
        build_line_items([])


# ---------- summaries ----------

def test_two_widgets_summary():
    s = compute_summary([_item(2, 50)], 0, apply_tax=True)
    assert s.subtotal == D("100.00")
    assert s.discount_total == D("0.00")
    assert s.tax == D("12.50")
    assert s.total == D("112.50")
    assert s.balance_due == D("112.50")


@pytest.mark.parametrize(
    "items",
    [
        [_item(1, "19.99", 15), _item(3, "0.33"), _item("2.5", "4.10", 50)],
        [_item(7, "1.11", 33), _item(1, "0.01")],
        [_item(1, "999.99", 100)],
    ],
)
def test_summary_laws_hold(items):
    s = compute_summary(items, "5.00", apply_tax=True)
    assert s.subtotal == sum((i.gross for i in items), D(0)).quantize(D("0.01"))
    assert s.discount_total == s.subtotal - sum(i.amount for i in items)
    assert s.total == s.subtotal - s.discount_total + s.tax
    assert s.balance_due == s.total - s.deposit_received


def test_no_tax_when_not_applied():
    s = compute_summary([_item(2, 50)], 0, apply_tax=False)
    assert s.tax == D("0.00")
    assert s.total == D("100.00")


def test_overpaid_balance_is_negative_and_due_floors_at_zero():
    s = compute_summary([_item(1, 10)], 20, apply_tax=False)
    assert s.balance_due == D("-10.00")
    assert s.due == D("0.00")


def test_negative_deposit_is_rejected():
    with pytest.raises(ValidationError):
        compute_summary([_item(1, 10)], -1, apply_tax=True)


def test_compute_invoice_returns_status():
    summary, status = compute_invoice([_item(2, 50)], "112.50")
    assert summary.balance_due == D("0.00")
    assert status == "paid"


def test_receipt_summary_taxes_post_discount_subtotal():
    s = compute_receipt_summary([_item(2, 50, 10)], 0)
    assert s.subtotal == D("100.00")
    assert s.discount_total == D("10.00")
    assert s.tax == D("11.25")
    assert s.total == D("101.25")


def test_payment_summary_is_settled():
    s = payment_summary("40")
    assert (s.total, s.deposit_received, s.balance_due) == (D("40.00"), D("40.00"), D("0.00"))


def test_balance_after_deposit_keeps_totals():
    base = compute_summary([_item(2, 50)], 0, apply_tax=True)
    s = balance_after_deposit(base, "12.50")
    assert s.total == base.total
    assert s.balance_due == D("100.00")


def test_summary_row_round_trip_keeps_two_decimals():
    s = compute_summary([_item(1, "3.3")], "1", apply_tax=True)
    row = s.to_row()
    assert all(len(v.split(".")[1]) == 2 for v in row.values())
    assert MoneySummary.from_row(row) == s
