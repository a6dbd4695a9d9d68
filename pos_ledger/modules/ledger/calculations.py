"""
ledger/calculations.py

The single money calculator for every document family. The same functions back
the edit preview and the persistence path, so they must stay pure: no repos, no
DB connections, no clock.

Rounding rules:
- every line amount is rounded to cents on its own (ROUND_HALF_UP), so any two
  callers computing the same items agree to the cent;
- summary fields are rounded once at the summary level, never re-rounded.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Sequence, Tuple

from ...constants import CENT, MAX_AMOUNT, RECEIPT_TAX_RATE, TAX_RATE
from ...utils.validators import non_empty, try_parse_decimal
from .errors import ValidationError
from .status import derive_invoice_status

__all__ = [
    "ZERO",
    "LineItem",
    "MoneySummary",
    "to_money",
    "build_line_item",
    "build_line_items",
    "compute_summary",
    "compute_invoice",
    "compute_receipt_summary",
    "payment_summary",
    "balance_after_deposit",
]

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    """
    Coerce int/str/float/Decimal to a Decimal with exactly two fractional digits.
    Floats go through str() so 0.1 becomes 0.10, not 0.1000000000000000055...
    """
    ok, val = try_parse_decimal(value)
    if not ok:
        raise ValidationError(f"Could not parse {value!r} as an amount.")
    try:
        return val.quantize(CENT, rounding=ROUND_HALF_UP)  # type: ignore[union-attr]
    except InvalidOperation:
        raise ValidationError(f"Amount {value!r} is too large.") from None


# -----------------------------
# Line items
# -----------------------------

@dataclass(frozen=True)
class LineItem:
    product_code: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")

    @property
    def gross(self) -> Decimal:
        """quantity * unit_price, unrounded."""
        return self.quantity * self.unit_price

    @property
    def amount(self) -> Decimal:
        """Post-discount line amount, rounded to cents."""
        factor = 1 - self.discount_percent / HUNDRED
        return (self.gross * factor).quantize(CENT, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict:
        return {
            "product_code": self.product_code,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "discount_percent": str(self.discount_percent),
            "amount": str(self.amount),
        }


def _first(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


def build_line_item(
    raw: LineItem | Mapping[str, Any],
    index: int = 0,
    *,
    require_description: bool = True,
) -> LineItem:
    """
    Validate and normalize one incoming line.

    Accepts either a LineItem or a mapping using snake_case or the camelCase
    keys sent by the web client (productCode, unitPrice/price, discount).
    Raises ValidationError naming the 1-based line and every failing field.
    """
    if isinstance(raw, LineItem):
        raw = {
            "product_code": raw.product_code,
            "description": raw.description,
            "quantity": raw.quantity,
            "unit_price": raw.unit_price,
            "discount_percent": raw.discount_percent,
        }

    product_code = str(_first(raw, "product_code", "productCode", default="")).strip()
    description = str(_first(raw, "description", default="")).strip()
    q_ok, quantity = try_parse_decimal(_first(raw, "quantity", "qty", default=0))
    p_ok, price = try_parse_decimal(_first(raw, "unit_price", "unitPrice", "price", default=0))
    d_ok, discount = try_parse_decimal(
        _first(raw, "discount_percent", "discountPercent", "discount", default=0)
    )

    errors: list[str] = []
    if not non_empty(product_code):
        errors.append("productCode is required")
    if require_description and not non_empty(description):
        errors.append("description is required")
    if not q_ok or quantity <= 0:
        errors.append("quantity must be > 0")
    if not p_ok or price < 0:
        errors.append("price must be >= 0")
    if not d_ok or discount < 0 or discount > 100:
        errors.append("discount must be between 0 and 100")
    if not errors and (quantity > MAX_AMOUNT or price > MAX_AMOUNT or quantity * price > MAX_AMOUNT):
        errors.append("amount too large")
    if errors:
        raise ValidationError(f"Item {index + 1}: {', '.join(errors)}")

    return LineItem(
        product_code=product_code,
        description=description,
        quantity=quantity,  # type: ignore[arg-type]
        unit_price=price.quantize(CENT, rounding=ROUND_HALF_UP),  # type: ignore[union-attr]
        discount_percent=discount,  # type: ignore[arg-type]
    )


def build_line_items(
    raw_items: Iterable[LineItem | Mapping[str, Any]] | None,
    *,
    require_description: bool = True,
) -> list[LineItem]:
    items = [
        build_line_item(r, i, require_description=require_description)
        for i, r in enumerate(raw_items or [])
    ]
    if not items:
        raise ValidationError("At least one item is required.")
    return items


# -----------------------------
# Summary
# -----------------------------

@dataclass(frozen=True)
class MoneySummary:
    subtotal: Decimal
    discount_total: Decimal
    tax: Decimal
    total: Decimal
    deposit_received: Decimal
    balance_due: Decimal

    @property
    def due(self) -> Decimal:
        """Amount still payable; never negative (overpaid shows 0.00)."""
        return self.balance_due if self.balance_due > 0 else ZERO

    def to_row(self) -> dict[str, str]:
        """Persisted shape: every field as a 2-dp string."""
        return {
            "subtotal": str(self.subtotal),
            "discount_total": str(self.discount_total),
            "tax": str(self.tax),
            "total": str(self.total),
            "deposit_received": str(self.deposit_received),
            "balance_due": str(self.balance_due),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MoneySummary":
        return cls(
            subtotal=to_money(row["subtotal"]),
            discount_total=to_money(row["discount_total"]),
            tax=to_money(row["tax"]),
            total=to_money(row["total"]),
            deposit_received=to_money(row["deposit_received"]),
            balance_due=to_money(row["balance_due"]),
        )


def _deposit(deposit_received: Any) -> Decimal:
    deposit = to_money(deposit_received if deposit_received is not None else 0)
    if deposit < 0:
        raise ValidationError("Deposit received cannot be negative.")
    return deposit


def compute_summary(
    items: Sequence[LineItem],
    deposit_received: Any = ZERO,
    *,
    apply_tax: bool,
) -> MoneySummary:
    """
    subtotal       = Σ(quantity * unit_price)
    discount_total = subtotal - Σ(amount)
    tax            = TAX_RATE * (subtotal - discount_total)   (only if apply_tax)
    total          = subtotal - discount_total + tax
    balance_due    = total - deposit_received                 (may be negative)
    """
    deposit = _deposit(deposit_received)
    subtotal = sum((it.gross for it in items), Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)
    net = sum((it.amount for it in items), ZERO)
    discount_total = subtotal - net
    tax = (net * TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP) if apply_tax else ZERO
    total = subtotal - discount_total + tax
    return MoneySummary(
        subtotal=subtotal,
        discount_total=discount_total,
        tax=tax,
        total=total,
        deposit_received=deposit,
        balance_due=total - deposit,
    )


def compute_invoice(items: Sequence[LineItem], deposit_received: Any = ZERO) -> Tuple[MoneySummary, str]:
    """Invoice totals (tax applied) plus the money-derived status."""
    summary = compute_summary(items, deposit_received, apply_tax=True)
    return summary, derive_invoice_status(summary)


def compute_receipt_summary(items: Sequence[LineItem], deposit_received: Any = ZERO) -> MoneySummary:
    """
    Receipts never go through invoice VAT; they apply their own fixed rate to
    their post-discount subtotal.
    """
    base = compute_summary(items, deposit_received, apply_tax=False)
    net = base.subtotal - base.discount_total
    tax = (net * RECEIPT_TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    total = net + tax
    return replace(base, tax=tax, total=total, balance_due=total - base.deposit_received)


def payment_summary(amount: Any) -> MoneySummary:
    """A fully settled summary for a single payment of `amount` (tax inclusive)."""
    value = to_money(amount)
    return MoneySummary(
        subtotal=value,
        discount_total=ZERO,
        tax=ZERO,
        total=value,
        deposit_received=value,
        balance_due=ZERO,
    )


def balance_after_deposit(summary: MoneySummary, new_deposit: Any) -> MoneySummary:
    """Project `summary` onto another cumulative deposit."""
    deposit = _deposit(new_deposit)
    return replace(summary, deposit_received=deposit, balance_due=summary.total - deposit)
