from __future__ import annotations
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from .errors import InvalidTransition, DocumentLockedError

if TYPE_CHECKING:  # pragma: no cover
    from .calculations import MoneySummary

# ---------- Canonical sets & order ----------
DRAFT = "draft"
PENDING = "pending"
PARTIAL = "partial"
PAID = "paid"
OVERPAID = "overpaid"

INVOICE_STATES: tuple[str, ...] = (DRAFT, PENDING, PARTIAL, PAID, OVERPAID)
STATE_ORDER: dict[str, int] = {s: i for i, s in enumerate(INVOICE_STATES)}  # draft=0,...,overpaid=4

ESTIMATE_STATES: tuple[str, ...] = ("draft", "pending", "accepted", "converted", "expired")
RECEIPT_STATES: tuple[str, ...] = ("draft", "completed")
CREDIT_NOTE_STATES: tuple[str, ...] = ("DRAFT", "APPROVED")
REFUND_STATES: tuple[str, ...] = ("DRAFT", "REFUNDED")

# Workflow-driven families: allowed (from -> to) moves. Anything absent is illegal.
TRANSITIONS: dict[str, dict[str, tuple[str, ...]]] = {
    "estimate": {
        "draft": ("pending", "expired"),
        "pending": ("accepted", "converted", "expired"),
        "accepted": ("converted", "expired"),
        "converted": (),
        "expired": (),
    },
    "receipt": {
        "draft": ("completed",),
        "completed": (),
    },
    "credit_note": {
        "DRAFT": ("APPROVED",),
        "APPROVED": (),
    },
    "refund": {
        "DRAFT": ("REFUNDED",),
        "REFUNDED": (),
    },
}

# ---------- Human labels ----------
LABELS = {
    "draft":    "Draft",
    "pending":  "Pending",
    "partial":  "Partially Paid",
    "paid":     "Paid",
    "overpaid": "Overpaid",
}

# ---------- Descriptions (UI copy / tooltips) ----------
DESCRIPTIONS = {
    "draft":    "Saved as draft. Not issued; no deposits recorded.",
    "pending":  "Issued. No deposit received yet.",
    "partial":  "Some payment received; a balance is still due.",
    "paid":     "Deposits exactly cover the total.",
    "overpaid": "Deposits exceed the total; the customer is owed the difference.",
}


# ---------- Invoice state machine ----------

def status_from_balance(balance_due: Decimal, deposit_received: Decimal) -> str:
    """
    Pure money -> status mapping:
      - balance > 0 and deposit == 0 -> 'pending'
      - balance > 0 and deposit  > 0 -> 'partial'
      - balance == 0                 -> 'paid'
      - balance < 0                  -> 'overpaid'
    """
    if balance_due > 0:
        return PARTIAL if deposit_received > 0 else PENDING
    if balance_due == 0:
        return PAID
    return OVERPAID


def derive_invoice_status(summary: "MoneySummary") -> str:
    return status_from_balance(summary.balance_due, summary.deposit_received)


def next_invoice_status(current: Optional[str], summary: "MoneySummary", *, save_as_draft: bool = False) -> str:
    """
    Status an invoice moves to after a save.

    'draft' is only reachable by an explicit save-as-draft of an invoice that
    has never been issued; once issued, an invoice only moves among the
    money-derived states.
    """
    cur = normalize(current)
    if save_as_draft:
        if cur not in (None, DRAFT):
            raise InvalidTransition(f"An issued invoice ({label(cur or '')}) cannot be saved as a draft.")
        return DRAFT
    return derive_invoice_status(summary)


# ---------- Workflow families ----------

def ensure_transition(family: str, current: str, target: str) -> str:
    """Return `target` if family allows current -> target; raise otherwise."""
    table = TRANSITIONS.get(family)
    if table is None:
        raise ValueError(f"Unknown document family: {family}")
    if current not in table:
        raise InvalidTransition(f"Unknown {family.replace('_', ' ')} status: {current}")
    allowed = table[current]
    if target in allowed:
        return target
    if not allowed:
        raise DocumentLockedError(
            f"{family.replace('_', ' ').capitalize()} is {current} and can no longer be changed."
        )
    raise InvalidTransition(
        f"Cannot move {family.replace('_', ' ')} from {current} to {target}."
    )


def is_terminal(family: str, status: str) -> bool:
    return not TRANSITIONS.get(family, {}).get(status, ())


# ---------- Display helpers ----------

def normalize(state: Optional[str]) -> Optional[str]:
    """Lowercase & strip; return None if empty. Does NOT invent synonyms."""
    if state is None:
        return None
    s = str(state).strip().lower()
    return s or None


def is_valid(state: Optional[str]) -> bool:
    s = normalize(state)
    return s in INVOICE_STATES if s is not None else False


def ensure_valid(state: str) -> str:
    s = normalize(state)
    if s not in INVOICE_STATES:
        raise ValueError("status must be one of: " + ", ".join(INVOICE_STATES))
    return s  # type: ignore[return-value]


def label(state: str) -> str:
    """Human label ('Partially Paid'). If unknown, returns the original string title-cased."""
    s = normalize(state)
    if s in LABELS:
        return LABELS[s]  # type: ignore[index]
    return (state or "").strip().title()


def description(state: str) -> str:
    return DESCRIPTIONS.get(normalize(state), "")


def sort_key(state: str) -> int:
    """Stable sort key using STATE_ORDER; unknown states sort after known ones."""
    return STATE_ORDER.get(normalize(state), 999)


def sort_states(states: Iterable[str]) -> list[str]:
    return sorted(states, key=sort_key)
