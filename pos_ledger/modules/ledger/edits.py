"""
ledger/edits.py

Pure helpers over an invoice's edit log. An invoice's current state is the
fold of its creation values and its edits, applied in sequence order; the
stored header columns are a cache of that fold written in the same
transaction as each edit.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence

from .calculations import LineItem, MoneySummary, compute_invoice, to_money

__all__ = ["EditLike", "LedgerView", "fold_edits", "verify_chain", "recompute_matches"]


class EditLike(Protocol):
    seq: int
    items: list[LineItem]
    deposit_added: Decimal
    summary: MoneySummary
    status: str


@dataclass(frozen=True)
class LedgerView:
    items: tuple[LineItem, ...]
    summary: MoneySummary
    status: str
    edit_count: int


def verify_chain(initial_deposit: Decimal, edits: Sequence[EditLike]) -> None:
    """
    Check the log's invariants:
      - seq runs 1, 2, 3 ... with no gaps or reordering;
      - edits[i].deposit_received == edits[i-1].deposit_received + edits[i].deposit_added
        (the creation deposit acts as entry 0).
    Raises ValueError describing the first broken entry.
    """
    running = to_money(initial_deposit)
    for expected_seq, edit in enumerate(edits, start=1):
        if edit.seq != expected_seq:
            raise ValueError(f"Edit sequence broken: expected #{expected_seq}, found #{edit.seq}.")
        running = running + edit.deposit_added
        if edit.summary.deposit_received != running:
            raise ValueError(
                f"Edit #{edit.seq}: cumulative deposit {edit.summary.deposit_received} "
                f"does not equal {running}."
            )


def fold_edits(
    base_items: Sequence[LineItem],
    initial_deposit: Decimal,
    initial_status: str,
    edits: Sequence[EditLike],
) -> LedgerView:
    """Reduce creation values + edit log to the current invoice view."""
    verify_chain(initial_deposit, edits)
    summary, _ = compute_invoice(base_items, initial_deposit)
    view = LedgerView(tuple(base_items), summary, initial_status, 0)
    for edit in edits:
        view = LedgerView(tuple(edit.items), edit.summary, edit.status, edit.seq)
    return view


def recompute_matches(edit: EditLike) -> bool:
    """True iff recomputing the edit's items and deposit reproduces its stored summary."""
    summary, _ = compute_invoice(edit.items, edit.summary.deposit_received)
    return summary == edit.summary
