"""
ledger/deposit_guard.py

Decides whether a proposed cumulative deposit may be committed.

The same function runs for instant feedback in the edit preview and again,
as the authority, inside the repository's write transaction. Only the second
call decides; the preview result is advisory.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from ...config import get_settings
from ...utils.helpers import fmt_money
from .calculations import ZERO, to_money
from .status import status_from_balance

__all__ = ["DepositDecision", "check_deposit_acceptable", "default_tolerance"]

_UNSET: Any = object()


@dataclass(frozen=True)
class DepositDecision:
    allowed: bool
    reason: Optional[str] = None
    resulting_balance: Optional[Decimal] = None
    resulting_status: Optional[str] = None


def default_tolerance() -> Optional[Decimal]:
    return get_settings().overpayment_tolerance


def check_deposit_acceptable(
    projected_balance_due: Any,
    proposed_deposit: Any,
    existing_deposit: Any,
    *,
    tolerance: Optional[Decimal] | Any = _UNSET,
) -> DepositDecision:
    """
    Args:
        projected_balance_due: balance computed with the NEW item set but the
            EXISTING cumulative deposit.
        proposed_deposit: the new cumulative deposit.
        existing_deposit: the cumulative deposit currently on record.
        tolerance: how far below zero the resulting balance may go. None means
            no limit; omitted means the configured Settings.overpayment_tolerance.

    Rules, in order:
      1. the deposit can never go down;
      2. an unchanged deposit is always fine;
      3. nothing more is accepted once the projected balance is <= 0;
      4. the resulting overpayment may not exceed the tolerance.
    """
    if tolerance is _UNSET:
        tolerance = default_tolerance()

    projected = to_money(projected_balance_due)
    proposed = to_money(proposed_deposit)
    existing = to_money(existing_deposit)
    delta = proposed - existing
    resulting = projected - delta

    if proposed < ZERO:
        return DepositDecision(False, "Deposit amount cannot be negative.")

    if delta < 0:
        return DepositDecision(
            False,
            f"Deposit amount cannot be reduced (from {fmt_money(existing)} to {fmt_money(proposed)}).",
        )

    if delta == 0:
        return DepositDecision(
            True,
            resulting_balance=projected,
            resulting_status=status_from_balance(projected, proposed),
        )

    if projected <= 0:
        return DepositDecision(
            False,
            "This invoice is already fully paid. No further deposits can be accepted.",
        )

    if tolerance is not None and resulting < -to_money(tolerance):
        over = -resulting
        return DepositDecision(
            False,
            f"Deposit of {fmt_money(delta)} exceeds the balance due of {fmt_money(projected)} "
            f"by {fmt_money(over)} (allowed overpayment: {fmt_money(to_money(tolerance))}).",
        )

    return DepositDecision(
        True,
        resulting_balance=resulting,
        resulting_status=status_from_balance(resulting, proposed),
    )
