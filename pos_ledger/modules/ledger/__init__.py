# modules/ledger/__init__.py

"""
Ledger package exports.

Pure domain logic shared by the repositories and the CLI:
- calculations: LineItem, MoneySummary, compute_summary, ...
- status: invoice status derivation + workflow transitions
- deposit_guard: check_deposit_acceptable
- edits: fold_edits / verify_chain over an invoice's edit log
- errors: DomainError and subclasses
"""

from .calculations import (
    LineItem,
    MoneySummary,
    build_line_items,
    compute_invoice,
    compute_summary,
    to_money,
)
from .deposit_guard import DepositDecision, check_deposit_acceptable
from .edits import LedgerView, fold_edits, verify_chain
from .errors import (
    DepositRejected,
    DocumentLockedError,
    DomainError,
    DuplicateReferenceConflict,
    InvalidTransition,
    NotFoundError,
    ReceiptGenerationError,
    ValidationError,
)

__all__ = [
    "LineItem",
    "MoneySummary",
    "build_line_items",
    "compute_invoice",
    "compute_summary",
    "to_money",
    "DepositDecision",
    "check_deposit_acceptable",
    "LedgerView",
    "fold_edits",
    "verify_chain",
    "DepositRejected",
    "DocumentLockedError",
    "DomainError",
    "DuplicateReferenceConflict",
    "InvalidTransition",
    "NotFoundError",
    "ReceiptGenerationError",
    "ValidationError",
]
