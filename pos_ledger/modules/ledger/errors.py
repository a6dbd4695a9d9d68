"""
Error taxonomy for the ledger engine.

Every exception here carries a message that can be shown to the user as-is.
A receipt that already exists for an edit is NOT an error; see
ReceiptResult.already_existed.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .deposit_guard import DepositDecision


class DomainError(Exception):
    """Base class; controllers can surface str(err) directly."""


class ValidationError(DomainError, ValueError):
    """Malformed input (items, amounts, enum values). Raised before any write."""


class NotFoundError(DomainError, LookupError):
    pass


class DepositRejected(DomainError):
    """The deposit acceptance guard refused a proposed deposit."""

    def __init__(self, reason: str, decision: Optional["DepositDecision"] = None):
        super().__init__(reason)
        self.reason = reason
        self.decision = decision


class DuplicateReferenceConflict(DomainError):
    """Two writers computed the same reference; retried by ReferencesRepo."""

    def __init__(self, reference: str):
        super().__init__(f"Reference {reference} is already taken.")
        self.reference = reference


class ReceiptGenerationError(DomainError):
    pass


class InvalidTransition(DomainError):
    pass


class DocumentLockedError(InvalidTransition):
    """The document reached a terminal workflow state and can no longer change."""
