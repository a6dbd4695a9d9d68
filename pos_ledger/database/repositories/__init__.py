# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from pos_ledger.database.repositories import (
        # Invoices + edit ledger
        InvoicesRepo, Invoice, InvoiceEdit,
        # Receipts
        ReceiptsRepo, Receipt, ReceiptResult,
        # References
        ReferencesRepo, format_reference, parse_reference,
        # Estimates / credit notes / refunds
        EstimatesRepo, CreditNotesRepo, RefundsRepo,
        # Parties
        PartiesRepo, Customer, SalesRep,
    )
"""

# ---------------- Invoices -----------------
from .invoices_repo import InvoicesRepo, Invoice, InvoiceEdit

# ---------------- Receipts -----------------
from .receipts_repo import ReceiptsRepo, Receipt, ReceiptResult

# --------------- References ----------------
from .references_repo import ReferencesRepo, format_reference, parse_reference

# ---------------- Estimates ----------------
from .estimates_repo import EstimatesRepo, Estimate

# ------------ Credit notes / refunds -------
from .credit_notes_repo import CreditNotesRepo, CreditNote
from .refunds_repo import RefundsRepo, Refund

# ----------------- Parties -----------------
from .parties_repo import PartiesRepo, Customer, SalesRep

__all__ = [
    # invoices_repo
    "InvoicesRepo",
    "Invoice",
    "InvoiceEdit",
    # receipts_repo
    "ReceiptsRepo",
    "Receipt",
    "ReceiptResult",
    # references_repo
    "ReferencesRepo",
    "format_reference",
    "parse_reference",
    # estimates_repo
    "EstimatesRepo",
    "Estimate",
    # credit notes / refunds
    "CreditNotesRepo",
    "CreditNote",
    "RefundsRepo",
    "Refund",
    # parties_repo
    "PartiesRepo",
    "Customer",
    "SalesRep",
]
