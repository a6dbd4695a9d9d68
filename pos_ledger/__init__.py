"""POS Ledger: invoice money, status, deposits, references and the edit ledger."""

__version__ = "1.0.0"
