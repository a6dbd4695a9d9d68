# pos_ledger/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own SQLite file under tmp_path (schema + default seed)
# - Repositories open their own short-lived connections; `conn` is only for
#   raw SQL checks and is NOT held inside a transaction
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Settings come from a clean environment (no POS_* leaking in)
# - Provide handy ids for the seeded customer / sales rep
# ---------------------------------------------------------------------

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sqlite3

import pytest

from pos_ledger.config import get_settings
from pos_ledger.database import connect, get_connection
from pos_ledger.database.repositories import (
    CreditNotesRepo,
    EstimatesRepo,
    InvoicesRepo,
    PartiesRepo,
    ReceiptsRepo,
    ReferencesRepo,
    RefundsRepo,
)

_ENV_VARS = ("POS_DB_PATH", "POS_OVERPAYMENT_TOLERANCE", "POS_BUSY_TIMEOUT")


# ---------- Settings: clean env, fresh cache ----------
@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------- Per-test database ----------
@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "ledger.db"
    get_connection(path).close()
    return path


@pytest.fixture()
def conn(db_path: Path):
    con = connect(db_path)
    try:
        yield con
    finally:
        con.close()


# ---------- Handy lookups ----------
@pytest.fixture()
def ids(db_path: Path, conn: sqlite3.Connection) -> dict:
    """Seeded walk-in customer and counter sales rep, plus a second customer and a non-rep user."""
    def one(sql: str, *p):
        r = conn.execute(sql, p).fetchone()
        return None if r is None else r[0]

    parties = PartiesRepo(db_path)
    return {
        "customer": one("SELECT customer_id FROM customers WHERE name='Walk-in Customer'"),
        "sales_rep": one("SELECT user_id FROM users WHERE username='counter'"),
        "other_customer": parties.add_customer("Jane Doe", "868-555-0100", "Port of Spain"),
        "cashier": parties.add_sales_rep("cashier1", "Cash Ier", role="user"),
    }


# ---------- Repositories ----------
@pytest.fixture()
def invoices(db_path: Path) -> InvoicesRepo:
    return InvoicesRepo(db_path, tolerance=Decimal("0.00"))


@pytest.fixture()
def receipts(db_path: Path) -> ReceiptsRepo:
    return ReceiptsRepo(db_path)


@pytest.fixture()
def references(db_path: Path) -> ReferencesRepo:
    return ReferencesRepo(db_path)


@pytest.fixture()
def estimates(db_path: Path) -> EstimatesRepo:
    return EstimatesRepo(db_path)


@pytest.fixture()
def credit_notes(db_path: Path) -> CreditNotesRepo:
    return CreditNotesRepo(db_path)


@pytest.fixture()
def refunds(db_path: Path) -> RefundsRepo:
    return RefundsRepo(db_path)


# ---------- Item payloads ----------
@pytest.fixture()
def two_widgets() -> list[dict]:
    """2 x 50.00, no discount -> subtotal 100.00, VAT 12.50, total 112.50."""
    return [{"productCode": "W-1", "description": "Widget", "quantity": 2, "unitPrice": 50}]
