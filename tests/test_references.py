# tests/test_references.py
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from pos_ledger.database.repositories import ReferencesRepo, format_reference, parse_reference
from pos_ledger.database.repositories.references_repo import is_reference_conflict
from pos_ledger.modules.ledger.errors import ValidationError
from pos_ledger.utils.helpers import current_year


def test_format_and_parse():
    assert format_reference("invoice", 2025, 2) == "INV-2025-0002"
    assert format_reference("credit_note", 2025, 12345) == "CN-2025-12345"
    assert parse_reference("EST-2024-0031") == ("EST", 2024, 31)
    with pytest.raises(ValidationError):
        parse_reference("INV-25-1")


def test_unknown_document_type(references):
    with pytest.raises(ValidationError, match="Unknown document type"):
        references.next_reference("quote", 2025)


def test_sequential_and_year_scoped(references):
    assert references.next_reference("invoice", 2025) == "INV-2025-0001"
    assert references.next_reference("invoice", 2025) == "INV-2025-0002"
    assert references.next_reference("invoice", 2026) == "INV-2026-0001"
    assert references.next_reference("estimate", 2025) == "EST-2025-0001"
    assert references.peek_last("invoice", 2025) == 2


def test_counter_seeds_from_existing_documents(db_path, conn, ids, references):
    # a document imported with an explicit reference, before any counter exists
    conn.execute(
        """
        INSERT INTO estimates(reference, customer_id, status, subtotal, discount_total, total, created_at, updated_at)
        VALUES ('EST-2025-0041', ?, 'draft', '0.00', '0.00', '0.00', 'x', 'x')
        """,
        (ids["customer"],),
    )
    conn.commit()
    assert references.peek_last("estimate", 2025) == 41
    assert references.next_reference("estimate", 2025) == "EST-2025-0042"


def test_conflicting_reference_is_retried(db_path, conn, ids, estimates):
    # counter says 1, but EST-<year>-0002 already exists: the insert for 0002
    # collides and the allocator must move past it
    year = current_year()
    estimates.create_estimate(customer_id=ids["customer"], items=[{"productCode": "A", "description": "a", "quantity": 1, "unitPrice": 1}])
    conn.execute(
        """
        INSERT INTO estimates(reference, customer_id, status, subtotal, discount_total, total, created_at, updated_at)
        VALUES (?, ?, 'draft', '0.00', '0.00', '0.00', 'x', 'x')
        """,
        (f"EST-{year}-0002", ids["customer"]),
    )
    conn.commit()
    est = estimates.create_estimate(customer_id=ids["customer"], items=[{"productCode": "B", "description": "b", "quantity": 1, "unitPrice": 1}])
    assert est.reference == f"EST-{year}-0003"


def test_is_reference_conflict_matches_only_reference_column(conn, ids):
    import sqlite3

    conn.execute(
        "INSERT INTO estimates(reference, customer_id, status, subtotal, discount_total, total, created_at, updated_at) "
        "VALUES ('EST-2025-0001', ?, 'draft', '0', '0', '0', 'x', 'x')",
        (ids["customer"],),
    )
    with pytest.raises(sqlite3.IntegrityError) as e:
        conn.execute(
            "INSERT INTO estimates(reference, customer_id, status, subtotal, discount_total, total, created_at, updated_at) "
            "VALUES ('EST-2025-0001', ?, 'draft', '0', '0', '0', 'x', 'x')",
            (ids["customer"],),
        )
    conn.rollback()
    assert is_reference_conflict(e.value, "estimate")
    assert not is_reference_conflict(e.value, "invoice")


def test_concurrent_allocation_never_duplicates(db_path):
    n = 40

    def allocate(_):
        # one repo per worker: separate connections, like separate requests
        return ReferencesRepo(db_path).next_reference("invoice", 2025)

    with ThreadPoolExecutor(max_workers=8) as pool:
        refs = list(pool.map(allocate, range(n)))

    assert len(set(refs)) == n
    numbers = sorted(parse_reference(r)[2] for r in refs)
    assert numbers == list(range(1, n + 1))


def test_concurrent_invoice_creation_gets_distinct_references(db_path, ids):
    from pos_ledger.database.repositories import InvoicesRepo

    def create(i):
        repo = InvoicesRepo(db_path, tolerance=Decimal("0"))
        inv = repo.create_invoice(
            customer_id=ids["customer"],
            items=[{"productCode": f"P{i}", "description": "item", "quantity": 1, "unitPrice": 10}],
        )
        return inv.reference

    with ThreadPoolExecutor(max_workers=6) as pool:
        refs = list(pool.map(create, range(18)))

    assert len(set(refs)) == 18
    assert sorted(parse_reference(r)[2] for r in refs) == list(range(1, 19))


def test_every_document_family_uses_the_same_year(monkeypatch, invoices, estimates, ids, two_widgets):
    from datetime import datetime, timezone

    from pos_ledger.utils import helpers

    class _NewYearsEve(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2025, 12, 31, 23, 30, tzinfo=timezone.utc)

    monkeypatch.setattr(helpers, "datetime", _NewYearsEve)
    inv = invoices.create_invoice(customer_id=ids["customer"], items=two_widgets)
    est = estimates.create_estimate(customer_id=ids["customer"], items=two_widgets)
    assert inv.issued_at.startswith("2025-12-31")
    assert parse_reference(inv.reference)[1] == 2025
    assert parse_reference(est.reference)[1] == 2025
    assert helpers.today_str() == "2025-12-31"
