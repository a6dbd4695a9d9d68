# tests/test_cli.py
import pytest

from pos_ledger.main import main


@pytest.fixture()
def paid_invoice(invoices, ids, two_widgets):
    inv = invoices.create_invoice(customer_id=ids["customer"], items=two_widgets)
    invoices.append_edit(inv.invoice_id, two_widgets, deposit_delta="112.50")
    return inv


def test_init_db_creates_schema(tmp_path):
    path = tmp_path / "fresh" / "ledger.db"
    assert main(["--db", str(path), "init-db"]) == 0
    assert path.exists()


def test_next_ref(db_path, capsys):
    assert main(["--db", str(db_path), "next-ref", "refund", "--year", "2025"]) == 0
    assert main(["--db", str(db_path), "next-ref", "refund", "--year", "2025"]) == 0
    out = capsys.readouterr().out.split()
    assert out == ["REF-2025-0001", "REF-2025-0002"]


def test_show_and_statement(db_path, paid_invoice, capsys):
    assert main(["--db", str(db_path), "show", paid_invoice.reference]) == 0
    out = capsys.readouterr().out
    assert paid_invoice.reference in out and "Paid" in out and "#1" in out

    assert main(["--db", str(db_path), "statement", paid_invoice.reference]) == 0
    assert "Balance due" in capsys.readouterr().out


def test_receipt_is_idempotent_from_cli(db_path, paid_invoice, capsys):
    assert main(["--db", str(db_path), "receipt", paid_invoice.reference, "1"]) == 0
    first = capsys.readouterr().out
    assert first.startswith("RCT-") and "already existed" not in first
    assert main(["--db", str(db_path), "receipt", paid_invoice.reference, "1"]) == 0
    assert "already existed" in capsys.readouterr().out


def test_domain_errors_exit_non_zero(db_path, paid_invoice):
    assert main(["--db", str(db_path), "show", "INV-1999-0001"]) == 1
    assert main(["--db", str(db_path), "receipt", paid_invoice.reference, "7"]) == 1
