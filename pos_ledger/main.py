"""
pos-ledger command line.

    pos-ledger init-db
    pos-ledger next-ref invoice --year 2025
    pos-ledger show INV-2025-0001
    pos-ledger statement INV-2025-0001
    pos-ledger receipt INV-2025-0001 2
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import get_settings
from .constants import APP_NAME, REFERENCE_PREFIXES
from .database import get_connection
from .database.repositories import InvoicesRepo, ReceiptsRepo, ReferencesRepo
from .modules.ledger.errors import DomainError, NotFoundError
from .modules.ledger.statement import render_statement
from .modules.ledger.status import description, label
from .utils.helpers import fmt_money
from .utils.loggers import get_logger

log = get_logger()


def _db_path(args: argparse.Namespace) -> Path:
    path = Path(args.db) if args.db else get_settings().db_path
    # applies the schema (idempotent) and seeds defaults on a fresh file
    get_connection(path).close()
    return path


def cmd_init_db(args: argparse.Namespace) -> int:
    path = _db_path(args)
    log.info("Database ready at %s", path)
    return 0


def cmd_next_ref(args: argparse.Namespace) -> int:
    ref = ReferencesRepo(_db_path(args)).next_reference(args.doc_type, args.year)
    print(ref)
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    invoice = InvoicesRepo(_db_path(args)).get_by_reference(args.reference)
    s = invoice.summary
    print(f"{invoice.reference}  {label(invoice.status)}")
    print(f"  {description(invoice.status)}")
    print(f"  total {fmt_money(s.total)}  deposit {fmt_money(s.deposit_received)}  balance {fmt_money(s.balance_due)}")
    for e in invoice.edits:
        print(
            f"  #{e.seq} {e.created_at[:19]} {e.status:<9} +{fmt_money(e.deposit_added)}"
            f" = {fmt_money(e.deposit_received)}  balance {fmt_money(e.balance_due)}"
        )
    return 0


def cmd_statement(args: argparse.Namespace) -> int:
    invoice = InvoicesRepo(_db_path(args)).get_by_reference(args.reference)
    sys.stdout.write(render_statement(invoice))
    return 0


def cmd_receipt(args: argparse.Namespace) -> int:
    path = _db_path(args)
    invoice = InvoicesRepo(path).get_by_reference(args.reference)
    edit = next((e for e in invoice.edits if e.seq == args.seq), None)
    if edit is None:
        raise NotFoundError(f"{invoice.reference} has no edit #{args.seq}.")
    result = ReceiptsRepo(path).generate_from_edit(invoice.invoice_id, edit.edit_id)
    r = result.receipt
    suffix = " (already existed)" if result.already_existed else ""
    print(f"{r.receipt_number}  {fmt_money(r.summary.total)}  {r.payment_method or ''}{suffix}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pos-ledger", description=f"{APP_NAME} tools")
    parser.add_argument("--db", help="Path to SQLite DB (default: POS_DB_PATH or the bundled data dir)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create or upgrade the database schema")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("next-ref", help="Allocate the next reference for a document type")
    p.add_argument("doc_type", choices=sorted(REFERENCE_PREFIXES))
    p.add_argument("--year", type=int, help="Reference year (default: current year)")
    p.set_defaults(func=cmd_next_ref)

    p = sub.add_parser("show", help="Show an invoice's totals and edit history")
    p.add_argument("reference")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("statement", help="Render the plain-text invoice statement")
    p.add_argument("reference")
    p.set_defaults(func=cmd_statement)

    p = sub.add_parser("receipt", help="Generate (or fetch) the receipt for an invoice edit")
    p.add_argument("reference")
    p.add_argument("seq", type=int, help="Edit sequence number")
    p.set_defaults(func=cmd_receipt)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except DomainError as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
