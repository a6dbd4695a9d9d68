from __future__ import annotations

import logging
import re
import sqlite3
from typing import Callable, Optional, Tuple, TypeVar

from ...constants import (
    MAX_REFERENCE_ATTEMPTS,
    REFERENCE_COLUMNS,
    REFERENCE_PAD,
    REFERENCE_PREFIXES,
)
from ...modules.ledger.errors import DuplicateReferenceConflict, ValidationError
from ...utils.helpers import current_year
from .document_helpers import DbPathRepo

_log = logging.getLogger(__name__)

T = TypeVar("T")

_REF_RX = re.compile(r"^([A-Z]+)-(\d{4})-(\d+)$")


def prefix_for(doc_type: str) -> str:
    try:
        return REFERENCE_PREFIXES[doc_type]
    except KeyError:
        raise ValidationError(
            f"Unknown document type '{doc_type}'. Allowed: {', '.join(sorted(REFERENCE_PREFIXES))}"
        ) from None


def format_reference(doc_type: str, year: int, number: int) -> str:
    """format_reference('invoice', 2025, 2) -> 'INV-2025-0002'"""
    return f"{prefix_for(doc_type)}-{int(year):04d}-{int(number):0{REFERENCE_PAD}d}"


def parse_reference(reference: str) -> Tuple[str, int, int]:
    """'INV-2025-0002' -> ('INV', 2025, 2). Raises ValidationError if malformed."""
    m = _REF_RX.match((reference or "").strip())
    if not m:
        raise ValidationError(f"Malformed reference: {reference!r}")
    return m.group(1), int(m.group(2)), int(m.group(3))


def is_reference_conflict(e: sqlite3.IntegrityError, doc_type: str) -> bool:
    table, column = REFERENCE_COLUMNS[doc_type]
    return f"UNIQUE constraint failed: {table}.{column}" in str(e)


class ReferencesRepo(DbPathRepo):
    """
    Year-scoped sequential references (INV-2025-0001, EST-2025-0003, ...).

    Allocation never does an unprotected read-max-then-increment:
      • the counter row for (doc_type, year) is bumped inside a BEGIN IMMEDIATE
        transaction, so concurrent allocators are serialized by SQLite;
      • the first allocation for a key seeds the counter from the highest
        reference already present in the document table;
      • every document table has a UNIQUE reference column; an insert that
        still collides (e.g. a row imported with an explicit reference) is
        retried with a resynchronized counter.

    Gaps: a number allocated inside a transaction that later rolls back is
    rolled back with it, so gaps only appear when a draft document is deleted
    or a number is reserved through next_reference() and never used.
    """

    # ---- standalone allocation --------------------------------------------

    def next_reference(self, doc_type: str, year: Optional[int] = None) -> str:
        with self._write() as con:
            ref = self.allocate(con, doc_type, year)
        _log.info("Allocated reference %s", ref)
        return ref

    def peek_last(self, doc_type: str, year: Optional[int] = None) -> int:
        """Last number handed out for (doc_type, year); 0 if none."""
        prefix_for(doc_type)
        year = int(year or current_year())
        with self._read() as con:
            row = con.execute(
                "SELECT last_value FROM reference_counters WHERE doc_type=? AND year=?",
                (doc_type, year),
            ).fetchone()
            if row is not None:
                return int(row["last_value"])
            return self._highest_existing(con, doc_type, year)

    # ---- inside a caller's write transaction ------------------------------

    def allocate(self, con: sqlite3.Connection, doc_type: str, year: Optional[int] = None) -> str:
        """Bump and return the next reference. `con` must hold the write lock."""
        prefix_for(doc_type)
        year = int(year or current_year())
        row = con.execute(
            "SELECT last_value FROM reference_counters WHERE doc_type=? AND year=?",
            (doc_type, year),
        ).fetchone()
        if row is None:
            value = self._highest_existing(con, doc_type, year) + 1
            con.execute(
                "INSERT INTO reference_counters(doc_type, year, last_value) VALUES (?,?,?)",
                (doc_type, year, value),
            )
        else:
            value = int(row["last_value"]) + 1
            con.execute(
                "UPDATE reference_counters SET last_value=? WHERE doc_type=? AND year=?",
                (value, doc_type, year),
            )
        return format_reference(doc_type, year, value)

    def insert_with_reference(
        self,
        con: sqlite3.Connection,
        doc_type: str,
        insert: Callable[[str], T],
        year: Optional[int] = None,
    ) -> Tuple[str, T]:
        """
        Allocate a reference and run `insert(reference)` under a savepoint.
        A UNIQUE violation on the reference column is a DuplicateReferenceConflict:
        roll back to the savepoint, resync the counter and try again.
        """
        year = int(year or current_year())
        conflict: Optional[DuplicateReferenceConflict] = None
        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            ref = self.allocate(con, doc_type, year)
            con.execute("SAVEPOINT reference_insert")
            try:
                result = insert(ref)
            except sqlite3.IntegrityError as e:
                con.execute("ROLLBACK TO reference_insert")
                con.execute("RELEASE reference_insert")
                if not is_reference_conflict(e, doc_type):
                    raise
                conflict = DuplicateReferenceConflict(ref)
                _log.warning("Reference %s already taken (attempt %d); resyncing counter", ref, attempt)
                self._resync(con, doc_type, year)
                continue
            con.execute("RELEASE reference_insert")
            return ref, result
        assert conflict is not None
        raise conflict

    # ---- internals --------------------------------------------------------

    @staticmethod
    def _highest_existing(con: sqlite3.Connection, doc_type: str, year: int) -> int:
        table, column = REFERENCE_COLUMNS[doc_type]
        like = f"{prefix_for(doc_type)}-{year:04d}-%"
        rows = con.execute(f"SELECT {column} AS ref FROM {table} WHERE {column} LIKE ?", (like,)).fetchall()
        highest = 0
        for r in rows:
            try:
                _, _, n = parse_reference(r["ref"])
            except ValidationError:
                continue  # hand-typed references that don't follow the pattern
            highest = max(highest, n)
        return highest

    def _resync(self, con: sqlite3.Connection, doc_type: str, year: int) -> None:
        highest = self._highest_existing(con, doc_type, year)
        con.execute(
            "UPDATE reference_counters SET last_value = MAX(last_value, ?) WHERE doc_type=? AND year=?",
            (highest, doc_type, year),
        )
