# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import get_settings
from ..constants import SCHEMA_VERSION
from . import schema as schema_module
from .versioning import get_current_version, set_current_version
from .seeders.default_data import seed as seed_default_data


def connect(db_path: str | Path, timeout: float | None = None) -> sqlite3.Connection:
    """
    Open a connection configured the way every repository expects:
      - row_factory = sqlite3.Row
      - foreign_keys ON
      - busy timeout so BEGIN IMMEDIATE waits for a competing writer
    """
    if timeout is None:
        timeout = get_settings().busy_timeout
    con = sqlite3.connect(str(db_path), timeout=timeout)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Returns a connection (see connect()) after applying the schema idempotently
    and stamping the schema version.
    """
    path = Path(db_path) if db_path is not None else get_settings().db_path
    path.parent.mkdir(parents=True, exist_ok=True)

    # CREATE IF NOT EXISTS / DROP TRIGGER IF EXISTS: safe on every start
    schema_module.init_schema(path)

    conn = connect(path)
    if get_current_version(conn) is None:
        set_current_version(conn, SCHEMA_VERSION)

    # Seeders are safe to run repeatedly (idempotent).
    seed_default_data(conn)
    return conn


__all__ = [
    "connect",
    "get_connection",
]
