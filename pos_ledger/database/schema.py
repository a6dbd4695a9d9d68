from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

# Money columns are TEXT holding exactly two fractional digits ('112.50').
# NUMERIC/REAL affinity would turn them into floats and lose the exact shape.
SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== PARTIES ======================== */

CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    contact_info TEXT NOT NULL DEFAULT '',
    address      TEXT,
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

CREATE TABLE IF NOT EXISTS users (
    user_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    username   TEXT UNIQUE NOT NULL,
    full_name  TEXT NOT NULL,
    role       TEXT NOT NULL DEFAULT 'user',
    is_active  INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);
CREATE INDEX IF NOT EXISTS idx_users_username ON users(username);

/* ======================== REFERENCE COUNTERS ======================== */
/* One row per (doc_type, year); bumped under BEGIN IMMEDIATE. */

CREATE TABLE IF NOT EXISTS reference_counters (
    doc_type   TEXT    NOT NULL,
    year       INTEGER NOT NULL CHECK (year BETWEEN 1900 AND 9999),
    last_value INTEGER NOT NULL CHECK (last_value >= 0),
    PRIMARY KEY (doc_type, year)
);

/* ======================== INVOICES ======================== */

CREATE TABLE IF NOT EXISTS invoices (
    invoice_id              INTEGER PRIMARY KEY AUTOINCREMENT,
    reference               TEXT NOT NULL UNIQUE,
    customer_id             INTEGER NOT NULL,
    sales_rep_id            INTEGER,
    payment_terms           TEXT NOT NULL DEFAULT 'dueOnReceipt'
                            CHECK (payment_terms IN ('net7','net15','net30','net60','dueOnReceipt')),
    message                 TEXT,
    signature               TEXT,
    estimate_reference      TEXT,
    converted_from_estimate INTEGER,
    issued_at               TEXT NOT NULL,
    due_date                TEXT,
    /* creation values; never updated */
    initial_deposit         TEXT NOT NULL DEFAULT '0.00' CHECK (substr(initial_deposit, -3, 1) = '.'),
    initial_status          TEXT NOT NULL CHECK (initial_status IN ('draft','pending','partial','paid','overpaid')),
    /* current view = latest edit snapshot (or creation values) */
    subtotal                TEXT NOT NULL,
    discount_total          TEXT NOT NULL,
    tax                     TEXT NOT NULL,
    total                   TEXT NOT NULL CHECK (substr(total, -3, 1) = '.' AND CAST(total AS REAL) >= 0),
    deposit_received        TEXT NOT NULL CHECK (substr(deposit_received, -3, 1) = '.' AND CAST(deposit_received AS REAL) >= 0),
    balance_due             TEXT NOT NULL CHECK (substr(balance_due, -3, 1) = '.'),
    status                  TEXT NOT NULL CHECK (status IN ('draft','pending','partial','paid','overpaid')),
    edit_count              INTEGER NOT NULL DEFAULT 0 CHECK (edit_count >= 0),
    created_at              TEXT NOT NULL,
    updated_at              TEXT NOT NULL,
    FOREIGN KEY (customer_id)  REFERENCES customers(customer_id),
    FOREIGN KEY (sales_rep_id) REFERENCES users(user_id),
    FOREIGN KEY (converted_from_estimate) REFERENCES estimates(estimate_id)
);
CREATE INDEX IF NOT EXISTS idx_invoices_status   ON invoices(status);
CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id);

CREATE TABLE IF NOT EXISTS invoice_items (
    item_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id       INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL CHECK (length(trim(product_code)) > 0),
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0' CHECK (CAST(discount_percent AS REAL) BETWEEN 0 AND 100),
    amount           TEXT NOT NULL,
    UNIQUE (invoice_id, line_no),
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id)
);

/* -------- edit ledger (append-only) -------- */
CREATE TABLE IF NOT EXISTS invoice_edits (
    edit_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id       INTEGER NOT NULL,
    seq              INTEGER NOT NULL CHECK (seq >= 1),
    created_at       TEXT NOT NULL,
    deposit_added    TEXT NOT NULL CHECK (substr(deposit_added, -3, 1) = '.'),
    deposit_received TEXT NOT NULL CHECK (substr(deposit_received, -3, 1) = '.' AND CAST(deposit_received AS REAL) >= 0),
    payment_method   TEXT CHECK (payment_method IN ('cash','card','bank_transfer','cheque','other')),
    subtotal         TEXT NOT NULL,
    discount_total   TEXT NOT NULL,
    tax              TEXT NOT NULL,
    total            TEXT NOT NULL CHECK (substr(total, -3, 1) = '.'),
    balance_due      TEXT NOT NULL CHECK (substr(balance_due, -3, 1) = '.'),
    status           TEXT NOT NULL CHECK (status IN ('draft','pending','partial','paid','overpaid')),
    note             TEXT,
    UNIQUE (invoice_id, seq),
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id)
);

CREATE TABLE IF NOT EXISTS invoice_edit_items (
    edit_id          INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL CHECK (length(trim(product_code)) > 0),
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0' CHECK (CAST(discount_percent AS REAL) BETWEEN 0 AND 100),
    amount           TEXT NOT NULL,
    PRIMARY KEY (edit_id, line_no),
    FOREIGN KEY (edit_id) REFERENCES invoice_edits(edit_id)
);

/* ======================== RECEIPTS ======================== */

CREATE TABLE IF NOT EXISTS receipts (
    receipt_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    receipt_number   TEXT NOT NULL UNIQUE,
    invoice_id       INTEGER,
    invoice_edit_id  INTEGER,
    customer_id      INTEGER,
    payment_method   TEXT CHECK (payment_method IN ('cash','card','bank_transfer','cheque','other')),
    subtotal         TEXT NOT NULL,
    discount_total   TEXT NOT NULL,
    tax              TEXT NOT NULL,
    total            TEXT NOT NULL,
    deposit_received TEXT NOT NULL,
    balance_due      TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft','completed')),
    message          TEXT,
    signature        TEXT,
    created_at       TEXT NOT NULL,
    CHECK (invoice_edit_id IS NULL OR invoice_id IS NOT NULL),
    FOREIGN KEY (invoice_id)      REFERENCES invoices(invoice_id),
    FOREIGN KEY (invoice_edit_id) REFERENCES invoice_edits(edit_id),
    FOREIGN KEY (customer_id)     REFERENCES customers(customer_id)
);
/* idempotency key: at most one receipt per (invoice, edit) */
CREATE UNIQUE INDEX IF NOT EXISTS idx_receipts_one_per_edit
ON receipts(invoice_id, invoice_edit_id) WHERE invoice_edit_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS receipt_items (
    receipt_id       INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0',
    amount           TEXT NOT NULL,
    PRIMARY KEY (receipt_id, line_no),
    FOREIGN KEY (receipt_id) REFERENCES receipts(receipt_id) ON DELETE CASCADE
);

/* ======================== ESTIMATES ======================== */

CREATE TABLE IF NOT EXISTS estimates (
    estimate_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    reference            TEXT NOT NULL UNIQUE,
    customer_id          INTEGER NOT NULL,
    sales_rep_id         INTEGER,
    status               TEXT NOT NULL DEFAULT 'draft'
                         CHECK (status IN ('draft','pending','accepted','converted','expired')),
    expiry_date          TEXT,
    message              TEXT,
    signature            TEXT,
    subtotal             TEXT NOT NULL,
    discount_total       TEXT NOT NULL,
    tax                  TEXT NOT NULL DEFAULT '0.00',
    total                TEXT NOT NULL,
    converted_invoice_id INTEGER,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    CHECK ((status = 'converted') = (converted_invoice_id IS NOT NULL)),
    FOREIGN KEY (customer_id)          REFERENCES customers(customer_id),
    FOREIGN KEY (sales_rep_id)         REFERENCES users(user_id),
    FOREIGN KEY (converted_invoice_id) REFERENCES invoices(invoice_id)
);

CREATE TABLE IF NOT EXISTS estimate_items (
    estimate_id      INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0',
    amount           TEXT NOT NULL,
    PRIMARY KEY (estimate_id, line_no),
    FOREIGN KEY (estimate_id) REFERENCES estimates(estimate_id) ON DELETE CASCADE
);

/* ======================== CREDIT NOTES ======================== */

CREATE TABLE IF NOT EXISTS credit_notes (
    credit_note_id INTEGER PRIMARY KEY AUTOINCREMENT,
    reference      TEXT NOT NULL UNIQUE,
    source         TEXT NOT NULL CHECK (source IN ('FROM_INVOICE','STANDALONE')),
    invoice_id     INTEGER,
    customer_id    INTEGER NOT NULL,
    sales_rep_id   INTEGER NOT NULL,
    message        TEXT,
    signature      TEXT NOT NULL CHECK (length(trim(signature)) > 0),
    status         TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','APPROVED')),
    subtotal       TEXT NOT NULL,
    discount_total TEXT NOT NULL,
    total          TEXT NOT NULL,
    approved_at    TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CHECK ((source = 'FROM_INVOICE') = (invoice_id IS NOT NULL)),
    FOREIGN KEY (invoice_id)   REFERENCES invoices(invoice_id),
    FOREIGN KEY (customer_id)  REFERENCES customers(customer_id),
    FOREIGN KEY (sales_rep_id) REFERENCES users(user_id)
);

CREATE TABLE IF NOT EXISTS credit_note_items (
    credit_note_id   INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0',
    amount           TEXT NOT NULL,
    PRIMARY KEY (credit_note_id, line_no),
    FOREIGN KEY (credit_note_id) REFERENCES credit_notes(credit_note_id)
);

/* ======================== REFUNDS ======================== */

CREATE TABLE IF NOT EXISTS refunds (
    refund_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    reference      TEXT NOT NULL UNIQUE,
    source         TEXT NOT NULL CHECK (source IN ('FROM_CREDITNOTE','STANDALONE')),
    credit_note_id INTEGER,
    customer_id    INTEGER NOT NULL,
    sales_rep_id   INTEGER NOT NULL,
    message        TEXT,
    signature      TEXT NOT NULL CHECK (length(trim(signature)) > 0),
    status         TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','REFUNDED')),
    subtotal       TEXT NOT NULL,
    discount_total TEXT NOT NULL,
    total          TEXT NOT NULL,
    refunded_at    TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CHECK ((source = 'FROM_CREDITNOTE') = (credit_note_id IS NOT NULL)),
    FOREIGN KEY (credit_note_id) REFERENCES credit_notes(credit_note_id),
    FOREIGN KEY (customer_id)    REFERENCES customers(customer_id),
    FOREIGN KEY (sales_rep_id)   REFERENCES users(user_id)
);

CREATE TABLE IF NOT EXISTS refund_items (
    refund_id        INTEGER NOT NULL,
    line_no          INTEGER NOT NULL,
    product_code     TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    quantity         TEXT NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       TEXT NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent TEXT NOT NULL DEFAULT '0',
    amount           TEXT NOT NULL,
    PRIMARY KEY (refund_id, line_no),
    FOREIGN KEY (refund_id) REFERENCES refunds(refund_id)
);


/* ======================== LEDGER GUARDS ======================== */

/* Edits are append-only: no UPDATE, no DELETE. */
DROP TRIGGER IF EXISTS trg_invoice_edits_no_update;
CREATE TRIGGER trg_invoice_edits_no_update
BEFORE UPDATE ON invoice_edits
BEGIN
  SELECT RAISE(ABORT, 'Invoice edits are append-only');
END;

DROP TRIGGER IF EXISTS trg_invoice_edits_no_delete;
CREATE TRIGGER trg_invoice_edits_no_delete
BEFORE DELETE ON invoice_edits
BEGIN
  SELECT RAISE(ABORT, 'Invoice edits are append-only');
END;

DROP TRIGGER IF EXISTS trg_invoice_edit_items_no_update;
CREATE TRIGGER trg_invoice_edit_items_no_update
BEFORE UPDATE ON invoice_edit_items
BEGIN
  SELECT RAISE(ABORT, 'Invoice edits are append-only');
END;

DROP TRIGGER IF EXISTS trg_invoice_edit_items_no_delete;
CREATE TRIGGER trg_invoice_edit_items_no_delete
BEFORE DELETE ON invoice_edit_items
BEGIN
  SELECT RAISE(ABORT, 'Invoice edits are append-only');
END;

/* Sequence must continue the log: 1, 2, 3 ... */
DROP TRIGGER IF EXISTS trg_invoice_edits_seq;
CREATE TRIGGER trg_invoice_edits_seq
BEFORE INSERT ON invoice_edits
FOR EACH ROW
BEGIN
  SELECT CASE
    WHEN NEW.seq <> COALESCE((SELECT MAX(seq) FROM invoice_edits WHERE invoice_id = NEW.invoice_id), 0) + 1
      THEN RAISE(ABORT, 'Invoice edit sequence must be contiguous')
    ELSE 1
  END;
END;

/* cumulative deposit(n) = cumulative deposit(n-1) + deposit_added(n); creation deposit is entry 0 */
DROP TRIGGER IF EXISTS trg_invoice_edits_cumulative_deposit;
CREATE TRIGGER trg_invoice_edits_cumulative_deposit
BEFORE INSERT ON invoice_edits
FOR EACH ROW
BEGIN
  SELECT CASE
    WHEN ABS(
      CAST(NEW.deposit_received AS REAL)
      - COALESCE(
          (SELECT CAST(e.deposit_received AS REAL) FROM invoice_edits e
            WHERE e.invoice_id = NEW.invoice_id ORDER BY e.seq DESC LIMIT 1),
          (SELECT CAST(i.initial_deposit AS REAL) FROM invoices i WHERE i.invoice_id = NEW.invoice_id),
          0.0)
      - CAST(NEW.deposit_added AS REAL)
    ) > 0.001
      THEN RAISE(ABORT, 'Cumulative deposit does not match previous deposit plus deposit added')
    ELSE 1
  END;
END;

/* Creation items are frozen; only a draft invoice may be deleted with them. */
DROP TRIGGER IF EXISTS trg_invoice_items_no_update;
CREATE TRIGGER trg_invoice_items_no_update
BEFORE UPDATE ON invoice_items
BEGIN
  SELECT RAISE(ABORT, 'Invoice items are immutable; append an edit instead');
END;

DROP TRIGGER IF EXISTS trg_invoice_items_delete_draft_only;
CREATE TRIGGER trg_invoice_items_delete_draft_only
BEFORE DELETE ON invoice_items
FOR EACH ROW
WHEN (SELECT status FROM invoices WHERE invoice_id = OLD.invoice_id) <> 'draft'
BEGIN
  SELECT RAISE(ABORT, 'Invoice items are immutable; append an edit instead');
END;

/* An issued invoice never returns to draft. */
DROP TRIGGER IF EXISTS trg_invoices_no_redraft;
CREATE TRIGGER trg_invoices_no_redraft
BEFORE UPDATE OF status ON invoices
FOR EACH ROW
WHEN OLD.status <> 'draft' AND NEW.status = 'draft'
BEGIN
  SELECT RAISE(ABORT, 'An issued invoice cannot return to draft');
END;

DROP TRIGGER IF EXISTS trg_invoices_creation_frozen;
CREATE TRIGGER trg_invoices_creation_frozen
BEFORE UPDATE OF reference, initial_deposit, initial_status, customer_id ON invoices
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Invoice creation values are immutable');
END;

DROP TRIGGER IF EXISTS trg_invoices_delete_draft_only;
CREATE TRIGGER trg_invoices_delete_draft_only
BEFORE DELETE ON invoices
FOR EACH ROW
WHEN OLD.status <> 'draft' OR OLD.edit_count > 0
BEGIN
  SELECT RAISE(ABORT, 'Only draft invoices without edits can be deleted');
END;

/* ======================== RECEIPT GUARDS ======================== */

/* A receipt generated from an edit must match that edit and the edit must carry a deposit. */
DROP TRIGGER IF EXISTS trg_receipts_edit_link_valid;
CREATE TRIGGER trg_receipts_edit_link_valid
BEFORE INSERT ON receipts
FOR EACH ROW
WHEN NEW.invoice_edit_id IS NOT NULL
BEGIN
  SELECT CASE
    WHEN NOT EXISTS (
      SELECT 1 FROM invoice_edits e
       WHERE e.edit_id = NEW.invoice_edit_id AND e.invoice_id = NEW.invoice_id
    )
      THEN RAISE(ABORT, 'Receipt edit does not belong to the invoice')
    WHEN (SELECT CAST(e.deposit_added AS REAL) FROM invoice_edits e WHERE e.edit_id = NEW.invoice_edit_id) <= 0
      THEN RAISE(ABORT, 'Receipt requires an edit with a positive deposit')
    ELSE 1
  END;
END;

DROP TRIGGER IF EXISTS trg_receipts_completed_frozen;
CREATE TRIGGER trg_receipts_completed_frozen
BEFORE UPDATE ON receipts
FOR EACH ROW
WHEN OLD.status = 'completed'
BEGIN
  SELECT RAISE(ABORT, 'Completed receipts are immutable');
END;

DROP TRIGGER IF EXISTS trg_receipts_linked_no_delete;
CREATE TRIGGER trg_receipts_linked_no_delete
BEFORE DELETE ON receipts
FOR EACH ROW
WHEN OLD.invoice_edit_id IS NOT NULL OR OLD.status = 'completed'
BEGIN
  SELECT RAISE(ABORT, 'Completed receipts cannot be deleted');
END;

/* ======================== WORKFLOW LOCKS ======================== */

DROP TRIGGER IF EXISTS trg_estimates_locked;
CREATE TRIGGER trg_estimates_locked
BEFORE UPDATE ON estimates
FOR EACH ROW
WHEN OLD.status IN ('converted','expired')
BEGIN
  SELECT RAISE(ABORT, 'Converted or expired estimates are immutable');
END;

DROP TRIGGER IF EXISTS trg_estimate_items_locked_ins;
CREATE TRIGGER trg_estimate_items_locked_ins
BEFORE INSERT ON estimate_items
FOR EACH ROW
WHEN (SELECT status FROM estimates WHERE estimate_id = NEW.estimate_id) IN ('converted','expired')
BEGIN
  SELECT RAISE(ABORT, 'Converted or expired estimates are immutable');
END;

DROP TRIGGER IF EXISTS trg_estimate_items_locked_del;
CREATE TRIGGER trg_estimate_items_locked_del
BEFORE DELETE ON estimate_items
FOR EACH ROW
WHEN (SELECT status FROM estimates WHERE estimate_id = OLD.estimate_id) IN ('converted','expired')
BEGIN
  SELECT RAISE(ABORT, 'Converted or expired estimates are immutable');
END;

DROP TRIGGER IF EXISTS trg_credit_notes_locked;
CREATE TRIGGER trg_credit_notes_locked
BEFORE UPDATE ON credit_notes
FOR EACH ROW
WHEN OLD.status = 'APPROVED'
BEGIN
  SELECT RAISE(ABORT, 'Approved credit notes are immutable');
END;

DROP TRIGGER IF EXISTS trg_credit_notes_no_delete;
CREATE TRIGGER trg_credit_notes_no_delete
BEFORE DELETE ON credit_notes
FOR EACH ROW
WHEN OLD.status = 'APPROVED'
BEGIN
  SELECT RAISE(ABORT, 'Approved credit notes are immutable');
END;

DROP TRIGGER IF EXISTS trg_credit_note_items_locked_ins;
CREATE TRIGGER trg_credit_note_items_locked_ins
BEFORE INSERT ON credit_note_items
FOR EACH ROW
WHEN (SELECT status FROM credit_notes WHERE credit_note_id = NEW.credit_note_id) = 'APPROVED'
BEGIN
  SELECT RAISE(ABORT, 'Approved credit notes are immutable');
END;

DROP TRIGGER IF EXISTS trg_credit_note_items_locked_del;
CREATE TRIGGER trg_credit_note_items_locked_del
BEFORE DELETE ON credit_note_items
FOR EACH ROW
WHEN (SELECT status FROM credit_notes WHERE credit_note_id = OLD.credit_note_id) = 'APPROVED'
BEGIN
  SELECT RAISE(ABORT, 'Approved credit notes are immutable');
END;

DROP TRIGGER IF EXISTS trg_refunds_locked;
CREATE TRIGGER trg_refunds_locked
BEFORE UPDATE ON refunds
FOR EACH ROW
WHEN OLD.status = 'REFUNDED'
BEGIN
  SELECT RAISE(ABORT, 'Refunded refunds are immutable');
END;

DROP TRIGGER IF EXISTS trg_refunds_no_delete;
CREATE TRIGGER trg_refunds_no_delete
BEFORE DELETE ON refunds
FOR EACH ROW
WHEN OLD.status = 'REFUNDED'
BEGIN
  SELECT RAISE(ABORT, 'Refunded refunds are immutable');
END;

DROP TRIGGER IF EXISTS trg_refund_items_locked_ins;
CREATE TRIGGER trg_refund_items_locked_ins
BEFORE INSERT ON refund_items
FOR EACH ROW
WHEN (SELECT status FROM refunds WHERE refund_id = NEW.refund_id) = 'REFUNDED'
BEGIN
  SELECT RAISE(ABORT, 'Refunded refunds are immutable');
END;

DROP TRIGGER IF EXISTS trg_refund_items_locked_del;
CREATE TRIGGER trg_refund_items_locked_del
BEFORE DELETE ON refund_items
FOR EACH ROW
WHEN (SELECT status FROM refunds WHERE refund_id = OLD.refund_id) = 'REFUNDED'
BEGIN
  SELECT RAISE(ABORT, 'Refunded refunds are immutable');
END;
"""


def init_schema(db_path: Path | str = "pos_ledger.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        # Apply (idempotent) schema
        conn.executescript(SQL)
        conn.commit()
    finally:
        conn.close()
    _log.info("Schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "pos_ledger.db"
    init_schema(target)
