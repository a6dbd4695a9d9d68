from decimal import Decimal

APP_NAME = "POS Ledger"

DATA_DIR = "data"
DB_FILE_NAME = "pos_ledger.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# VAT applied to invoices only
TAX_RATE = Decimal("0.125")
# receipts apply their own fixed rate to their subtotal
RECEIPT_TAX_RATE = Decimal("0.125")

CURRENCY = "TTD"
CENT = Decimal("0.01")
# largest unit price, quantity or line amount accepted on one line
MAX_AMOUNT = Decimal("999999999999.99")

# ---- document families ----
DOC_INVOICE = "invoice"
DOC_ESTIMATE = "estimate"
DOC_RECEIPT = "receipt"
DOC_CREDIT_NOTE = "credit_note"
DOC_REFUND = "refund"

REFERENCE_PREFIXES: dict[str, str] = {
    DOC_INVOICE: "INV",
    DOC_ESTIMATE: "EST",
    DOC_RECEIPT: "RCT",
    DOC_CREDIT_NOTE: "CN",
    DOC_REFUND: "REF",
}

# (table, reference column) holding each family's references
REFERENCE_COLUMNS: dict[str, tuple[str, str]] = {
    DOC_INVOICE: ("invoices", "reference"),
    DOC_ESTIMATE: ("estimates", "reference"),
    DOC_RECEIPT: ("receipts", "receipt_number"),
    DOC_CREDIT_NOTE: ("credit_notes", "reference"),
    DOC_REFUND: ("refunds", "reference"),
}

REFERENCE_PAD = 4
MAX_REFERENCE_ATTEMPTS = 5

PAYMENT_TERMS: dict[str, int] = {
    "net7": 7,
    "net15": 15,
    "net30": 30,
    "net60": 60,
    "dueOnReceipt": 0,
}
DEFAULT_PAYMENT_TERMS = "dueOnReceipt"

PAYMENT_METHODS: tuple[str, ...] = ("cash", "card", "bank_transfer", "cheque", "other")
DEFAULT_PAYMENT_METHOD = "cash"

CREDIT_NOTE_SOURCES: tuple[str, ...] = ("FROM_INVOICE", "STANDALONE")
REFUND_SOURCES: tuple[str, ...] = ("FROM_CREDITNOTE", "STANDALONE")

SALES_REP_ROLE = "sales_rep"
