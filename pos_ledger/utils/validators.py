# utils/validators.py
from decimal import Decimal, InvalidOperation


def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_decimal(x):
    """
    Best-effort parse to a finite Decimal.

    Returns:
        (ok: bool, value: Decimal|None)

    Floats are converted through str() so 0.1 parses as Decimal('0.1').
    Booleans are rejected even though they are ints.
    """
    if x is None or isinstance(x, bool):
        return False, None
    try:
        val = x if isinstance(x, Decimal) else Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return False, None
    if not val.is_finite():
        return False, None
    return True, val

