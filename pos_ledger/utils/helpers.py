# utils/helpers.py
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
import logging
from typing import Union, Optional

NumberLike = Union[Decimal, float, int, str]

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Today as YYYY-MM-DD on the same UTC clock as now_iso()."""
    return datetime.now(timezone.utc).date().isoformat()


def now_iso() -> str:
    """UTC timestamp with microseconds; sorts lexically in creation order."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def current_year() -> int:
    return datetime.now(timezone.utc).year


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Decimals are formatted exactly (no float round-trip). On parse failure the
    original value is returned as a string unless `sentinel` is given
    (returned instead) or `strict=True` (raises ValueError).
    """
    try:
        x = v if isinstance(v, Decimal) else Decimal(str(v))
        if not x.is_finite():
            raise InvalidOperation(v)
    except (InvalidOperation, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as a number: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
