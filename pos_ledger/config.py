"""Paths and environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .constants import DATA_DIR, DB_FILE_NAME

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = BASE_DIR / DATA_DIR
DB_PATH = DATA_PATH / DB_FILE_NAME

DEFAULT_OVERPAYMENT_TOLERANCE = Decimal("0.00")
DEFAULT_BUSY_TIMEOUT = 30.0

# value of POS_OVERPAYMENT_TOLERANCE that disables the overpayment limit
UNLIMITED = "unlimited"


def load_env(dotenv_path: Optional[str] = None) -> None:
    """Load environment variables from a .env file without overriding existing values."""
    path = Path(dotenv_path or ".env")
    load_dotenv(dotenv_path=str(path), override=False)


def _parse_tolerance(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None or raw.strip() == "":
        return DEFAULT_OVERPAYMENT_TOLERANCE
    text = raw.strip().lower()
    if text == UNLIMITED:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"POS_OVERPAYMENT_TOLERANCE must be a number or '{UNLIMITED}', got {raw!r}.") from e
    if value < 0:
        raise ValueError("POS_OVERPAYMENT_TOLERANCE cannot be negative.")
    return value.quantize(Decimal("0.01"))


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the ledger engine."""

    db_path: Path
    # None means any overpayment is accepted while a balance is still open
    overpayment_tolerance: Optional[Decimal] = DEFAULT_OVERPAYMENT_TOLERANCE
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_env()
    db_path = os.getenv("POS_DB_PATH")
    return Settings(
        db_path=Path(db_path) if db_path else DB_PATH,
        overpayment_tolerance=_parse_tolerance(os.getenv("POS_OVERPAYMENT_TOLERANCE")),
        busy_timeout=float(os.getenv("POS_BUSY_TIMEOUT") or DEFAULT_BUSY_TIMEOUT),
    )
