# utils.py - shared helpers for the PTEL engine

import logging
import math
import re
import unicodedata

LOG = logging.getLogger(__name__)


def log_error_and_continue(context: str, exc: Exception | None = None):
    """
    Logs an error with optional exception details, keeping callsites consistent.
    """
    if exc is not None:
        LOG.error(f"❌ {context}: {exc}")
    else:
        LOG.error(f"❌ {context}")


def strip_diacritics(text: str) -> str:
    """
    'Almería' -> 'Almeria'. Decomposes (NFD) and drops combining marks.
    """
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_name(text: str | None) -> str:
    """Lowercase, accent-free, single-spaced form used for lookups."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", strip_diacritics(str(text)).lower()).strip()


def is_finite_number(value) -> bool:
    try:
        return value is not None and math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def count_decimals(value: float) -> int:
    """
    Number of digits after the decimal point in the shortest repr of value.
    Whole numbers count as 0 decimals.
    """
    if not is_finite_number(value):
        return 0
    value = float(value)
    if value.is_integer():
        return 0
    text = repr(value)
    if "e" in text or "E" in text:
        text = f"{value:.10f}".rstrip("0")
    return len(text.split(".", 1)[1]) if "." in text else 0


def integer_digits(value: float) -> int:
    """Digits in the integer part of |value| (0.5 -> 1)."""
    if not is_finite_number(value):
        return 0
    return len(str(int(math.floor(abs(float(value))))))
