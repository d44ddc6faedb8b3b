"""
number_normalizer.py

Turns a raw coordinate cell ("447 180,5", "4.112.820,25", "37´´1234") into a float.

Separator rules run in order; each one that changes the string appends a
SEPARATOR_FIXED correction to the caller's list. Then everything except
digits, dot and minus is stripped and only the last dot is kept as decimal point.
"""
import math
import re
from typing import List, Optional, Tuple

from .types import Correction, CorrectionType, Priority

# (regex, replacement, pattern name)
SEPARATOR_RULES: Tuple[Tuple[re.Pattern, str, str], ...] = (
    (re.compile(r"(\d+)\s*´´\s*(\d+)"), r"\1.\2", "DOUBLE_TILDE"),
    (re.compile(r"(\d+)\s*´\s*(\d+)"), r"\1.\2", "SINGLE_TILDE"),
    (re.compile(r"(\d{1,3})\s+(\d{3})\s*[,.]?\s*(\d*)$"), r"\1\2.\3", "SPACE_THOUSANDS"),
    (re.compile(r"(\d{1,3})\.(\d{3})\.(\d{3})[,.]?(\d*)"), r"\1\2\3.\4", "DOT_THOUSANDS_3"),
    (re.compile(r"(\d{1,3})\.(\d{3})[,.](\d+)"), r"\1\2.\3", "DOT_THOUSANDS_2"),
    (re.compile(r"(\d+),(\d+)"), r"\1.\2", "COMMA_DECIMAL"),
)

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def _collapse_dots(text: str) -> str:
    """Keep only the last dot as decimal separator: '4.112.820' -> '4112.820'."""
    if text.count(".") <= 1:
        return text
    head, _, tail = text.rpartition(".")
    return head.replace(".", "") + "." + tail


def normalize_number(value, corrections: Optional[List[Correction]] = None,
                     field: str = "x") -> Optional[float]:
    """
    Return a finite float or None. Numeric input passes through (NaN/inf -> None).
    Corrections are appended to `corrections` when given; never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).strip()
    for regex, replacement, name in SEPARATOR_RULES:
        fixed = regex.sub(replacement, text)
        if fixed != text:
            if corrections is not None:
                corrections.append(Correction(
                    type=CorrectionType.SEPARATOR_FIXED,
                    field=field,
                    from_value=text,
                    to_value=fixed,
                    pattern=name,
                    priority=Priority.P1,
                ))
            text = fixed

    text = _collapse_dots(_NON_NUMERIC.sub("", text))
    # A minus sign only means something in front
    if "-" in text[1:]:
        text = text[0] + text[1:].replace("-", "")
    if text in ("", "-", ".", "-."):
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None
