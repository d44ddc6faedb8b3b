import math
import re

# Sentinels found in municipal tables where a coordinate was never filled in.
PLACEHOLDER_PATTERNS = [
    re.compile(r"^[Nn]/[DdAa]$"),
    re.compile(r"^[Nn][Dd]$"),
    re.compile(r"^[Nn][Aa]$"),
    re.compile(r"^sin\s*datos?$", re.IGNORECASE),
    re.compile(r"^[Ii]ndicar$"),
    re.compile(r"^[Pp]endiente$"),
    re.compile(r"^[-_]+$"),
    re.compile(r"^[Xx]+$"),
    re.compile(r"^0+(\.0+)?$"),
    re.compile(r"^9{4,}$"),
    re.compile(r"^\s*$"),
]


def is_placeholder(value) -> bool:
    """
    True when value is a "no data" sentinel rather than a coordinate.
    None, 0, NaN, empty strings and the textual patterns above qualify.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0 or (isinstance(value, float) and math.isnan(value))
    text = str(value).strip()
    return any(p.match(text) for p in PLACEHOLDER_PATTERNS)
