"""
coordinate_normalizer.py

Core per-coordinate pipeline for UTM30 (EPSG:25830) eastings/northings of
Andalusian infrastructure tables.

Phases, strictly in order:
  placeholder check -> numeric normalization -> X/Y swap -> truncated northing
  -> range validation -> scoring -> confidence band

Malformed input is the normal case here: nothing in this module raises.
Unusable input degrades to a CRITICAL result with score 0.
"""
import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .number_normalizer import normalize_number
from .placeholders import is_placeholder
from .types import (
    Confidence,
    CoordinateInput,
    Correction,
    CorrectionType,
    Flag,
    NormalizationResult,
    Priority,
    Severity,
)
from .utils import count_decimals, fold_name

LOG = logging.getLogger(__name__)

ANDALUSIA_BOUNDS = {
    "x_min": 100_000.0,
    "x_max": 800_000.0,
    "y_min": 4_000_000.0,
    "y_max": 4_300_000.0,
}

# Two plausible leading northing digits per province; only the first is used
# (any 2-digit prefix + 5 digits already lands inside the regional band).
PROVINCE_Y_PREFIXES: Dict[str, Tuple[str, str]] = {
    "almeria": ("40", "41"),
    "cadiz": ("40", "41"),
    "cordoba": ("41", "42"),
    "granada": ("40", "41"),
    "huelva": ("41", "42"),
    "jaen": ("41", "42"),
    "malaga": ("40", "41"),
    "sevilla": ("41", "42"),
}
DEFAULT_Y_PREFIX = "40"

SWAP_X_RANGE = (1_000_000.0, 5_000_000.0)
SWAP_Y_RANGE = (100_000.0, 900_000.0)

PENALTY_P0 = 15
PENALTY_P1 = 5
PENALTY_ERROR = 25
PENALTY_WARNING = 10
PENALTY_NO_DECIMALS = 5


def confidence_band(score: int) -> Confidence:
    """HIGH >= 76, MEDIUM 51-75, LOW 26-50, else CRITICAL."""
    if score >= 76:
        return Confidence.HIGH
    if score >= 51:
        return Confidence.MEDIUM
    if score >= 26:
        return Confidence.LOW
    return Confidence.CRITICAL


def province_prefix(province: Optional[str]) -> str:
    prefixes = PROVINCE_Y_PREFIXES.get(fold_name(province))
    return prefixes[0] if prefixes else DEFAULT_Y_PREFIX


def repair_truncated_northing(y: float, province: Optional[str] = None) -> Tuple[float, Optional[str]]:
    """
    Rebuild a northing that lost its leading digit(s).
    Returns (y, method) where method is None when nothing was changed,
    otherwise PREFIX_4 or PREFIX_FULL. The fractional part is preserved.
    """
    whole = int(y // 1)
    fraction = y - whole
    digits = str(whole)
    if len(digits) >= 7 and digits.startswith("4"):
        return y, None
    if len(digits) > 6 or whole < 0:
        return y, None

    if digits[0] in "0123":
        return float("4" + digits) + fraction, "PREFIX_4"
    if len(digits) == 5:
        return float(province_prefix(province) + digits) + fraction, "PREFIX_FULL"
    if len(digits) == 6 and not digits.startswith("4"):
        return float("4" + digits) + fraction, "PREFIX_4"
    return y, None


def validate_range(x: float, y: float) -> List[Flag]:
    flags = []
    if not ANDALUSIA_BOUNDS["x_min"] <= x <= ANDALUSIA_BOUNDS["x_max"]:
        flags.append(Flag(
            type="OUT_OF_RANGE",
            severity=Severity.ERROR,
            message=f"X={x} outside [{ANDALUSIA_BOUNDS['x_min']:.0f}, {ANDALUSIA_BOUNDS['x_max']:.0f}]",
        ))
    if not ANDALUSIA_BOUNDS["y_min"] <= y <= ANDALUSIA_BOUNDS["y_max"]:
        flags.append(Flag(
            type="OUT_OF_RANGE",
            severity=Severity.ERROR,
            message=f"Y={y} outside [{ANDALUSIA_BOUNDS['y_min']:.0f}, {ANDALUSIA_BOUNDS['y_max']:.0f}]",
        ))
    return flags


def compute_score(corrections: Iterable[Correction], flags: Iterable[Flag],
                  x: Optional[float], y: Optional[float]) -> int:
    score = 100
    for c in corrections:
        score -= PENALTY_P0 if c.priority == Priority.P0 else PENALTY_P1
    for f in flags:
        if f.severity == Severity.ERROR:
            score -= PENALTY_ERROR
        elif f.severity == Severity.WARNING:
            score -= PENALTY_WARNING
    for value in (x, y):
        if value is not None and count_decimals(value) == 0:
            score -= PENALTY_NO_DECIMALS
    return max(0, min(100, score))


def _terminal(x, y, original, corrections, flags) -> NormalizationResult:
    return NormalizationResult(
        x=x,
        y=y,
        original=original,
        corrections=tuple(corrections),
        flags=tuple(flags),
        score=0,
        confidence=Confidence.CRITICAL,
        is_valid=False,
    )


def normalize_coordinate(inp: CoordinateInput, projected: bool = True) -> NormalizationResult:
    """
    Run the full pipeline on one coordinate pair.

    projected=False skips the UTM-specific phases (swap, truncation, regional
    range) for inputs known to be in another reference system.
    """
    original = {"x": inp.x, "y": inp.y}
    corrections: List[Correction] = []
    flags: List[Flag] = []

    # S0 placeholders
    x_missing = is_placeholder(inp.x)
    y_missing = is_placeholder(inp.y)
    if x_missing or y_missing:
        x = None if x_missing else normalize_number(inp.x, corrections, "x")
        y = None if y_missing else normalize_number(inp.y, corrections, "y")
        for axis, missing, raw in (("x", x_missing, inp.x), ("y", y_missing, inp.y)):
            if missing:
                corrections.append(Correction(
                    type=CorrectionType.PLACEHOLDER_DETECTED,
                    field=axis,
                    from_value=str(raw),
                    to_value="null",
                    pattern="PLACEHOLDER",
                    priority=Priority.P0,
                ))
        flags.append(Flag(
            type="GEOCODING_NEEDED",
            severity=Severity.WARNING,
            message="Coordinate missing; geocode from name and address",
        ))
        return _terminal(x, y, original, corrections, flags)

    # S1 numbers
    x = normalize_number(inp.x, corrections, "x")
    y = normalize_number(inp.y, corrections, "y")
    if x is None or y is None:
        flags.append(Flag(
            type="SUSPICIOUS_VALUE",
            severity=Severity.ERROR,
            message=f"Could not parse coordinate X={inp.x!r} Y={inp.y!r}",
        ))
        return _terminal(x, y, original, corrections, flags)

    range_ok = True
    if projected:
        # S2 swap
        if SWAP_X_RANGE[0] <= x <= SWAP_X_RANGE[1] and SWAP_Y_RANGE[0] <= y <= SWAP_Y_RANGE[1]:
            corrections.append(Correction(
                type=CorrectionType.XY_SWAPPED,
                field="both",
                from_value=f"X={x}, Y={y}",
                to_value=f"X={y}, Y={x}",
                pattern="XY_SWAP",
                priority=Priority.P0,
            ))
            x, y = y, x

        # S3 truncated northing
        fixed_y, method = repair_truncated_northing(y, inp.province)
        if method is not None:
            corrections.append(Correction(
                type=CorrectionType.Y_TRUNCATED,
                field="y",
                from_value=str(y),
                to_value=str(fixed_y),
                pattern=f"TRUNCATION_{method}",
                priority=Priority.P0,
            ))
            y = fixed_y

        # S4 range
        range_flags = validate_range(x, y)
        flags.extend(range_flags)
        range_ok = not range_flags

    # S5/S6
    score = compute_score(corrections, flags, x, y)
    return NormalizationResult(
        x=x,
        y=y,
        original=original,
        corrections=tuple(corrections),
        flags=tuple(flags),
        score=score,
        confidence=confidence_band(score),
        is_valid=range_ok and score >= 50,
    )


def normalize_batch(inputs: List[CoordinateInput],
                    on_progress: Optional[Callable[[int, int], None]] = None) -> List[NormalizationResult]:
    results = []
    total = len(inputs)
    for i, inp in enumerate(inputs, start=1):
        results.append(normalize_coordinate(inp))
        if on_progress:
            on_progress(i, total)
    return results


def batch_stats(results: List[NormalizationResult]) -> dict:
    """
    Totals, mean score, corrections per type and confidence distribution.
    """
    total = len(results)
    valid = sum(1 for r in results if r.is_valid)
    by_type = Counter(c.type.value for r in results for c in r.corrections)
    distribution = {c.value: 0 for c in Confidence}
    for r in results:
        distribution[r.confidence.value] += 1
    return {
        "total": total,
        "valid": valid,
        "invalid": total - valid,
        "avg_score": round(sum(r.score for r in results) / total, 1) if total else 0.0,
        "corrections_by_type": dict(by_type),
        "confidence_distribution": distribution,
    }
