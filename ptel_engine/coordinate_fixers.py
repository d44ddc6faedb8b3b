from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .utils import fold_name

# Northing offset to add back when a whole-kilometre prefix was lost.
PROVINCE_Y_OFFSETS = {
    "almeria": 4_050_000,
    "granada": 4_100_000,
    "jaen": 4_180_000,
    "cordoba": 4_200_000,
    "sevilla": 4_120_000,
    "huelva": 4_140_000,
    "cadiz": 4_000_000,
    "malaga": 4_050_000,
}
DEFAULT_Y_OFFSET = 4_000_000

TRUNCATED_Y_RANGE = (100_000, 300_000)
PLAUSIBLE_X_RANGE = (400_000, 650_000)
FIXED_Y_RANGE = (3_950_000, 4_300_000)


@dataclass
class AutoFixResult:
    fixed: bool
    x: float
    y: float
    confidence: float = 1.0
    reason: str = ""


def auto_fix_truncated_y(x: float, y: float, province: Optional[str] = None) -> AutoFixResult:
    """
    Add a provincial northing offset to a Y that looks like it lost its
    leading millions (Y in 100k-300k with an easting inside Andalusia).
    """
    if not (TRUNCATED_Y_RANGE[0] < y < TRUNCATED_Y_RANGE[1]
            and PLAUSIBLE_X_RANGE[0] < x < PLAUSIBLE_X_RANGE[1]):
        return AutoFixResult(fixed=False, x=x, y=y)

    offset = PROVINCE_Y_OFFSETS.get(fold_name(province))
    known = offset is not None
    y_fixed = (offset if known else DEFAULT_Y_OFFSET) + y
    if not FIXED_Y_RANGE[0] <= y_fixed <= FIXED_Y_RANGE[1]:
        return AutoFixResult(fixed=False, x=x, y=y)

    reason = f"Y truncada corregida: {y} → {y_fixed}"
    if known:
        reason += f" (provincia: {province})"
    return AutoFixResult(
        fixed=True,
        x=x,
        y=y_fixed,
        confidence=0.95 if known else 0.75,
        reason=reason,
    )


def detect_truncation_pattern(points: Iterable[Tuple[float, float]]) -> dict:
    """
    Count points whose Y looks truncated and guess the missing prefix from the mean easting.
    """
    points = list(points)
    affected = [p for p in points if TRUNCATED_Y_RANGE[0] < p[1] < TRUNCATED_Y_RANGE[1]]
    estimated = DEFAULT_Y_OFFSET
    if affected:
        mean_x = sum(p[0] for p in points) / len(points)
        if mean_x < 450_000:
            estimated = 4_000_000
        elif mean_x < 550_000:
            estimated = 4_100_000
        else:
            estimated = 4_050_000
    return {
        "has_truncation": bool(affected),
        "affected_count": len(affected),
        "estimated_prefix": estimated,
    }
