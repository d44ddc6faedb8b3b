"""
scoring.py

Validation scoring for converted coordinates: eight independent weighted checks,
each worth 0..max points and optionally producing a user-facing alert.
The points add up to 100 for a perfect row.

Checks, in order:
  range (15), special characters (10), decimals (15), digit count (10),
  transposition (10), detection confidence (10), conversion validity (10),
  neighbour proximity (20).

Alert strings are Spanish; they are shown verbatim to plan technicians.
"""
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .geo_validator import nearest_neighbor_distances
from .types import CoordinateData
from .utils import count_decimals, integer_digits

SPECIAL_CHARS = re.compile(r"[´Ì“”\"]")
WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class CheckResult:
    points: int
    alert: Optional[str] = None


@dataclass(frozen=True)
class ValidationCheck:
    name: str
    max_points: int
    description: str
    evaluate: Callable[[CoordinateData, Optional[float]], CheckResult]


def _finite(value) -> bool:
    return value is not None and math.isfinite(value)


def _check_range(coord, _nearest):
    in_x = _finite(coord.utm_x) and 160_000 <= coord.utm_x <= 770_000
    in_y = _finite(coord.utm_y) and 3_960_000 <= coord.utm_y <= 4_280_000
    if in_x and in_y:
        return CheckResult(15)
    return CheckResult(0, "⚠️ Coordenadas fuera del rango típico de Andalucía")


def _check_special_chars(coord, _nearest):
    raw = (str(coord.original_x), str(coord.original_y))
    has_spaces = any(WHITESPACE.search(s) for s in raw)
    has_special = any(SPECIAL_CHARS.search(s) for s in raw)
    if has_spaces or has_special:
        kind = "separadores de miles europeos" if has_spaces else "caracteres especiales"
        return CheckResult(5, f"⚠️ Contenía {kind} normalizados automáticamente")
    return CheckResult(10)


def _check_decimals(coord, _nearest):
    x_dec = count_decimals(coord.utm_x)
    y_dec = count_decimals(coord.utm_y)
    if 1 <= x_dec <= 3 and 1 <= y_dec <= 3:
        return CheckResult(15)
    if x_dec > 3 or y_dec > 3:
        return CheckResult(8, "⚠️ Excesivos decimales (posible error de formato)")
    return CheckResult(5)


def _check_digits(coord, _nearest):
    x_digits = integer_digits(coord.utm_x)
    y_digits = integer_digits(coord.utm_y)
    if x_digits == 6 and y_digits == 7:
        return CheckResult(10)
    if abs(x_digits - 6) <= 1 and abs(y_digits - 7) <= 1:
        return CheckResult(7)
    return CheckResult(3, "⚠️ Longitud de dígitos inusual para UTM30")


def _check_transposition(coord, _nearest):
    if integer_digits(coord.utm_x) == 7 and integer_digits(coord.utm_y) == 6:
        return CheckResult(0, "⚠️ Posible transposición X ↔ Y detectada")
    return CheckResult(10)


def _check_detection_confidence(coord, _nearest):
    confidence = coord.detected_system_confidence
    if confidence > 0.9:
        return CheckResult(10)
    if confidence > 0.7:
        return CheckResult(7, "ℹ️ Detección de sistema con confianza media")
    return CheckResult(4, "⚠️ Detección de sistema con baja confianza")


def _check_conversion(coord, _nearest):
    if _finite(coord.utm_x) and _finite(coord.utm_y):
        return CheckResult(10)
    return CheckResult(0, "❌ Error en conversión a UTM30")


def _check_proximity(coord, nearest):
    # No neighbours: partial credit here, unlike the geographic validator's full credit.
    if nearest is None:
        return CheckResult(10, "ℹ️ No hay vecinos para validación espacial")
    km = nearest / 1000
    if km <= 5:
        return CheckResult(20)
    if km <= 10:
        return CheckResult(15)
    if km <= 20:
        return CheckResult(10)
    return CheckResult(0, f"⚠️ Coordenada aislada ({km:.1f} km del vecino más cercano)")


VALIDATION_CHECKS: Tuple[ValidationCheck, ...] = (
    ValidationCheck("Rango UTM30 Andalucía", 15,
                    "X: 160,000 - 770,000 metros · Y: 3,960,000 - 4,280,000 metros", _check_range),
    ValidationCheck("Caracteres Especiales", 10,
                    "Espacios como separadores de miles, ´´, comillas raras", _check_special_chars),
    ValidationCheck("Posición Decimal", 15, "Precisión submétrica correcta", _check_decimals),
    ValidationCheck("Longitud de Dígitos", 10, "X típico: 6 dígitos · Y típico: 7 dígitos", _check_digits),
    ValidationCheck("Detección Transposición", 10, "X ↔ Y intercambiados", _check_transposition),
    ValidationCheck("Coherencia Formato", 10, "Confianza en la detección de sistema", _check_detection_confidence),
    ValidationCheck("Validación EPSG", 10, "Conversión válida a EPSG:25830", _check_conversion),
    ValidationCheck("Proximidad Vecinos", 20, "Distancia al vecino más cercano · Umbral: 20 km", _check_proximity),
)


def calculate_score(coord: CoordinateData, nearest_distance: Optional[float]) -> Tuple[int, List[str]]:
    """
    Sum of check points and the alerts raised, in check order.
    nearest_distance is in metres; None means the row has no neighbours.
    """
    total = 0
    alerts = []
    for check in VALIDATION_CHECKS:
        result = check.evaluate(coord, nearest_distance)
        total += result.points
        if result.alert:
            alerts.append(result.alert)
    return total, alerts


def score_batch(coords: Sequence[CoordinateData]) -> List[Tuple[int, List[str]]]:
    """
    calculate_score for every row, with nearest distances taken within the batch.
    """
    nearest = nearest_neighbor_distances([(c.utm_x, c.utm_y) for c in coords])
    if not nearest:
        return [calculate_score(c, None) for c in coords]
    return [calculate_score(c, d) for c, d in zip(coords, nearest)]


def legacy_confidence_label(score: int) -> str:
    """Spanish display label used by the plan templates."""
    if score >= 95:
        return "CRÍTICA"
    if score >= 80:
        return "ALTA"
    if score >= 60:
        return "MEDIA"
    if score >= 40:
        return "BAJA"
    return "NULA"
