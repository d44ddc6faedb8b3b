"""
crs.py

Coordinate reference system helpers: which columns hold the coordinates,
which system the numbers are in, and reprojection to ETRS89 / UTM 30N.

Key Features:
- Header-based coordinate column detection (exact names before substrings).
- Magnitude heuristic for the source system (geographic, UTM 29/30/31, Web Mercator).
- pyproj Transformer reprojection, cached per (source, target) pair.
- shapely boxes for the Spain and target-system sanity checks.
"""
import logging
import math
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pyproj import Transformer
from shapely.geometry import Point, box

from .exceptions import ConversionError

LOG = logging.getLogger(__name__)

TARGET_EPSG = "EPSG:25830"
WGS84_EPSG = "EPSG:4326"
DETECTION_CONFIDENCE = 0.95

COORDINATE_SYSTEMS: Dict[str, Dict[str, Optional[str]]] = {
    "EPSG:4326": {"name": "WGS84 Geographic", "description": "Lat/Lon (WGS84) - GPS estándar", "zone": None},
    "EPSG:4258": {"name": "ETRS89 Geographic", "description": "Lat/Lon (ETRS89) - Oficial Europa", "zone": None},
    "EPSG:23029": {"name": "ED50 UTM Zone 29N", "description": "UTM Zona 29 (ED50) - Galicia", "zone": "29"},
    "EPSG:23030": {"name": "ED50 UTM Zone 30N", "description": "UTM Zona 30 (ED50) - España Central", "zone": "30"},
    "EPSG:23031": {"name": "ED50 UTM Zone 31N", "description": "UTM Zona 31 (ED50) - Cataluña", "zone": "31"},
    "EPSG:25829": {"name": "ETRS89 UTM Zone 29N", "description": "UTM Zona 29 (ETRS89) - Galicia", "zone": "29"},
    "EPSG:25830": {"name": "ETRS89 UTM Zone 30N", "description": "UTM Zona 30 (ETRS89) - España Central", "zone": "30"},
    "EPSG:25831": {"name": "ETRS89 UTM Zone 31N", "description": "UTM Zona 31 (ETRS89) - Cataluña", "zone": "31"},
    "EPSG:32629": {"name": "WGS84 UTM Zone 29N", "description": "UTM Zona 29 (WGS84)", "zone": "29"},
    "EPSG:32630": {"name": "WGS84 UTM Zone 30N", "description": "UTM Zona 30 (WGS84)", "zone": "30"},
    "EPSG:32631": {"name": "WGS84 UTM Zone 31N", "description": "UTM Zona 31 (WGS84)", "zone": "31"},
    "EPSG:3857": {"name": "Web Mercator", "description": "Proyección Web (Google/OSM)", "zone": None},
    "EPSG:2154": {"name": "Lambert 93 (France)", "description": "Lambert Conforme Francia", "zone": None},
    "EPSG:27700": {"name": "British National Grid", "description": "OSGB36 Reino Unido", "zone": None},
    "EPSG:2062": {"name": "Colombia Bogota", "description": "Transversal Mercator Colombia", "zone": None},
}

GEOGRAPHIC_SYSTEMS = ("EPSG:4326", "EPSG:4258")
UTM_FAMILY = tuple(code for code, meta in COORDINATE_SYSTEMS.items() if meta["zone"])

X_COLUMN_CANDIDATES = ["utm_x", "x", "coordenada_x", "coord_x", "este", "easting", "lon", "longitud", "longitude"]
Y_COLUMN_CANDIDATES = ["utm_y", "y", "coordenada_y", "coord_y", "norte", "northing", "lat", "latitud", "latitude"]

# Open box (strict) for the Spain lon/lat check, closed box for the UTM30 validity range.
SPAIN_LONLAT = box(-18.0, 27.0, 5.0, 44.0)
TARGET_VALID_BOX = box(150_000.0, 3_000_000.0, 900_000.0, 6_000_000.0)


def _normalize_header(header) -> str:
    return "_".join(str(header).strip().lower().split())


def _find_column(headers: Sequence[str], normalized: List[str], candidates: List[str],
                 exclude: Optional[str] = None) -> Optional[str]:
    for candidate in candidates:
        for header, norm in zip(headers, normalized):
            if norm == candidate and header != exclude:
                return header
    for candidate in candidates:
        for header, norm in zip(headers, normalized):
            if candidate in norm and header != exclude:
                return header
    return None


def detect_coordinate_columns(headers: Sequence[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns (x_column, y_column); either may be None.
    Exact header matches win over substring matches, in candidate order.
    """
    headers = list(headers)
    normalized = [_normalize_header(h) for h in headers]
    x_col = _find_column(headers, normalized, X_COLUMN_CANDIDATES)
    y_col = _find_column(headers, normalized, Y_COLUMN_CANDIDATES, exclude=x_col)
    return x_col, y_col


def identify_coordinate_system(samples: Sequence[Tuple[float, float]]) -> str:
    """
    EPSG code inferred from value magnitudes. Defaults to EPSG:4326 when nothing fits.
    """
    if not samples:
        return WGS84_EPSG
    first_x, first_y = samples[0]
    if abs(first_x) <= 180 and abs(first_y) <= 90:
        return "EPSG:4258" if SPAIN_LONLAT.contains(Point(first_x, first_y)) else WGS84_EPSG

    avg_x = sum(abs(x) for x, _ in samples) / len(samples)
    avg_y = sum(abs(y) for _, y in samples) / len(samples)

    if 100_000 < avg_x < 900_000 and 3_000_000 < avg_y < 6_000_000:
        if 150_000 <= avg_x <= 350_000:
            return "EPSG:25829"
        if 650_000 <= avg_x <= 850_000:
            return "EPSG:25831"
        return TARGET_EPSG

    if 2_000_000 < avg_x < 4_000_000 and 2_000_000 < avg_y < 12_000_000:
        return "EPSG:3857"

    return WGS84_EPSG


def detect_coordinate_system(xs: Iterable[Optional[float]], ys: Iterable[Optional[float]],
                             sample_size: int = 20) -> Tuple[Optional[str], float]:
    """
    (epsg, confidence) from the first `sample_size` usable pairs, or (None, 0.0).
    The confidence is a fixed heuristic constant, not a probability.
    """
    samples = [
        (x, y) for x, y in zip(xs, ys)
        if x is not None and y is not None and math.isfinite(x) and math.isfinite(y)
    ][:sample_size]
    if not samples:
        return None, 0.0
    return identify_coordinate_system(samples), DETECTION_CONFIDENCE


def is_projected(epsg: Optional[str]) -> bool:
    return epsg in UTM_FAMILY


@lru_cache(maxsize=32)
def _transformer(source_epsg: str, target_epsg: str) -> Transformer:
    return Transformer.from_crs(source_epsg, target_epsg, always_xy=True)


def convert_to_target(x: float, y: float, source_epsg: str,
                      target_epsg: str = TARGET_EPSG) -> Tuple[float, float]:
    """
    Reproject (x, y) from source_epsg to target_epsg. Identity when both are the same.
    Raises ConversionError for non-finite results; pyproj raises on unknown codes.
    """
    if source_epsg == target_epsg:
        out_x, out_y = float(x), float(y)
    else:
        out_x, out_y = _transformer(source_epsg, target_epsg).transform(x, y)
    if not (math.isfinite(out_x) and math.isfinite(out_y)):
        raise ConversionError(f"Non-finite result converting ({x}, {y}) from {source_epsg} to {target_epsg}")
    return out_x, out_y


def to_wgs84(x: float, y: float, source_epsg: str = TARGET_EPSG) -> Tuple[float, float]:
    """(lon, lat) in WGS84."""
    return convert_to_target(x, y, source_epsg, WGS84_EPSG)


def is_valid_target(x: float, y: float) -> bool:
    if not (math.isfinite(x) and math.isfinite(y)):
        return False
    return TARGET_VALID_BOX.covers(Point(x, y))


def validate_coordinate(x: float, y: float, system: str) -> bool:
    if not (math.isfinite(x) and math.isfinite(y)):
        return False
    if system in GEOGRAPHIC_SYSTEMS:
        return abs(x) <= 180 and abs(y) <= 90
    if COORDINATE_SYSTEMS.get(system, {}).get("zone") == "30":
        return is_valid_target(x, y)
    if system in UTM_FAMILY:
        return 100_000 < x < 1_000_000 and 1_000_000 < y < 10_000_000
    return True


def calculate_bounds(points: Iterable[Tuple[Optional[float], Optional[float]]]) -> Optional[Dict[str, float]]:
    valid = [
        (x, y) for x, y in points
        if x is not None and y is not None and math.isfinite(x) and math.isfinite(y)
    ]
    if not valid:
        return None
    xs = [p[0] for p in valid]
    ys = [p[1] for p in valid]
    return {"min_x": min(xs), "max_x": max(xs), "min_y": min(ys), "max_y": max(ys)}
