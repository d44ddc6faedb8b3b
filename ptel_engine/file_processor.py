"""
file_processor.py

Two-pass processing of one tabular file ({headers, rows} from any reader).

Pass 1, per row: text repair, coordinate normalization, reprojection to
EPSG:25830 plus WGS84 lon/lat, truncation auto-fix metadata.
Pass 2, once every row is converted: geographic coherence and the validation
checks, which need the whole batch for neighbour distances.

Every input row produces exactly one CoordinateData. Rows that cannot be
normalized or converted keep an `error` and are scored 0 / CRITICAL.
Only an unusable file (no coordinate columns, no numbers) raises.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import geopandas as gpd
import pandas as pd
from pyproj.exceptions import CRSError, ProjError
from shapely.geometry import Point

from .coordinate_fixers import auto_fix_truncated_y, detect_truncation_pattern
from .coordinate_normalizer import confidence_band, normalize_coordinate
from .crs import (
    TARGET_EPSG,
    calculate_bounds,
    convert_to_target,
    detect_coordinate_columns,
    detect_coordinate_system,
    is_projected,
    is_valid_target,
    to_wgs84,
)
from .exceptions import ConversionError, NoCoordinateColumnsError, NoNumericValuesError
from .geo_validator import (
    DEFAULT_MAX_DISTANCE,
    generate_geographic_report,
    validate_geographic_coherence,
)
from .number_normalizer import normalize_number
from .placeholders import is_placeholder
from .scoring import legacy_confidence_label, score_batch
from .text_repair import has_corrupted_encoding, repair_record_text
from .types import Confidence, CoordinateData, CoordinateInput, FileProcessingResult

LOG = logging.getLogger(__name__)

ERR_NOT_NORMALIZABLE = "Valor de coordenada inválido o no normalizable"
ERR_OUT_OF_TARGET = "Coordenada fuera de rango válido UTM30"
ENCODING_NOTICE = "ℹ️ Caracteres UTF-8 normalizados"


def _get_ci(row: Dict[str, Any], key: str) -> Optional[Any]:
    """Case-insensitive cell lookup ('municipio', 'Municipio', 'MUNICIPIO')."""
    for k, v in row.items():
        if str(k).strip().lower() == key:
            return v
    return None


def _text_or_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _sample_value(value) -> Optional[float]:
    # Placeholder zeros would make a UTM file look geographic
    return None if is_placeholder(value) else normalize_number(value)


def _reject(coord: CoordinateData, message: str) -> None:
    coord.error = message
    coord.score = 0
    coord.confidence = Confidence.CRITICAL
    coord.legacy_confidence = legacy_confidence_label(0)
    coord.alerts = [f"❌ {message}"]


def _first_pass(index: int, raw_row: Dict[str, Any], x_col: str, y_col: str,
                system: str, system_confidence: float) -> CoordinateData:
    original_x = raw_row.get(x_col)
    original_y = raw_row.get(y_col)
    had_corruption = any(has_corrupted_encoding(v) for v in raw_row.values() if isinstance(v, str))

    # Coordinate cells keep their raw text: their odd characters are separators, not mojibake.
    text_fields = [k for k in raw_row if k not in (x_col, y_col)]
    row = repair_record_text(raw_row, text_fields)

    municipality = _text_or_none(_get_ci(row, "municipio"))
    province = _text_or_none(_get_ci(row, "provincia"))
    name = _text_or_none(_get_ci(row, "nombre")) or f"Elemento {index + 1}"

    coord = CoordinateData(
        index=index,
        original_x=original_x,
        original_y=original_y,
        detected_system=system,
        detected_system_confidence=system_confidence,
        had_encoding_corruption=had_corruption,
        name=name,
        municipality=municipality,
        province=province,
        row=row,
    )

    result = normalize_coordinate(
        CoordinateInput(x=original_x, y=original_y, municipality=municipality, province=province),
        projected=is_projected(system),
    )
    coord.corrections = list(result.corrections)
    coord.flags = list(result.flags)
    coord.score = result.score
    coord.confidence = result.confidence

    if result.x is None or result.y is None:
        LOG.debug(f"Row {index}: not normalizable (X={original_x!r}, Y={original_y!r})")
        _reject(coord, ERR_NOT_NORMALIZABLE)
        return coord

    coord.normalized_x, coord.normalized_y = result.x, result.y
    try:
        utm_x, utm_y = convert_to_target(result.x, result.y, system)
        lon, lat = to_wgs84(utm_x, utm_y)
    except (ConversionError, CRSError, ProjError) as exc:
        LOG.debug(f"Row {index}: conversion failed: {exc}")
        _reject(coord, f"Error de conversión: {exc}")
        return coord

    if not is_valid_target(utm_x, utm_y):
        LOG.debug(f"Row {index}: converted point ({utm_x:.1f}, {utm_y:.1f}) outside UTM30 range")
        coord.utm_x, coord.utm_y = utm_x, utm_y
        _reject(coord, ERR_OUT_OF_TARGET)
        return coord

    coord.utm_x, coord.utm_y, coord.lon, coord.lat = utm_x, utm_y, lon, lat

    # Judged on the parsed input, before the normalizer rebuilt the northing
    raw_x, raw_y = normalize_number(original_x), normalize_number(original_y)
    if raw_x is None or raw_y is None:
        return coord
    fix = auto_fix_truncated_y(raw_x, raw_y, province)
    coord.auto_fixed = fix.fixed
    coord.fix_confidence = fix.confidence
    coord.fix_reason = fix.reason
    return coord


def _second_pass(coords: List[CoordinateData], max_distance: float) -> dict:
    converted = [c for c in coords if c.converted]
    geo_results = validate_geographic_coherence(
        [(c.utm_x, c.utm_y, c.name) for c in converted], max_distance=max_distance
    )
    check_results = score_batch(converted)

    for coord, geo, (check_score, check_alerts) in zip(converted, geo_results, check_results):
        alerts = []
        if coord.auto_fixed:
            alerts.append(f"✅ Y truncada corregida: {coord.original_y} → {coord.normalized_y}")
        alerts.extend(check_alerts)
        if coord.had_encoding_corruption:
            alerts.append(ENCODING_NOTICE)
        alerts.extend(geo.alerts)

        final = min(check_score, geo.score)
        coord.score = final
        coord.alerts = alerts
        coord.confidence = confidence_band(final)
        coord.legacy_confidence = legacy_confidence_label(final)
        coord.nearest_distance = geo.nearest_distance
        coord.is_outlier = geo.is_outlier

    return generate_geographic_report(geo_results)


def process_rows(headers: Sequence[str], rows: Sequence[Dict[str, Any]], name: str = "",
                 max_distance: float = DEFAULT_MAX_DISTANCE) -> FileProcessingResult:
    """
    Process one file's rows end to end.

    Raises NoCoordinateColumnsError when no X/Y columns can be identified and
    NoNumericValuesError when those columns hold no usable number pair.
    """
    headers = list(headers)
    x_col, y_col = detect_coordinate_columns(headers)
    if not x_col or not y_col:
        raise NoCoordinateColumnsError(
            "No se pudieron detectar columnas de coordenadas. "
            "Verifica que el archivo contiene columnas X/Y o Lon/Lat."
        )

    xs = [_sample_value(r.get(x_col)) for r in rows]
    ys = [_sample_value(r.get(y_col)) for r in rows]
    system, system_confidence = detect_coordinate_system(xs, ys)
    if system is None:
        raise NoNumericValuesError("No se encontraron valores numéricos válidos en las columnas de coordenadas.")
    LOG.info(f"📄 {name or 'file'}: columns X={x_col!r} Y={y_col!r}, detected {system} ({system_confidence:.2f})")

    coords = [
        _first_pass(i, dict(row), x_col, y_col, system, system_confidence)
        for i, row in enumerate(rows)
    ]
    report = _second_pass(coords, max_distance)

    converted = [c for c in coords if c.converted]
    result = FileProcessingResult(
        name=name,
        headers=headers,
        x_column=x_col,
        y_column=y_col,
        detected_system=system,
        detected_system_confidence=system_confidence,
        coordinates=coords,
        row_count=len(coords),
        average_score=round(sum(c.score for c in converted) / len(converted)) if converted else 0,
        high_confidence=sum(1 for c in coords if c.confidence == Confidence.HIGH),
        medium_confidence=sum(1 for c in coords if c.confidence == Confidence.MEDIUM),
        low_confidence=sum(1 for c in coords if c.confidence == Confidence.LOW),
        rejected=sum(1 for c in coords if c.confidence == Confidence.CRITICAL),
        original_bounds=calculate_bounds((c.normalized_x, c.normalized_y) for c in converted),
        target_bounds=calculate_bounds((c.utm_x, c.utm_y) for c in converted),
        geographic_report=report,
        truncation_pattern=detect_truncation_pattern(
            (x, y) for x, y in zip(xs, ys) if x is not None and y is not None
        ),
    )
    if result.rejected:
        LOG.warning(f"⚠️ {name or 'file'}: {result.rejected}/{result.row_count} rows rejected")
    LOG.info(f"✅ {name or 'file'}: {result.row_count} rows, average score {result.average_score}")
    return result


def to_dataframe(result: FileProcessingResult) -> pd.DataFrame:
    """One row per processed record, flat columns for display and export."""
    records = []
    for c in result.coordinates:
        records.append({
            "index": c.index,
            "name": c.name,
            "municipality": c.municipality,
            "province": c.province,
            "original_x": c.original_x,
            "original_y": c.original_y,
            "normalized_x": c.normalized_x,
            "normalized_y": c.normalized_y,
            "utm_x": c.utm_x if c.converted else None,
            "utm_y": c.utm_y if c.converted else None,
            "lon": c.lon,
            "lat": c.lat,
            "score": c.score,
            "confidence": c.confidence.value,
            "legacy_confidence": c.legacy_confidence,
            "nearest_distance": c.nearest_distance,
            "is_outlier": c.is_outlier,
            "auto_fixed": c.auto_fixed,
            "alerts": " | ".join(c.alerts),
            "error": c.error,
        })
    return pd.DataFrame.from_records(records)


def to_geodataframe(result: FileProcessingResult) -> gpd.GeoDataFrame:
    """to_dataframe() with EPSG:25830 point geometry; rejected rows get an empty geometry."""
    df = to_dataframe(result)
    geometry = [
        Point(c.utm_x, c.utm_y) if c.converted else None
        for c in result.coordinates
    ]
    return gpd.GeoDataFrame(df, geometry=geometry, crs=TARGET_EPSG)
