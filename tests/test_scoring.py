import pytest

from ptel_engine.scoring import (
    VALIDATION_CHECKS,
    calculate_score,
    legacy_confidence_label,
    score_batch,
)
from ptel_engine.types import CoordinateData


def make_coord(**overrides):
    data = dict(
        index=0,
        original_x="567123.5",
        original_y="4089456.25",
        utm_x=567123.5,
        utm_y=4089456.25,
        detected_system_confidence=0.95,
    )
    data.update(overrides)
    return CoordinateData(**data)


def test_checks_add_up_to_100():
    assert sum(c.max_points for c in VALIDATION_CHECKS) == 100
    assert len(VALIDATION_CHECKS) == 8


def test_perfect_row():
    score, alerts = calculate_score(make_coord(), 1000.0)
    assert score == 100
    assert alerts == []


def test_no_neighbours_gets_partial_credit():
    score, alerts = calculate_score(make_coord(), None)
    assert score == 90
    assert alerts == ["ℹ️ No hay vecinos para validación espacial"]


def test_space_separator_is_reported():
    score, alerts = calculate_score(make_coord(original_x="567 123,5"), 1000.0)
    assert score == 95
    assert alerts == ["⚠️ Contenía separadores de miles europeos normalizados automáticamente"]


def test_isolated_row():
    score, alerts = calculate_score(make_coord(), 25_000.0)
    assert score == 80
    assert alerts == ["⚠️ Coordenada aislada (25.0 km del vecino más cercano)"]


@pytest.mark.parametrize("distance, expected", [(5_000.0, 100), (8_000.0, 95), (20_000.0, 90)])
def test_proximity_bands(distance, expected):
    score, _ = calculate_score(make_coord(), distance)
    assert score == expected


def test_transposed_row():
    coord = make_coord(utm_x=4089456.25, utm_y=567123.5)
    score, alerts = calculate_score(coord, 1000.0)
    assert "⚠️ Posible transposición X ↔ Y detectada" in alerts
    assert "⚠️ Coordenadas fuera del rango típico de Andalucía" in alerts
    assert score == 100 - 15 - 10 - 3


def test_whole_numbers_lose_decimal_points():
    score, alerts = calculate_score(make_coord(utm_x=567123.0, utm_y=4089456.0), 1000.0)
    assert score == 90
    assert alerts == []


def test_low_detection_confidence():
    score, alerts = calculate_score(make_coord(detected_system_confidence=0.5), 1000.0)
    assert score == 94
    assert alerts == ["⚠️ Detección de sistema con baja confianza"]


def test_score_batch_uses_neighbour_distances():
    coords = [make_coord(index=0), make_coord(index=1, utm_x=567623.5), make_coord(index=2, utm_x=600123.5)]
    scores = [s for s, _ in score_batch(coords)]
    assert scores == [100, 100, 80]

    [(single_score, _)] = score_batch([make_coord()])
    assert single_score == 90


@pytest.mark.parametrize("score, label", [
    (100, "CRÍTICA"), (95, "CRÍTICA"), (94, "ALTA"), (80, "ALTA"),
    (79, "MEDIA"), (60, "MEDIA"), (59, "BAJA"), (40, "BAJA"), (39, "NULA"), (0, "NULA"),
])
def test_legacy_confidence_label(score, label):
    assert legacy_confidence_label(score) == label
