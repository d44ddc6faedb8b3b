import math

import pytest

from ptel_engine.crs import (
    TARGET_EPSG,
    calculate_bounds,
    convert_to_target,
    detect_coordinate_columns,
    detect_coordinate_system,
    identify_coordinate_system,
    is_projected,
    is_valid_target,
    to_wgs84,
    validate_coordinate,
)
from ptel_engine.exceptions import ConversionError


@pytest.mark.parametrize("headers, expected", [
    (["Nombre", "X", "Y"], ("X", "Y")),
    (["nombre", "Longitud", "Latitud"], ("Longitud", "Latitud")),
    (["coord_x_utm", "coord_y_utm"], ("coord_x_utm", "coord_y_utm")),
    (["UTM X", "UTM Y"], ("UTM X", "UTM Y")),
    (["nombre", "direccion"], (None, None)),
])
def test_detect_coordinate_columns(headers, expected):
    assert detect_coordinate_columns(headers) == expected


@pytest.mark.parametrize("samples, epsg", [
    ([(-3.5, 37.2)], "EPSG:4258"),
    ([(-70.0, -33.0)], "EPSG:4326"),
    ([(447180.0, 4112820.0), (448000.0, 4113000.0)], "EPSG:25830"),
    ([(200000.0, 4500000.0)], "EPSG:25829"),
    ([(700000.0, 4600000.0)], "EPSG:25831"),
    ([(2500000.0, 5000000.0)], "EPSG:3857"),
    ([(50.0e6, 1.0)], "EPSG:4326"),
    ([], "EPSG:4326"),
])
def test_identify_coordinate_system(samples, epsg):
    assert identify_coordinate_system(samples) == epsg


def test_detect_coordinate_system_skips_missing_values():
    assert detect_coordinate_system([], []) == (None, 0.0)
    assert detect_coordinate_system([None, float("nan")], [1.0, 2.0]) == (None, 0.0)
    system, confidence = detect_coordinate_system([None, 447180.0], [4112820.0, 4112820.0])
    assert system == TARGET_EPSG
    assert confidence == pytest.approx(0.95)


def test_to_wgs84_lands_in_andalusia():
    lon, lat = to_wgs84(447180.0, 4112820.0)
    assert -3.7 < lon < -3.5
    assert 37.0 < lat < 37.3


def test_convert_round_trip():
    lon, lat = to_wgs84(447180.0, 4112820.0)
    x, y = convert_to_target(lon, lat, "EPSG:4326")
    assert x == pytest.approx(447180.0, abs=0.01)
    assert y == pytest.approx(4112820.0, abs=0.01)


def test_convert_identity():
    assert convert_to_target(447180, 4112820, TARGET_EPSG) == (447180.0, 4112820.0)


def test_convert_rejects_non_finite():
    with pytest.raises(ConversionError):
        convert_to_target(math.inf, 4112820.0, TARGET_EPSG)


def test_is_valid_target_box_is_closed():
    assert is_valid_target(150_000.0, 3_000_000.0) is True
    assert is_valid_target(900_000.0, 6_000_000.0) is True
    assert is_valid_target(149_999.0, 4_000_000.0) is False
    assert is_valid_target(math.nan, 4_000_000.0) is False


@pytest.mark.parametrize("x, y, system, valid", [
    (-3.5, 37.2, "EPSG:4326", True),
    (200.0, 0.0, "EPSG:4326", False),
    (447180.0, 4112820.0, "EPSG:25830", True),
    (50000.0, 4112820.0, "EPSG:23030", False),
    (500000.0, 4500000.0, "EPSG:25829", True),
    (500000.0, 500.0, "EPSG:25831", False),
    (1.0, 2.0, "EPSG:2154", True),
    (math.inf, 2.0, "EPSG:2154", False),
])
def test_validate_coordinate(x, y, system, valid):
    assert validate_coordinate(x, y, system) is valid


def test_is_projected():
    assert is_projected("EPSG:25830") is True
    assert is_projected("EPSG:23029") is True
    assert is_projected("EPSG:4326") is False
    assert is_projected("EPSG:3857") is False
    assert is_projected(None) is False


def test_calculate_bounds():
    assert calculate_bounds([(1.0, 2.0), (None, 3.0), (5.0, -1.0)]) == {
        "min_x": 1.0, "max_x": 5.0, "min_y": -1.0, "max_y": 2.0,
    }
    assert calculate_bounds([]) is None
    assert calculate_bounds([(None, None)]) is None
