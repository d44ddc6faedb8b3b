import math

import pytest

from ptel_engine.number_normalizer import normalize_number
from ptel_engine.placeholders import is_placeholder
from ptel_engine.types import CorrectionType, Priority


@pytest.mark.parametrize("raw, expected, pattern", [
    ("447 180,5", 447180.5, "SPACE_THOUSANDS"),
    ("4.112.820,25", 4112820.25, "DOT_THOUSANDS_3"),
    ("447.180,5", 447180.5, "DOT_THOUSANDS_2"),
    ("37´´1234", 37.1234, "DOUBLE_TILDE"),
    ("37´1234", 37.1234, "SINGLE_TILDE"),
    ("4077905,5", 4077905.5, "COMMA_DECIMAL"),
])
def test_separator_rules(raw, expected, pattern):
    corrections = []
    assert normalize_number(raw, corrections, "y") == pytest.approx(expected)
    assert corrections[0].pattern == pattern
    assert corrections[0].type == CorrectionType.SEPARATOR_FIXED
    assert corrections[0].priority == Priority.P1
    assert corrections[0].field == "y"


def test_plain_values_need_no_correction():
    corrections = []
    assert normalize_number("447180.5", corrections) == 447180.5
    assert normalize_number(447180, corrections) == 447180.0
    assert corrections == []


def test_negative_and_stray_characters():
    assert normalize_number("-3,5") == -3.5
    assert normalize_number(" 447180.5 m") == 447180.5


@pytest.mark.parametrize("raw", [None, True, "abc", "", "-", float("nan"), float("inf")])
def test_unparseable_returns_none(raw):
    assert normalize_number(raw) is None


def test_corrections_list_is_optional():
    assert normalize_number("447 180,5") == 447180.5


@pytest.mark.parametrize("value", [
    None, 0, 0.0, math.nan, "", "   ", "N/D", "n/a", "ND", "NA", "Sin datos", "sin dato",
    "Indicar", "pendiente", "---", "XXX", "0", "0.000", "99999",
])
def test_placeholders(value):
    assert is_placeholder(value) is True


@pytest.mark.parametrize("value", ["447180", 447180, "4077905,5", False, "Calle Real", 9999])
def test_not_placeholders(value):
    assert is_placeholder(value) is False
