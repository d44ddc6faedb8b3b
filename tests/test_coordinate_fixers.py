import pytest

from ptel_engine.coordinate_fixers import auto_fix_truncated_y, detect_truncation_pattern


def test_auto_fix_with_known_province():
    fix = auto_fix_truncated_y(447180, 112820, "Almería")
    assert fix.fixed is True
    assert fix.y == 4162820
    assert fix.confidence == pytest.approx(0.95)
    assert "provincia: Almería" in fix.reason


def test_auto_fix_with_unknown_province():
    fix = auto_fix_truncated_y(447180, 112820, "Madrid")
    assert fix.fixed is True
    assert fix.y == 4112820
    assert fix.confidence == pytest.approx(0.75)
    assert "provincia" not in fix.reason


@pytest.mark.parametrize("x, y", [
    (447180, 4112820),   # already complete
    (447180, 90000),     # below the truncated band
    (300000, 112820),    # easting outside the plausible range
])
def test_auto_fix_leaves_other_values_alone(x, y):
    fix = auto_fix_truncated_y(x, y, "Granada")
    assert fix.fixed is False
    assert (fix.x, fix.y) == (x, y)
    assert fix.confidence == 1.0


def test_detect_truncation_pattern():
    points = [(447180, 112820), (448000, 4113000), (430000, 4100000)]
    pattern = detect_truncation_pattern(points)
    assert pattern == {"has_truncation": True, "affected_count": 1, "estimated_prefix": 4_000_000}

    east = detect_truncation_pattern([(600000, 150000)])
    assert east["estimated_prefix"] == 4_050_000

    clean = detect_truncation_pattern([(447180, 4112820)])
    assert clean["has_truncation"] is False
    assert clean["affected_count"] == 0
