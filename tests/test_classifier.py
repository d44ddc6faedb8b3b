import pytest

from ptel_engine.geocoding.classifier import (
    ClassificationConfidence,
    InfrastructureType,
    analyze_dataset,
    classify,
    classify_many,
)


@pytest.mark.parametrize("name, infra_type", [
    ("Centro de Salud San Antón", InfrastructureType.HEALTH),
    ("HOSPITAL TORRECÁRDENAS", InfrastructureType.HEALTH),
    ("CEIP Miguel Hernández", InfrastructureType.EDUCATION),
    ("C.E.I.P. Las Lomas", InfrastructureType.EDUCATION),
    ("Comisaría de Policía Nacional", InfrastructureType.POLICE),
    ("Parque de Bomberos", InfrastructureType.FIRE),
    ("Biblioteca Municipal", InfrastructureType.CULTURAL),
    ("Ermita de San Sebastián", InfrastructureType.RELIGIOUS),
    ("Polideportivo", InfrastructureType.SPORTS),
    ("Ayuntamiento de Níjar", InfrastructureType.MUNICIPAL),
    ("Centro de Día", InfrastructureType.SOCIAL),
    ("Gasolinera Repsol", InfrastructureType.FUEL),
    ("Protección Civil", InfrastructureType.EMERGENCY),
])
def test_primary_patterns(name, infra_type):
    result = classify(name)
    assert result.type == infra_type
    assert result.confidence == ClassificationConfidence.HIGH
    assert result.matched_pattern


def test_catalogue_order_decides_ties():
    # "colegio" is an education keyword and education comes before culture
    assert classify("Biblioteca del Colegio").type == InfrastructureType.EDUCATION


def test_secondary_match_is_medium():
    result = classify("Consultorio")
    assert result.type == InfrastructureType.HEALTH
    assert result.confidence == ClassificationConfidence.MEDIUM


def test_strict_mode_skips_secondary_patterns():
    result = classify("Consultorio", strict=True)
    assert result.type == InfrastructureType.GENERIC
    assert result.confidence == ClassificationConfidence.NONE


@pytest.mark.parametrize("name", ["Plaza Mayor", "", "   ", None])
def test_generic(name):
    result = classify(name)
    assert result.type == InfrastructureType.GENERIC
    assert result.confidence == ClassificationConfidence.NONE
    assert result.matched_pattern is None


def test_classify_many_keeps_order():
    types = [c.type for c in classify_many(["Colegio", "Plaza Mayor"])]
    assert types == [InfrastructureType.EDUCATION, InfrastructureType.GENERIC]


def test_analyze_dataset():
    report = analyze_dataset(["Centro de Salud", "Ermita", "Plaza Mayor", "Colegio"])
    assert report["total"] == 4
    assert report["by_type"] == {"SANITARIO": 1, "RELIGIOSO": 1, "GENERICO": 1, "EDUCATIVO": 1}
    assert report["by_confidence"] == {"ALTA": 3, "NULA": 1}
    assert report["specialized_coverage"] == 50.0
    assert analyze_dataset([])["specialized_coverage"] == 0.0
