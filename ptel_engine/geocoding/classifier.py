"""
classifier.py

Keyword classifier for infrastructure names found in municipal emergency plans
("Centro de Salud San Antón", "CEIP Miguel Hernández", "Ermita de San Sebastián").

The type decides which typed registry the geocoding cascade consults first.
Patterns are tried in catalogue order; a primary match is ALTA confidence,
a secondary match MEDIA (skipped in strict mode).
"""
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class InfrastructureType(str, Enum):
    HEALTH = "SANITARIO"
    EDUCATION = "EDUCATIVO"
    POLICE = "POLICIAL"
    FIRE = "BOMBEROS"
    CULTURAL = "CULTURAL"
    RELIGIOUS = "RELIGIOSO"
    SPORTS = "DEPORTIVO"
    MUNICIPAL = "MUNICIPAL"
    SOCIAL = "SOCIAL"
    FUEL = "COMBUSTIBLE"
    EMERGENCY = "EMERGENCIAS"
    GENERIC = "GENERICO"


class ClassificationConfidence(str, Enum):
    HIGH = "ALTA"
    MEDIUM = "MEDIA"
    LOW = "BAJA"
    NONE = "NULA"


# Types with a typed registry behind them
SPECIALIZED_TYPES = (
    InfrastructureType.HEALTH,
    InfrastructureType.EDUCATION,
    InfrastructureType.POLICE,
    InfrastructureType.FIRE,
    InfrastructureType.CULTURAL,
)


@dataclass(frozen=True)
class Classification:
    type: InfrastructureType
    confidence: ClassificationConfidence
    matched_pattern: Optional[str] = None


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# (type, primary, secondary)
PATTERNS: Tuple[Tuple[InfrastructureType, re.Pattern, re.Pattern], ...] = (
    (
        InfrastructureType.HEALTH,
        _rx(r"\b(centro\s+de\s+salud|hospital|cl[íi]nica|consultorio\s+m[ée]dico|ambulatorio|urgencias?|centro\s+sanitario)\b"),
        _rx(r"\b(consultorio|m[ée]dico|sanitari[oa]|sas)\b"),
    ),
    (
        InfrastructureType.EDUCATION,
        _rx(r"\b(colegio|instituto|escuela|centro\s+educativo|ceip|ies|guarder[íi]a)\b|\b(c\.e\.i\.p\.|i\.e\.s\.)"),
        _rx(r"\b(educaci[óo]n|infantil|primaria|secundaria|aula)\b"),
    ),
    (
        InfrastructureType.POLICE,
        _rx(r"\b(comisar[íi]a|cuartel\s+de\s+la\s+guardia\s+civil|polic[íi]a\s+(local|nacional)|comandancia|puesto\s+(de\s+la\s+)?guardia\s+civil)\b"),
        _rx(r"\b(polic[íi]a|guardia\s+civil|g\.\s?civil|seguridad\s+ciudadana)\b"),
    ),
    (
        InfrastructureType.FIRE,
        _rx(r"\b(parque\s+de\s+bomberos?|bomberos?|estaci[óo]n\s+de\s+bomberos?)\b"),
        _rx(r"\b(extinci[óo]n\s+(de\s+)?incendios?|servicios?\s+contra\s+incendios?)\b"),
    ),
    (
        InfrastructureType.CULTURAL,
        _rx(r"\b(museo|biblioteca|centro\s+cultural|teatro|casa\s+de\s+la\s+cultura|auditorio)\b"),
        _rx(r"\b(cultural|patrimonio|exposici[óo]n)\b"),
    ),
    (
        InfrastructureType.RELIGIOUS,
        _rx(r"\b(iglesia|ermita|parroquia|convento|monasterio|catedral|bas[íi]lica|capilla)\b"),
        _rx(r"\b(religios[oa]|culto|templo|sacr[oa])\b"),
    ),
    (
        InfrastructureType.SPORTS,
        _rx(r"\b(polideportivo|pabell[óo]n\s+deportivo|campo\s+de\s+f[úu]tbol|piscina\s+municipal|complejo\s+deportivo)\b"),
        _rx(r"\b(deportivo|gimnasio|pista\s+deportiva)\b"),
    ),
    (
        InfrastructureType.MUNICIPAL,
        _rx(r"\b(ayuntamiento|casa\s+consistorial|oficina\s+municipal|centro\s+administrativo|casa\s+del\s+pueblo)\b"),
        _rx(r"\b(municipal|consistorio|servicios?\s+municipales?)\b"),
    ),
    (
        InfrastructureType.SOCIAL,
        _rx(r"\b(centro\s+social|residencia|centro\s+de\s+d[íi]a|hogar\s+del\s+pensionista|centro\s+de\s+mayores)\b"),
        _rx(r"\b(social|servicios?\s+sociales?|asistencia\s+social)\b"),
    ),
    (
        InfrastructureType.FUEL,
        _rx(r"\b(gasolinera|estaci[óo]n\s+de\s+servicio|[áa]rea\s+de\s+servicio)\b|\be\.s\.(?!\w)"),
        _rx(r"\b(combustible|carburante|repostaje)\b"),
    ),
    (
        InfrastructureType.EMERGENCY,
        _rx(r"\b(protecci[óo]n\s+civil|emergencias?|112|centro\s+de\s+coordinaci[óo]n|cecopal)\b"),
        _rx(r"\b(emergencia|urgencia|coordinaci[óo]n)\b"),
    ),
)


def classify(name: Optional[str], strict: bool = False) -> Classification:
    if not name or not name.strip():
        return Classification(InfrastructureType.GENERIC, ClassificationConfidence.NONE)
    text = " ".join(name.split()).lower()
    for infra_type, primary, secondary in PATTERNS:
        if primary.search(text):
            return Classification(infra_type, ClassificationConfidence.HIGH, primary.pattern)
        if not strict and secondary.search(text):
            return Classification(infra_type, ClassificationConfidence.MEDIUM, secondary.pattern)
    return Classification(InfrastructureType.GENERIC, ClassificationConfidence.NONE)


def classify_many(names: Iterable[Optional[str]], strict: bool = False) -> List[Classification]:
    return [classify(n, strict=strict) for n in names]


def analyze_dataset(names: Iterable[Optional[str]]) -> dict:
    """
    Counts by type and by confidence, plus the share of names a typed registry can serve.
    """
    results = classify_many(names)
    total = len(results)
    by_type = Counter(r.type.value for r in results)
    by_confidence = Counter(r.confidence.value for r in results)
    specialized = sum(1 for r in results if r.type in SPECIALIZED_TYPES)
    return {
        "total": total,
        "by_type": dict(by_type),
        "by_confidence": dict(by_confidence),
        "specialized_coverage": round(100 * specialized / total, 1) if total else 0.0,
    }
