"""
registries.py

Typed registry lookups (cascade level L1): official open-data catalogues of
health centres, schools, police/fire stations and cultural sites in Andalusia.

Key Features:
- WFS GetFeature queries (GeoJSON, EPSG:25830) with a CQL municipality/province filter.
- CKAN datastore search for the schools directory.
- rapidfuzz token_sort_ratio to pick the best-named candidate.
- Layer/endpoint passed explicitly on every call; layers are queried in an
  order derived from keywords in the facility name.

This module never calls back into the cascade; the cascade depends on it.
HTTP and payload errors propagate to the caller, "no match" returns None.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from rapidfuzz import fuzz, process

from ..exceptions import ProviderError
from ..types import GeocodingRequest
from ..utils import fold_name
from .classifier import Classification, InfrastructureType, classify
from .http import get_json

LOG = logging.getLogger(__name__)

DERA_G12 = "https://www.ideandalucia.es/services/DERA_g12_servicios/wfs"
DERA_G09 = "https://www.ideandalucia.es/services/DERA_g09_cultura/wfs"
ISE_SECURITY = "https://www.ideandalucia.es/services/ISE_seguridad/wfs"
CKAN_DATASTORE = "https://www.juntadeandalucia.es/datosabiertos/portal/api/3/action/datastore_search"
EDUCATION_RESOURCE = "directorio-centros-docentes"

GOOD_ENOUGH = 70
FEATURE_BOUNDS = (100_000.0, 4_000_000.0, 800_000.0, 4_300_000.0)


@dataclass(frozen=True)
class WFSLayer:
    endpoint: str
    layer: str


@dataclass(frozen=True)
class RegistrySpec:
    name: str
    threshold: int
    default_layers: Tuple[WFSLayer, ...]
    # (name keywords, layer) checked in order; matching layers are queried first
    keyword_layers: Tuple[Tuple[Tuple[str, ...], WFSLayer], ...] = ()


@dataclass
class Feature:
    name: str
    x: float
    y: float
    municipality: str = ""
    province: str = ""
    address: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RegistryMatch:
    x: float
    y: float
    confidence: int
    matched_name: str
    source: str
    municipality: str = ""
    province: str = ""
    address: str = ""


HEALTH_CENTRES = WFSLayer(DERA_G12, "g12_01_CentroSalud")
HOSPITALS = WFSLayer(DERA_G12, "g12_02_Hospital")
CONSULTORIOS = WFSLayer(DERA_G12, "g12_03_Consultorio")
FIRE_STATIONS = WFSLayer(DERA_G12, "g12_03_parque_bomberos")
POLICE_STATIONS = WFSLayer(ISE_SECURITY, "ise_comisarias")
GUARDIA_CIVIL = WFSLayer(ISE_SECURITY, "ise_cuarteles_gc")
LOCAL_POLICE = WFSLayer(ISE_SECURITY, "ise_policia_local")
MUSEUMS = WFSLayer(DERA_G09, "g09_01_museo")
LIBRARIES = WFSLayer(DERA_G09, "g09_02_biblioteca")
THEATRES = WFSLayer(DERA_G09, "g09_03_teatro")
MONUMENTS = WFSLayer(DERA_G09, "g09_04_monumento")

HEALTH = RegistrySpec(
    name="health",
    threshold=30,
    default_layers=(HEALTH_CENTRES,),
    keyword_layers=(
        (("hospital", "clinica"), HOSPITALS),
        (("consultorio", "ambulatorio"), CONSULTORIOS),
    ),
)
SECURITY = RegistrySpec(
    name="security",
    threshold=35,
    default_layers=(POLICE_STATIONS, GUARDIA_CIVIL, FIRE_STATIONS),
    keyword_layers=(
        (("comisaria", "policia nacional"), POLICE_STATIONS),
        (("guardia civil", "cuartel"), GUARDIA_CIVIL),
        (("bombero", "parque", "extincion"), FIRE_STATIONS),
        (("policia local", "municipal"), LOCAL_POLICE),
    ),
)
CULTURAL = RegistrySpec(
    name="cultural",
    threshold=35,
    default_layers=(MUSEUMS, LIBRARIES, MONUMENTS),
    keyword_layers=(
        (("museo",), MUSEUMS),
        (("biblioteca",), LIBRARIES),
        (("teatro", "auditorio"), THEATRES),
        (("castillo", "monumento", "iglesia", "ermita"), MONUMENTS),
    ),
)
EDUCATION_THRESHOLD = 30

_ACRONYMS = (
    (re.compile(r"c\.\s*e\.\s*i\.\s*p\.?", re.IGNORECASE), "ceip"),
    (re.compile(r"i\.\s*e\.\s*s\.?", re.IGNORECASE), "ies"),
    (re.compile(r"c\.\s*p\.\s*r\.?", re.IGNORECASE), "cpr"),
    (re.compile(r"\be\.\s*i\.", re.IGNORECASE), "ei"),
)


def normalize_facility_name(name: str) -> str:
    """Lowercase, accent-free, acronym-collapsed form used for similarity scoring."""
    text = name or ""
    for regex, replacement in _ACRONYMS:
        text = regex.sub(replacement, text)
    text = re.sub(r"[^\w\s]", " ", fold_name(text))
    return " ".join(text.split())


def _escape_cql(text: str) -> str:
    return text.replace("'", "''")


def build_cql_filter(municipality: Optional[str] = None, province: Optional[str] = None) -> str:
    filters = []
    if municipality:
        filters.append(f"MUNICIPIO ILIKE '%{_escape_cql(municipality)}%'")
    if province:
        filters.append(f"PROVINCIA ILIKE '%{_escape_cql(province)}%'")
    return " AND ".join(filters)


def build_wfs_params(layer: WFSLayer, municipality: Optional[str] = None,
                     province: Optional[str] = None, max_features: int = 100) -> Dict[str, str]:
    params = {
        "service": "WFS",
        "version": "2.0.0",
        "request": "GetFeature",
        "typeName": layer.layer,
        "outputFormat": "application/json",
        "srsName": "EPSG:25830",
        "maxFeatures": str(max_features),
    }
    cql = build_cql_filter(municipality, province)
    if cql:
        params["CQL_FILTER"] = cql
    return params


def _in_bounds(x: float, y: float) -> bool:
    min_x, min_y, max_x, max_y = FEATURE_BOUNDS
    return min_x <= x <= max_x and min_y <= y <= max_y


def _to_float(value) -> Optional[float]:
    try:
        number = float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_geojson_features(data: Any, provider: str = "") -> List[Feature]:
    """
    Point features of a GeoJSON FeatureCollection, skipping anything outside Andalusia.
    """
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise ProviderError(provider, "expected a GeoJSON FeatureCollection")
    features = []
    raw_features = data.get("features") or []
    if not isinstance(raw_features, list):
        raise ProviderError(provider, "features is not a list")
    for raw in raw_features:
        if not isinstance(raw, dict):
            raise ProviderError(provider, f"feature is not an object: {raw!r}")
        geometry = raw.get("geometry") or {}
        if not isinstance(geometry, dict):
            continue
        coords = geometry.get("coordinates")
        if geometry.get("type") != "Point" or not isinstance(coords, list) or len(coords) < 2:
            continue
        x, y = _to_float(coords[0]), _to_float(coords[1])
        if x is None or y is None or not _in_bounds(x, y):
            continue
        props = raw.get("properties") or {}
        if not isinstance(props, dict):
            props = {}
        features.append(Feature(
            name=props.get("DENOMINACION") or props.get("NOMBRE") or "",
            x=x,
            y=y,
            municipality=props.get("MUNICIPIO") or "",
            province=props.get("PROVINCIA") or "",
            address=props.get("DIRECCION") or props.get("DOMICILIO") or "",
            properties=props,
        ))
    return features


def parse_education_records(records: Sequence[Dict[str, Any]], provider: str = "") -> List[Feature]:
    features = []
    for record in records:
        if not isinstance(record, dict):
            raise ProviderError(provider, f"record is not an object: {record!r}")
        x = _to_float(record.get("coordenada_x_geo") or record.get("x"))
        y = _to_float(record.get("coordenada_y_geo") or record.get("y"))
        if x is None or y is None or not _in_bounds(x, y):
            continue
        features.append(Feature(
            name=record.get("denominacion") or record.get("nombre") or "",
            x=x,
            y=y,
            municipality=record.get("municipio") or record.get("localidad") or "",
            province=record.get("provincia") or "",
            address=record.get("domicilio") or record.get("direccion") or "",
            properties=dict(record),
        ))
    return features


def best_match(name: str, features: Sequence[Feature], threshold: int) -> Optional[Tuple[Feature, int]]:
    """
    (feature, similarity 0-100) of the best-named candidate, or None below threshold.
    """
    if not features or not name:
        return None
    choices = {i: normalize_facility_name(f.name) for i, f in enumerate(features)}
    found = process.extractOne(normalize_facility_name(name), choices, scorer=fuzz.token_sort_ratio)
    if not found:
        return None
    _, score, index = found
    if score < threshold:
        return None
    return features[index], int(round(score))


def _to_match(feature: Feature, score: int, source: str) -> RegistryMatch:
    return RegistryMatch(
        x=feature.x,
        y=feature.y,
        confidence=score,
        matched_name=feature.name,
        source=source,
        municipality=feature.municipality,
        province=feature.province,
        address=feature.address,
    )


def layer_priority(spec: RegistrySpec, name: str) -> List[WFSLayer]:
    """
    Layers whose keywords appear in the name come first, then the defaults.
    Security and cultural names with a keyword hit only query those layers.
    """
    folded = fold_name(name)
    hinted = [layer for keywords, layer in spec.keyword_layers if any(k in folded for k in keywords)]
    if spec.name == "health":
        ordered = list(spec.default_layers) + hinted
    else:
        ordered = hinted or list(spec.default_layers)
    seen, unique = set(), []
    for layer in ordered:
        if layer not in seen:
            seen.add(layer)
            unique.append(layer)
    return unique


async def query_wfs_layer(client: httpx.AsyncClient, layer: WFSLayer, name: str,
                          municipality: Optional[str], province: Optional[str],
                          threshold: int) -> Optional[RegistryMatch]:
    params = build_wfs_params(layer, municipality, province)
    data = await get_json(client, layer.endpoint, params=params, provider=layer.layer)
    features = parse_geojson_features(data, provider=layer.layer)
    found = best_match(name, features, threshold)
    if found is None:
        return None
    return _to_match(found[0], found[1], layer.layer)


async def geocode_wfs_registry(client: httpx.AsyncClient, spec: RegistrySpec, name: str,
                               municipality: Optional[str] = None,
                               province: Optional[str] = None) -> Optional[RegistryMatch]:
    """
    Query the registry's layers in priority order. A match of GOOD_ENOUGH or better
    stops the probing; otherwise the best accepted match seen is returned.
    """
    best: Optional[RegistryMatch] = None
    for layer in layer_priority(spec, name):
        match = await query_wfs_layer(client, layer, name, municipality, province, spec.threshold)
        if match is None:
            continue
        if match.confidence >= GOOD_ENOUGH:
            return match
        if best is None or match.confidence > best.confidence:
            best = match
    return best


async def geocode_education(client: httpx.AsyncClient, name: str, municipality: Optional[str] = None,
                            province: Optional[str] = None) -> Optional[RegistryMatch]:
    params = {"resource_id": EDUCATION_RESOURCE, "limit": "500"}
    if municipality:
        params["q"] = municipality
    data = await get_json(client, CKAN_DATASTORE, params=params, provider=EDUCATION_RESOURCE)
    if not isinstance(data, dict) or not data.get("success"):
        raise ProviderError(EDUCATION_RESOURCE, "datastore_search did not succeed")
    result = data.get("result") or {}
    records = (result.get("records") or []) if isinstance(result, dict) else None
    if not isinstance(records, list):
        raise ProviderError(EDUCATION_RESOURCE, "expected a list of records")

    features = parse_education_records(records, provider=EDUCATION_RESOURCE)
    if municipality:
        wanted = fold_name(municipality)
        features = [f for f in features if wanted in fold_name(f.municipality)]
    if province:
        wanted = fold_name(province)
        features = [f for f in features if not f.province or wanted in fold_name(f.province)]

    found = best_match(name, features, EDUCATION_THRESHOLD)
    if found is None:
        return None
    return _to_match(found[0], found[1], EDUCATION_RESOURCE)


_TYPE_ALIASES = {t.value: t for t in InfrastructureType}
_TYPE_ALIASES.update({t.name: t for t in InfrastructureType})


def resolve_type(request: GeocodingRequest, classification: Optional[Classification] = None) -> InfrastructureType:
    """
    Explicit request type when it is a known, non-generic type; otherwise classify the name.
    """
    explicit = _TYPE_ALIASES.get((request.infrastructure_type or "").strip().upper())
    if explicit is not None and explicit != InfrastructureType.GENERIC:
        return explicit
    if classification is None:
        classification = classify(request.name)
    return classification.type


async def lookup_registry(request: GeocodingRequest, client: httpx.AsyncClient,
                          classification: Optional[Classification] = None) -> Optional[RegistryMatch]:
    """
    Dispatch to the registry that covers the request's infrastructure type.
    Types without a registry return None without any network call.
    """
    infra_type = resolve_type(request, classification)
    if infra_type == InfrastructureType.HEALTH:
        return await geocode_wfs_registry(client, HEALTH, request.name, request.municipality, request.province)
    if infra_type == InfrastructureType.EDUCATION:
        return await geocode_education(client, request.name, request.municipality, request.province)
    if infra_type in (InfrastructureType.POLICE, InfrastructureType.FIRE):
        return await geocode_wfs_registry(client, SECURITY, request.name, request.municipality, request.province)
    if infra_type == InfrastructureType.CULTURAL:
        return await geocode_wfs_registry(client, CULTURAL, request.name, request.municipality, request.province)
    LOG.debug(f"No typed registry for {infra_type.value}: {request.name!r}")
    return None
