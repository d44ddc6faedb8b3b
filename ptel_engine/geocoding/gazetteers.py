"""
gazetteers.py

Generic address gazetteers used by cascade levels L2-L5.

- L2 CartoCiudad (IGN, national): JSONP answer with WGS84 lat/lng.
- L3 CDAU (Callejero Digital de Andalucía Unificado): autocomplete, EPSG:25830.
- L4 CDAU again, once per generated name variation.
- L5 Nominatim (OpenStreetMap), last resort; the caller enforces 1 request/second.

Each function returns a GazetteerHit or None when the provider has no answer.
Transport, HTTP status and payload errors propagate so the cascade can count them.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..crs import WGS84_EPSG, convert_to_target
from ..exceptions import ProviderError
from ..types import GeocodingRequest
from .http import extract_jsonp, get_json, get_text

LOG = logging.getLogger(__name__)

CARTOCIUDAD_URL = "https://www.cartociudad.es/geocoder/api/geocoder/findJsonp"
CDAU_URL = "https://www.callejerodeandalucia.es/geocodersolr/autocompletarDireccion"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"

FACILITY_PREFIXES = ("centro de salud", "colegio", "instituto", "hospital", "consultorio", "casa cuartel")
_ARTICLE = re.compile(r"^(el|la|los|las)\s+", re.IGNORECASE)
_ABBREVIATIONS = (
    (re.compile(r"calle", re.IGNORECASE), "C/"),
    (re.compile(r"avenida", re.IGNORECASE), "Avda."),
    (re.compile(r"plaza", re.IGNORECASE), "Pza."),
)


@dataclass(frozen=True)
class GazetteerHit:
    x: float
    y: float
    provider: str
    match_type: str
    query: str


def build_address_query(request: GeocodingRequest) -> str:
    """'name, [address,] municipality, [province,] Andalucía, España'"""
    parts = [request.name]
    if request.address:
        parts.append(request.address)
    parts.append(request.municipality)
    if request.province:
        parts.append(request.province)
    parts.extend(["Andalucía", "España"])
    return ", ".join(parts)


def generate_name_variations(name: str) -> List[str]:
    """
    The name itself, then without a leading article, without a known facility
    prefix, and with street-type words abbreviated. Duplicates removed, order kept.
    """
    variations = [name, _ARTICLE.sub("", name)]
    lowered = name.lower()
    for prefix in FACILITY_PREFIXES:
        if lowered.startswith(prefix):
            variations.append(name[len(prefix):].strip())
    for regex, short in _ABBREVIATIONS:
        variations.append(regex.sub(short, name))
    return [v for v in dict.fromkeys(variations) if v]


def _float_or_none(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _wgs84_hit(lat, lon, provider: str, match_type: str, query: str) -> Optional[GazetteerHit]:
    lat, lon = _float_or_none(lat), _float_or_none(lon)
    if lat is None or lon is None:
        return None
    x, y = convert_to_target(lon, lat, WGS84_EPSG)
    return GazetteerHit(x, y, provider, match_type, query)


def _first_cdau_hit(data, provider: str, match_type: str, query: str) -> Optional[GazetteerHit]:
    if not isinstance(data, list):
        raise ProviderError(provider, "expected a list of suggestions")
    if not data or not isinstance(data[0], dict):
        return None
    x = _float_or_none(data[0].get("coordX"))
    y = _float_or_none(data[0].get("coordY"))
    if x is None or y is None:
        return None
    return GazetteerHit(x, y, provider, match_type, query)


async def query_cartociudad(client: httpx.AsyncClient, request: GeocodingRequest) -> Optional[GazetteerHit]:
    query = build_address_query(request)
    text = await get_text(client, CARTOCIUDAD_URL, params={"q": query})
    data = extract_jsonp(text, provider="CartoCiudad_IGN")
    if not isinstance(data, dict) or not data.get("lat") or not data.get("lng"):
        return None
    match_type = "exact" if data.get("type") == "portal" else "partial"
    return _wgs84_hit(data["lat"], data["lng"], "CartoCiudad_IGN", match_type, query)


async def query_cdau(client: httpx.AsyncClient, request: GeocodingRequest) -> Optional[GazetteerHit]:
    query = f"{request.name}, {request.municipality}, Andalucía"
    data = await get_json(client, CDAU_URL, params={"q": query}, provider="CDAU_Andalucia")
    return _first_cdau_hit(data, "CDAU_Andalucia", "exact", query)


async def query_cdau_fuzzy(client: httpx.AsyncClient, request: GeocodingRequest) -> Optional[GazetteerHit]:
    for variation in generate_name_variations(request.name):
        query = f"{variation}, {request.municipality}"
        data = await get_json(client, CDAU_URL, params={"q": query}, provider="CDAU_Fuzzy")
        hit = _first_cdau_hit(data, "CDAU_Fuzzy", "fuzzy", request.name)
        if hit is not None:
            LOG.debug(f"CDAU fuzzy hit for {request.name!r} via {variation!r}")
            return hit
    return None


async def query_nominatim(client: httpx.AsyncClient, request: GeocodingRequest) -> Optional[GazetteerHit]:
    query = build_address_query(request)
    params = {"q": query, "format": "json", "limit": "1", "countrycodes": "es"}
    data = await get_json(client, NOMINATIM_URL, params=params, provider="Nominatim_OSM")
    if not isinstance(data, list):
        raise ProviderError("Nominatim_OSM", "expected a list of places")
    if not data:
        return None
    if not isinstance(data[0], dict):
        raise ProviderError("Nominatim_OSM", f"place is not an object: {data[0]!r}")
    return _wgs84_hit(data[0].get("lat"), data[0].get("lon"), "Nominatim_OSM", "partial", query)
