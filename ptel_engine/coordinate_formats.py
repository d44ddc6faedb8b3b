"""
coordinate_formats.py

Parsers for geographic notations that show up in hand-made tables instead of
decimal degrees: sexagesimal (DMS) and GPS receiver output (NMEA 0183).

Key Features:
- DMS: 37°10'30"N, 37°10.5'N, 37.175°N, "37 10 30 N", "37 10.5 N".
  º is accepted for °, O (oeste) for W, comma decimals for dots.
- NMEA: ddmm.mmmm / dddmm.mmmm with hemisphere, integer ddmm form,
  and whole $GPGGA / $GPRMC / $GPGLL sentences (GN talker too).
- Southern and western hemispheres give negative values.
- Nothing raises; unparseable input returns None.
"""
import re
from typing import Optional, Tuple

_HEMISPHERE = re.compile(r"[NSEWO]", re.IGNORECASE)
_HEMISPHERE_CHUNK = re.compile(r"[^NSEWO]*[NSEWO]", re.IGNORECASE)

_DMS_FULL = re.compile(r"(-?\d+(?:\.\d+)?)\s*°\s*(\d+(?:\.\d+)?)\s*'\s*(\d+(?:\.\d+)?)\s*\"?")
_DM_DECIMAL = re.compile(r"(-?\d+(?:\.\d+)?)\s*°\s*(\d+(?:\.\d+)?)\s*'")
_D_DECIMAL = re.compile(r"(-?\d+(?:\.\d+)?)\s*°")
_DMS_SPACES = re.compile(r"(-?\d+)\s+(\d+)\s+(\d+(?:\.\d+)?)")
_DM_SPACES = re.compile(r"(-?\d+)\s+(\d+(?:\.\d+)?)")

_DMS_INDICATORS = (
    re.compile(r"[°º].*['′´]"),
    re.compile(r"\d+\s+\d+\s+\d+.*[NSEWO]", re.IGNORECASE),
    re.compile(r"[NSEWO]\s*\d+\s*[°º]", re.IGNORECASE),
    re.compile(r"\d+\s*[°º]\s*\d+.*[NSEWO]", re.IGNORECASE),
    re.compile(r"\d+(?:[.,]\d+)?\s*[°º]\s*[NSEWO]", re.IGNORECASE),
)

_NMEA_DECIMAL = re.compile(r"(\d+)\.(\d+)")
_NMEA_INTEGER = re.compile(r"\d{4,5}")
_NMEA_INDICATORS = (
    re.compile(r"^\$G[PN][A-Z]{3}"),
    re.compile(r"^\d{4,5}\.\d+\s*,?\s*[NSEWO]$"),
)
# talker suffix -> (lat, lat hemisphere, lon, lon hemisphere) field indexes
_NMEA_SENTENCE_FIELDS = {
    "GGA": (2, 3, 4, 5),
    "RMC": (3, 4, 5, 6),
    "GLL": (1, 2, 3, 4),
}


def _hemisphere_of(text: str) -> Optional[str]:
    found = _HEMISPHERE.findall(text)
    if not found:
        return None
    last = found[-1].upper()
    return "W" if last == "O" else last


def _signed(value: float, hemisphere: Optional[str]) -> float:
    return -abs(value) if hemisphere in ("S", "W") else value


def _clean_dms(text: str) -> str:
    text = text.replace("º", "°")
    text = re.sub(r"(\d),(\d)", r"\1.\2", text)
    text = re.sub(r"[‘’´`′]", "'", text)
    text = re.sub(r"[“”«»″]", '"', text)
    text = text.replace("''", '"')
    return re.sub(r"\s+", " ", text).strip()


def _parse_dms_parts(text: str) -> Tuple[Optional[float], Optional[str]]:
    cleaned = _clean_dms(text)
    hemisphere = _hemisphere_of(cleaned)
    body = _HEMISPHERE.sub("", cleaned).strip()

    degrees = minutes = seconds = None
    for regex, has_min, has_sec in (
        (_DMS_FULL, True, True),
        (_DM_DECIMAL, True, False),
        (_D_DECIMAL, False, False),
        (_DMS_SPACES, True, True),
        (_DM_SPACES, True, False),
    ):
        match = regex.fullmatch(body)
        if match:
            degrees = float(match.group(1))
            minutes = float(match.group(2)) if has_min else 0.0
            seconds = float(match.group(3)) if has_sec else 0.0
            break
    if degrees is None or minutes >= 60 or seconds >= 60:
        return None, hemisphere

    value = abs(degrees) + minutes / 60 + seconds / 3600
    if degrees < 0:
        value = -value
    return _signed(value, hemisphere), hemisphere


def parse_dms(text) -> Optional[float]:
    """
    Parse one sexagesimal coordinate into signed decimal degrees.

    >>> round(parse_dms('37°26\\'46.5"N'), 6)
    37.44625
    """
    if not isinstance(text, str) or not text.strip():
        return None
    value, _ = _parse_dms_parts(text)
    return value


def parse_dms_pair(text) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse "lat lon" in DMS. Hemisphere letters decide which is which; without
    them the pair must be comma/semicolon separated and is read as lat, lon.
    """
    if not isinstance(text, str) or not text.strip():
        return None, None

    chunks = _HEMISPHERE_CHUNK.findall(text)
    if len(chunks) >= 2:
        lat = lon = None
        for chunk in chunks[:2]:
            value, hemisphere = _parse_dms_parts(chunk)
            if value is None:
                continue
            if hemisphere in ("N", "S"):
                lat = value
            elif hemisphere in ("E", "W"):
                lon = value
        if lat is not None and lon is not None:
            return lat, lon

    # a comma followed by a digit is a decimal comma, not a separator
    parts = re.split(r"\s*;\s*|,(?!\d)", text.strip())
    if len(parts) == 2:
        first, first_hem = _parse_dms_parts(parts[0])
        second, second_hem = _parse_dms_parts(parts[1])
        if first is not None and second is not None:
            if first_hem in ("E", "W") or second_hem in ("N", "S"):
                return second, first
            return first, second
    return None, None


def is_dms_format(value) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    return any(p.search(value.strip()) for p in _DMS_INDICATORS)


def parse_nmea(text) -> Optional[float]:
    """
    Parse one NMEA coordinate ("3726.775N", "00345.204W", "3726N") into signed
    decimal degrees.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    s = text.strip().upper()
    s = re.sub(r"[\s,]+([NSEWO])$", r"\1", s).replace(",", ".")

    hemisphere = None
    if s and s[-1] in "NSEWO":
        hemisphere = "W" if s[-1] == "O" else s[-1]
        s = s[:-1].strip()

    match = _NMEA_DECIMAL.fullmatch(s)
    if match:
        whole, fraction = match.groups()
        is_lat = hemisphere in ("N", "S") or (hemisphere is None and len(whole) <= 4)
        if is_lat and len(whole) == 2:
            degrees, minutes = 0, float(f"{whole}.{fraction}")
        elif len(whole) >= 3:
            degrees, minutes = int(whole[:-2]), float(f"{whole[-2:]}.{fraction}")
        else:
            return None
    elif _NMEA_INTEGER.fullmatch(s):
        degrees, minutes = int(s[:-2]), float(s[-2:])
    else:
        return None

    if minutes >= 60:
        return None
    return _signed(degrees + minutes / 60, hemisphere)


def parse_nmea_sentence(sentence) -> Tuple[Optional[float], Optional[float]]:
    """
    (lat, lon) from a $GPGGA/$GPRMC/$GPGLL sentence (or their $GN forms).
    The checksum after '*' is ignored.
    """
    if not isinstance(sentence, str):
        return None, None
    s = sentence.strip().upper()
    if not (s.startswith("$GP") or s.startswith("$GN")):
        return None, None
    indexes = _NMEA_SENTENCE_FIELDS.get(s[3:6])
    if indexes is None:
        return None, None

    fields = s.split("*")[0].split(",")
    if len(fields) <= max(indexes):
        return None, None
    lat_i, lat_h, lon_i, lon_h = indexes
    lat = parse_nmea(fields[lat_i] + fields[lat_h])
    lon = parse_nmea(fields[lon_i] + fields[lon_h])
    if lat is None or lon is None:
        return None, None
    return lat, lon


def is_nmea_format(value) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    s = value.strip().upper()
    return any(p.search(s) for p in _NMEA_INDICATORS)
