from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

RawValue = Union[str, int, float, None]


class CorrectionType(str, Enum):
    Y_TRUNCATED = "Y_TRUNCATED"
    XY_SWAPPED = "XY_SWAPPED"
    PLACEHOLDER_DETECTED = "PLACEHOLDER_DETECTED"
    ENCODING_FIXED = "ENCODING_FIXED"
    SEPARATOR_FIXED = "SEPARATOR_FIXED"
    THOUSANDS_REMOVED = "THOUSANDS_REMOVED"
    DECIMAL_FIXED = "DECIMAL_FIXED"
    WHITESPACE_CLEANED = "WHITESPACE_CLEANED"


class Priority(str, Enum):
    P0 = "P0"   # structural fix
    P1 = "P1"   # formatting fix


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Confidence(str, Enum):
    """
    Four ordered quality tiers. Compare with .rank, not with string order.
    """
    CRITICAL = "CRITICAL"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return ["CRITICAL", "LOW", "MEDIUM", "HIGH"].index(self.value)


class CascadeLevel(str, Enum):
    L0_CACHE = "L0_CACHE"
    L1_REGISTRY = "L1_WFS"
    L2_CARTOCIUDAD = "L2_CARTOCIUDAD"
    L3_CDAU = "L3_CDAU"
    L4_CDAU_FUZZY = "L4_CDAU_FUZZY"
    L5_NOMINATIM = "L5_NOMINATIM"


@dataclass
class CoordinateInput:
    """
    One raw coordinate pair as read from a table row.
    """
    x: RawValue
    y: RawValue
    municipality: Optional[str] = None
    province: Optional[str] = None


@dataclass(frozen=True)
class Correction:
    type: CorrectionType
    field: str                  # "x" | "y" | "both"
    from_value: str
    to_value: str
    pattern: str
    priority: Priority


@dataclass(frozen=True)
class Flag:
    type: str                   # e.g. OUT_OF_RANGE, SUSPICIOUS_VALUE, GEOCODING_NEEDED
    severity: Severity
    message: str


@dataclass(frozen=True)
class NormalizationResult:
    """
    Outcome of normalizing one coordinate pair. x/y are None when unrecoverable.
    """
    x: Optional[float]
    y: Optional[float]
    original: Dict[str, Any]
    corrections: tuple = ()
    flags: tuple = ()
    score: int = 0
    confidence: Confidence = Confidence.CRITICAL
    is_valid: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CoordinateData:
    """
    Enriched per-row record. Filled by the first pass (normalize + convert),
    then re-scored by the second pass once the batch's neighbor distances are known.
    """
    index: int
    original_x: RawValue
    original_y: RawValue
    normalized_x: Optional[float] = None
    normalized_y: Optional[float] = None
    utm_x: Optional[float] = None
    utm_y: Optional[float] = None
    lon: Optional[float] = None
    lat: Optional[float] = None
    score: int = 0
    confidence: Confidence = Confidence.CRITICAL
    legacy_confidence: str = "NULA"
    alerts: List[str] = field(default_factory=list)
    detected_system: Optional[str] = None
    detected_system_confidence: float = 0.0
    auto_fixed: bool = False
    fix_confidence: float = 0.0
    fix_reason: str = ""
    had_encoding_corruption: bool = False
    corrections: List[Correction] = field(default_factory=list)
    flags: List[Flag] = field(default_factory=list)
    nearest_distance: Optional[float] = None
    is_outlier: bool = False
    error: Optional[str] = None
    name: str = ""
    municipality: Optional[str] = None
    province: Optional[str] = None
    row: Dict[str, Any] = field(default_factory=dict)

    @property
    def converted(self) -> bool:
        return self.error is None and self.utm_x is not None and self.utm_y is not None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FileProcessingResult:
    name: str
    headers: List[str]
    x_column: str
    y_column: str
    detected_system: str
    detected_system_confidence: float
    coordinates: List[CoordinateData] = field(default_factory=list)
    row_count: int = 0
    average_score: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    rejected: int = 0
    original_bounds: Optional[Dict[str, float]] = None
    target_bounds: Optional[Dict[str, float]] = None
    geographic_report: Dict[str, Any] = field(default_factory=dict)
    truncation_pattern: Dict[str, Any] = field(default_factory=dict)

    def aggregate(self) -> dict:
        return {
            "average_score": self.average_score,
            "row_count": self.row_count,
            "high_confidence": self.high_confidence,
            "medium_confidence": self.medium_confidence,
            "low_confidence": self.low_confidence,
            "rejected": self.rejected,
            "original_bounds": self.original_bounds,
            "target_bounds": self.target_bounds,
        }

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GeocodingRequest:
    name: str
    municipality: str
    infrastructure_type: str = "GENERICO"
    province: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None


@dataclass
class GeocodedPoint:
    x: float
    y: float
    epsg: str = "EPSG:25830"


@dataclass
class GeocodingResult:
    success: bool
    source: CascadeLevel
    confidence: int = 0
    latency_ms: float = 0.0
    coordinates: Optional[GeocodedPoint] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProviderStatus:
    level: CascadeLevel
    available: bool = True
    consecutive_failures: int = 0
    last_failure: Optional[float] = None
    total_requests: int = 0
    successful_requests: int = 0


@dataclass
class CascadeStats:
    total_requests: int
    by_level: Dict[str, int]
    avg_latency_ms: float
    cache_hit_rate: float
    provider_status: List[ProviderStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CacheEntry:
    """
    A cached geocode. Timestamps are epoch seconds.
    """
    key: str
    x: float
    y: float
    epsg: str = "EPSG:25830"
    source: str = "unknown"
    confidence: int = 0
    timestamp: float = 0.0
    expires_at: float = 0.0
    hits: int = 0
    municipality: Optional[str] = None
    infrastructure_type: Optional[str] = None
    original_query: Optional[str] = None
    provider: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
