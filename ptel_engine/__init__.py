"""
PTEL Coordinate Engine (flat layout)

Normalizes, validates and geocodes the infrastructure coordinates of
Andalusian municipal emergency plans into EPSG:25830.

Public API:
- coordinate_normalizer.normalize_coordinate / normalize_batch
- file_processor.process_rows
- scoring.calculate_score
- geo_validator.validate_geographic_coherence
- geocoding.CascadeOrchestrator
- cache.CacheManager
- config.load_settings
"""

from .cache import CacheManager, generate_cache_key
from .config import CacheConfig, CascadeConfig, Settings, configure_logging, load_settings
from .coordinate_normalizer import normalize_batch, normalize_coordinate
from .file_processor import process_rows
from .geo_validator import validate_geographic_coherence
from .geocoding import CascadeOrchestrator
from .scoring import calculate_score
from .types import (
    CoordinateData,
    CoordinateInput,
    FileProcessingResult,
    GeocodingRequest,
    GeocodingResult,
    NormalizationResult,
)

__all__ = [
    "CacheManager",
    "generate_cache_key",
    "CacheConfig",
    "CascadeConfig",
    "Settings",
    "configure_logging",
    "load_settings",
    "normalize_batch",
    "normalize_coordinate",
    "process_rows",
    "validate_geographic_coherence",
    "CascadeOrchestrator",
    "calculate_score",
    "CoordinateData",
    "CoordinateInput",
    "FileProcessingResult",
    "GeocodingRequest",
    "GeocodingResult",
    "NormalizationResult",
]
