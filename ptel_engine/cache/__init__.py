"""Two-tier geocode cache: in-memory fast tier over a SQLAlchemy slow tier."""
from .manager import CacheManager, generate_cache_key
from .memory_tier import MemoryTier
from .sql_tier import GeocodeCacheRow, SqlTier

__all__ = ["CacheManager", "generate_cache_key", "MemoryTier", "SqlTier", "GeocodeCacheRow"]
