"""
Environment-driven settings for the PTEL engine.

Values come from the process environment, optionally seeded from a .env file.
Components never read the environment themselves; they receive the dataclasses
built here through their constructors.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from .types import CascadeLevel

ALL_LEVELS: Tuple[CascadeLevel, ...] = tuple(CascadeLevel)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"⚠️ {name}={raw!r} is not a number; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_levels(name: str) -> Tuple[CascadeLevel, ...]:
    raw = os.getenv(name)
    if not raw:
        return ALL_LEVELS
    wanted = {part.strip().upper() for part in raw.split(",") if part.strip()}
    return tuple(level for level in ALL_LEVELS if level.value in wanted or level.name in wanted)


@dataclass(frozen=True)
class CascadeConfig:
    enabled_levels: Tuple[CascadeLevel, ...] = ALL_LEVELS
    max_retries: int = 2
    base_delay_s: float = 0.5
    timeout_s: float = 10.0
    breaker_threshold: int = 3
    breaker_reset_s: float = 60.0
    nominatim_delay_s: float = 1.0
    user_agent: str = "PTEL-Normalizer/1.0"


@dataclass(frozen=True)
class CacheConfig:
    db_url: str = "sqlite:///ptel_geocache.db"
    ttl_days: float = 90.0
    slow_max_size_mb: float = 100.0
    fast_max_size_mb: float = 5.0
    bulk_threshold: int = 1000
    sync_to_slow: bool = True


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    geo_max_distance_m: float = 20000.0
    cascade: CascadeConfig = field(default_factory=CascadeConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """
    Build Settings from PTEL_* environment variables (after loading .env).
    """
    load_dotenv(dotenv_path)
    cascade = CascadeConfig(
        enabled_levels=_env_levels("PTEL_CASCADE_LEVELS"),
        max_retries=_env_int("PTEL_CASCADE_MAX_RETRIES", 2),
        base_delay_s=_env_float("PTEL_CASCADE_BASE_DELAY_S", 0.5),
        timeout_s=_env_float("PTEL_CASCADE_TIMEOUT_S", 10.0),
        breaker_threshold=_env_int("PTEL_CASCADE_BREAKER_THRESHOLD", 3),
        breaker_reset_s=_env_float("PTEL_CASCADE_BREAKER_RESET_S", 60.0),
        nominatim_delay_s=_env_float("PTEL_NOMINATIM_DELAY_S", 1.0),
        user_agent=os.getenv("PTEL_USER_AGENT", "PTEL-Normalizer/1.0"),
    )
    cache = CacheConfig(
        db_url=os.getenv("PTEL_CACHE_DB_URL", "sqlite:///ptel_geocache.db"),
        ttl_days=_env_float("PTEL_CACHE_TTL_DAYS", 90.0),
        slow_max_size_mb=_env_float("PTEL_CACHE_MAX_SIZE_MB", 100.0),
        fast_max_size_mb=_env_float("PTEL_CACHE_FAST_MAX_SIZE_MB", 5.0),
        bulk_threshold=_env_int("PTEL_CACHE_BULK_THRESHOLD", 1000),
        sync_to_slow=_env_bool("PTEL_CACHE_SYNC_SLOW", True),
    )
    return Settings(
        log_level=os.getenv("PTEL_LOG_LEVEL", "INFO"),
        geo_max_distance_m=_env_float("PTEL_GEO_MAX_DISTANCE_M", 20000.0),
        cascade=cascade,
        cache=cache,
    )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.environ.get("PTEL_LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
