"""
manager.py

Two-tier geocode cache.

Key Features:
- Reads: fast tier, then slow tier; slow hits are promoted into the fast tier.
- Writes: always to the fast tier; mirrored to the slow tier when sync_to_slow
  is on or the caller forces it.
- Bulk loads at or above bulk_threshold go straight to the slow tier.
- Every entry expires after ttl_days; expired reads are misses and evict the entry.
- If the slow tier cannot be opened, the manager runs fast-tier only and says so once.

Slow-tier calls are blocking SQLAlchemy work and run in a worker thread.
"""
import asyncio
import logging
import re
import time
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import CacheConfig
from ..types import CacheEntry
from ..utils import strip_diacritics
from .memory_tier import MemoryTier
from .sql_tier import SqlTier

LOG = logging.getLogger(__name__)

DAY_S = 24 * 60 * 60
MB = 1024 * 1024


def _key_part(text: str) -> str:
    return re.sub(r"\s+", "_", strip_diacritics(text.lower()))


def generate_cache_key(infrastructure_type: str, name: str, municipality: Optional[str] = None) -> str:
    """
    'sanitario::centro_de_salud_san_anton::almeria'. The name part is cut to 50 characters.
    """
    parts = [infrastructure_type.lower(), _key_part(name)[:50]]
    if municipality:
        parts.append(_key_part(municipality))
    return "::".join(parts)


class CacheManager:
    def __init__(self, config: Optional[CacheConfig] = None, clock: Callable[[], float] = time.time,
                 fast: Optional[MemoryTier] = None, slow: Optional[SqlTier] = None, use_slow: bool = True):
        self.config = config or CacheConfig()
        self._clock = clock
        self.ttl_s = self.config.ttl_days * DAY_S
        self.fast = fast or MemoryTier(int(self.config.fast_max_size_mb * MB), clock=clock)
        self.slow = slow
        if self.slow is None and use_slow:
            try:
                self.slow = SqlTier(self.config.db_url, int(self.config.slow_max_size_mb * MB), clock=clock)
            except SQLAlchemyError as e:
                LOG.warning(f"⚠️ Slow cache tier unavailable ({e}); using the in-memory tier only")
                self.slow = None

    @property
    def slow_available(self) -> bool:
        return self.slow is not None

    async def _slow(self, method: str, *args, **kwargs):
        return await asyncio.to_thread(getattr(self.slow, method), *args, **kwargs)

    def _prepare(self, entry: CacheEntry) -> CacheEntry:
        """Fill in a missing key and stamp write time and expiry."""
        key = entry.key or generate_cache_key(
            entry.infrastructure_type or "unknown",
            entry.original_query or "unknown",
            entry.municipality,
        )
        now = self._clock()
        return replace(entry, key=key, timestamp=now, expires_at=now + self.ttl_s)

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self.fast.get(key)
        if entry is not None:
            return entry
        if not self.slow_available:
            return None
        entry = await self._slow("get", key)
        if entry is not None:
            self.fast.set(entry)
        return entry

    async def has(self, key: str) -> bool:
        if self.fast.has(key):
            return True
        if self.slow_available:
            return await self._slow("has", key)
        return False

    async def set(self, entry: CacheEntry, force_slow: bool = False) -> bool:
        entry = self._prepare(entry)
        stored = self.fast.set(entry)
        if self.slow_available and (self.config.sync_to_slow or force_slow):
            await self._slow("set", entry)
        return stored

    async def set_many(self, entries: Iterable[CacheEntry]) -> int:
        entries = list(entries)
        bulk = self.slow_available and len(entries) >= self.config.bulk_threshold
        saved = 0
        for entry in entries:
            if bulk:
                saved += bool(await self._slow("set", self._prepare(entry)))
            else:
                saved += bool(await self.set(entry))
        if bulk:
            LOG.info(f"📄 Bulk-loaded {saved}/{len(entries)} entries into the slow cache tier")
        return saved

    async def delete(self, key: str) -> bool:
        deleted = self.fast.delete(key)
        if self.slow_available:
            deleted = await self._slow("delete", key) or deleted
        return deleted

    async def invalidate(self, pattern: Optional[str] = None, municipality: Optional[str] = None,
                         infrastructure_type: Optional[str] = None, source: Optional[str] = None) -> dict:
        """
        The fast tier only filters by key pattern; the slow tier applies every filter.
        """
        filtered = any(v is not None for v in (municipality, infrastructure_type, source))
        if filtered:
            fast_count = self._invalidate_fast(pattern, municipality, infrastructure_type, source)
        else:
            fast_count = self.fast.invalidate(pattern)
        slow_count = 0
        if self.slow_available:
            slow_count = await self._slow("invalidate", pattern, municipality, infrastructure_type, source)
        return {"fast": fast_count, "slow": slow_count}

    def _invalidate_fast(self, pattern, municipality, infrastructure_type, source) -> int:
        count = 0
        for entry in self.fast.entries():
            if pattern is not None and pattern not in entry.key:
                continue
            if municipality is not None and entry.municipality != municipality:
                continue
            if infrastructure_type is not None and entry.infrastructure_type != infrastructure_type:
                continue
            if source is not None and entry.source != source:
                continue
            count += self.fast.delete(entry.key)
        return count

    async def clear(self) -> dict:
        fast_count = self.fast.clear()
        slow_count = await self._slow("clear") if self.slow_available else 0
        return {"fast": fast_count, "slow": slow_count}

    async def clean_expired(self) -> dict:
        fast_count = self.fast.clean_expired()
        slow_count = await self._slow("clean_expired") if self.slow_available else 0
        return {"fast": fast_count, "slow": slow_count}

    async def get_by_municipality(self, municipality: str) -> List[CacheEntry]:
        if not self.slow_available:
            return []
        return await self._slow("by_municipality", municipality)

    async def get_by_infrastructure_type(self, infrastructure_type: str) -> List[CacheEntry]:
        if not self.slow_available:
            return []
        return await self._slow("by_infrastructure_type", infrastructure_type)

    async def export(self) -> dict:
        slow_entries = await self._slow("export") if self.slow_available else []
        return {"fast": self.fast.entries(), "slow": slow_entries}

    async def import_entries(self, entries: Iterable[CacheEntry]) -> int:
        """Restore a backup into the slow tier (fast tier when there is none). Expired entries are skipped."""
        entries = list(entries)
        if self.slow_available:
            return await self._slow("import_entries", entries)
        now = self._clock()
        imported = 0
        for entry in entries:
            if now > entry.expires_at or self.fast.has(entry.key):
                continue
            imported += self.fast.set(entry)
        return imported

    async def get_stats(self) -> dict:
        fast_stats = self.fast.stats()
        slow_stats = await self._slow("stats") if self.slow_available else None
        hits = fast_stats["hits"] + (slow_stats["hits"] if slow_stats else 0)
        misses = fast_stats["misses"] + (slow_stats["misses"] if slow_stats else 0)
        return {
            "fast": fast_stats,
            "slow": slow_stats,
            "combined": {
                "total_entries": fast_stats["total_entries"] + (slow_stats["total_entries"] if slow_stats else 0),
                "total_size": fast_stats["total_size"] + (slow_stats["total_size"] if slow_stats else 0),
                "hit_rate": hits / (hits + misses) if hits + misses else 0.0,
            },
        }
