"""
Fast cache tier: an in-process ordered map with TTL and an estimated-size cap.

Entries are kept in write order, so the oldest are at the front. Size is the
length of each entry's JSON form; when a write would exceed the cap, the
oldest EVICT_BATCH entries are dropped until it fits.
"""
import json
import logging
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from ..types import CacheEntry

LOG = logging.getLogger(__name__)

EVICT_BATCH = 10


def entry_size(entry: CacheEntry) -> int:
    return len(json.dumps(entry.to_dict(), ensure_ascii=False))


class MemoryTier:
    def __init__(self, max_size_bytes: int, clock: Callable[[], float] = time.time):
        self.max_size_bytes = max_size_bytes
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._sizes: Dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_size(self) -> int:
        return sum(self._sizes.values())

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() > entry.expires_at

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._sizes.pop(key, None)

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._expired(entry):
            self._drop(key)
            self.misses += 1
            return None
        entry = replace(entry, hits=entry.hits + 1)
        self._entries[key] = entry
        self.hits += 1
        return entry

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry)

    def set(self, entry: CacheEntry) -> bool:
        size = entry_size(entry)
        if size > self.max_size_bytes:
            LOG.warning(f"⚠️ Cache entry {entry.key!r} ({size} bytes) exceeds the fast tier capacity")
            return False
        self._drop(entry.key)
        while self._entries and self.total_size + size > self.max_size_bytes:
            self._evict_oldest(EVICT_BATCH)
        self._entries[entry.key] = entry
        self._sizes[entry.key] = size
        return True

    def _evict_oldest(self, count: int) -> int:
        victims = list(self._entries)[:count]
        for key in victims:
            self._drop(key)
        LOG.debug(f"Fast tier evicted {len(victims)} entries")
        return len(victims)

    def delete(self, key: str) -> bool:
        if key not in self._entries:
            return False
        self._drop(key)
        return True

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop keys containing pattern (every key when pattern is None)."""
        if pattern is None:
            return self.clear()
        victims = [k for k in self._entries if pattern in k]
        for key in victims:
            self._drop(key)
        return len(victims)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._sizes.clear()
        return count

    def clean_expired(self) -> int:
        victims = [k for k, e in self._entries.items() if self._expired(e)]
        for key in victims:
            self._drop(key)
        return len(victims)

    def entries(self) -> List[CacheEntry]:
        return list(self._entries.values())

    def stats(self) -> dict:
        requests = self.hits + self.misses
        return {
            "total_entries": len(self._entries),
            "total_size": self.total_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / requests if requests else 0.0,
        }
