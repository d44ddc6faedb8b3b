# sql_tier.py - slow, persistent geocode cache tier backed by SQLAlchemy

import json
import logging
import math
import time
from typing import Callable, Iterable, List, Optional

from sqlalchemy import Column, Float, Integer, String, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..types import CacheEntry
from ..utils import log_error_and_continue

LOG = logging.getLogger(__name__)

Base = declarative_base()


class GeocodeCacheRow(Base):
    """
    One cached geocode. size_bytes is the length of the entry's JSON form.
    """
    __tablename__ = "geocode_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False, unique=True, index=True)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    epsg = Column(String, default="EPSG:25830")
    source = Column(String, index=True)
    confidence = Column(Integer, default=0)
    timestamp = Column(Float, nullable=False, index=True)
    expires_at = Column(Float, nullable=False, index=True)
    hits = Column(Integer, default=0)
    municipality = Column(String, nullable=True, index=True)
    infrastructure_type = Column(String, nullable=True, index=True)
    original_query = Column(String, nullable=True)
    provider = Column(String, nullable=True)
    size_bytes = Column(Integer, default=0)

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            key=self.key,
            x=self.x,
            y=self.y,
            epsg=self.epsg,
            source=self.source,
            confidence=self.confidence,
            timestamp=self.timestamp,
            expires_at=self.expires_at,
            hits=self.hits,
            municipality=self.municipality,
            infrastructure_type=self.infrastructure_type,
            original_query=self.original_query,
            provider=self.provider,
        )


def _row_from_entry(entry: CacheEntry) -> GeocodeCacheRow:
    return GeocodeCacheRow(
        key=entry.key,
        x=entry.x,
        y=entry.y,
        epsg=entry.epsg,
        source=entry.source,
        confidence=entry.confidence,
        timestamp=entry.timestamp,
        expires_at=entry.expires_at,
        hits=entry.hits,
        municipality=entry.municipality,
        infrastructure_type=entry.infrastructure_type,
        original_query=entry.original_query,
        provider=entry.provider,
        size_bytes=len(json.dumps(entry.to_dict(), ensure_ascii=False)),
    )


def build_engine(db_url: str):
    """In-memory SQLite shares one connection so every thread sees the same tables."""
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(db_url)


class SqlTier:
    """
    Blocking store; CacheManager calls it from a worker thread.
    Construction raises SQLAlchemyError when the database is unreachable.
    """

    def __init__(self, db_url: str, max_size_bytes: int, clock: Callable[[], float] = time.time):
        self.max_size_bytes = max_size_bytes
        self._clock = clock
        self.engine = build_engine(db_url)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        session = self.SessionLocal()
        try:
            row = session.query(GeocodeCacheRow).filter_by(key=key).first()
            if row is None:
                self.misses += 1
                return None
            if self._clock() > row.expires_at:
                session.delete(row)
                session.commit()
                self.misses += 1
                return None
            row.hits = (row.hits or 0) + 1
            session.commit()
            self.hits += 1
            return row.to_entry()
        except SQLAlchemyError as e:
            session.rollback()
            log_error_and_continue(f"Slow cache read failed for {key!r}", e)
            self.misses += 1
            return None
        finally:
            session.close()

    def has(self, key: str) -> bool:
        session = self.SessionLocal()
        try:
            count = (session.query(func.count(GeocodeCacheRow.id))
                     .filter(GeocodeCacheRow.key == key, GeocodeCacheRow.expires_at >= self._clock())
                     .scalar())
            return bool(count)
        except SQLAlchemyError as e:
            log_error_and_continue(f"Slow cache lookup failed for {key!r}", e)
            return False
        finally:
            session.close()

    def _evict_for(self, session, incoming_size: int) -> int:
        """Drop the oldest tenth of the table at a time until incoming_size fits."""
        evicted = 0
        while True:
            total = session.query(func.coalesce(func.sum(GeocodeCacheRow.size_bytes), 0)).scalar()
            count = session.query(func.count(GeocodeCacheRow.id)).scalar()
            if not count or total + incoming_size <= self.max_size_bytes:
                return evicted
            batch = math.ceil(count / 10)
            oldest = (session.query(GeocodeCacheRow.id)
                      .order_by(GeocodeCacheRow.timestamp.asc())
                      .limit(batch)
                      .all())
            ids = [row_id for (row_id,) in oldest]
            session.query(GeocodeCacheRow).filter(GeocodeCacheRow.id.in_(ids)).delete(synchronize_session=False)
            session.flush()
            evicted += len(ids)

    def set(self, entry: CacheEntry) -> bool:
        session = self.SessionLocal()
        try:
            session.query(GeocodeCacheRow).filter_by(key=entry.key).delete(synchronize_session=False)
            row = _row_from_entry(entry)
            evicted = self._evict_for(session, row.size_bytes)
            if evicted:
                LOG.info(f"Slow cache evicted {evicted} oldest entries to stay under {self.max_size_bytes} bytes")
            session.add(row)
            session.commit()
            return True
        except SQLAlchemyError as e:
            session.rollback()
            log_error_and_continue(f"Slow cache write failed for {entry.key!r}", e)
            return False
        finally:
            session.close()

    def delete(self, key: str) -> bool:
        session = self.SessionLocal()
        try:
            deleted = session.query(GeocodeCacheRow).filter_by(key=key).delete(synchronize_session=False)
            session.commit()
            return bool(deleted)
        except SQLAlchemyError as e:
            session.rollback()
            log_error_and_continue(f"Slow cache delete failed for {key!r}", e)
            return False
        finally:
            session.close()

    def invalidate(self, pattern: Optional[str] = None, municipality: Optional[str] = None,
                   infrastructure_type: Optional[str] = None, source: Optional[str] = None) -> int:
        """
        Delete entries matching every given filter; no filter clears the table.
        pattern is a substring of the key.
        """
        session = self.SessionLocal()
        try:
            query = session.query(GeocodeCacheRow)
            if municipality is not None:
                query = query.filter(GeocodeCacheRow.municipality == municipality)
            if infrastructure_type is not None:
                query = query.filter(GeocodeCacheRow.infrastructure_type == infrastructure_type)
            if source is not None:
                query = query.filter(GeocodeCacheRow.source == source)
            if pattern is not None:
                query = query.filter(GeocodeCacheRow.key.contains(pattern, autoescape=True))
            deleted = query.delete(synchronize_session=False)
            session.commit()
            return deleted
        except SQLAlchemyError as e:
            session.rollback()
            log_error_and_continue("Slow cache invalidation failed", e)
            return 0
        finally:
            session.close()

    def clear(self) -> int:
        return self.invalidate()

    def clean_expired(self) -> int:
        session = self.SessionLocal()
        try:
            deleted = (session.query(GeocodeCacheRow)
                       .filter(GeocodeCacheRow.expires_at < self._clock())
                       .delete(synchronize_session=False))
            session.commit()
            return deleted
        except SQLAlchemyError as e:
            session.rollback()
            log_error_and_continue("Slow cache expiry sweep failed", e)
            return 0
        finally:
            session.close()

    def _select(self, *criteria) -> List[CacheEntry]:
        session = self.SessionLocal()
        try:
            rows = session.query(GeocodeCacheRow).filter(*criteria).order_by(GeocodeCacheRow.timestamp).all()
            return [row.to_entry() for row in rows]
        except SQLAlchemyError as e:
            log_error_and_continue("Slow cache query failed", e)
            return []
        finally:
            session.close()

    def by_municipality(self, municipality: str) -> List[CacheEntry]:
        return self._select(GeocodeCacheRow.municipality == municipality)

    def by_infrastructure_type(self, infrastructure_type: str) -> List[CacheEntry]:
        return self._select(GeocodeCacheRow.infrastructure_type == infrastructure_type)

    def export(self) -> List[CacheEntry]:
        return self._select()

    def import_entries(self, entries: Iterable[CacheEntry]) -> int:
        """Insert unexpired entries whose key is not stored yet; returns how many went in."""
        now = self._clock()
        imported = 0
        for entry in entries:
            if now > entry.expires_at or self.has(entry.key):
                continue
            if self.set(entry):
                imported += 1
        return imported

    def stats(self) -> dict:
        session = self.SessionLocal()
        try:
            total_entries = session.query(func.count(GeocodeCacheRow.id)).scalar() or 0
            total_size = session.query(func.coalesce(func.sum(GeocodeCacheRow.size_bytes), 0)).scalar()
            by_source = dict(session.query(GeocodeCacheRow.source, func.count(GeocodeCacheRow.id))
                             .group_by(GeocodeCacheRow.source).all())
            by_municipality = dict(session.query(GeocodeCacheRow.municipality, func.count(GeocodeCacheRow.id))
                                   .filter(GeocodeCacheRow.municipality.isnot(None))
                                   .group_by(GeocodeCacheRow.municipality).all())
        except SQLAlchemyError as e:
            log_error_and_continue("Slow cache stats failed", e)
            total_entries, total_size, by_source, by_municipality = 0, 0, {}, {}
        finally:
            session.close()
        requests = self.hits + self.misses
        return {
            "total_entries": total_entries,
            "total_size": total_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / requests if requests else 0.0,
            "by_source": by_source,
            "by_municipality": by_municipality,
        }
