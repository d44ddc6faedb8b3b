"""
cascade.py

Geocoding cascade for PTEL infrastructures: the levels are tried in priority
order and the first success wins.

Key Features:
- L0 cache lookup first; a hit returns immediately without any network call.
- L1-L5 as an ordered list of CascadeStep(level, attempt) entries.
- Per-level circuit breakers (threshold, reset interval, single half-open trial).
- Transient transport errors retried with exponential backoff inside one attempt.
- Every attempt bounded by asyncio.wait_for; a cancelled request is never
  counted as a provider failure.
- Sequential batch mode that waits between requests answered by Nominatim.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import httpx

from ..cache.manager import CacheManager, generate_cache_key
from ..config import CascadeConfig
from ..exceptions import PtelError
from ..types import (
    CacheEntry,
    CascadeLevel,
    CascadeStats,
    GeocodedPoint,
    GeocodingRequest,
    GeocodingResult,
)
from ..utils import log_error_and_continue
from .circuit_breaker import CircuitBreaker
from .gazetteers import GazetteerHit, query_cartociudad, query_cdau, query_cdau_fuzzy, query_nominatim
from .http import build_client, with_retries
from .registries import lookup_registry

LOG = logging.getLogger(__name__)

CONFIDENCE_BY_LEVEL: Dict[CascadeLevel, int] = {
    CascadeLevel.L0_CACHE: 95,
    CascadeLevel.L1_REGISTRY: 90,
    CascadeLevel.L2_CARTOCIUDAD: 85,
    CascadeLevel.L3_CDAU: 80,
    CascadeLevel.L4_CDAU_FUZZY: 65,
    CascadeLevel.L5_NOMINATIM: 50,
}

NO_RESULT_MESSAGE = "No se pudo geocodificar en ningún nivel de la cascada"

# Failures counted against a level's breaker
LEVEL_FAILURES = (httpx.HTTPError, PtelError, asyncio.TimeoutError)

Attempt = Callable[[GeocodingRequest, httpx.AsyncClient], Awaitable[Optional[GeocodingResult]]]


@dataclass(frozen=True)
class CascadeStep:
    level: CascadeLevel
    attempt: Attempt


def _success(level: CascadeLevel, x: float, y: float, metadata: dict) -> GeocodingResult:
    return GeocodingResult(
        success=True,
        source=level,
        confidence=CONFIDENCE_BY_LEVEL[level],
        coordinates=GeocodedPoint(x=x, y=y),
        metadata=metadata,
    )


async def attempt_registry(request: GeocodingRequest, client: httpx.AsyncClient) -> Optional[GeocodingResult]:
    match = await lookup_registry(request, client)
    if match is None:
        return None
    return _success(CascadeLevel.L1_REGISTRY, match.x, match.y, {
        "original_query": request.name,
        "provider": match.source,
        "match_type": "exact",
        "matched_name": match.matched_name,
        "similarity": match.confidence,
    })


def _gazetteer_attempt(level: CascadeLevel,
                       query: Callable[[httpx.AsyncClient, GeocodingRequest], Awaitable[Optional[GazetteerHit]]]) -> Attempt:
    async def attempt(request: GeocodingRequest, client: httpx.AsyncClient) -> Optional[GeocodingResult]:
        hit = await query(client, request)
        if hit is None:
            return None
        return _success(level, hit.x, hit.y, {
            "original_query": hit.query,
            "provider": hit.provider,
            "match_type": hit.match_type,
        })
    return attempt


DEFAULT_STEPS: Sequence[CascadeStep] = (
    CascadeStep(CascadeLevel.L1_REGISTRY, attempt_registry),
    CascadeStep(CascadeLevel.L2_CARTOCIUDAD, _gazetteer_attempt(CascadeLevel.L2_CARTOCIUDAD, query_cartociudad)),
    CascadeStep(CascadeLevel.L3_CDAU, _gazetteer_attempt(CascadeLevel.L3_CDAU, query_cdau)),
    CascadeStep(CascadeLevel.L4_CDAU_FUZZY, _gazetteer_attempt(CascadeLevel.L4_CDAU_FUZZY, query_cdau_fuzzy)),
    CascadeStep(CascadeLevel.L5_NOMINATIM, _gazetteer_attempt(CascadeLevel.L5_NOMINATIM, query_nominatim)),
)


def used_nominatim(result: GeocodingResult) -> bool:
    """True when the request reached the rate-limited last-resort provider."""
    if result.success:
        return result.source == CascadeLevel.L5_NOMINATIM
    return CascadeLevel.L5_NOMINATIM.value in result.metadata.get("attempted_levels", [])


class CascadeOrchestrator:
    """
    Explicitly constructed; owns its httpx client unless one is passed in.

        async with CascadeOrchestrator(settings.cascade, cache=CacheManager(settings.cache)) as cascade:
            result = await cascade.geocode(GeocodingRequest("Centro de Salud", "Níjar"))
    """

    def __init__(self, config: Optional[CascadeConfig] = None, cache: Optional[CacheManager] = None,
                 client: Optional[httpx.AsyncClient] = None, steps: Optional[Iterable[CascadeStep]] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.config = config or CascadeConfig()
        self.cache = cache
        self._owns_client = client is None
        self.client = client or build_client(self.config.user_agent, self.config.timeout_s)
        self.steps: List[CascadeStep] = list(steps if steps is not None else DEFAULT_STEPS)
        self._clock = clock
        self._sleep = sleep
        self.breakers: Dict[CascadeLevel, CircuitBreaker] = {
            step.level: CircuitBreaker(step.level, self.config.breaker_threshold,
                                       self.config.breaker_reset_s, clock=clock)
            for step in self.steps
        }
        self.reset_stats()

    async def __aenter__(self) -> "CascadeOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def is_enabled(self, level: CascadeLevel) -> bool:
        return level in self.config.enabled_levels

    def _elapsed_ms(self, start: float) -> float:
        return (time.perf_counter() - start) * 1000

    def _finish(self, result: GeocodingResult, start: float) -> GeocodingResult:
        result.latency_ms = self._elapsed_ms(start)
        self._total_latency_ms += result.latency_ms
        if result.success:
            self._by_level[result.source] += 1
        return result

    async def _from_cache(self, key: str) -> Optional[GeocodingResult]:
        entry = await self.cache.get(key)
        if entry is None:
            return None
        self._cache_hits += 1
        return GeocodingResult(
            success=True,
            source=CascadeLevel.L0_CACHE,
            confidence=CONFIDENCE_BY_LEVEL[CascadeLevel.L0_CACHE],
            coordinates=GeocodedPoint(x=entry.x, y=entry.y, epsg=entry.epsg),
            metadata={
                "original_query": entry.original_query,
                "provider": entry.provider,
                "cached_source": entry.source,
                "cached_confidence": entry.confidence,
            },
        )

    async def _save(self, key: str, result: GeocodingResult, request: GeocodingRequest) -> None:
        if self.cache is None or result.coordinates is None:
            return
        await self.cache.set(CacheEntry(
            key=key,
            x=result.coordinates.x,
            y=result.coordinates.y,
            epsg=result.coordinates.epsg,
            source=result.source.value,
            confidence=result.confidence,
            municipality=request.municipality,
            infrastructure_type=request.infrastructure_type,
            original_query=request.name,
            provider=result.metadata.get("provider"),
        ))

    async def _run_step(self, step: CascadeStep, request: GeocodingRequest) -> Optional[GeocodingResult]:
        async def call():
            return await asyncio.wait_for(step.attempt(request, self.client), timeout=self.config.timeout_s)

        return await with_retries(call, self.config.max_retries, self.config.base_delay_s,
                                  sleep=self._sleep, label=step.level.value)

    async def geocode(self, request: GeocodingRequest) -> GeocodingResult:
        """
        Walk the levels until one answers. Provider errors never escape; a request
        nobody can place comes back with success=False and the last level tried.
        """
        start = time.perf_counter()
        self._total_requests += 1
        key = generate_cache_key(request.infrastructure_type or "GENERICO", request.name, request.municipality)

        if self.cache is not None and self.is_enabled(CascadeLevel.L0_CACHE):
            cached = await self._from_cache(key)
            if cached is not None:
                return self._finish(cached, start)

        attempted: List[CascadeLevel] = []
        for step in self.steps:
            if not self.is_enabled(step.level):
                continue
            breaker = self.breakers[step.level]
            if not breaker.allow():
                LOG.debug(f"{step.level.value} skipped: circuit open")
                continue

            attempted.append(step.level)
            breaker.record_attempt()
            try:
                result = await self._run_step(step, request)
            except asyncio.CancelledError:
                breaker.release()
                raise
            except LEVEL_FAILURES as e:
                LOG.warning(f"⚠️ {step.level.value} failed for {request.name!r}: {e!r}")
                breaker.record_failure()
                continue
            except Exception as e:
                # Any other provider crash is a level failure too
                log_error_and_continue(f"{step.level.value} crashed for {request.name!r}", e)
                breaker.record_failure()
                continue

            if result is None:
                breaker.release()
                continue

            breaker.record_success()
            await self._save(key, result, request)
            LOG.info(f"✅ {request.name!r} ({request.municipality}) geocoded at {step.level.value}")
            return self._finish(result, start)

        if attempted:
            source = attempted[-1]
        else:
            source = self.steps[-1].level if self.steps else CascadeLevel.L0_CACHE
        LOG.info(f"❌ {request.name!r} ({request.municipality}) not geocoded")
        return self._finish(GeocodingResult(
            success=False,
            source=source,
            confidence=0,
            metadata={"attempted_levels": [level.value for level in attempted]},
            error=NO_RESULT_MESSAGE,
        ), start)

    async def geocode_batch(self, requests: Sequence[GeocodingRequest],
                            on_progress: Optional[Callable[[int, int], None]] = None) -> List[GeocodingResult]:
        """
        One request at a time, pausing nominatim_delay_s after any request that hit Nominatim.
        """
        results = []
        total = len(requests)
        for i, request in enumerate(requests):
            result = await self.geocode(request)
            results.append(result)
            if on_progress:
                on_progress(i + 1, total)
            if used_nominatim(result):
                await self._sleep(self.config.nominatim_delay_s)
        return results

    def get_stats(self) -> CascadeStats:
        total = self._total_requests
        return CascadeStats(
            total_requests=total,
            by_level={level.value: count for level, count in self._by_level.items()},
            avg_latency_ms=self._total_latency_ms / total if total else 0.0,
            cache_hit_rate=self._cache_hits / total if total else 0.0,
            provider_status=[breaker.status() for breaker in self.breakers.values()],
        )

    def reset_stats(self) -> None:
        self._total_requests = 0
        self._by_level: Dict[CascadeLevel, int] = {level: 0 for level in CascadeLevel}
        self._total_latency_ms = 0.0
        self._cache_hits = 0

    def reset_circuit_breakers(self) -> None:
        for breaker in self.breakers.values():
            breaker.reset()
