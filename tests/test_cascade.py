import asyncio

import httpx
import pytest

from conftest import make_entry, mock_client
from ptel_engine.cache import CacheManager, generate_cache_key
from ptel_engine.config import CacheConfig, CascadeConfig
from ptel_engine.exceptions import ProviderError
from ptel_engine.geocoding import CONFIDENCE_BY_LEVEL, CascadeOrchestrator, CascadeStep
from ptel_engine.geocoding.cascade import NO_RESULT_MESSAGE, used_nominatim
from ptel_engine.types import CascadeLevel, GeocodedPoint, GeocodingRequest, GeocodingResult

L1, L2, L3, L5 = (CascadeLevel.L1_REGISTRY, CascadeLevel.L2_CARTOCIUDAD,
                  CascadeLevel.L3_CDAU, CascadeLevel.L5_NOMINATIM)

REQUEST = GeocodingRequest("Centro de Salud", "Níjar", "SANITARIO")


class FakeStep:
    """Scripted attempt: each call pops the next outcome (result, None or exception)."""

    def __init__(self, level, *outcomes):
        self.level = level
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, request, client):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hit":
            return GeocodingResult(
                success=True,
                source=self.level,
                confidence=CONFIDENCE_BY_LEVEL[self.level],
                coordinates=GeocodedPoint(567123.5, 4089456.25),
                metadata={"provider": f"fake_{self.level.value}"},
            )
        return None

    @property
    def step(self):
        return CascadeStep(self.level, self)


def orchestrator(*fakes, clock=None, sleep=None, cache=None, **config):
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    if sleep is not None:
        kwargs["sleep"] = sleep
    return CascadeOrchestrator(
        CascadeConfig(**config),
        cache=cache,
        client=mock_client(lambda request: httpx.Response(500)),
        steps=[f.step for f in fakes],
        **kwargs,
    )


@pytest.mark.asyncio
async def test_cache_hit_skips_every_level(clock):
    cache = CacheManager(CacheConfig(db_url="sqlite://"), clock=clock)
    await cache.set(make_entry(key=generate_cache_key("SANITARIO", "Centro de Salud", "Níjar")))
    l1 = FakeStep(L1, "hit")

    result = await orchestrator(l1, cache=cache).geocode(REQUEST)

    assert result.success is True
    assert result.source == CascadeLevel.L0_CACHE
    assert result.confidence == 95
    assert result.metadata["cached_source"] == "L3_CDAU"
    assert result.metadata["cached_confidence"] == 80
    assert (result.coordinates.x, result.coordinates.y) == (567123.5, 4089456.25)
    assert l1.calls == 0


@pytest.mark.asyncio
async def test_first_success_wins_and_is_cached(clock):
    cache = CacheManager(CacheConfig(db_url="sqlite://"), clock=clock)
    l1, l2, l3 = FakeStep(L1, None), FakeStep(L2, "hit"), FakeStep(L3, "hit")
    cascade = orchestrator(l1, l2, l3, cache=cache)

    result = await cascade.geocode(REQUEST)

    assert result.source == L2
    assert result.confidence == 85
    assert result.latency_ms >= 0
    assert (l1.calls, l2.calls, l3.calls) == (1, 1, 0)

    entry = await cache.get(generate_cache_key("SANITARIO", "Centro de Salud", "Níjar"))
    assert entry.source == "L2_CARTOCIUDAD"
    assert entry.provider == "fake_L2_CARTOCIUDAD"
    assert entry.municipality == "Níjar"

    again = await cascade.geocode(REQUEST)
    assert again.source == CascadeLevel.L0_CACHE
    assert l2.calls == 1


@pytest.mark.asyncio
async def test_total_failure_reports_last_level():
    l1, l2 = FakeStep(L1, None), FakeStep(L2, ProviderError("fake", "bad payload"))
    result = await orchestrator(l1, l2).geocode(REQUEST)
    assert result.success is False
    assert result.source == L2
    assert result.confidence == 0
    assert result.coordinates is None
    assert result.error == NO_RESULT_MESSAGE
    assert result.metadata["attempted_levels"] == ["L1_WFS", "L2_CARTOCIUDAD"]


@pytest.mark.asyncio
async def test_open_breaker_skips_level_until_reset(clock):
    failing = FakeStep(L2, ProviderError("fake", "down"), ProviderError("fake", "down"),
                       ProviderError("fake", "down"), "hit")
    cascade = orchestrator(failing, clock=clock)

    for _ in range(3):
        assert (await cascade.geocode(REQUEST)).success is False
    assert failing.calls == 3

    skipped = await cascade.geocode(REQUEST)
    assert failing.calls == 3
    assert skipped.success is False
    assert skipped.metadata["attempted_levels"] == []
    assert skipped.source == L2

    clock.advance(61)
    result = await cascade.geocode(REQUEST)
    assert result.success is True
    assert failing.calls == 4
    assert cascade.breakers[L2].is_open is False


@pytest.mark.asyncio
async def test_transport_errors_are_retried(fake_sleep):
    flaky = FakeStep(L3, httpx.ConnectError("refused"), httpx.ConnectError("refused"), "hit")
    cascade = orchestrator(flaky, sleep=fake_sleep, max_retries=2, base_delay_s=0.5)

    result = await cascade.geocode(REQUEST)

    assert result.success is True
    assert flaky.calls == 3
    assert fake_sleep.delays == [0.5, 1.0]
    assert cascade.breakers[L3].consecutive_failures == 0


@pytest.mark.asyncio
async def test_exhausted_retries_count_one_failure(fake_sleep):
    down = FakeStep(L3, httpx.ConnectError("refused"))
    cascade = orchestrator(down, sleep=fake_sleep, max_retries=1)
    result = await cascade.geocode(REQUEST)
    assert result.success is False
    assert down.calls == 2
    assert cascade.breakers[L3].consecutive_failures == 1


@pytest.mark.asyncio
async def test_timeout_moves_to_next_level():
    class SlowStep(FakeStep):
        async def __call__(self, request, client):
            self.calls += 1
            await asyncio.sleep(5)

    slow, backup = SlowStep(L2, None), FakeStep(L3, "hit")
    cascade = orchestrator(slow, backup, timeout_s=0.01)

    result = await cascade.geocode(REQUEST)

    assert result.source == L3
    assert cascade.breakers[L2].consecutive_failures == 1


@pytest.mark.asyncio
async def test_cancellation_is_not_a_provider_failure():
    cancelled = FakeStep(L2, asyncio.CancelledError())
    cascade = orchestrator(cancelled)
    with pytest.raises(asyncio.CancelledError):
        await cascade.geocode(REQUEST)
    breaker = cascade.breakers[L2]
    assert breaker.consecutive_failures == 0
    assert breaker.allow() is True


@pytest.mark.asyncio
async def test_disabled_levels_are_not_called():
    l2, l3 = FakeStep(L2, "hit"), FakeStep(L3, "hit")
    cascade = orchestrator(l2, l3, enabled_levels=(CascadeLevel.L0_CACHE, L3))
    result = await cascade.geocode(REQUEST)
    assert result.source == L3
    assert l2.calls == 0
    assert cascade.is_enabled(L2) is False


@pytest.mark.asyncio
async def test_batch_waits_after_nominatim(fake_sleep):
    nominatim = FakeStep(L5, "hit")
    cascade = orchestrator(nominatim, sleep=fake_sleep, nominatim_delay_s=1.0)
    progress = []

    requests = [GeocodingRequest("Ermita", "Níjar"), GeocodingRequest("Cortijo", "Níjar")]
    results = await cascade.geocode_batch(requests, on_progress=lambda done, total: progress.append((done, total)))

    assert [r.source for r in results] == [L5, L5]
    assert progress == [(1, 2), (2, 2)]
    assert fake_sleep.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_batch_does_not_wait_for_other_levels(fake_sleep):
    cascade = orchestrator(FakeStep(L2, "hit"), sleep=fake_sleep)
    await cascade.geocode_batch([GeocodingRequest("Ermita", "Níjar")])
    assert fake_sleep.delays == []


def test_used_nominatim():
    failed = GeocodingResult(success=False, source=L5, metadata={"attempted_levels": ["L5_NOMINATIM"]})
    assert used_nominatim(failed) is True
    assert used_nominatim(GeocodingResult(success=False, source=L3, metadata={"attempted_levels": []})) is False
    assert used_nominatim(GeocodingResult(success=True, source=L5)) is True
    assert used_nominatim(GeocodingResult(success=True, source=L2)) is False


@pytest.mark.asyncio
async def test_stats_and_resets(clock):
    cache = CacheManager(CacheConfig(db_url="sqlite://"), clock=clock)
    failing = FakeStep(L2, ProviderError("fake", "down"))
    cascade = orchestrator(failing, FakeStep(L3, "hit"), cache=cache, clock=clock)

    await cascade.geocode(REQUEST)
    await cascade.geocode(REQUEST)

    stats = cascade.get_stats()
    assert stats.total_requests == 2
    assert stats.by_level["L3_CDAU"] == 1
    assert stats.by_level["L0_CACHE"] == 1
    assert stats.cache_hit_rate == pytest.approx(0.5)
    assert stats.avg_latency_ms >= 0
    statuses = {s.level: s for s in stats.provider_status}
    assert statuses[L2].consecutive_failures == 1
    assert statuses[L3].successful_requests == 1

    cascade.reset_stats()
    cascade.reset_circuit_breakers()
    stats = cascade.get_stats()
    assert stats.total_requests == 0
    assert stats.cache_hit_rate == 0.0
    assert all(s.consecutive_failures == 0 for s in stats.provider_status)


@pytest.mark.asyncio
async def test_default_steps_end_to_end(fake_sleep):
    def handler(request):
        host = request.url.host
        if host == "www.cartociudad.es":
            return httpx.Response(200, text='callback({"lat": 36.95, "lng": -2.24, "type": "calle"})')
        return httpx.Response(404)

    async with CascadeOrchestrator(CascadeConfig(), client=mock_client(handler), sleep=fake_sleep) as cascade:
        result = await cascade.geocode(GeocodingRequest("Plaza Mayor", "Níjar"))

    assert result.source == L2
    assert result.confidence == 85
    assert result.metadata["provider"] == "CartoCiudad_IGN"
    assert result.metadata["match_type"] == "partial"
    assert 560_000 < result.coordinates.x < 580_000


@pytest.mark.asyncio
async def test_default_steps_fall_through_on_http_errors(fake_sleep):
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host == "www.callejerodeandalucia.es":
            return httpx.Response(200, json=[{"coordX": 567123.5, "coordY": 4089456.25}])
        return httpx.Response(500)

    async with CascadeOrchestrator(CascadeConfig(), client=mock_client(handler), sleep=fake_sleep) as cascade:
        result = await cascade.geocode(GeocodingRequest("Plaza Mayor", "Níjar"))

    assert hosts == ["www.cartociudad.es", "www.callejerodeandalucia.es"]
    assert result.source == L3
    assert result.metadata["provider"] == "CDAU_Andalucia"
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_unexpected_errors_count_as_level_failures(clock):
    broken, backup = FakeStep(L2, AttributeError("'str' object has no attribute 'get'")), FakeStep(L3, "hit")
    cascade = orchestrator(broken, backup, clock=clock, breaker_threshold=1)

    result = await cascade.geocode(REQUEST)
    assert result.source == L3
    assert cascade.breakers[L2].consecutive_failures == 1
    assert cascade.breakers[L2].allow() is False

    # The half-open trial fails the same way and reopens the circuit
    clock.advance(61)
    await cascade.geocode(GeocodingRequest("Colegio", "Níjar"))
    assert broken.calls == 2
    assert cascade.breakers[L2].consecutive_failures == 2
    assert cascade.breakers[L2].allow() is False


@pytest.mark.asyncio
@pytest.mark.parametrize("level, payload", [
    (L1, {"type": "FeatureCollection", "features": [None]}),
    (L5, ["oops"]),
])
async def test_malformed_provider_payloads_do_not_escape(fake_sleep, level, payload):
    config = CascadeConfig(enabled_levels=(level,))
    client = mock_client(lambda request: httpx.Response(200, json=payload))
    async with CascadeOrchestrator(config, client=client, sleep=fake_sleep) as cascade:
        result = await cascade.geocode(REQUEST)

    assert result.success is False
    assert result.source == level
    assert cascade.breakers[level].consecutive_failures == 1
