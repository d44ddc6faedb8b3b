import httpx
import pytest

from ptel_engine.types import CacheEntry


class FakeClock:
    """Manually advanced time source for TTL and circuit-breaker tests."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


def make_entry(key="sanitario::centro_de_salud::nijar", **overrides):
    data = dict(
        key=key,
        x=567123.5,
        y=4089456.25,
        source="L3_CDAU",
        confidence=80,
        municipality="Níjar",
        infrastructure_type="SANITARIO",
        original_query="Centro de Salud",
        provider="CDAU_Andalucia",
    )
    data.update(overrides)
    return CacheEntry(**data)


def mock_client(handler):
    """httpx client whose requests are answered by handler(request) -> httpx.Response."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_rows():
    return [
        {"nombre": "Centro de Salud", "municipio": "N\u00c3\u00adjar", "provincia": "Almería",
         "X": "567123,5", "Y": "4089456,25"},
        {"nombre": "Colegio San José", "municipio": "Níjar", "provincia": "Almería",
         "X": "568000,5", "Y": "4090000,5"},
        {"nombre": "Ayuntamiento", "municipio": "Níjar", "provincia": "Almería",
         "X": "567500,25", "Y": "4089800,75"},
        {"nombre": "Ermita", "municipio": "Níjar", "provincia": "Almería",
         "X": "N/D", "Y": "N/D"},
    ]
