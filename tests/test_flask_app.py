import httpx
import pytest

from conftest import make_rows, mock_client
from flask_app.app import create_app
from ptel_engine.cache import CacheManager
from ptel_engine.config import CacheConfig, Settings
from ptel_engine.geocoding import CONFIDENCE_BY_LEVEL, CascadeOrchestrator, CascadeStep
from ptel_engine.types import CascadeLevel, GeocodedPoint, GeocodingResult


async def cdau_hit(request, client):
    level = CascadeLevel.L3_CDAU
    return GeocodingResult(
        success=True,
        source=level,
        confidence=CONFIDENCE_BY_LEVEL[level],
        coordinates=GeocodedPoint(567123.5, 4089456.25),
        metadata={"provider": "CDAU_Andalucia"},
    )


@pytest.fixture
def client():
    settings = Settings(cache=CacheConfig(db_url="sqlite://"))
    cascade = CascadeOrchestrator(
        settings.cascade,
        cache=CacheManager(settings.cache),
        client=mock_client(lambda request: httpx.Response(500)),
        steps=[CascadeStep(CascadeLevel.L3_CDAU, cdau_hit)],
    )
    app = create_app(settings=settings, cascade=cascade)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_normalize(client):
    response = client.post("/api/normalize", json={"x": "447180,5", "y": "4112820,25"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["x"] == 447180.5
    assert body["score"] == 90
    assert body["confidence"] == "HIGH"
    assert [c["type"] for c in body["corrections"]] == ["SEPARATOR_FIXED", "SEPARATOR_FIXED"]


def test_normalize_requires_both_axes(client):
    response = client.post("/api/normalize", json={"x": "447180,5"})
    assert response.status_code == 400


def test_rejects_non_json(client):
    response = client.post("/api/normalize", data="x=1", content_type="text/plain")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid request format. Must be JSON."}


def test_process(client):
    headers = ["nombre", "municipio", "provincia", "X", "Y"]
    response = client.post("/api/process", json={"headers": headers, "rows": make_rows(), "name": "nijar.csv"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["aggregate"]["row_count"] == 4
    assert body["aggregate"]["rejected"] == 1
    assert body["coordinates"][0]["municipality"] == "Níjar"
    assert body["detected_system"] == "EPSG:25830"


def test_process_without_coordinate_columns(client):
    response = client.post("/api/process", json={"headers": ["nombre"], "rows": [{"nombre": "a"}]})
    assert response.status_code == 400
    assert "columnas de coordenadas" in response.get_json()["error"]


def test_process_requires_lists(client):
    response = client.post("/api/process", json={"headers": "X,Y", "rows": []})
    assert response.status_code == 400


@pytest.mark.parametrize("body", [
    {"headers": ["X", "Y"], "rows": [[1, 2]]},
    {"headers": ["X", "Y"], "rows": [{"X": "447180,5", "Y": "4112820,25"}, "447180,5;4112820,25"]},
    {"headers": [1, 2], "rows": [{"1": "447180,5", "2": "4112820,25"}]},
])
def test_process_rejects_malformed_rows(client, body):
    response = client.post("/api/process", json=body)
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_geocode_and_stats(client):
    response = client.post("/api/geocode", json={
        "name": "Centro de Salud", "municipality": "Níjar", "infrastructure_type": "SANITARIO",
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["source"] == "L3_CDAU"
    assert body["coordinates"] == {"x": 567123.5, "y": 4089456.25, "epsg": "EPSG:25830"}

    cached = client.post("/api/geocode", json={
        "name": "Centro de Salud", "municipality": "Níjar", "infrastructure_type": "SANITARIO",
    }).get_json()
    assert cached["source"] == "L0_CACHE"

    stats = client.get("/api/cascade/stats").get_json()
    assert stats["total_requests"] == 2
    assert stats["by_level"]["L3_CDAU"] == 1
    assert stats["cache_hit_rate"] == 0.5


def test_geocode_requires_name_and_municipality(client):
    response = client.post("/api/geocode", json={"name": "Centro de Salud"})
    assert response.status_code == 400


@pytest.mark.parametrize("body", [
    {"name": 123, "municipality": "Níjar"},
    {"name": "Centro de Salud", "municipality": ["Níjar"]},
    {"name": "Centro de Salud", "municipality": "Níjar", "province": 4},
])
def test_geocode_rejects_non_text_fields(client, body):
    response = client.post("/api/geocode", json=body)
    assert response.status_code == 400
    assert response.get_json()["error"] == "geocoding fields must be strings"
    assert client.get("/api/cascade/stats").get_json()["total_requests"] == 0
