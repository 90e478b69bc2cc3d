import pytest
from fastapi.testclient import TestClient

from adserver.config import RATE_LIMIT_SETTINGS


@pytest.fixture()
def tight_limits(monkeypatch):
    monkeypatch.setitem(RATE_LIMIT_SETTINGS, "default", {"limit": 5, "window_seconds": 60})
    monkeypatch.setitem(RATE_LIMIT_SETTINGS, "track", {"limit": 3, "window_seconds": 60})
    yield


def test_default_category_limit(client: TestClient, advertiser, auth, tight_limits):
    headers = auth(advertiser)
    for i in range(5):
        r = client.get("/", headers=headers)
        assert r.status_code == 200
        assert r.headers.get("X-RateLimit-Limit") == "5"
        assert int(r.headers.get("X-RateLimit-Remaining")) == 5 - (i + 1)

    r = client.get("/", headers=headers)
    assert r.status_code == 429
    assert r.json()["message"].startswith("Rate limit exceeded")
    assert r.headers.get("X-RateLimit-Remaining") == "0"


def test_track_category_is_separate(client: TestClient, campaign_factory, tight_limits):
    c = campaign_factory()
    for _ in range(3):
        assert client.post(f"/api/v1/ads/{c.id}/track", params={"kind": "impression"}).status_code == 200
    r = client.post(f"/api/v1/ads/{c.id}/track", params={"kind": "impression"})
    assert r.status_code == 429
    assert r.json()["category"] == "track"
    # Serving has its own bucket
    assert client.get("/api/v1/ads/active", params={"placement": "home_top"}).status_code == 200


def test_request_id_is_echoed(client: TestClient):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-123"
    assert r.json()["status"] == "healthy"
    assert client.get("/health").headers["X-Request-ID"]


def test_detailed_health_checks_database(client: TestClient):
    r = client.get("/health/detailed")
    assert r.status_code == 200
    assert r.json()["checks"]["database"] == "healthy"
