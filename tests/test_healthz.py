from __future__ import annotations

import pytest


@pytest.mark.parametrize("path", ["/healthz", "/api/healthz", "/v1/healthz"])
def test_healthz_shape(client, path):
    r = client.get(path)
    assert r.status_code == 200

    payload = r.json()
    assert "status" in payload
    assert "checks" in payload

    checks = payload["checks"]
    for key in ("db", "redis"):
        assert key in checks
        assert checks[key]["status"] in ("ok", "error", "skipped")
    assert checks["db"]["status"] == "ok"


def test_request_id_is_echoed(client):
    r = client.get("/", headers={"x-request-id": "abc-123"})
    assert r.status_code == 200
    assert r.headers["x-request-id"] == "abc-123"


def test_metrics_endpoint(client):
    client.get("/")
    r = client.get("/metrics-prom")
    assert r.status_code == 200
    assert "http_requests_total" in r.text


def test_redis_check_skipped_without_url(client, monkeypatch):
    from meetai.core.settings import Settings
    from meetai.routers import health

    monkeypatch.setattr(health, "get_settings", lambda: Settings(REDIS_URL=""))
    monkeypatch.setattr(health, "get_redis", lambda: pytest.fail("redis must not be contacted"))

    payload = client.get("/healthz").json()
    assert payload["checks"]["redis"] == {"status": "skipped"}
    assert payload["status"] == "ok"
