"""Tests for the read API (health, raw and transformed data)."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.main import create_app

RECORD = {"source": "a", "id": "1", "value": 1}


@pytest.fixture
def ingester(make_adapter, make_ingester):
    return make_ingester(make_adapter("a", [RECORD]))


@pytest.fixture
def client_for(monkeypatch):
    monkeypatch.delenv("AUTH_TOKEN", raising=False)
    monkeypatch.delenv("RATE_LIMIT_PER_MINUTE", raising=False)

    def _client(ingester, **kwargs):
        return TestClient(create_app(ingester, run_ingester=False, **kwargs))

    return _client


def test_data_unavailable_before_first_tick(ingester, client_for):
    with client_for(ingester) as client:
        for path in ("/data/raw", "/data/transformed"):
            response = client.get(path)
            assert response.status_code == 503
            assert response.json()["detail"] == {"status": "error", "message": "Ingester not ready"}


def test_raw_window(ingester, client_for):
    asyncio.run(ingester.tick())

    with client_for(ingester) as client:
        response = client.get("/data/raw")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["data"]["periods"] == [0, 60, 120, 180]
    assert body["data"]["data"] == {"0": [RECORD]}


def test_transformed_rows(ingester, client_for):
    asyncio.run(ingester.tick())

    with client_for(ingester) as client:
        response = client.get("/data/transformed")

    assert response.status_code == 200
    rows = response.json()["data"]
    assert len(rows) == 1
    assert rows[0]["source"] == "a"
    assert rows[0]["id"] == "1"
    assert rows[0]["observables"]["metrics"] == {
        "value": 1,
        "trend": 0.0,
        "rate": 0.0,
        "streak": 2,
        "total": 2,
    }


def test_auth_required_when_token_configured(ingester, client_for):
    asyncio.run(ingester.tick())

    with client_for(ingester, auth_token="s3cret") as client:
        missing = client.get("/data/raw")
        wrong = client.get("/data/raw", headers={"Authorization": "Bearer nope"})
        basic = client.get("/data/raw", headers={"Authorization": "Basic s3cret"})
        ok = client.get("/data/transformed", headers={"Authorization": "Bearer s3cret"})
        health = client.get("/health")

    for response in (missing, wrong, basic):
        assert response.status_code == 401
        assert response.json()["detail"] == {"status": "unauthorized"}
        assert response.headers["WWW-Authenticate"].startswith("Bearer")
    assert ok.status_code == 200
    assert health.status_code == 200


def test_auth_token_from_environment(ingester, monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN", "from-env")
    asyncio.run(ingester.tick())

    with TestClient(create_app(ingester, run_ingester=False)) as client:
        assert client.get("/data/raw").status_code == 401
        assert client.get("/data/raw", headers={"Authorization": "Bearer from-env"}).status_code == 200


def test_health_starting(ingester, client_for):
    with client_for(ingester) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "starting"
    assert body["ready"] is False
    assert body["running"] is False
    assert body["sources"] == ["a"]
    assert body["archive_rows"] == 0
    assert body["uptime_seconds"] >= 0


def test_health_ready(ingester, client_for):
    asyncio.run(ingester.tick())

    with client_for(ingester) as client:
        body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["ready"] is True
    assert body["archive_rows"] == 1


def test_health_degraded_on_store_error(ingester, client_for):
    asyncio.run(ingester.tick())
    error = OperationalError("SELECT", {}, Exception("database is locked"))

    with client_for(ingester) as client, patch.object(ingester.store, "count_archive", side_effect=error):
        body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["archive_rows"] is None
    assert body["error"] == "OperationalError"


def test_data_routes_rate_limited_per_client(ingester, client_for):
    asyncio.run(ingester.tick())

    with client_for(ingester) as client:
        responses = [client.get("/data/raw") for _ in range(60)]
        limited = client.get("/data/transformed")
        health = client.get("/health")

    assert all(r.status_code == 200 for r in responses)
    assert responses[0].headers["RateLimit-Limit"] == "60"
    assert responses[0].headers["RateLimit-Remaining"] == "59"
    assert responses[-1].headers["RateLimit-Remaining"] == "0"

    assert limited.status_code == 429
    assert limited.json()["detail"]["status"] == "error"
    assert int(limited.headers["Retry-After"]) <= 60
    assert limited.headers["RateLimit-Remaining"] == "0"
    assert health.status_code == 200


def test_rate_limit_configurable(ingester, client_for, monkeypatch):
    asyncio.run(ingester.tick())

    with client_for(ingester, rate_limit=2) as client:
        codes = [client.get("/data/raw").status_code for _ in range(3)]
    assert codes == [200, 200, 429]

    monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "0")
    with TestClient(create_app(ingester, run_ingester=False)) as client:
        codes = {client.get("/data/raw").status_code for _ in range(70)}
        assert "RateLimit-Limit" not in client.get("/data/raw").headers
    assert codes == {200}


def test_shutdown_releases_adapters_and_store(ingester, client_for, store):
    adapter = ingester.registry.get("a")

    with patch.object(adapter, "close") as mock_close:
        with client_for(ingester) as client:
            assert client.get("/health").status_code == 200
            assert store._engine is not None

        mock_close.assert_called_once()
    assert store._engine is None
