from unittest.mock import AsyncMock, MagicMock

from mistika.main import app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.headers["X-Request-ID"]


def test_liveness_and_readiness(client):
    assert client.get("/health/live").json() == {"ok": True}
    assert client.get("/health/ready").json() == {"ok": True, "database": "up"}


def test_detailed_health_without_queue(client):
    response = client.get("/health/detailed")
    assert response.status_code == 200
    body = response.json()
    assert body["checks"] == {"database": "up", "queue": "unavailable"}
    assert body["uptime_seconds"] >= 0


def test_detailed_health_with_queue(client):
    pool = MagicMock()
    pool.ping = AsyncMock(return_value=True)
    app.state.arq_pool = pool
    try:
        assert client.get("/health/detailed").json()["checks"]["queue"] == "up"
        pool.ping = AsyncMock(side_effect=ConnectionError("redis gone"))
        assert client.get("/health/detailed").json()["checks"]["queue"] == "down"
    finally:
        app.state.arq_pool = None


def test_metrics_exposes_prometheus_text(client):
    client.get("/health")
    client.get("/v1/users/me", headers={"X-TG-USER-ID": "424242"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert "active_users_total 1.0" in response.text
