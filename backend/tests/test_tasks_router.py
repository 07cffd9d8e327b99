import json
from unittest.mock import AsyncMock, MagicMock

from mistika.main import app

HEADERS = {"X-TG-USER-ID": "424242"}


def _pool_returning(value):
    pool = MagicMock()
    pool.get = AsyncMock(return_value=value)
    return pool


def test_task_status_without_queue(client):
    response = client.get("/v1/tasks/some-job", headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["error"] == "service_unavailable"


def test_task_status_pending(client):
    pool = _pool_returning(None)
    app.state.arq_pool = pool
    try:
        response = client.get("/v1/tasks/job-1", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {"status": "pending", "result": None, "error": None}
        pool.get.assert_awaited_once_with("arq_task:job-1")
    finally:
        app.state.arq_pool = None


def test_task_status_done(client):
    payload = {"status": "done", "result": {"interpretation": "Всё будет хорошо", "ai_model": "local:fallback"}}
    app.state.arq_pool = _pool_returning(json.dumps(payload, ensure_ascii=False).encode("utf-8"))
    try:
        response = client.get("/v1/tasks/job-2", headers=HEADERS)
        assert response.json()["status"] == "done"
        assert response.json()["result"]["interpretation"] == "Всё будет хорошо"
    finally:
        app.state.arq_pool = None


def test_task_status_broken_payload(client):
    app.state.arq_pool = _pool_returning(b"{not json")
    try:
        response = client.get("/v1/tasks/job-3", headers=HEADERS)
        assert response.json() == {"status": "failed", "result": None, "error": "Invalid task payload"}
    finally:
        app.state.arq_pool = None


def test_task_status_redis_failure(client):
    pool = MagicMock()
    pool.get = AsyncMock(side_effect=ConnectionError("redis gone"))
    app.state.arq_pool = pool
    try:
        assert client.get("/v1/tasks/job-4", headers=HEADERS).status_code == 503
    finally:
        app.state.arq_pool = None


def test_task_status_requires_auth(client):
    assert client.get("/v1/tasks/job-5").status_code == 401
