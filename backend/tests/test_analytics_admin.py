from mistika.config import settings

USER = {"X-TG-USER-ID": "424242"}
ADMIN = {"X-TG-USER-ID": "999"}


def _user_id(client, headers) -> int:
    return client.get("/v1/users/me", headers=headers).json()["id"]


def _as_admin(monkeypatch):
    monkeypatch.setattr(settings, "admin_telegram_ids_raw", "999")


def test_track_event_and_own_stats(client):
    user_id = _user_id(client, USER)
    for event_type in ("app_open", "reading_created", "app_open"):
        response = client.post("/v1/analytics/events", headers=USER, json={"event_type": event_type, "payload": {"source": "webapp"}})
        assert response.status_code == 201
        assert response.json()["event_type"] == event_type

    stats = client.get(f"/v1/analytics/users/{user_id}/stats", headers=USER).json()
    assert stats["total_events"] == 3
    assert stats["events_by_type"] == {"app_open": 2, "reading_created": 1}
    assert stats["unique_days"] == 1

    assert client.post("/v1/analytics/events", headers=USER, json={"event_type": ""}).status_code == 422


def test_stats_of_other_users_need_admin(client, monkeypatch):
    user_id = _user_id(client, USER)
    assert client.get(f"/v1/analytics/users/{user_id}/stats", headers={"X-TG-USER-ID": "777"}).status_code == 403
    assert client.get("/v1/analytics/summary", headers=USER).status_code == 403

    _as_admin(monkeypatch)
    client.post("/v1/analytics/events", headers=USER, json={"event_type": "app_open"})
    assert client.get(f"/v1/analytics/users/{user_id}/stats", headers=ADMIN).json()["total_events"] == 1

    summary = client.get("/v1/analytics/summary", headers=ADMIN, params={"days": 7}).json()
    assert summary["period_days"] == 7
    assert summary["total_events"] == 1
    assert summary["active_users"] == 1


def test_admin_endpoints_require_admin(client):
    assert client.get("/v1/admin/users", headers=USER).status_code == 403
    assert client.get("/v1/admin/stats", headers=USER).status_code == 403
    assert client.get("/v1/admin/users").status_code == 401


def test_admin_user_management(client, monkeypatch):
    _as_admin(monkeypatch)
    client.put("/v1/users/me", headers=USER, json={"first_name": "Мария", "email": "maria@example.com"})
    user_id = _user_id(client, USER)

    found = client.get("/v1/admin/users", headers=ADMIN, params={"search": "Мария"}).json()
    assert found["total"] == 1
    by_tg = client.get("/v1/admin/users", headers=ADMIN, params={"search": "424242"}).json()
    assert [item["id"] for item in by_tg["items"]] == [user_id]
    by_email = client.get("/v1/admin/users", headers=ADMIN, params={"search": "maria@"}).json()
    assert by_email["total"] == 1

    assert client.get(f"/v1/admin/users/{user_id}", headers=ADMIN).json()["tg_user_id"] == 424242
    assert client.get("/v1/admin/users/987654", headers=ADMIN).status_code == 404

    promoted = client.put(f"/v1/admin/users/{user_id}", headers=ADMIN, json={"is_premium": True, "subscription_type": "premium"})
    assert promoted.status_code == 200
    assert promoted.json()["is_premium"] is True
    assert client.get("/v1/users/me", headers=USER).json()["remaining_daily_readings"] is None


def test_ban_and_unban(client, monkeypatch):
    _as_admin(monkeypatch)
    user_id = _user_id(client, USER)
    admin_id = _user_id(client, ADMIN)

    banned = client.post(f"/v1/admin/users/{user_id}/ban", headers=ADMIN, json={"reason": "spam"})
    assert banned.status_code == 200
    blocked = client.get("/v1/users/me", headers=USER)
    assert blocked.status_code == 403
    assert "spam" in blocked.json()["detail"]

    assert client.post(f"/v1/admin/users/{admin_id}/ban", headers=ADMIN, json={"reason": "x"}).status_code == 400

    assert client.post(f"/v1/admin/users/{user_id}/unban", headers=ADMIN).status_code == 200
    assert client.get("/v1/users/me", headers=USER).status_code == 200


def test_delete_user(client, monkeypatch):
    _as_admin(monkeypatch)
    user_id = _user_id(client, USER)
    admin_id = _user_id(client, ADMIN)
    client.post("/v1/readings", headers=USER, json={"spread_id": "single"})

    assert client.delete(f"/v1/admin/users/{admin_id}", headers=ADMIN).status_code == 400
    assert client.delete(f"/v1/admin/users/{user_id}", headers=ADMIN).status_code == 200
    assert client.get(f"/v1/admin/users/{user_id}", headers=ADMIN).status_code == 404
    assert client.get("/v1/admin/readings", headers=ADMIN).json()["total"] == 0


def test_admin_stats_and_readings(client, monkeypatch):
    _as_admin(monkeypatch)
    reading_id = client.post("/v1/readings", headers=USER, json={"spread_id": "three"}).json()["id"]
    client.get("/v1/readings/daily-card", headers=USER)
    user_id = _user_id(client, USER)

    stats = client.get("/v1/admin/stats", headers=ADMIN).json()
    assert stats["users"]["total"] == 2
    assert stats["readings"]["total"] == 1
    assert stats["readings"]["daily_cards"] == 1
    assert stats["subscriptions"]["active"] == 0
    assert stats["revenue"] == {}

    readings = client.get("/v1/admin/readings", headers=ADMIN, params={"user_id": user_id}).json()
    assert [item["id"] for item in readings["items"]] == [reading_id]

    assert client.delete(f"/v1/admin/readings/{reading_id}", headers=ADMIN).status_code == 200
    assert client.delete(f"/v1/admin/readings/{reading_id}", headers=ADMIN).status_code == 404
    assert client.get(f"/v1/readings/{reading_id}", headers=USER).status_code == 404
