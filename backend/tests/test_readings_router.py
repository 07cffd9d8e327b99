from mistika import models
from mistika.config import settings

HEADERS = {"X-TG-USER-ID": "424242"}


def _make_premium(client, db_session, headers=HEADERS):
    tg_user_id = int(headers["X-TG-USER-ID"])
    client.get("/v1/users/me", headers=headers)
    user = db_session.query(models.User).filter(models.User.tg_user_id == tg_user_id).one()
    user.is_premium = True
    user.subscription_type = "premium"
    db_session.commit()


def _create_reading(client, spread_id="three", question="Что меня ждёт на этой неделе?", headers=HEADERS):
    return client.post("/v1/readings", headers=headers, json={"spread_id": spread_id, "question": question})


def test_create_reading(client):
    response = _create_reading(client)
    assert response.status_code == 201
    body = response.json()
    assert body["spread_type"] == "three-card"
    assert body["status"] == "completed"
    assert body["is_private"] is True
    assert [card["position"] for card in body["cards"]] == [1, 2, 3]
    assert len({card["tarot_id"] for card in body["cards"]}) == 3
    assert all(card["meaning"] for card in body["cards"])

    me = client.get("/v1/users/me", headers=HEADERS).json()
    assert me["total_readings"] == 1
    assert me["remaining_daily_readings"] == settings.free_daily_readings - 1


def test_free_daily_limit(client):
    for _ in range(settings.free_daily_readings):
        assert _create_reading(client, spread_id="single").status_code == 201

    blocked = _create_reading(client, spread_id="single")
    assert blocked.status_code == 402
    assert blocked.json()["error"] == "payment_required"


def test_premium_spread_requires_subscription(client, db_session):
    denied = _create_reading(client, spread_id="celtic")
    assert denied.status_code == 403

    _make_premium(client, db_session)
    allowed = _create_reading(client, spread_id="celtic")
    assert allowed.status_code == 201
    assert len(allowed.json()["cards"]) == 10


def test_premium_users_have_no_daily_limit(client, db_session):
    _make_premium(client, db_session)
    for _ in range(settings.free_daily_readings + 2):
        assert _create_reading(client, spread_id="single").status_code == 201
    assert client.get("/v1/users/me", headers=HEADERS).json()["remaining_daily_readings"] is None


def test_reading_validation(client):
    assert _create_reading(client, spread_id="missing").status_code == 404
    assert _create_reading(client, question="ab").status_code == 400
    assert _create_reading(client, question="   ").status_code == 201


def test_reading_lifecycle(client):
    reading_id = _create_reading(client).json()["id"]

    fetched = client.get(f"/v1/readings/{reading_id}", headers=HEADERS)
    assert fetched.status_code == 200

    updated = client.put(
        f"/v1/readings/{reading_id}",
        headers=HEADERS,
        json={"title": "Неделя", "notes": "Сбылось", "mood": "positive", "tags": ["work"]},
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Неделя"
    assert updated.json()["tags"] == ["work"]

    no_rating = client.post(f"/v1/readings/{reading_id}/rate", headers=HEADERS, json={})
    assert no_rating.status_code == 400
    rated = client.post(f"/v1/readings/{reading_id}/rate", headers=HEADERS, json={"accuracy": 5, "helpfulness": 4})
    assert rated.json()["accuracy"] == 5

    favorite = client.post(f"/v1/readings/{reading_id}/favorite", headers=HEADERS)
    assert favorite.json()["is_favorite"] is True
    favorites = client.get("/v1/readings", headers=HEADERS, params={"favorite": "true"})
    assert favorites.json()["total"] == 1

    stats = client.get("/v1/readings/statistics", headers=HEADERS).json()
    assert stats["total_readings"] == 1
    assert stats["average_accuracy"] == 5.0
    assert stats["spread_distribution"] == {"three-card": 1}
    assert stats["favorites"] == 1

    deleted = client.delete(f"/v1/readings/{reading_id}", headers=HEADERS)
    assert deleted.status_code == 200
    assert client.get(f"/v1/readings/{reading_id}", headers=HEADERS).status_code == 404
    assert client.get("/v1/readings", headers=HEADERS).json()["total"] == 0


def test_share_flow(client):
    reading_id = _create_reading(client).json()["id"]

    shared = client.post(f"/v1/readings/{reading_id}/share", headers=HEADERS)
    assert shared.status_code == 200
    code = shared.json()["share_code"]
    assert len(code) == 12

    public = client.get(f"/v1/readings/shared/{code}")
    assert public.status_code == 200
    assert public.json()["view_count"] == 1
    assert len(public.json()["cards"]) == 3
    assert client.get(f"/v1/readings/shared/{code}").json()["view_count"] == 2

    reshared = client.post(f"/v1/readings/{reading_id}/share", headers=HEADERS)
    assert reshared.json()["share_code"] == code

    unshared = client.delete(f"/v1/readings/{reading_id}/share", headers=HEADERS)
    assert unshared.json()["share_code"] is None
    assert client.get(f"/v1/readings/shared/{code}").status_code == 404


def test_archived_reading_cannot_be_shared(client):
    reading_id = _create_reading(client).json()["id"]

    archived = client.post(f"/v1/readings/{reading_id}/archive", headers=HEADERS)
    assert archived.json()["status"] == "archived"
    assert client.post(f"/v1/readings/{reading_id}/share", headers=HEADERS).status_code == 400

    only_archived = client.get("/v1/readings", headers=HEADERS, params={"status": "archived"})
    assert only_archived.json()["total"] == 1


def test_readings_are_private_to_owner(client):
    reading_id = _create_reading(client).json()["id"]
    other = {"X-TG-USER-ID": "777"}

    assert client.get(f"/v1/readings/{reading_id}", headers=other).status_code == 404
    assert client.delete(f"/v1/readings/{reading_id}", headers=other).status_code == 404
    assert client.get("/v1/readings", headers=other).json()["total"] == 0


def test_daily_card_is_stable_for_the_day(client):
    first = client.get("/v1/readings/daily-card", headers=HEADERS)
    assert first.status_code == 200
    assert first.json()["is_new"] is True

    second = client.get("/v1/readings/daily-card", headers=HEADERS)
    assert second.json()["is_new"] is False
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["card"]["tarot_id"] == first.json()["card"]["tarot_id"]

    me = client.get("/v1/users/me", headers=HEADERS).json()
    assert me["remaining_daily_readings"] == settings.free_daily_readings


def test_recommend_spread(client, db_session):
    love = client.get("/v1/readings/recommend-spread", headers=HEADERS, params={"question": "Как отношения?"})
    assert love.json()["spread"]["id"] == "relationship"

    general = client.get("/v1/readings/recommend-spread", headers=HEADERS)
    assert general.json()["spread"]["id"] == "three"

    _make_premium(client, db_session)
    premium = client.get("/v1/readings/recommend-spread", headers=HEADERS)
    assert premium.json()["spread"]["id"] == "celtic"


def test_user_stats_after_readings(client):
    _create_reading(client)
    _create_reading(client, spread_id="single")
    _create_reading(client, spread_id="single")

    stats = client.get("/v1/users/me/stats", headers=HEADERS).json()
    assert stats["total_readings"] == 3
    assert stats["stored_readings"] == 3
    assert stats["favorite_spread"] == "single-card"
    assert stats["remaining_daily_readings"] == 0

    history = client.get("/v1/users/me/readings", headers=HEADERS, params={"limit": 2})
    assert history.json()["total"] == 3
    assert len(history.json()["items"]) == 2
