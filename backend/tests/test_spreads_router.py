from mistika import models

OWNER = {"X-TG-USER-ID": "424242"}
OTHER = {"X-TG-USER-ID": "777"}

CUSTOM_SPREAD = {
    "name": "Перекрёсток",
    "description": "Выбор между двумя дорогами",
    "positions": [
        {"name": "Путь А", "meaning": "Что даст первый путь"},
        {"name": "Путь Б", "meaning": "Что даст второй путь"},
        {"name": "Совет"},
    ],
    "category": "general",
}


def _make_premium(client, db_session, headers):
    client.get("/v1/users/me", headers=headers)
    user = db_session.query(models.User).filter(models.User.tg_user_id == int(headers["X-TG-USER-ID"])).one()
    user.is_premium = True
    db_session.commit()


def test_builtin_spreads(client):
    response = client.get("/v1/spreads")
    assert response.status_code == 200
    spreads = {item["id"]: item for item in response.json()}
    assert {"single", "three", "celtic", "relationship", "career", "horseshoe"} <= set(spreads)
    assert spreads["celtic"]["is_premium"] is True
    assert spreads["single"]["cards_count"] == 1

    single = client.get("/v1/spreads/three")
    assert single.status_code == 200
    assert len(single.json()["positions"]) == 3
    assert client.get("/v1/spreads/nope").status_code == 404


def test_custom_spread_requires_premium(client):
    response = client.post("/v1/spreads/custom", headers=OWNER, json=CUSTOM_SPREAD)
    assert response.status_code == 403


def test_custom_spread_validation(client, db_session):
    _make_premium(client, db_session, OWNER)
    too_many = {**CUSTOM_SPREAD, "positions": [{"name": f"P{i}"} for i in range(21)]}
    assert client.post("/v1/spreads/custom", headers=OWNER, json=too_many).status_code == 422
    no_positions = {**CUSTOM_SPREAD, "positions": []}
    assert client.post("/v1/spreads/custom", headers=OWNER, json=no_positions).status_code == 422


def test_custom_spread_lifecycle(client, db_session):
    _make_premium(client, db_session, OWNER)

    created = client.post("/v1/spreads/custom", headers=OWNER, json=CUSTOM_SPREAD)
    assert created.status_code == 201
    spread = created.json()
    assert spread["is_custom"] is True
    assert spread["cards_count"] == 3

    mine = client.get("/v1/spreads/custom/my", headers=OWNER)
    assert [item["id"] for item in mine.json()] == [spread["id"]]

    reading = client.post("/v1/readings", headers=OWNER, json={"spread_id": spread["id"]})
    assert reading.status_code == 201
    assert reading.json()["spread_type"] == "custom"
    assert [card["position_name"] for card in reading.json()["cards"]] == ["Путь А", "Путь Б", "Совет"]

    # Private custom spreads are invisible to other users.
    assert client.post("/v1/readings", headers=OTHER, json={"spread_id": spread["id"]}).status_code == 404
    assert client.delete(f"/v1/spreads/custom/{spread['id']}", headers=OTHER).status_code == 404

    deleted = client.delete(f"/v1/spreads/custom/{spread['id']}", headers=OWNER)
    assert deleted.status_code == 200
    assert client.get("/v1/spreads/custom/my", headers=OWNER).json() == []


def test_public_custom_spread_usable_by_others(client, db_session):
    _make_premium(client, db_session, OWNER)
    spread_id = client.post(
        "/v1/spreads/custom", headers=OWNER, json={**CUSTOM_SPREAD, "is_public": True}
    ).json()["id"]

    reading = client.post("/v1/readings", headers=OTHER, json={"spread_id": spread_id})
    assert reading.status_code == 201
    assert client.delete(f"/v1/spreads/custom/{spread_id}", headers=OTHER).status_code == 403
