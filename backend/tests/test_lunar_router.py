from mistika.config import settings

HEADERS = {"X-TG-USER-ID": "424242"}


def test_current_lunar_day(client):
    response = client.get("/v1/lunar/current", params={"date": "2024-01-25"})
    assert response.status_code == 200
    assert response.json()["lunar_day"] == 15
    assert response.json()["moon_phase"]["phase"] == "full_moon"

    today = client.get("/v1/lunar/current")
    assert today.status_code == 200
    assert 1 <= today.json()["lunar_day"] <= 30


def test_calendar_range_limits(client):
    default = client.get("/v1/lunar/calendar", params={"start_date": "2024-01-01"})
    assert default.status_code == 200
    assert default.json()["period"]["total_days"] == 30

    too_long = client.get("/v1/lunar/calendar", params={"start_date": "2024-01-01", "end_date": "2024-06-01"})
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "validation_error"

    backwards = client.get("/v1/lunar/calendar", params={"start_date": "2024-02-01", "end_date": "2024-01-01"})
    assert backwards.status_code == 400


def test_favorable_days_and_events(client):
    found = client.get(
        "/v1/lunar/favorable-days",
        params={"activity": "спорт", "start_date": "2024-03-21", "end_date": "2024-04-19"},
    )
    assert found.status_code == 200
    assert found.json()["total_found"] > 0
    assert client.get("/v1/lunar/favorable-days", params={"activity": "x"}).status_code == 422
    blank = client.get("/v1/lunar/favorable-days", params={"activity": "   "})
    assert blank.status_code == 400

    events = client.get("/v1/lunar/events", params={"days": 10})
    assert events.status_code == 200
    assert events.json()["period"]["days_ahead"] == 10
    assert client.get("/v1/lunar/events", params={"days": 200}).status_code == 422


def test_personal_needs_birth_date(client):
    assert client.get("/v1/lunar/personal", headers=HEADERS).status_code == 400

    client.put("/v1/users/me", headers=HEADERS, json={"birth_date": "2024-01-11"})
    personal = client.get("/v1/lunar/personal", headers=HEADERS, params={"date": "2024-01-11"})
    assert personal.status_code == 200
    assert personal.json()["compatibility"]["compatibility"]["phase"]["score"] == 100
    assert personal.json()["today"]["date"] == "2024-01-11"


def test_lunar_reading_counts_towards_limit(client):
    single = client.post("/v1/lunar/reading", headers=HEADERS, json={"cards_count": 1})
    assert single.status_code == 201
    assert single.json()["type"] == "lunar"
    assert len(single.json()["cards"]) == 1
    assert single.json()["lunar_context"]["moon_phase"]["name"]

    triple = client.post("/v1/lunar/reading", headers=HEADERS, json={"cards_count": 3, "question": "Что несёт луна?"})
    assert triple.status_code == 201
    assert len(triple.json()["cards"]) == 3

    assert client.post("/v1/lunar/reading", headers=HEADERS, json={"cards_count": 2}).status_code == 422

    me = client.get("/v1/users/me", headers=HEADERS).json()
    assert me["remaining_daily_readings"] == settings.free_daily_readings - 2
