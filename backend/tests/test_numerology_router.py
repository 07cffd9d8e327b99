HEADERS = {"X-TG-USER-ID": "424242"}


def test_calculate(client):
    response = client.post(
        "/v1/numerology/calculate",
        headers=HEADERS,
        json={"birth_date": "1990-05-15", "full_name": "  Анна   Иванова "},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["life_path"]["number"] == 3
    assert body["soul"]["number"] == 6
    assert body["summary"]
    assert body["recommendations"]


def test_calculate_validation(client):
    no_letters = client.post(
        "/v1/numerology/calculate", headers=HEADERS, json={"birth_date": "1990-05-15", "full_name": "12345"}
    )
    assert no_letters.status_code == 422
    out_of_range = client.post(
        "/v1/numerology/calculate", headers=HEADERS, json={"birth_date": "1850-05-15", "full_name": "Анна"}
    )
    assert out_of_range.status_code == 422
    assert client.post("/v1/numerology/calculate", json={"birth_date": "1990-05-15", "full_name": "Анна"}).status_code == 401


def test_compatibility(client):
    dates_only = client.post(
        "/v1/numerology/compatibility",
        headers=HEADERS,
        json={"birth_date1": "1990-05-15", "birth_date2": "2000-02-20"},
    )
    assert dates_only.status_code == 200
    body = dates_only.json()
    assert (body["life_path1"], body["life_path2"]) == (3, 6)
    assert body["life_path_compatibility"]["level"] == "high"
    assert "destiny_compatibility" not in body

    with_names = client.post(
        "/v1/numerology/compatibility",
        headers=HEADERS,
        json={"birth_date1": "1990-05-15", "birth_date2": "2000-02-20", "name1": "Анна", "name2": "abc"},
    )
    assert with_names.json()["destiny1"] == 3
    assert with_names.json()["destiny2"] == 6
    assert with_names.json()["destiny_compatibility"]["percentage"] == 85


def test_forecast_and_name_analysis(client):
    forecast = client.post(
        "/v1/numerology/forecast",
        headers=HEADERS,
        json={"birth_date": "1990-05-15", "target_date": "2026-10-19"},
    )
    assert forecast.status_code == 200
    assert forecast.json()["personal_year"]["number"] == 3
    assert forecast.json()["personal_day"]["number"] == 5

    name = client.post("/v1/numerology/analyze-name", headers=HEADERS, json={"name": " Анна "})
    assert name.json()["name"] == "Анна"
    assert name.json()["number"] == 3
    assert client.post("/v1/numerology/analyze-name", headers=HEADERS, json={"name": "123"}).status_code == 422


def test_favorable_dates_needs_birth_date(client):
    assert client.get("/v1/numerology/favorable-dates", headers=HEADERS).status_code == 400

    explicit = client.get(
        "/v1/numerology/favorable-dates", headers=HEADERS, params={"birth_date": "1990-05-15", "year": 2026}
    )
    assert explicit.status_code == 200
    assert explicit.json()["year"] == 2026
    assert explicit.json()["life_path"] == 3
    assert len(explicit.json()["dates"]) == 12


def test_my_profile_uses_stored_data(client):
    assert client.get("/v1/numerology/my-profile", headers=HEADERS).status_code == 400

    client.put("/v1/users/me", headers=HEADERS, json={"birth_date": "1990-05-15", "first_name": "Анна"})
    profile = client.get("/v1/numerology/my-profile", headers=HEADERS)
    assert profile.status_code == 200
    assert profile.json()["analysis"]["destiny"]["number"] == 3
    assert profile.json()["forecast"]["life_path"]["number"] == 3

    stored = client.get("/v1/numerology/favorable-dates", headers=HEADERS)
    assert stored.status_code == 200
    assert stored.json()["life_path"] == 3
