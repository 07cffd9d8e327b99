def test_list_cards_with_filters(client):
    all_cards = client.get("/v1/cards")
    assert all_cards.status_code == 200
    assert all_cards.json()["total"] == 78
    assert len(all_cards.json()["items"]) == 78
    assert all_cards.json()["items"][0]["tarot_id"] == "major_0"

    majors = client.get("/v1/cards", params={"arcana": "major"})
    assert majors.json()["total"] == 22

    cups = client.get("/v1/cards", params={"suit": "cups"})
    assert cups.json()["total"] == 14
    assert {item["suit"] for item in cups.json()["items"]} == {"cups"}

    page = client.get("/v1/cards", params={"limit": 10, "offset": 70})
    assert page.json()["total"] == 78
    assert len(page.json()["items"]) == 8


def test_list_cards_search_and_validation(client):
    found = client.get("/v1/cards", params={"search": "Fool"})
    assert found.status_code == 200
    assert [item["tarot_id"] for item in found.json()["items"]] == ["major_0"]

    assert client.get("/v1/cards", params={"suit": "coins"}).status_code == 422
    assert client.get("/v1/cards", params={"limit": 100}).status_code == 422


def test_get_card_and_meaning(client):
    card = client.get("/v1/cards/major_0")
    assert card.status_code == 200
    assert card.json()["name_en"] == "The Fool"
    assert card.json()["arcana"] == "major"

    meaning = client.get("/v1/cards/major_0/meaning", params={"reversed": "true", "category": "love"})
    assert meaning.status_code == 200
    body = meaning.json()
    assert body["is_reversed"] is True
    assert body["category"] == "love"
    assert body["meaning"]
    assert body["keywords"]

    unknown_category = client.get("/v1/cards/major_0/meaning", params={"category": "money"})
    assert unknown_category.json()["category"] == "general"

    assert client.get("/v1/cards/major_99").status_code == 404


def test_random_cards(client):
    single = client.get("/v1/cards/random")
    assert single.status_code == 200
    assert "is_reversed" in single.json()
    assert single.json()["meaning"]

    several = client.get("/v1/cards/random-multiple", params={"count": 5})
    assert several.status_code == 200
    assert len({item["tarot_id"] for item in several.json()}) == 5

    assert client.get("/v1/cards/random-multiple", params={"count": 11}).status_code == 422
