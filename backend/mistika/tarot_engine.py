import json
import logging
import random
from functools import lru_cache
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from . import models

DECK_PATH = Path(__file__).resolve().parent / "assets" / "tarot_deck.json"

MEANING_CATEGORIES = ("general", "love", "career", "health", "spiritual")
READING_REVERSAL_PROBABILITY = 0.25
DAILY_REVERSAL_PROBABILITY = 0.3

SPREADS: dict[str, dict[str, Any]] = {
    "single": {
        "name": "Одна карта",
        "name_en": "Single Card",
        "description": "Простое гадание на одну карту",
        "reading_type": "single-card",
        "difficulty": "beginner",
        "category": "general",
        "positions": [{"name": "Ваша карта", "meaning": "Основной ответ на вопрос"}],
        "is_premium": False,
    },
    "three": {
        "name": "Три карты",
        "name_en": "Three Cards",
        "description": "Прошлое, настоящее, будущее",
        "reading_type": "three-card",
        "difficulty": "beginner",
        "category": "general",
        "positions": [
            {"name": "Прошлое", "meaning": "Что привело к текущей ситуации"},
            {"name": "Настоящее", "meaning": "Текущее состояние дел"},
            {"name": "Будущее", "meaning": "Что ждет в ближайшем будущем"},
        ],
        "is_premium": False,
    },
    "celtic": {
        "name": "Кельтский крест",
        "name_en": "Celtic Cross",
        "description": "Полное и подробное гадание",
        "reading_type": "celtic-cross",
        "difficulty": "advanced",
        "category": "general",
        "positions": [
            {"name": "Текущая ситуация", "meaning": "Ваше положение сейчас"},
            {"name": "Препятствие", "meaning": "Что мешает достижению цели"},
            {"name": "Далекое прошлое", "meaning": "Корни ситуации"},
            {"name": "Возможное будущее", "meaning": "Что может произойти"},
            {"name": "Возможный исход", "meaning": "Вероятный результат"},
            {"name": "Ближайшее будущее", "meaning": "События в скором времени"},
            {"name": "Ваш подход", "meaning": "Как вы относитесь к ситуации"},
            {"name": "Внешние влияния", "meaning": "Влияние окружающих"},
            {"name": "Надежды и страхи", "meaning": "Ваши внутренние переживания"},
            {"name": "Финальный исход", "meaning": "Окончательный результат"},
        ],
        "is_premium": True,
    },
    "relationship": {
        "name": "Отношения",
        "name_en": "Relationship",
        "description": "Гадание на отношения между людьми",
        "reading_type": "relationship",
        "difficulty": "intermediate",
        "category": "love",
        "positions": [
            {"name": "Вы", "meaning": "Ваше состояние в отношениях"},
            {"name": "Партнер", "meaning": "Состояние партнера"},
            {"name": "Отношения", "meaning": "Связь между вами"},
            {"name": "Препятствия", "meaning": "Что мешает гармонии"},
            {"name": "Совет", "meaning": "Как улучшить отношения"},
        ],
        "is_premium": True,
    },
    "career": {
        "name": "Карьера",
        "name_en": "Career",
        "description": "Расклад на работу, деньги и профессиональный путь",
        "reading_type": "career",
        "difficulty": "intermediate",
        "category": "career",
        "positions": [
            {"name": "Текущая позиция", "meaning": "Где вы сейчас в профессии"},
            {"name": "Возможности", "meaning": "Что открывается перед вами"},
            {"name": "Препятствия", "meaning": "Что тормозит развитие"},
            {"name": "Результат", "meaning": "К чему приведут ваши действия"},
        ],
        "is_premium": False,
    },
    "horseshoe": {
        "name": "Подкова",
        "name_en": "Horseshoe",
        "description": "Семь карт о развитии ситуации и её исходе",
        "reading_type": "year-ahead",
        "difficulty": "intermediate",
        "category": "forecast",
        "positions": [
            {"name": "Прошлое", "meaning": "Что повлияло на ситуацию"},
            {"name": "Настоящее", "meaning": "Текущее положение"},
            {"name": "Скрытые влияния", "meaning": "Что происходит незаметно"},
            {"name": "Препятствия", "meaning": "С чем придётся столкнуться"},
            {"name": "Окружение", "meaning": "Как влияют другие люди"},
            {"name": "Совет", "meaning": "Что лучше предпринять"},
            {"name": "Исход", "meaning": "Вероятный результат"},
        ],
        "is_premium": True,
    },
}

logger = logging.getLogger("mistika.cards")


@lru_cache(maxsize=1)
def _deck_source() -> dict[str, Any]:
    with DECK_PATH.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict) or len(data.get("major", [])) != 22:
        raise RuntimeError("tarot_deck.json is invalid")
    return data


def _minor_meanings(suit: dict, rank: dict) -> dict[str, dict[str, str]]:
    theme = suit["theme"]
    meanings: dict[str, dict[str, str]] = {"upright": {}, "reversed": {}}
    for orientation in ("upright", "reversed"):
        for category, focus in theme.items():
            meanings[orientation][category] = f"{rank[orientation]}: {focus}."
    return meanings


@lru_cache(maxsize=1)
def load_deck() -> list[dict[str, Any]]:
    """All 78 cards as plain dicts, majors first."""
    source = _deck_source()
    deck: list[dict[str, Any]] = []

    for card in source["major"]:
        deck.append(
            {
                "tarot_id": f"major_{card['number']}",
                "name": card["name"],
                "name_en": card["name_en"],
                "arcana": "major",
                "suit": None,
                "number": card["number"],
                "court": None,
                "element": card["element"],
                "keywords": card["keywords"],
                "meanings": card["meanings"],
            }
        )

    for suit in source["suits"]:
        for rank in source["ranks"]:
            deck.append(
                {
                    "tarot_id": f"{suit['key']}_{rank['key']}",
                    "name": f"{rank['name']} {suit['name']}",
                    "name_en": f"{rank['name_en']} of {suit['name_en']}",
                    "arcana": "minor",
                    "suit": suit["key"],
                    "number": rank["number"],
                    "court": rank["court"],
                    "element": suit["element"],
                    "keywords": rank["keywords"],
                    "meanings": _minor_meanings(suit, rank),
                }
            )

    return deck


def seed_cards(db: Session) -> int:
    existing = {row[0] for row in db.query(models.Card.tarot_id).all()}
    created = 0
    for order, card in enumerate(load_deck()):
        if card["tarot_id"] in existing:
            continue
        db.add(models.Card(sort_order=order, **card))
        created += 1
    if created:
        db.commit()
        logger.info("Seeded tarot deck | created=%s", created)
    return created


def get_spread(spread_id: str) -> dict[str, Any] | None:
    spread = SPREADS.get(spread_id)
    if spread is None:
        return None
    return {"id": spread_id, "cards_count": len(spread["positions"]), **spread}


def list_spreads() -> list[dict[str, Any]]:
    return [get_spread(spread_id) for spread_id in SPREADS]


def card_meaning(card: models.Card, *, reversed: bool = False, category: str = "general") -> str:
    orientation = "reversed" if reversed else "upright"
    by_category = (card.meanings or {}).get(orientation) or {}
    if category not in MEANING_CATEGORIES:
        category = "general"
    return by_category.get(category) or by_category.get("general") or ""


def card_keywords(card: models.Card, *, reversed: bool = False) -> list[str]:
    return list((card.keywords or {}).get("reversed" if reversed else "upright") or [])


def draw_cards(
    db: Session,
    count: int,
    *,
    reversal_probability: float = READING_REVERSAL_PROBABILITY,
    rng: random.Random | None = None,
) -> list[tuple[models.Card, bool]]:
    """Sample ``count`` distinct active cards, each with a reversal flag."""
    rng = rng or random.SystemRandom()
    cards = db.query(models.Card).filter(models.Card.is_active.is_(True)).all()
    if count < 1 or count > len(cards):
        raise ValueError(f"Cannot draw {count} cards from a deck of {len(cards)}")
    picked = rng.sample(cards, k=count)
    return [(card, rng.random() < reversal_probability) for card in picked]


def recommend_spread(question: str | None, subscription_type: str) -> str:
    text = (question or "").lower()
    if "любовь" in text or "отношения" in text:
        return "relationship"
    if "работа" in text or "карьера" in text:
        return "career"
    if "здоровье" in text:
        return "three"
    if subscription_type != "basic":
        return "celtic"
    return "three"


def serialize_card(card: models.Card) -> dict[str, Any]:
    return {
        "id": card.id,
        "tarot_id": card.tarot_id,
        "name": card.name,
        "name_en": card.name_en,
        "arcana": card.arcana,
        "suit": card.suit,
        "number": card.number,
        "court": card.court,
        "element": card.element,
        "keywords": card.keywords,
        "image_url": card.image_url,
    }
