import logging
import random
import uuid
from collections import Counter
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
)
from .metrics import readings_total
from .numerology_engine import life_path_number
from .security import generate_referral_code, generate_share_code
from .tarot_engine import (
    DAILY_REVERSAL_PROBABILITY,
    card_meaning,
    draw_cards,
    get_spread,
    serialize_card,
)

logger = logging.getLogger("mistika.readings")
users_logger = logging.getLogger("mistika.users")

READING_TYPES = {
    "single-card",
    "three-card",
    "celtic-cross",
    "relationship",
    "career",
    "year-ahead",
    "moon-cycle",
    "chakra",
    "elements",
    "custom",
}
READING_STATUSES = {"draft", "completed", "archived", "deleted"}
MAX_CARDS_BUILTIN = 10
MAX_CARDS_CUSTOM = 20
QUESTION_MIN_LENGTH = 3
QUESTION_MAX_LENGTH = 1000

USER_UPDATABLE_FIELDS = {
    "email",
    "username",
    "first_name",
    "last_name",
    "language_code",
    "birth_date",
    "timezone",
}


# ── Users ───────────────────────────────────────────────────────────

def _unique_referral_code(db: Session) -> str:
    while True:
        code = generate_referral_code()
        if not db.query(models.User.id).filter(models.User.referral_code == code).first():
            return code


def _apply_telegram_payload(user: models.User, payload: dict | None) -> None:
    if not payload:
        return
    for source, target in (
        ("first_name", "first_name"),
        ("last_name", "last_name"),
        ("username", "username"),
        ("language_code", "language_code"),
    ):
        value = payload.get(source)
        if isinstance(value, str) and value.strip():
            setattr(user, target, value.strip())


def get_or_create_user(db: Session, tg_user_id: int, telegram_user_payload: dict | None = None) -> models.User:
    user = db.query(models.User).filter(models.User.tg_user_id == tg_user_id).first()
    if user:
        return user

    user = models.User(
        tg_user_id=tg_user_id,
        referral_code=_unique_referral_code(db),
        is_admin=tg_user_id in settings.admin_telegram_ids(),
    )
    _apply_telegram_payload(user, telegram_user_payload)
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
        users_logger.info("User created | tg_user_id=%s | user_id=%s", tg_user_id, user.id)
        return user
    except IntegrityError:
        db.rollback()
        existing = db.query(models.User).filter(models.User.tg_user_id == tg_user_id).first()
        if existing:
            return existing
        raise


def create_user(db: Session, *, tg_user_id: int, email: str | None = None, **fields) -> models.User:
    if db.query(models.User.id).filter(models.User.tg_user_id == tg_user_id).first():
        raise ConflictError("User with this Telegram id already exists")
    if email and db.query(models.User.id).filter(func.lower(models.User.email) == email.lower()).first():
        raise ConflictError("User with this email already exists")

    user = models.User(
        tg_user_id=tg_user_id,
        email=email.lower() if email else None,
        referral_code=_unique_referral_code(db),
        is_admin=tg_user_id in settings.admin_telegram_ids(),
    )
    for key, value in fields.items():
        if key in USER_UPDATABLE_FIELDS and value is not None:
            setattr(user, key, value)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User already exists")
    db.refresh(user)
    users_logger.info("User created | tg_user_id=%s | user_id=%s", tg_user_id, user.id)
    return user


def sync_telegram_profile(db: Session, user: models.User, telegram_user_payload: dict | None) -> models.User:
    _apply_telegram_payload(user, telegram_user_payload)
    user.last_seen_at = models.utcnow()
    db.commit()
    db.refresh(user)
    return user


def update_user_fields(db: Session, user: models.User, patch: dict) -> models.User:
    email = patch.get("email")
    if email:
        email = email.lower()
        clash = (
            db.query(models.User.id)
            .filter(func.lower(models.User.email) == email, models.User.id != user.id)
            .first()
        )
        if clash:
            raise ConflictError("User with this email already exists")
        patch = {**patch, "email": email}

    for key, value in patch.items():
        if key in USER_UPDATABLE_FIELDS:
            setattr(user, key, value)
    user.updated_at = models.utcnow()
    db.commit()
    db.refresh(user)
    return user


def update_user_settings(db: Session, user: models.User, patch: dict) -> dict:
    merged = dict(user.preferences or {})
    merged.update(patch)
    user.preferences = merged
    user.updated_at = models.utcnow()
    db.commit()
    db.refresh(user)
    return merged


def delete_user(db: Session, user: models.User) -> None:
    user_id = user.id
    db.delete(user)
    db.commit()
    users_logger.info("User deleted | user_id=%s", user_id)


def is_premium_active(user: models.User, now: datetime | None = None) -> bool:
    if not user.is_premium:
        return False
    expires_at = models.as_utc(user.premium_expires_at)
    if expires_at is None:
        return True
    return expires_at > (now or models.utcnow())


def _reset_daily_counter(user: models.User, today: date) -> None:
    if user.last_daily_reset != today:
        user.daily_readings_used = 0
        user.last_daily_reset = today


def can_make_reading(user: models.User, today: date | None = None) -> bool:
    if is_premium_active(user):
        return True
    today = today or models.utcnow().date()
    if user.last_daily_reset != today:
        return True
    return user.daily_readings_used < settings.free_daily_readings


def remaining_daily_readings(user: models.User, today: date | None = None) -> int | None:
    if is_premium_active(user):
        return None
    today = today or models.utcnow().date()
    used = user.daily_readings_used if user.last_daily_reset == today else 0
    return max(settings.free_daily_readings - used, 0)


def increment_readings(user: models.User, today: date | None = None) -> None:
    _reset_daily_counter(user, today or models.utcnow().date())
    user.total_readings += 1
    user.daily_readings_used += 1


def reset_daily_counters(db: Session, today: date | None = None) -> int:
    today = today or models.utcnow().date()
    updated = (
        db.query(models.User)
        .filter((models.User.last_daily_reset.is_(None)) | (models.User.last_daily_reset != today))
        .update({"daily_readings_used": 0, "last_daily_reset": today}, synchronize_session=False)
    )
    db.commit()
    return updated


def user_stats(db: Session, user: models.User) -> dict:
    readings = (
        db.query(models.Reading)
        .filter(models.Reading.user_id == user.id, models.Reading.status != "deleted")
        .all()
    )
    spread_counts = Counter(reading.spread_type for reading in readings)
    favorite_spread = spread_counts.most_common(1)[0][0] if spread_counts else None
    daily_cards = (
        db.query(models.TarotReading)
        .filter(models.TarotReading.user_id == user.id, models.TarotReading.is_daily.is_(True))
        .count()
    )
    return {
        "total_readings": user.total_readings,
        "stored_readings": len(readings),
        "favorite_readings": sum(1 for reading in readings if reading.is_favorite),
        "daily_cards": daily_cards,
        "favorite_spread": favorite_spread,
        "remaining_daily_readings": remaining_daily_readings(user),
        "member_since": user.created_at,
    }


def apply_referral(db: Session, user: models.User, code: str) -> models.User:
    code = code.strip().upper()
    if user.referred_by_id is not None:
        raise ConflictError("Referral code already applied")
    referrer = db.query(models.User).filter(models.User.referral_code == code).first()
    if referrer is None:
        raise NotFoundError("Referral code not found")
    if referrer.id == user.id:
        raise ValidationError("Cannot use your own referral code")
    user.referred_by_id = referrer.id
    db.commit()
    users_logger.info("Referral applied | user_id=%s | referrer_id=%s", user.id, referrer.id)
    return referrer


def list_referrals(db: Session, user: models.User) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.referred_by_id == user.id)
        .order_by(models.User.created_at.desc())
        .all()
    )


# ── Custom spreads ──────────────────────────────────────────────────

def create_custom_spread(
    db: Session,
    user: models.User,
    *,
    name: str,
    description: str,
    positions: list[dict],
    category: str,
    difficulty: str,
    is_public: bool,
) -> models.Spread:
    if not 1 <= len(positions) <= MAX_CARDS_CUSTOM:
        raise ValidationError(f"Custom spread must have 1-{MAX_CARDS_CUSTOM} positions")
    spread = models.Spread(
        owner_id=user.id,
        name=name,
        description=description,
        positions=positions,
        cards_count=len(positions),
        category=category,
        difficulty=difficulty,
        is_public=is_public,
    )
    db.add(spread)
    db.commit()
    db.refresh(spread)
    return spread


def list_custom_spreads(db: Session, user: models.User) -> list[models.Spread]:
    return (
        db.query(models.Spread)
        .filter(models.Spread.owner_id == user.id, models.Spread.is_active.is_(True))
        .order_by(models.Spread.created_at.desc())
        .all()
    )


def get_custom_spread(db: Session, user: models.User, spread_id: str) -> models.Spread | None:
    try:
        spread_uuid = uuid.UUID(spread_id)
    except ValueError:
        return None
    spread = db.get(models.Spread, spread_uuid)
    if spread is None or not spread.is_active:
        return None
    if spread.owner_id != user.id and not spread.is_public:
        return None
    return spread


def delete_custom_spread(db: Session, user: models.User, spread_id: str) -> None:
    spread = get_custom_spread(db, user, spread_id)
    if spread is None:
        raise NotFoundError("Spread not found")
    if spread.owner_id != user.id:
        raise AuthorizationError("Only the owner can delete this spread")
    db.delete(spread)
    db.commit()


# ── Readings ────────────────────────────────────────────────────────

def _resolve_spread(db: Session, user: models.User, spread_id: str) -> tuple[str, list[dict], bool, int]:
    """Return (reading type, positions, premium flag, max cards)."""
    builtin = get_spread(spread_id)
    if builtin is not None:
        return builtin["reading_type"], builtin["positions"], builtin["is_premium"], MAX_CARDS_BUILTIN

    custom = get_custom_spread(db, user, spread_id)
    if custom is None:
        raise NotFoundError(f"Spread not found: {spread_id}")
    return "custom", list(custom.positions), False, MAX_CARDS_CUSTOM


def _validate_question(question: str | None) -> str | None:
    if question is None:
        return None
    question = question.strip()
    if not question:
        return None
    if len(question) < QUESTION_MIN_LENGTH:
        raise ValidationError(f"Question must be at least {QUESTION_MIN_LENGTH} characters")
    if len(question) > QUESTION_MAX_LENGTH:
        raise ValidationError(f"Question must be at most {QUESTION_MAX_LENGTH} characters")
    return question


def perform_reading(
    db: Session,
    user: models.User,
    *,
    spread_id: str,
    question: str | None = None,
    title: str | None = None,
    is_private: bool = True,
    rng: random.Random | None = None,
) -> models.Reading:
    question = _validate_question(question)
    reading_type, positions, premium_only, max_cards = _resolve_spread(db, user, spread_id)

    if not 1 <= len(positions) <= max_cards:
        raise ValidationError(f"Spread must have 1-{max_cards} cards")
    if premium_only and not is_premium_active(user):
        raise AuthorizationError("This spread requires a premium subscription")

    today = models.utcnow().date()
    if not can_make_reading(user, today):
        raise PaymentRequiredError("Daily reading limit reached")

    drawn = draw_cards(db, len(positions), rng=rng)

    reading = models.Reading(
        user_id=user.id,
        title=title,
        question=question,
        spread_type=reading_type,
        spread_id=spread_id,
        is_private=is_private,
        status="completed",
    )
    db.add(reading)
    db.flush()

    for index, ((card, is_reversed), position) in enumerate(zip(drawn, positions), start=1):
        db.add(
            models.ReadingCard(
                reading_id=reading.id,
                card_id=card.id,
                position=index,
                position_name=str(position.get("name") or f"Позиция {index}"),
                is_reversed=is_reversed,
                interpretation=card_meaning(card, reversed=is_reversed),
            )
        )

    increment_readings(user, today)
    db.commit()
    db.refresh(reading)

    readings_total.labels(reading_type).inc()
    logger.info(
        "Reading created | user_id=%s | reading_id=%s | spread=%s | cards=%s",
        user.id, reading.id, spread_id, len(positions),
    )
    return reading


def reading_cards_payload(reading: models.Reading) -> list[dict]:
    return [
        {
            **serialize_card(item.card),
            "position": item.position,
            "position_name": item.position_name,
            "is_reversed": item.is_reversed,
            "meaning": item.interpretation or card_meaning(item.card, reversed=item.is_reversed),
        }
        for item in reading.cards
    ]


def get_or_create_daily_card(
    db: Session,
    user: models.User,
    today: date | None = None,
    rng: random.Random | None = None,
) -> tuple[models.TarotReading, bool]:
    """Return today's card for the user and whether it was created now."""
    today = today or models.utcnow().date()
    existing = (
        db.query(models.TarotReading)
        .filter(
            models.TarotReading.user_id == user.id,
            models.TarotReading.type == "daily",
            models.TarotReading.reading_date == today,
        )
        .first()
    )
    if existing:
        return existing, False

    [(card, is_reversed)] = draw_cards(db, 1, reversal_probability=DAILY_REVERSAL_PROBABILITY, rng=rng)
    meaning = card_meaning(card, reversed=is_reversed)
    daily = models.TarotReading(
        user_id=user.id,
        type="daily",
        spread_name="Карта дня",
        cards=[{**serialize_card(card), "is_reversed": is_reversed, "meaning": meaning}],
        positions=[{"name": "Карта дня", "meaning": "Энергия и подсказка на сегодня"}],
        interpretation=meaning,
        is_daily=True,
        reading_date=today,
    )
    db.add(daily)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = (
            db.query(models.TarotReading)
            .filter(
                models.TarotReading.user_id == user.id,
                models.TarotReading.type == "daily",
                models.TarotReading.reading_date == today,
            )
            .first()
        )
        if existing:
            return existing, False
        raise
    db.refresh(daily)
    readings_total.labels("daily").inc()
    return daily, True


def create_quick_reading(
    db: Session,
    user: models.User,
    *,
    reading_type: str,
    spread_name: str,
    positions: list[dict],
    question: str | None = None,
    summary: str | None = None,
    advice: str | None = None,
    rng: random.Random | None = None,
) -> models.TarotReading:
    drawn = draw_cards(db, len(positions), rng=rng)
    cards_payload = []
    for (card, is_reversed), position in zip(drawn, positions):
        cards_payload.append(
            {
                **serialize_card(card),
                "is_reversed": is_reversed,
                "position_name": position["name"],
                "meaning": card_meaning(card, reversed=is_reversed),
            }
        )
    reading = models.TarotReading(
        user_id=user.id,
        type=reading_type,
        spread_name=spread_name,
        question=_validate_question(question),
        cards=cards_payload,
        positions=positions,
        interpretation="\n".join(f"{item['position_name']}: {item['meaning']}" for item in cards_payload),
        summary=summary,
        advice=advice,
    )
    db.add(reading)
    db.commit()
    db.refresh(reading)
    readings_total.labels(reading_type).inc()
    return reading


def list_readings(
    db: Session,
    user: models.User,
    *,
    status: str | None = None,
    spread_type: str | None = None,
    favorite: bool | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[models.Reading], int]:
    query = db.query(models.Reading).filter(models.Reading.user_id == user.id)
    if status:
        query = query.filter(models.Reading.status == status)
    else:
        query = query.filter(models.Reading.status != "deleted")
    if spread_type:
        query = query.filter(models.Reading.spread_type == spread_type)
    if favorite is not None:
        query = query.filter(models.Reading.is_favorite.is_(favorite))
    total = query.count()
    items = query.order_by(models.Reading.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


def get_reading(db: Session, user: models.User, reading_id) -> models.Reading:
    reading = (
        db.query(models.Reading)
        .filter(
            models.Reading.id == reading_id,
            models.Reading.user_id == user.id,
            models.Reading.status != "deleted",
        )
        .first()
    )
    if not reading:
        raise NotFoundError("Reading not found")
    return reading


def update_reading(db: Session, reading: models.Reading, patch: dict) -> models.Reading:
    for key in ("title", "notes", "mood", "tags", "follow_up_date"):
        if key in patch:
            setattr(reading, key, patch[key])
    reading.updated_at = models.utcnow()
    db.commit()
    db.refresh(reading)
    return reading


def rate_reading(db: Session, reading: models.Reading, *, accuracy: int | None, helpfulness: int | None) -> models.Reading:
    if accuracy is None and helpfulness is None:
        raise ValidationError("Provide accuracy or helpfulness")
    if accuracy is not None:
        reading.accuracy = accuracy
    if helpfulness is not None:
        reading.helpfulness = helpfulness
    reading.updated_at = models.utcnow()
    db.commit()
    db.refresh(reading)
    return reading


def toggle_favorite(db: Session, reading: models.Reading) -> models.Reading:
    reading.is_favorite = not reading.is_favorite
    db.commit()
    db.refresh(reading)
    return reading


def share_reading(db: Session, reading: models.Reading) -> models.Reading:
    if reading.status != "completed":
        raise ValidationError("Only completed readings can be shared")
    if not reading.share_code:
        while True:
            code = generate_share_code()
            if not db.query(models.Reading.id).filter(models.Reading.share_code == code).first():
                break
        reading.share_code = code
    reading.is_shared = True
    db.commit()
    db.refresh(reading)
    return reading


def unshare_reading(db: Session, reading: models.Reading) -> models.Reading:
    reading.is_shared = False
    db.commit()
    db.refresh(reading)
    return reading


def get_shared_reading(db: Session, share_code: str) -> models.Reading:
    reading = (
        db.query(models.Reading)
        .filter(
            models.Reading.share_code == share_code,
            models.Reading.is_shared.is_(True),
            models.Reading.status == "completed",
        )
        .first()
    )
    if not reading:
        raise NotFoundError("Shared reading not found")
    reading.view_count += 1
    db.commit()
    db.refresh(reading)
    return reading


def archive_reading(db: Session, reading: models.Reading) -> models.Reading:
    reading.status = "archived"
    reading.is_shared = False
    db.commit()
    db.refresh(reading)
    return reading


def soft_delete_reading(db: Session, reading: models.Reading) -> None:
    reading.status = "deleted"
    reading.is_shared = False
    reading.is_favorite = False
    db.commit()


def reading_statistics(db: Session, user: models.User) -> dict:
    base = db.query(models.Reading).filter(models.Reading.user_id == user.id, models.Reading.status != "deleted")
    total = base.count()
    avg_accuracy, avg_helpfulness = (
        db.query(func.avg(models.Reading.accuracy), func.avg(models.Reading.helpfulness))
        .filter(models.Reading.user_id == user.id, models.Reading.status != "deleted")
        .one()
    )
    distribution = dict(
        db.query(models.Reading.spread_type, func.count(models.Reading.id))
        .filter(models.Reading.user_id == user.id, models.Reading.status != "deleted")
        .group_by(models.Reading.spread_type)
        .all()
    )
    return {
        "total_readings": total,
        "average_accuracy": round(float(avg_accuracy), 2) if avg_accuracy is not None else None,
        "average_helpfulness": round(float(avg_helpfulness), 2) if avg_helpfulness is not None else None,
        "spread_distribution": distribution,
        "favorites": base.filter(models.Reading.is_favorite.is_(True)).count(),
    }


def store_interpretation(db: Session, reading: models.Reading, text: str, model: str | None) -> models.Reading:
    reading.interpretation = text
    reading.ai_generated = model is not None and model != "local:fallback"
    reading.ai_model = model
    reading.updated_at = models.utcnow()
    db.commit()
    db.refresh(reading)
    return reading


LUNAR_POSITIONS = {
    1: [{"name": "Послание Луны", "meaning": "Главная подсказка текущего лунного дня"}],
    3: [
        {"name": "Энергия фазы", "meaning": "Что несёт текущая фаза Луны"},
        {"name": "Влияние знака", "meaning": "Как знак Луны окрашивает день"},
        {"name": "Совет", "meaning": "Как использовать лунную энергию"},
    ],
}


def create_lunar_reading(
    db: Session,
    user: models.User,
    *,
    cards_count: int,
    lunar_day_info: dict,
    question: str | None = None,
    rng: random.Random | None = None,
) -> models.TarotReading:
    positions = LUNAR_POSITIONS.get(cards_count)
    if positions is None:
        raise ValidationError("Lunar reading supports 1 or 3 cards")
    today = models.utcnow().date()
    if not can_make_reading(user, today):
        raise PaymentRequiredError("Daily reading limit reached")

    reading = create_quick_reading(
        db,
        user,
        reading_type="lunar",
        spread_name=f"Лунный расклад: {lunar_day_info['moon_phase']['name']}",
        positions=positions,
        question=question,
        summary=lunar_day_info["energy"],
        advice="\n".join(lunar_day_info["special_advice"]) or None,
        rng=rng,
    )
    increment_readings(user, today)
    db.commit()
    db.refresh(reading)
    return reading


def interpretation_inputs(reading: models.Reading) -> dict:
    birth_date = reading.user.birth_date
    return {
        "question": reading.question,
        "cards": reading_cards_payload(reading),
        "birth_date": birth_date.isoformat() if birth_date else None,
        "life_path_number": life_path_number(birth_date) if birth_date else None,
    }
