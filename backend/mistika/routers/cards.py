from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..errors import NotFoundError
from ..limiter import limiter
from ..tarot_engine import MEANING_CATEGORIES, card_keywords, card_meaning, draw_cards, serialize_card

router = APIRouter(prefix="/v1/cards", tags=["cards"])


def _drawn(card: models.Card, is_reversed: bool) -> schemas.DrawnCardResponse:
    return schemas.DrawnCardResponse(
        **serialize_card(card),
        is_reversed=is_reversed,
        meaning=card_meaning(card, reversed=is_reversed),
    )


def _get_card(db: Session, tarot_id: str) -> models.Card:
    card = (
        db.query(models.Card)
        .filter(models.Card.tarot_id == tarot_id, models.Card.is_active.is_(True))
        .first()
    )
    if card is None:
        raise NotFoundError(f"Card not found: {tarot_id}")
    return card


@router.get("", response_model=schemas.CardListResponse)
@limiter.limit("60/minute")
def list_cards(
    request: Request,
    arcana: str | None = Query(default=None, pattern="^(major|minor)$"),
    suit: str | None = Query(default=None, pattern="^(wands|cups|swords|pentacles)$"),
    element: str | None = Query(default=None, pattern="^(fire|water|air|earth)$"),
    search: str | None = Query(default=None, min_length=1, max_length=100),
    limit: int = Query(default=78, ge=1, le=78),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(models.Card).filter(models.Card.is_active.is_(True))
    if arcana:
        query = query.filter(models.Card.arcana == arcana)
    if suit:
        query = query.filter(models.Card.suit == suit)
    if element:
        query = query.filter(models.Card.element == element)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(models.Card.name.ilike(pattern), models.Card.name_en.ilike(pattern)))

    total = query.count()
    cards = query.order_by(models.Card.sort_order).offset(offset).limit(limit).all()
    return schemas.CardListResponse(
        items=[schemas.CardResponse(**serialize_card(card)) for card in cards],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/random", response_model=schemas.DrawnCardResponse)
@limiter.limit("60/minute")
def random_card(request: Request, db: Session = Depends(get_db)):
    [(card, is_reversed)] = draw_cards(db, 1)
    return _drawn(card, is_reversed)


@router.get("/random-multiple", response_model=list[schemas.DrawnCardResponse])
@limiter.limit("30/minute")
def random_cards(
    request: Request,
    count: int = Query(default=3, ge=1, le=10),
    db: Session = Depends(get_db),
):
    return [_drawn(card, is_reversed) for card, is_reversed in draw_cards(db, count)]


@router.get("/{tarot_id}", response_model=schemas.CardResponse)
def get_card(tarot_id: str, db: Session = Depends(get_db)):
    return schemas.CardResponse(**serialize_card(_get_card(db, tarot_id)))


@router.get("/{tarot_id}/meaning", response_model=schemas.CardMeaningResponse)
def get_card_meaning(
    tarot_id: str,
    reversed: bool = Query(default=False),
    category: str = Query(default="general"),
    db: Session = Depends(get_db),
):
    card = _get_card(db, tarot_id)
    resolved_category = category if category in MEANING_CATEGORIES else "general"
    return schemas.CardMeaningResponse(
        tarot_id=card.tarot_id,
        name=card.name,
        is_reversed=reversed,
        category=resolved_category,
        meaning=card_meaning(card, reversed=reversed, category=resolved_category),
        keywords=card_keywords(card, reversed=reversed),
    )
