import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from .. import models, schemas, services
from ..database import get_db
from ..dependencies import current_user_dep
from ..limiter import limiter
from ..tarot_engine import get_spread, recommend_spread
from .spreads import serialize_builtin_spread

router = APIRouter(prefix="/v1/readings", tags=["readings"])
logger = logging.getLogger("mistika.readings")


def _serialize_cards(reading: models.Reading) -> list[schemas.ReadingCardResponse]:
    return [schemas.ReadingCardResponse(**item) for item in services.reading_cards_payload(reading)]


def serialize_reading(reading: models.Reading) -> schemas.ReadingResponse:
    return schemas.ReadingResponse(
        id=reading.id,
        title=reading.title,
        question=reading.question,
        spread_type=reading.spread_type,
        spread_id=reading.spread_id,
        status=reading.status,
        is_private=reading.is_private,
        is_shared=reading.is_shared,
        share_code=reading.share_code if reading.is_shared else None,
        is_favorite=reading.is_favorite,
        interpretation=reading.interpretation,
        ai_generated=reading.ai_generated,
        ai_model=reading.ai_model,
        notes=reading.notes,
        mood=reading.mood,
        accuracy=reading.accuracy,
        helpfulness=reading.helpfulness,
        tags=reading.tags,
        follow_up_date=reading.follow_up_date,
        view_count=reading.view_count,
        created_at=reading.created_at,
        cards=_serialize_cards(reading),
    )


@router.post("", response_model=schemas.ReadingResponse, status_code=201)
@limiter.limit("20/minute")
def create_reading(
    request: Request,
    payload: schemas.ReadingCreateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.perform_reading(
        db,
        user,
        spread_id=payload.spread_id,
        question=payload.question,
        title=payload.title,
        is_private=payload.is_private,
    )
    return serialize_reading(reading)


@router.get("", response_model=schemas.ReadingListResponse)
def list_readings(
    status: schemas.ReadingStatus | None = Query(default=None),
    spread_type: str | None = Query(default=None, max_length=32),
    favorite: bool | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    items, total = services.list_readings(
        db, user, status=status, spread_type=spread_type, favorite=favorite, limit=limit, offset=offset
    )
    return schemas.ReadingListResponse(
        items=[serialize_reading(item) for item in items], total=total, limit=limit, offset=offset
    )


@router.get("/daily-card", response_model=schemas.DailyCardResponse)
@limiter.limit("30/minute")
def daily_card(
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    daily, created = services.get_or_create_daily_card(db, user)
    return schemas.DailyCardResponse(
        id=daily.id,
        reading_date=daily.reading_date,
        card=schemas.DrawnCardResponse(**daily.cards[0]),
        is_new=created,
    )


@router.get("/recommend-spread", response_model=schemas.RecommendedSpreadResponse)
def recommended_spread(
    question: str | None = Query(default=None, max_length=1000),
    user: models.User = Depends(current_user_dep),
):
    subscription_type = user.subscription_type if services.is_premium_active(user) else "basic"
    spread_id = recommend_spread(question, subscription_type)
    return schemas.RecommendedSpreadResponse(spread=serialize_builtin_spread(get_spread(spread_id)))


@router.get("/statistics")
def reading_statistics(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return services.reading_statistics(db, user)


@router.get("/shared/{share_code}", response_model=schemas.SharedReadingResponse)
@limiter.limit("60/minute")
def get_shared_reading(
    request: Request,
    share_code: str,
    db: Session = Depends(get_db),
):
    reading = services.get_shared_reading(db, share_code)
    return schemas.SharedReadingResponse(
        share_code=reading.share_code,
        title=reading.title,
        question=reading.question,
        spread_type=reading.spread_type,
        interpretation=reading.interpretation,
        view_count=reading.view_count,
        created_at=reading.created_at,
        cards=_serialize_cards(reading),
    )


@router.get("/{reading_id}", response_model=schemas.ReadingResponse)
def get_reading(
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return serialize_reading(services.get_reading(db, user, reading_id))


@router.put("/{reading_id}", response_model=schemas.ReadingResponse)
def update_reading(
    reading_id: UUID,
    payload: schemas.ReadingPatchRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    reading = services.update_reading(db, reading, payload.model_dump(exclude_unset=True))
    return serialize_reading(reading)


@router.post("/{reading_id}/rate", response_model=schemas.ReadingResponse)
def rate_reading(
    reading_id: UUID,
    payload: schemas.ReadingRateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    reading = services.rate_reading(db, reading, accuracy=payload.accuracy, helpfulness=payload.helpfulness)
    return serialize_reading(reading)


@router.post("/{reading_id}/favorite", response_model=schemas.ReadingResponse)
def toggle_favorite(
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    return serialize_reading(services.toggle_favorite(db, reading))


@router.post("/{reading_id}/share", response_model=schemas.ReadingResponse)
@limiter.limit("20/minute")
def share_reading(
    request: Request,
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    reading = services.share_reading(db, reading)
    logger.info("Reading shared | user_id=%s | reading_id=%s", user.id, reading.id)
    return serialize_reading(reading)


@router.delete("/{reading_id}/share", response_model=schemas.ReadingResponse)
def unshare_reading(
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    return serialize_reading(services.unshare_reading(db, reading))


@router.post("/{reading_id}/archive", response_model=schemas.ReadingResponse)
def archive_reading(
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    return serialize_reading(services.archive_reading(db, reading))


@router.delete("/{reading_id}", response_model=schemas.OkResponse)
def delete_reading(
    reading_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, reading_id)
    services.soft_delete_reading(db, reading)
    return schemas.OkResponse()
