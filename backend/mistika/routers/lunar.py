from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from .. import lunar_engine, models, schemas, services
from ..database import get_db
from ..dependencies import current_user_dep
from ..errors import ValidationError
from ..limiter import limiter

router = APIRouter(prefix="/v1/lunar", tags=["lunar"])

DEFAULT_CALENDAR_DAYS = 30


def _today() -> date:
    return models.utcnow().date()


def _calendar_or_400(start: date, end: date) -> dict:
    try:
        return lunar_engine.lunar_calendar(start, end)
    except ValueError as exc:
        raise ValidationError(str(exc))


@router.get("/current")
@limiter.limit("60/minute")
def current_lunar_day(
    request: Request,
    target_date: date | None = Query(default=None, alias="date"),
):
    return lunar_engine.daily_recommendations(target_date or _today())


@router.get("/calendar")
@limiter.limit("30/minute")
def lunar_calendar(
    request: Request,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
):
    start = start_date or _today()
    end = end_date or start + timedelta(days=DEFAULT_CALENDAR_DAYS - 1)
    return _calendar_or_400(start, end)


@router.get("/favorable-days")
@limiter.limit("30/minute")
def favorable_days(
    request: Request,
    activity: str = Query(min_length=2, max_length=100),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
):
    start = start_date or _today()
    end = end_date or start + timedelta(days=DEFAULT_CALENDAR_DAYS - 1)
    try:
        return lunar_engine.favorable_days(activity, start, end)
    except ValueError as exc:
        raise ValidationError(str(exc))


@router.get("/events")
@limiter.limit("30/minute")
def upcoming_events(
    request: Request,
    days: int = Query(default=30, ge=1, le=lunar_engine.MAX_CALENDAR_DAYS),
):
    return lunar_engine.upcoming_events(_today(), days_ahead=days)


@router.get("/personal")
def personal_lunar_profile(
    target_date: date | None = Query(default=None, alias="date"),
    user: models.User = Depends(current_user_dep),
):
    if user.birth_date is None:
        raise ValidationError("Set birth_date in your profile first")
    target = target_date or _today()
    return {
        "today": lunar_engine.daily_recommendations(target),
        "compatibility": lunar_engine.lunar_compatibility(user.birth_date, target),
    }


@router.post("/reading", response_model=schemas.LunarReadingResponse, status_code=201)
@limiter.limit("10/minute")
def lunar_reading(
    request: Request,
    payload: schemas.LunarReadingRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    context = lunar_engine.daily_recommendations(_today())
    reading = services.create_lunar_reading(
        db, user, cards_count=payload.cards_count, lunar_day_info=context, question=payload.question
    )
    return schemas.LunarReadingResponse(
        id=reading.id,
        type=reading.type,
        question=reading.question,
        lunar_context=context,
        cards=reading.cards,
        interpretation=reading.interpretation,
        created_at=reading.created_at,
    )
