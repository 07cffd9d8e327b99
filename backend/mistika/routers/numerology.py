import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Request

from .. import models, numerology_engine, schemas
from ..dependencies import current_user_dep
from ..errors import ValidationError
from ..limiter import limiter

router = APIRouter(prefix="/v1/numerology", tags=["numerology"])
logger = logging.getLogger("mistika.numerology")


@router.post("/calculate")
@limiter.limit("20/minute")
def calculate_numerology(
    request: Request,
    payload: schemas.NumerologyCalculateRequest,
    user: models.User = Depends(current_user_dep),
):
    logger.info("Numerology calculate | tg_user_id=%s | birth_date=%s", user.tg_user_id, payload.birth_date)
    return numerology_engine.full_analysis(payload.birth_date, payload.full_name)


@router.post("/compatibility")
@limiter.limit("20/minute")
def numerology_compatibility(
    request: Request,
    payload: schemas.NumerologyCompatibilityRequest,
    user: models.User = Depends(current_user_dep),
):
    life_path1 = numerology_engine.life_path_number(payload.birth_date1)
    life_path2 = numerology_engine.life_path_number(payload.birth_date2)
    result = {
        "life_path1": life_path1,
        "life_path2": life_path2,
        "life_path_compatibility": numerology_engine.compatibility(life_path1, life_path2),
    }
    if payload.name1 and payload.name2:
        destiny1 = numerology_engine.destiny_number(payload.name1)
        destiny2 = numerology_engine.destiny_number(payload.name2)
        result["destiny1"] = destiny1
        result["destiny2"] = destiny2
        result["destiny_compatibility"] = numerology_engine.compatibility(destiny1, destiny2)
    return result


@router.post("/forecast")
@limiter.limit("20/minute")
def numerology_forecast(
    request: Request,
    payload: schemas.NumerologyForecastRequest,
    user: models.User = Depends(current_user_dep),
):
    return numerology_engine.personal_forecast(payload.birth_date, payload.target_date or models.utcnow().date())


@router.post("/analyze-name")
@limiter.limit("30/minute")
def analyze_name(
    request: Request,
    payload: schemas.NameAnalysisRequest,
    user: models.User = Depends(current_user_dep),
):
    return numerology_engine.analyze_name(payload.name)


@router.get("/favorable-dates")
def favorable_dates(
    birth_date: date | None = Query(default=None),
    year: int | None = Query(default=None, ge=1900, le=2100),
    user: models.User = Depends(current_user_dep),
):
    birth_date = birth_date or user.birth_date
    if birth_date is None:
        raise ValidationError("birth_date is required")
    target_year = year or models.utcnow().year
    return {
        "year": target_year,
        "life_path": numerology_engine.life_path_number(birth_date),
        "dates": numerology_engine.favorable_dates(birth_date, target_year),
    }


@router.get("/my-profile")
def my_numerology_profile(user: models.User = Depends(current_user_dep)):
    if user.birth_date is None:
        raise ValidationError("Set birth_date in your profile first")
    full_name = " ".join(part for part in (user.first_name, user.last_name) if part)
    if not any(ch.isalpha() for ch in full_name):
        raise ValidationError("Set your name in your profile first")
    return {
        "analysis": numerology_engine.full_analysis(user.birth_date, full_name),
        "forecast": numerology_engine.personal_forecast(user.birth_date, models.utcnow().date()),
    }
