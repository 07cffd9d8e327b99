import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .. import llm_engine, models, schemas, services
from ..database import get_db
from ..dependencies import current_user_dep
from ..errors import NotFoundError
from ..limiter import limiter
from ..numerology_engine import life_path_number, soul_number
from ..tarot_engine import card_meaning

router = APIRouter(prefix="/v1/ai", tags=["ai"])
logger = logging.getLogger("mistika.ai")

RECENT_READINGS_FOR_RECOMMENDATIONS = 5


def _interpret_now(db: Session, reading: models.Reading) -> schemas.InterpretResponse:
    inputs = services.interpretation_inputs(reading)
    text = llm_engine.interpret_reading(
        inputs["question"],
        inputs["cards"],
        birth_date=inputs["birth_date"],
        life_path_number=inputs["life_path_number"],
    )
    model = llm_engine.llm_provider_label() if text else llm_engine.FALLBACK_MODEL_LABEL
    if not text:
        text = llm_engine.fallback_interpretation(inputs["question"], inputs["cards"])
    services.store_interpretation(db, reading, text, model)
    return schemas.InterpretResponse(
        reading_id=reading.id,
        interpretation=text,
        ai_model=model,
        ai_generated=reading.ai_generated,
    )


@router.post("/interpret", response_model=schemas.InterpretResponse)
@limiter.limit("10/minute")
def interpret_reading(
    request: Request,
    payload: schemas.InterpretRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, payload.reading_id)
    result = _interpret_now(db, reading)
    logger.info(
        "AI interpret | user_id=%s | reading_id=%s | model=%s", user.id, reading.id, result.ai_model
    )
    return result


@router.post("/interpret-async", response_model=schemas.TaskEnqueueResponse, status_code=202)
@limiter.limit("10/minute")
async def interpret_reading_async(
    request: Request,
    payload: schemas.InterpretRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    reading = services.get_reading(db, user, payload.reading_id)
    arq_pool = getattr(request.app.state, "arq_pool", None)
    if arq_pool is not None:
        job = await arq_pool.enqueue_job(
            "task_generate_reading_interpretation",
            user_id=user.id,
            reading_id=str(reading.id),
        )
        if job is not None:
            logger.info("AI interpret enqueued | user_id=%s | reading_id=%s | job_id=%s", user.id, reading.id, job.job_id)
            return schemas.TaskEnqueueResponse(task_id=job.job_id)

    logger.warning("Task queue unavailable, interpreting synchronously | reading_id=%s", reading.id)
    return schemas.TaskEnqueueResponse(task_id=None, status="done", result=_interpret_now(db, reading))


@router.get("/recommendations", response_model=schemas.RecommendationsResponse)
@limiter.limit("10/minute")
def personal_recommendations(
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    readings, _ = services.list_readings(db, user, limit=RECENT_READINGS_FOR_RECOMMENDATIONS)
    recent = [
        {"question": item.question, "interpretation": item.interpretation}
        for item in readings
        if item.interpretation
    ]
    profile = None
    if user.birth_date:
        profile = {
            "life_path": life_path_number(user.birth_date),
            "soul": soul_number(user.birth_date),
        }

    result = llm_engine.generate_recommendations(
        birth_date=user.birth_date.isoformat() if user.birth_date else None,
        numerology_profile=profile,
        recent_readings=recent,
    )
    model = llm_engine.llm_provider_label() if result else llm_engine.FALLBACK_MODEL_LABEL
    return schemas.RecommendationsResponse(**(result or llm_engine.fallback_recommendations()), ai_model=model)


@router.post("/interpret-card", response_model=schemas.InterpretCardResponse)
@limiter.limit("20/minute")
def interpret_card(
    request: Request,
    payload: schemas.InterpretCardRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    card = db.query(models.Card).filter(models.Card.tarot_id == payload.tarot_id).first()
    if card is None:
        raise NotFoundError(f"Card not found: {payload.tarot_id}")

    meaning = card_meaning(card, reversed=payload.is_reversed)
    text = llm_engine.interpret_card(card.name, payload.is_reversed, meaning, payload.question)
    model = llm_engine.llm_provider_label() if text else llm_engine.FALLBACK_MODEL_LABEL
    return schemas.InterpretCardResponse(tarot_id=card.tarot_id, interpretation=text or meaning, ai_model=model)
