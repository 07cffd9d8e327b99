from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .. import models, schemas, services
from ..database import get_db
from ..dependencies import current_user_dep, premium_user_dep
from ..errors import NotFoundError
from ..limiter import limiter
from ..tarot_engine import get_spread, list_spreads

router = APIRouter(prefix="/v1/spreads", tags=["spreads"])


def serialize_builtin_spread(spread: dict) -> schemas.SpreadResponse:
    return schemas.SpreadResponse(
        id=spread["id"],
        name=spread["name"],
        description=spread["description"],
        category=spread["category"],
        difficulty=spread["difficulty"],
        cards_count=spread["cards_count"],
        positions=[schemas.SpreadPosition(**position) for position in spread["positions"]],
        is_premium=spread["is_premium"],
    )


def _serialize_custom_spread(spread: models.Spread) -> schemas.SpreadResponse:
    return schemas.SpreadResponse(
        id=str(spread.id),
        name=spread.name,
        description=spread.description,
        category=spread.category,
        difficulty=spread.difficulty,
        cards_count=spread.cards_count,
        positions=[schemas.SpreadPosition(**position) for position in spread.positions],
        is_custom=True,
        is_public=spread.is_public,
    )


@router.get("", response_model=list[schemas.SpreadResponse])
@limiter.limit("60/minute")
def get_spreads(request: Request):
    return [serialize_builtin_spread(spread) for spread in list_spreads()]


@router.get("/custom/my", response_model=list[schemas.SpreadResponse])
def get_my_spreads(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return [_serialize_custom_spread(spread) for spread in services.list_custom_spreads(db, user)]


@router.post("/custom", response_model=schemas.SpreadResponse, status_code=201)
@limiter.limit("10/minute")
def create_custom_spread(
    request: Request,
    payload: schemas.CustomSpreadCreateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(premium_user_dep),
):
    spread = services.create_custom_spread(
        db,
        user,
        name=payload.name,
        description=payload.description,
        positions=[position.model_dump() for position in payload.positions],
        category=payload.category,
        difficulty=payload.difficulty,
        is_public=payload.is_public,
    )
    return _serialize_custom_spread(spread)


@router.delete("/custom/{spread_id}", response_model=schemas.OkResponse)
def delete_custom_spread(
    spread_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    services.delete_custom_spread(db, user, spread_id)
    return schemas.OkResponse()


@router.get("/{spread_id}", response_model=schemas.SpreadResponse)
def get_spread_by_id(spread_id: str):
    spread = get_spread(spread_id)
    if spread is None:
        raise NotFoundError(f"Spread not found: {spread_id}")
    return serialize_builtin_spread(spread)
