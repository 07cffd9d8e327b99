from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..dependencies import current_user_dep
from ..errors import AuthorizationError, ConflictError, NotFoundError
from ..limiter import limiter

router = APIRouter(prefix="/v1/circles", tags=["circles"])

CIRCLE_PHASES = ("preparation", "activation", "manifestation", "integration", "completion")


def _serialize_circle(circle: models.MysticCircle) -> schemas.CircleResponse:
    return schemas.CircleResponse(
        id=circle.id,
        user_id=circle.user_id,
        name=circle.name,
        description=circle.description,
        type=circle.type,
        status=circle.status,
        center_element=circle.center_element,
        elements=circle.elements or [],
        intentions=circle.intentions or [],
        configuration=circle.configuration or {},
        phase=circle.phase,
        visibility=circle.visibility,
        tags=circle.tags,
        created_at=circle.created_at,
        completed_at=circle.completed_at,
    )


def _get_visible_circle(db: Session, user: models.User, circle_id: UUID) -> models.MysticCircle:
    circle = db.get(models.MysticCircle, circle_id)
    if circle is None or (circle.user_id != user.id and circle.visibility != "public"):
        raise NotFoundError("Circle not found")
    return circle


def _get_own_circle(db: Session, user: models.User, circle_id: UUID) -> models.MysticCircle:
    circle = _get_visible_circle(db, user, circle_id)
    if circle.user_id != user.id:
        raise AuthorizationError("Only the owner can change this circle")
    return circle


@router.post("", response_model=schemas.CircleResponse, status_code=201)
@limiter.limit("20/minute")
def create_circle(
    request: Request,
    payload: schemas.CircleCreateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    circle = models.MysticCircle(
        user_id=user.id,
        name=payload.name,
        description=payload.description,
        type=payload.type,
        center_element=payload.center_element,
        elements=payload.elements,
        intentions=payload.intentions,
        configuration=payload.configuration.model_dump(),
        visibility=payload.visibility,
        tags=payload.tags,
    )
    db.add(circle)
    db.commit()
    db.refresh(circle)
    return _serialize_circle(circle)


@router.get("", response_model=list[schemas.CircleResponse])
def list_circles(
    status: schemas.CircleStatus | None = Query(default=None),
    include_public: bool = Query(default=False),
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    query = db.query(models.MysticCircle)
    if include_public:
        query = query.filter(
            or_(models.MysticCircle.user_id == user.id, models.MysticCircle.visibility == "public")
        )
    else:
        query = query.filter(models.MysticCircle.user_id == user.id)
    if status:
        query = query.filter(models.MysticCircle.status == status)
    return [_serialize_circle(item) for item in query.order_by(models.MysticCircle.created_at.desc()).all()]


@router.get("/{circle_id}", response_model=schemas.CircleResponse)
def get_circle(
    circle_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return _serialize_circle(_get_visible_circle(db, user, circle_id))


@router.put("/{circle_id}", response_model=schemas.CircleResponse)
def update_circle(
    circle_id: UUID,
    payload: schemas.CirclePatchRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    circle = _get_own_circle(db, user, circle_id)
    patch = payload.model_dump(exclude_unset=True)
    for key, value in patch.items():
        setattr(circle, key, value)
    if patch.get("status") == "completed" and circle.completed_at is None:
        circle.completed_at = models.utcnow()
    circle.updated_at = models.utcnow()
    db.commit()
    db.refresh(circle)
    return _serialize_circle(circle)


@router.post("/{circle_id}/advance", response_model=schemas.CircleResponse)
def advance_circle(
    circle_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    circle = _get_own_circle(db, user, circle_id)
    if circle.status == "completed":
        raise ConflictError("Circle is already completed")

    index = CIRCLE_PHASES.index(circle.phase)
    if index == len(CIRCLE_PHASES) - 1:
        circle.status = "completed"
        circle.completed_at = models.utcnow()
    else:
        circle.phase = CIRCLE_PHASES[index + 1]
    circle.updated_at = models.utcnow()
    db.commit()
    db.refresh(circle)
    return _serialize_circle(circle)


@router.delete("/{circle_id}", response_model=schemas.OkResponse)
def delete_circle(
    circle_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    circle = _get_own_circle(db, user, circle_id)
    db.delete(circle)
    db.commit()
    return schemas.OkResponse()
