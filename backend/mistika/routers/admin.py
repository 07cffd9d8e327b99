import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas, services, subscriptions
from ..database import get_db
from ..dependencies import admin_user_dep
from ..errors import NotFoundError, ValidationError
from .readings import serialize_reading
from .users import serialize_user

router = APIRouter(prefix="/v1/admin", tags=["admin"])
logger = logging.getLogger("mistika.admin")


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("/users", response_model=schemas.AdminUserListResponse)
def list_users(
    search: str | None = Query(default=None, min_length=1, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: models.User = Depends(admin_user_dep),
):
    query = db.query(models.User)
    if search:
        pattern = f"%{search.strip()}%"
        conditions = [
            models.User.username.ilike(pattern),
            models.User.first_name.ilike(pattern),
            models.User.last_name.ilike(pattern),
            models.User.email.ilike(pattern),
        ]
        if search.strip().isdigit():
            conditions.append(models.User.tg_user_id == int(search.strip()))
        query = query.filter(or_(*conditions))
    total = query.count()
    users = query.order_by(models.User.created_at.desc()).offset(offset).limit(limit).all()
    return schemas.AdminUserListResponse(
        items=[serialize_user(user) for user in users], total=total, limit=limit, offset=offset
    )


@router.get("/users/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(admin_user_dep),
):
    return serialize_user(_get_user(db, user_id))


@router.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: int,
    payload: schemas.AdminUserPatchRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    user = _get_user(db, user_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, key, value)
    user.updated_at = models.utcnow()
    db.commit()
    db.refresh(user)
    logger.info("Admin updated user | admin_id=%s | user_id=%s", admin.id, user.id)
    return serialize_user(user)


@router.delete("/users/{user_id}", response_model=schemas.OkResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    user = _get_user(db, user_id)
    if user.id == admin.id:
        raise ValidationError("Admins cannot delete themselves")
    services.delete_user(db, user)
    logger.info("Admin deleted user | admin_id=%s | user_id=%s", admin.id, user_id)
    return schemas.OkResponse()


@router.post("/users/{user_id}/ban", response_model=schemas.UserResponse)
def ban_user(
    user_id: int,
    payload: schemas.BanRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    user = _get_user(db, user_id)
    if user.id == admin.id:
        raise ValidationError("Admins cannot ban themselves")
    user.is_blocked = True
    user.blocked_reason = payload.reason
    db.commit()
    db.refresh(user)
    logger.info("User banned | admin_id=%s | user_id=%s | reason=%s", admin.id, user.id, payload.reason)
    return serialize_user(user)


@router.post("/users/{user_id}/unban", response_model=schemas.UserResponse)
def unban_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    user = _get_user(db, user_id)
    user.is_blocked = False
    user.blocked_reason = None
    db.commit()
    db.refresh(user)
    logger.info("User unbanned | admin_id=%s | user_id=%s", admin.id, user.id)
    return serialize_user(user)


@router.get("/stats")
def admin_stats(
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
    _: models.User = Depends(admin_user_dep),
):
    since = models.utcnow() - timedelta(days=days)
    revenue_rows = (
        db.query(models.Payment.currency, func.sum(models.Payment.amount))
        .filter(models.Payment.status == "succeeded")
        .group_by(models.Payment.currency)
        .all()
    )
    return {
        "period_days": days,
        "users": {
            "total": db.query(models.User).count(),
            "new": db.query(models.User).filter(models.User.created_at >= since).count(),
            "premium": db.query(models.User).filter(models.User.is_premium.is_(True)).count(),
            "blocked": db.query(models.User).filter(models.User.is_blocked.is_(True)).count(),
        },
        "readings": {
            "total": db.query(models.Reading).filter(models.Reading.status != "deleted").count(),
            "period": db.query(models.Reading).filter(models.Reading.created_at >= since).count(),
            "daily_cards": db.query(models.TarotReading).filter(models.TarotReading.is_daily.is_(True)).count(),
        },
        "subscriptions": {
            "active": db.query(models.Subscription)
            .filter(models.Subscription.status.in_(subscriptions.LIVE_STATUSES))
            .count(),
        },
        "revenue": {currency: int(total or 0) for currency, total in revenue_rows},
    }


@router.get("/readings", response_model=schemas.ReadingListResponse)
def list_all_readings(
    user_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: models.User = Depends(admin_user_dep),
):
    query = db.query(models.Reading).filter(models.Reading.status != "deleted")
    if user_id is not None:
        query = query.filter(models.Reading.user_id == user_id)
    total = query.count()
    items = query.order_by(models.Reading.created_at.desc()).offset(offset).limit(limit).all()
    return schemas.ReadingListResponse(
        items=[serialize_reading(item) for item in items], total=total, limit=limit, offset=offset
    )


@router.delete("/readings/{reading_id}", response_model=schemas.OkResponse)
def delete_reading(
    reading_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    reading = db.get(models.Reading, reading_id)
    if reading is None:
        raise NotFoundError("Reading not found")
    db.delete(reading)
    db.commit()
    logger.info("Admin deleted reading | admin_id=%s | reading_id=%s", admin.id, reading_id)
    return schemas.OkResponse()
