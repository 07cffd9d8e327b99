import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..dependencies import admin_user_dep, current_user_dep, is_admin
from ..errors import AuthorizationError
from ..limiter import limiter

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])
logger = logging.getLogger("mistika.analytics")


@router.post("/events", response_model=schemas.AnalyticsEventResponse, status_code=201)
@limiter.limit("120/minute")
def track_event(
    request: Request,
    payload: schemas.AnalyticsEventRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    event = models.AnalyticsEvent(user_id=user.id, event_type=payload.event_type, payload=payload.payload)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Analytics event | user_id=%s | event=%s", user.id, payload.event_type)
    return schemas.AnalyticsEventResponse(id=event.id, event_type=event.event_type, created_at=event.created_at)


@router.get("/users/{user_id}/stats")
def user_event_stats(
    user_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    if user_id != user.id and not is_admin(user):
        raise AuthorizationError("Cannot read other users' analytics")

    events = (
        db.query(models.AnalyticsEvent)
        .filter(models.AnalyticsEvent.user_id == user_id)
        .order_by(models.AnalyticsEvent.created_at)
        .all()
    )
    by_type: dict[str, int] = {}
    for event in events:
        by_type[event.event_type] = by_type.get(event.event_type, 0) + 1
    return {
        "user_id": user_id,
        "total_events": len(events),
        "events_by_type": by_type,
        "unique_days": len({event.created_at.date() for event in events}),
        "first_event_at": events[0].created_at if events else None,
        "last_event_at": events[-1].created_at if events else None,
    }


@router.get("/summary")
def analytics_summary(
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
    _: models.User = Depends(admin_user_dep),
):
    since = models.utcnow() - timedelta(days=days)
    rows = (
        db.query(models.AnalyticsEvent.event_type, func.count(models.AnalyticsEvent.id))
        .filter(models.AnalyticsEvent.created_at >= since)
        .group_by(models.AnalyticsEvent.event_type)
        .all()
    )
    active_users = (
        db.query(func.count(func.distinct(models.AnalyticsEvent.user_id)))
        .filter(models.AnalyticsEvent.created_at >= since)
        .scalar()
    )
    return {
        "period_days": days,
        "total_events": sum(count for _, count in rows),
        "events_by_type": dict(rows),
        "active_users": active_users or 0,
    }
