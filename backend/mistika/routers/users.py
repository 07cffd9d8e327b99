from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from .. import models, schemas, services, subscriptions
from ..database import get_db
from ..dependencies import current_user_dep, internal_key_dep
from ..limiter import limiter
from .readings import serialize_reading

router = APIRouter(prefix="/v1/users", tags=["users"])


def serialize_user(user: models.User) -> schemas.UserResponse:
    return schemas.UserResponse(
        id=user.id,
        tg_user_id=user.tg_user_id,
        email=user.email,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        language_code=user.language_code,
        is_premium=services.is_premium_active(user),
        premium_expires_at=user.premium_expires_at,
        subscription_type=user.subscription_type,
        total_readings=user.total_readings,
        daily_readings_used=user.daily_readings_used,
        remaining_daily_readings=services.remaining_daily_readings(user),
        birth_date=user.birth_date,
        timezone=user.timezone,
        referral_code=user.referral_code,
        is_admin=user.is_admin,
        created_at=user.created_at,
        last_seen_at=user.last_seen_at,
    )


def serialize_subscription(subscription: models.Subscription) -> schemas.SubscriptionResponse:
    return schemas.SubscriptionResponse(
        id=subscription.id,
        plan_id=subscription.plan_id,
        status=subscription.status,
        type=subscription.type,
        price=subscription.price,
        currency=subscription.currency,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        trial_end_date=subscription.trial_end_date,
        next_billing_date=subscription.next_billing_date,
        auto_renewal=subscription.auto_renewal,
        payment_provider=subscription.payment_provider,
        features=subscription.features or [],
        limits=subscription.limits or {},
        days_remaining=subscriptions.days_remaining(subscription),
        days_until_billing=subscriptions.days_until_billing(subscription),
        is_active=subscriptions.is_active(subscription),
        is_trial=subscriptions.is_trial(subscription),
        cancellation_date=subscription.cancellation_date,
    )


def subscription_status(db: Session, user: models.User) -> schemas.SubscriptionStatusResponse:
    current = subscriptions.get_current_subscription(db, user)
    return schemas.SubscriptionStatusResponse(
        is_premium=services.is_premium_active(user),
        premium_expires_at=user.premium_expires_at,
        subscription=serialize_subscription(current) if current else None,
    )


@router.post("/create", response_model=schemas.UserResponse, status_code=201)
def create_user(
    payload: schemas.UserCreateRequest,
    _: None = Depends(internal_key_dep),
    db: Session = Depends(get_db),
):
    user = services.create_user(
        db,
        tg_user_id=payload.tg_user_id,
        email=payload.email,
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        language_code=payload.language_code,
        birth_date=payload.birth_date,
    )
    return serialize_user(user)


@router.get("/me", response_model=schemas.UserResponse)
def get_me(user: models.User = Depends(current_user_dep)):
    return serialize_user(user)


@router.put("/me", response_model=schemas.UserResponse)
@limiter.limit("30/minute")
def update_me(
    request: Request,
    payload: schemas.UserPatchRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    user = services.update_user_fields(db, user, payload.model_dump(exclude_unset=True))
    return serialize_user(user)


@router.delete("/me", response_model=schemas.OkResponse)
@limiter.limit("5/minute")
def delete_me(
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    services.delete_user(db, user)
    return schemas.OkResponse()


@router.get("/me/readings", response_model=schemas.ReadingListResponse)
def get_my_readings(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    items, total = services.list_readings(db, user, limit=limit, offset=offset)
    return schemas.ReadingListResponse(
        items=[serialize_reading(item) for item in items], total=total, limit=limit, offset=offset
    )


@router.get("/me/stats")
def get_my_stats(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return services.user_stats(db, user)


@router.get("/me/subscription", response_model=schemas.SubscriptionStatusResponse)
def get_my_subscription(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return subscription_status(db, user)


@router.get("/me/settings", response_model=schemas.UserSettingsResponse)
def get_my_settings(user: models.User = Depends(current_user_dep)):
    return schemas.UserSettingsResponse(settings=user.preferences or {})


@router.put("/me/settings", response_model=schemas.UserSettingsResponse)
@limiter.limit("30/minute")
def update_my_settings(
    request: Request,
    payload: schemas.UserSettingsRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    merged = services.update_user_settings(db, user, payload.settings)
    return schemas.UserSettingsResponse(settings=merged)


@router.get("/me/referrals", response_model=schemas.ReferralsResponse)
def get_my_referrals(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    referrals = services.list_referrals(db, user)
    return schemas.ReferralsResponse(
        referral_code=user.referral_code,
        total=len(referrals),
        referrals=[
            schemas.ReferralUserResponse(
                id=item.id, first_name=item.first_name, username=item.username, created_at=item.created_at
            )
            for item in referrals
        ],
    )


@router.post("/me/refer", response_model=schemas.OkResponse)
@limiter.limit("10/minute")
def apply_referral(
    request: Request,
    payload: schemas.ReferralApplyRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    services.apply_referral(db, user, payload.referral_code)
    return schemas.OkResponse()
