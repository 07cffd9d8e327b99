"""Subscription plans and the subscription lifecycle.

Statuses: ``trial`` and ``active`` grant access; ``cancelled`` keeps access until
``end_date`` unless resumed; ``expired`` and ``suspended`` grant nothing.
Every status write goes through :func:`set_status` so auto-renewal and the
next billing date stay consistent with the status.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from . import models
from .config import settings
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("mistika.subscriptions")

STATUS_ACTIVE = "active"
STATUS_TRIAL = "trial"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"
STATUS_SUSPENDED = "suspended"
STATUS_PENDING = "pending"
LIVE_STATUSES = (STATUS_ACTIVE, STATUS_TRIAL)

SUBSCRIPTION_TYPES = ("monthly", "quarterly", "yearly", "lifetime")
PAYMENT_METHODS = ("card", "paypal", "apple_pay", "google_pay", "bank_transfer", "crypto", "telegram_stars")

UNLIMITED = -1

BASE_FEATURES = [
    "unlimited_readings",
    "ai_interpretations",
    "voice_input",
    "photo_analysis",
    "premium_spreads",
    "full_history",
]
TRIAL_FEATURES = ["unlimited_readings", "ai_interpretations", "voice_input"]
TRIAL_LIMITS = {"daily_readings": UNLIMITED, "ai_interpretations": UNLIMITED, "voice_minutes": 60}


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price: int
    duration_days: int
    stars_price: int
    discount: int = 0
    currency: str = "RUB"
    featured: bool = False
    features: list[str] = field(default_factory=list)

    @property
    def discounted_price(self) -> int:
        if not self.discount:
            return self.price
        return round(self.price * (1 - self.discount / 100))

    @property
    def price_per_month(self) -> int:
        return round(self.price / (self.duration_days / 30))


def _plan_catalog() -> dict[str, Plan]:
    return {
        "monthly": Plan(
            id="monthly",
            name="Месячная подписка",
            price=299,
            duration_days=30,
            stars_price=max(1, int(settings.stars_price_monthly)),
            features=list(BASE_FEATURES),
        ),
        "quarterly": Plan(
            id="quarterly",
            name="Квартальная подписка",
            price=799,
            duration_days=90,
            discount=10,
            featured=True,
            stars_price=max(1, int(settings.stars_price_quarterly)),
            features=[*BASE_FEATURES, "priority_support"],
        ),
        "yearly": Plan(
            id="yearly",
            name="Годовая подписка",
            price=2999,
            duration_days=365,
            discount=20,
            stars_price=max(1, int(settings.stars_price_yearly)),
            features=[*BASE_FEATURES, "priority_support", "exclusive_content"],
        ),
    }


def list_plans() -> list[Plan]:
    return list(_plan_catalog().values())


def get_plan(plan_id: str) -> Plan:
    plan = _plan_catalog().get(plan_id)
    if plan is None:
        raise ValidationError(f"Unknown subscription plan: {plan_id}")
    return plan


def plan_limits(plan_id: str) -> dict[str, int]:
    limits = {
        "daily_readings": UNLIMITED,
        "ai_interpretations": UNLIMITED,
        "voice_minutes": 60,
        "photo_analyses": 10,
        "history_days": UNLIMITED,
    }
    if plan_id == "yearly":
        limits.update(voice_minutes=120, photo_analyses=20)
    return limits


# ── State predicates ────────────────────────────────────────────────

def is_active(subscription: models.Subscription, now: datetime | None = None) -> bool:
    now = now or models.utcnow()
    return subscription.status == STATUS_ACTIVE and models.as_utc(subscription.end_date) > now


def is_trial(subscription: models.Subscription, now: datetime | None = None) -> bool:
    now = now or models.utcnow()
    trial_end = models.as_utc(subscription.trial_end_date)
    return subscription.status == STATUS_TRIAL and trial_end is not None and trial_end > now


def grants_access(subscription: models.Subscription, now: datetime | None = None) -> bool:
    return is_active(subscription, now) or is_trial(subscription, now)


def is_expired(subscription: models.Subscription, now: datetime | None = None) -> bool:
    now = now or models.utcnow()
    return subscription.status == STATUS_EXPIRED or models.as_utc(subscription.end_date) <= now


def days_remaining(subscription: models.Subscription, now: datetime | None = None) -> int:
    if not grants_access(subscription, now):
        return 0
    now = now or models.utcnow()
    seconds = (models.as_utc(subscription.end_date) - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def days_until_billing(subscription: models.Subscription, now: datetime | None = None) -> int | None:
    billing = models.as_utc(subscription.next_billing_date)
    if not subscription.auto_renewal or billing is None:
        return None
    now = now or models.utcnow()
    return math.ceil((billing - now).total_seconds() / 86400)


def can_access(subscription: models.Subscription, feature: str, now: datetime | None = None) -> bool:
    if not grants_access(subscription, now):
        return False
    return feature in (subscription.features or [])


def remaining_limit(subscription: models.Subscription, limit_name: str) -> int | None:
    limits = subscription.limits or {}
    if limit_name not in limits:
        return None
    # Usage tracking is not wired yet, so the full limit is reported.
    return limits[limit_name]


# ── Transitions ─────────────────────────────────────────────────────

def set_status(subscription: models.Subscription, status: str) -> None:
    subscription.status = status
    if status not in LIVE_STATUSES:
        subscription.auto_renewal = False
        subscription.next_billing_date = None
    subscription.updated_at = models.utcnow()


def set_auto_renewal(subscription: models.Subscription, enabled: bool) -> None:
    subscription.auto_renewal = enabled
    if enabled and subscription.status == STATUS_ACTIVE:
        subscription.next_billing_date = subscription.end_date
    elif not enabled:
        subscription.next_billing_date = None
    subscription.updated_at = models.utcnow()


def extend(db: Session, subscription: models.Subscription, days: int) -> models.Subscription:
    if days <= 0:
        raise ValidationError("Extension must be a positive number of days")
    if subscription.status not in LIVE_STATUSES:
        raise ConflictError(f"Cannot extend a {subscription.status} subscription")

    subscription.end_date = models.as_utc(subscription.end_date) + timedelta(days=days)
    if subscription.status == STATUS_TRIAL:
        subscription.trial_end_date = subscription.end_date
    if subscription.auto_renewal and subscription.status == STATUS_ACTIVE:
        subscription.next_billing_date = subscription.end_date
    subscription.updated_at = models.utcnow()
    _sync_user_premium(subscription)
    db.commit()
    db.refresh(subscription)
    logger.info("Subscription extended | subscription_id=%s | days=%s", subscription.id, days)
    return subscription


def cancel(db: Session, subscription: models.Subscription, reason: str | None = None) -> models.Subscription:
    if not grants_access(subscription):
        raise ConflictError("Subscription is not active")
    set_status(subscription, STATUS_CANCELLED)
    subscription.cancellation_date = models.utcnow()
    subscription.cancellation_reason = reason
    db.commit()
    db.refresh(subscription)
    logger.info("Subscription cancelled | subscription_id=%s | reason=%s", subscription.id, reason)
    return subscription


def suspend(db: Session, subscription: models.Subscription, reason: str | None = None) -> models.Subscription:
    set_status(subscription, STATUS_SUSPENDED)
    subscription.notes = reason
    db.commit()
    db.refresh(subscription)
    return subscription


def reactivate(db: Session, subscription: models.Subscription) -> models.Subscription:
    if is_expired(subscription):
        raise ConflictError("Cannot reactivate an expired subscription")
    set_status(subscription, STATUS_ACTIVE)
    subscription.failed_payment_count = 0
    _sync_user_premium(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def resume(db: Session, subscription: models.Subscription) -> models.Subscription:
    """Undo a cancellation while the paid period is still running."""
    if subscription.status != STATUS_CANCELLED or is_expired(subscription):
        raise ConflictError("Only a cancelled subscription with time left can be resumed")
    if subscription.refund_date is not None:
        raise ConflictError("A refunded subscription cannot be resumed")
    if subscription.plan_id == "trial":
        set_status(subscription, STATUS_TRIAL)
    else:
        set_status(subscription, STATUS_ACTIVE)
        set_auto_renewal(subscription, True)
    subscription.cancellation_date = None
    subscription.cancellation_reason = None
    db.commit()
    db.refresh(subscription)
    logger.info("Subscription resumed | subscription_id=%s", subscription.id)
    return subscription


def _sync_user_premium(subscription: models.Subscription) -> None:
    user = subscription.user
    if user is None:
        return
    user.is_premium = True
    user.premium_expires_at = subscription.end_date
    if subscription.plan_id != "trial":
        user.subscription_type = "premium"


# ── Queries ─────────────────────────────────────────────────────────

def get_live_subscription(db: Session, user: models.User) -> models.Subscription | None:
    now = models.utcnow()
    candidates = (
        db.query(models.Subscription)
        .filter(models.Subscription.user_id == user.id, models.Subscription.status.in_(LIVE_STATUSES))
        .order_by(models.Subscription.end_date.desc())
        .all()
    )
    for subscription in candidates:
        if models.as_utc(subscription.end_date) > now:
            return subscription
    return None


def get_current_subscription(db: Session, user: models.User) -> models.Subscription | None:
    """Latest subscription that still has paid time, cancelled ones included."""
    now = models.utcnow()
    candidates = (
        db.query(models.Subscription)
        .filter(
            models.Subscription.user_id == user.id,
            models.Subscription.status.in_((*LIVE_STATUSES, STATUS_CANCELLED)),
        )
        .order_by(models.Subscription.created_at.desc())
        .all()
    )
    for subscription in candidates:
        if models.as_utc(subscription.end_date) > now:
            return subscription
    return None


def get_subscription(db: Session, subscription_id) -> models.Subscription:
    subscription = db.get(models.Subscription, subscription_id)
    if subscription is None:
        raise NotFoundError("Subscription not found")
    return subscription


def create_trial(db: Session, user: models.User, trial_days: int | None = None) -> models.Subscription:
    trial_days = trial_days or settings.trial_days
    had_trial = (
        db.query(models.Subscription.id)
        .filter(models.Subscription.user_id == user.id, models.Subscription.plan_id == "trial")
        .first()
    )
    if had_trial:
        raise ConflictError("Trial has already been used")
    if get_live_subscription(db, user) is not None:
        raise ConflictError("User already has an active subscription")

    now = models.utcnow()
    end = now + timedelta(days=trial_days)
    subscription = models.Subscription(
        user_id=user.id,
        plan_id="trial",
        status=STATUS_TRIAL,
        type="monthly",
        price=0,
        currency="RUB",
        start_date=now,
        end_date=end,
        trial_end_date=end,
        auto_renewal=False,
        features=list(TRIAL_FEATURES),
        limits=dict(TRIAL_LIMITS),
    )
    db.add(subscription)
    user.is_premium = True
    user.premium_expires_at = end
    db.commit()
    db.refresh(subscription)
    logger.info("Trial started | user_id=%s | subscription_id=%s | days=%s", user.id, subscription.id, trial_days)
    return subscription


def activate(
    db: Session,
    user: models.User,
    plan: Plan,
    *,
    provider: str,
    amount: int,
    currency: str,
    external_id: str | None = None,
) -> models.Subscription:
    now = models.utcnow()
    existing = (
        db.query(models.Subscription)
        .filter(models.Subscription.user_id == user.id, models.Subscription.status.in_(LIVE_STATUSES))
        .all()
    )
    for item in existing:
        set_status(item, STATUS_CANCELLED)
        item.cancellation_date = now
        item.cancellation_reason = "Replaced by a new subscription"

    end = now + timedelta(days=plan.duration_days)
    subscription = models.Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=STATUS_ACTIVE,
        type=plan.id,
        price=amount,
        currency=currency,
        start_date=now,
        end_date=end,
        next_billing_date=end,
        auto_renewal=True,
        payment_method=_payment_method_for(provider),
        payment_provider=provider,
        external_subscription_id=external_id,
        last_payment_date=now,
        last_payment_amount=amount,
        features=list(plan.features),
        limits=plan_limits(plan.id),
    )
    db.add(subscription)
    user.is_premium = True
    user.premium_expires_at = end
    user.subscription_type = "premium"
    db.flush()
    logger.info(
        "Subscription activated | user_id=%s | subscription_id=%s | plan=%s | provider=%s",
        user.id, subscription.id, plan.id, provider,
    )
    return subscription


def _payment_method_for(provider: str) -> str:
    return {"yookassa": "card", "paypal": "paypal", "telegram_stars": "telegram_stars"}.get(provider, "card")


# ── Maintenance ─────────────────────────────────────────────────────

def expire_overdue_subscriptions(db: Session, now: datetime | None = None) -> int:
    now = now or models.utcnow()
    overdue = (
        db.query(models.Subscription)
        .filter(
            models.Subscription.status.in_((*LIVE_STATUSES, STATUS_CANCELLED)),
            models.Subscription.end_date <= now,
        )
        .all()
    )
    for subscription in overdue:
        set_status(subscription, STATUS_EXPIRED)
    db.flush()

    expired_users = (
        db.query(models.User)
        .filter(models.User.is_premium.is_(True), models.User.premium_expires_at.isnot(None))
        .all()
    )
    downgraded = 0
    for user in expired_users:
        expires_at = models.as_utc(user.premium_expires_at)
        if expires_at <= now:
            user.is_premium = False
            user.subscription_type = "basic"
            downgraded += 1
    db.commit()
    if overdue or downgraded:
        logger.info("Subscriptions expired | subscriptions=%s | users=%s", len(overdue), downgraded)
    return len(overdue)


def subscriptions_expiring_soon(db: Session, days: int = 3, now: datetime | None = None) -> list[models.Subscription]:
    now = now or models.utcnow()
    return (
        db.query(models.Subscription)
        .filter(
            models.Subscription.status == STATUS_ACTIVE,
            models.Subscription.end_date > now,
            models.Subscription.end_date <= now + timedelta(days=days),
        )
        .order_by(models.Subscription.end_date)
        .all()
    )
