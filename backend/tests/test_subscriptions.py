from datetime import timedelta

import pytest

from mistika import models, subscriptions
from mistika.errors import ConflictError, ValidationError


def _user(db_session, tg_user_id=1001):
    user = models.User(tg_user_id=tg_user_id, first_name="Анна")
    db_session.add(user)
    db_session.commit()
    return user


def test_plan_catalog():
    plans = {plan.id: plan for plan in subscriptions.list_plans()}
    assert list(plans) == ["monthly", "quarterly", "yearly"]
    assert plans["monthly"].discounted_price == 299
    assert plans["quarterly"].discounted_price == 719
    assert plans["quarterly"].featured is True
    assert plans["yearly"].discounted_price == 2399
    assert plans["yearly"].price_per_month == 246
    assert "exclusive_content" in plans["yearly"].features

    with pytest.raises(ValidationError):
        subscriptions.get_plan("weekly")


def test_trial_only_once(db_session):
    user = _user(db_session)
    trial = subscriptions.create_trial(db_session, user)
    assert trial.status == "trial"
    assert subscriptions.is_trial(trial)
    assert subscriptions.grants_access(trial)
    assert user.is_premium is True
    assert subscriptions.can_access(trial, "ai_interpretations")
    assert not subscriptions.can_access(trial, "premium_spreads")
    assert subscriptions.remaining_limit(trial, "daily_readings") == subscriptions.UNLIMITED
    assert subscriptions.remaining_limit(trial, "photo_analyses") is None

    with pytest.raises(ConflictError):
        subscriptions.create_trial(db_session, user)


def test_activate_replaces_live_subscription(db_session):
    user = _user(db_session)
    trial = subscriptions.create_trial(db_session, user)

    plan = subscriptions.get_plan("monthly")
    active = subscriptions.activate(db_session, user, plan, provider="yookassa", amount=299, currency="RUB")
    db_session.commit()

    db_session.refresh(trial)
    assert trial.status == "cancelled"
    assert trial.auto_renewal is False
    assert active.status == "active"
    assert active.payment_method == "card"
    assert active.next_billing_date is not None
    assert subscriptions.days_remaining(active) == 30
    assert subscriptions.days_until_billing(active) == 30
    assert user.subscription_type == "premium"
    assert subscriptions.get_live_subscription(db_session, user).id == active.id


def test_cancel_and_resume(db_session):
    user = _user(db_session)
    plan = subscriptions.get_plan("quarterly")
    subscription = subscriptions.activate(db_session, user, plan, provider="telegram_stars", amount=250, currency="XTR")
    db_session.commit()

    cancelled = subscriptions.cancel(db_session, subscription, reason="too expensive")
    assert cancelled.status == "cancelled"
    assert cancelled.auto_renewal is False
    assert cancelled.next_billing_date is None
    assert subscriptions.days_until_billing(cancelled) is None
    # the paid period keeps running after cancellation
    assert subscriptions.get_current_subscription(db_session, user).id == subscription.id
    assert subscriptions.get_live_subscription(db_session, user) is None

    with pytest.raises(ConflictError):
        subscriptions.cancel(db_session, cancelled)
    with pytest.raises(ConflictError):
        subscriptions.extend(db_session, cancelled, 10)

    resumed = subscriptions.resume(db_session, cancelled)
    assert resumed.status == "active"
    assert resumed.auto_renewal is True
    assert resumed.cancellation_reason is None
    assert models.as_utc(resumed.next_billing_date) == models.as_utc(resumed.end_date)

    with pytest.raises(ConflictError):
        subscriptions.resume(db_session, resumed)


def test_extend(db_session):
    user = _user(db_session)
    subscription = subscriptions.activate(
        db_session, user, subscriptions.get_plan("monthly"), provider="yookassa", amount=299, currency="RUB"
    )
    db_session.commit()
    before = models.as_utc(subscription.end_date)

    extended = subscriptions.extend(db_session, subscription, 5)
    assert models.as_utc(extended.end_date) == before + timedelta(days=5)
    assert models.as_utc(user.premium_expires_at) == before + timedelta(days=5)

    with pytest.raises(ValidationError):
        subscriptions.extend(db_session, subscription, 0)


def test_extend_trial_moves_trial_end(db_session):
    user = _user(db_session)
    trial = subscriptions.create_trial(db_session, user, trial_days=7)

    extended = subscriptions.extend(db_session, trial, 10)
    assert models.as_utc(extended.trial_end_date) == models.as_utc(extended.end_date)

    after_original_trial = models.utcnow() + timedelta(days=8)
    assert subscriptions.is_trial(extended, after_original_trial)
    assert subscriptions.grants_access(extended, after_original_trial)
    assert subscriptions.days_remaining(extended, after_original_trial) == 9


def test_refunded_subscription_cannot_be_resumed(db_session):
    user = _user(db_session)
    subscription = subscriptions.activate(
        db_session, user, subscriptions.get_plan("monthly"), provider="yookassa", amount=299, currency="RUB"
    )
    db_session.commit()
    cancelled = subscriptions.cancel(db_session, subscription, reason="refund")
    cancelled.refund_amount = 299
    cancelled.refund_date = models.utcnow()
    db_session.commit()

    with pytest.raises(ConflictError):
        subscriptions.resume(db_session, cancelled)
    assert cancelled.status == "cancelled"


def test_suspend_and_reactivate(db_session):
    user = _user(db_session)
    subscription = subscriptions.activate(
        db_session, user, subscriptions.get_plan("monthly"), provider="paypal", amount=299, currency="RUB"
    )
    db_session.commit()

    suspended = subscriptions.suspend(db_session, subscription, reason="chargeback")
    assert suspended.status == "suspended"
    assert not subscriptions.grants_access(suspended)
    assert subscriptions.days_remaining(suspended) == 0

    reactivated = subscriptions.reactivate(db_session, suspended)
    assert reactivated.status == "active"
    assert reactivated.failed_payment_count == 0


def test_expire_overdue_downgrades_users(db_session):
    user = _user(db_session)
    subscription = subscriptions.activate(
        db_session, user, subscriptions.get_plan("monthly"), provider="yookassa", amount=299, currency="RUB"
    )
    db_session.commit()

    assert subscriptions.expire_overdue_subscriptions(db_session) == 0
    assert user.is_premium is True

    later = models.utcnow() + timedelta(days=31)
    assert subscriptions.expire_overdue_subscriptions(db_session, now=later) == 1
    db_session.refresh(subscription)
    db_session.refresh(user)
    assert subscription.status == "expired"
    assert user.is_premium is False
    assert user.subscription_type == "basic"
    assert subscriptions.is_expired(subscription)

    with pytest.raises(ConflictError):
        subscriptions.reactivate(db_session, subscription)


def test_expiring_soon(db_session):
    user = _user(db_session)
    subscriptions.activate(
        db_session, user, subscriptions.get_plan("monthly"), provider="yookassa", amount=299, currency="RUB"
    )
    db_session.commit()

    assert subscriptions.subscriptions_expiring_soon(db_session, days=3) == []
    soon = subscriptions.subscriptions_expiring_soon(db_session, days=3, now=models.utcnow() + timedelta(days=28))
    assert len(soon) == 1
