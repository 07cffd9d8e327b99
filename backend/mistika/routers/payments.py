import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from .. import models, payments, schemas, subscriptions
from ..config import settings
from ..database import get_db
from ..dependencies import admin_user_dep, current_user_dep, internal_key_dep
from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..limiter import limiter
from ..security import verify_webhook_signature
from .users import serialize_subscription, subscription_status

router = APIRouter(prefix="/v1/payments", tags=["payments"])
logger = logging.getLogger("mistika.payments")


def _serialize_payment(payment: models.Payment) -> schemas.PaymentResponse:
    return schemas.PaymentResponse(
        id=payment.id,
        provider=payment.provider,
        plan_id=payment.plan_id,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
        confirmation_url=payment.confirmation_url,
        subscription_id=payment.subscription_id,
        refund_amount=payment.refund_amount,
        created_at=payment.created_at,
        paid_at=payment.paid_at,
    )


async def _json_body(request: Request) -> tuple[bytes, dict]:
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except json.JSONDecodeError:
        raise ValidationError("Webhook body must be JSON")
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return raw, body


@router.get("/plans", response_model=list[schemas.PlanResponse])
def get_plans():
    return [
        schemas.PlanResponse(
            id=plan.id,
            name=plan.name,
            price=plan.price,
            discounted_price=plan.discounted_price,
            price_per_month=plan.price_per_month,
            discount=plan.discount,
            currency=plan.currency,
            duration_days=plan.duration_days,
            stars_price=plan.stars_price,
            featured=plan.featured,
            features=plan.features,
            limits=subscriptions.plan_limits(plan.id),
        )
        for plan in subscriptions.list_plans()
    ]


@router.post("/create", response_model=schemas.PaymentResponse, status_code=201)
@limiter.limit("10/minute")
async def create_payment(
    request: Request,
    payload: schemas.PaymentCreateRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    payment = await payments.create_payment(db, user=user, plan_id=payload.plan_id, provider=payload.provider)
    return _serialize_payment(payment)


@router.get("/subscription", response_model=schemas.SubscriptionStatusResponse)
def get_subscription(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return subscription_status(db, user)


@router.post("/trial", response_model=schemas.SubscriptionResponse, status_code=201)
@limiter.limit("5/minute")
def start_trial(
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return serialize_subscription(subscriptions.create_trial(db, user))


@router.post("/cancel-subscription", response_model=schemas.SubscriptionResponse)
@limiter.limit("10/minute")
def cancel_subscription(
    request: Request,
    payload: schemas.CancelSubscriptionRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    subscription = subscriptions.get_live_subscription(db, user)
    if subscription is None:
        raise ConflictError("Subscription is not active")
    return serialize_subscription(subscriptions.cancel(db, subscription, payload.reason))


@router.post("/resume-subscription", response_model=schemas.SubscriptionResponse)
@limiter.limit("10/minute")
def resume_subscription(
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    subscription = subscriptions.get_current_subscription(db, user)
    if subscription is None:
        raise NotFoundError("Subscription not found")
    return serialize_subscription(subscriptions.resume(db, subscription))


@router.get("/history", response_model=list[schemas.PaymentResponse])
def payment_history(
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return [_serialize_payment(payment) for payment in payments.list_user_payments(db, user)]


@router.post("/refund", response_model=schemas.PaymentResponse)
async def refund_payment(
    payload: schemas.RefundRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(admin_user_dep),
):
    payment = db.get(models.Payment, payload.payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    payment = await payments.refund_payment(db, payment, amount=payload.amount, reason=payload.reason)
    logger.info("Refund by admin | admin_id=%s | payment_id=%s", admin.id, payment.id)
    return _serialize_payment(payment)


@router.post("/webhook/yookassa", response_model=schemas.WebhookResponse)
async def yookassa_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(default=None, alias="X-Webhook-Signature"),
    db: Session = Depends(get_db),
):
    raw, body = await _json_body(request)
    if settings.yookassa_webhook_secret and not verify_webhook_signature(
        raw, x_webhook_signature, settings.yookassa_webhook_secret
    ):
        logger.warning("YooKassa webhook signature mismatch")
        raise AuthenticationError("Invalid webhook signature")
    result = payments.handle_yookassa_event(db, body)
    logger.info("YooKassa webhook | event=%s | result=%s", body.get("event"), result)
    return schemas.WebhookResponse(result=result)


@router.post("/webhook/paypal", response_model=schemas.WebhookResponse)
async def paypal_webhook(request: Request, db: Session = Depends(get_db)):
    _, body = await _json_body(request)
    if settings.paypal_webhook_id and not await payments.verify_paypal_webhook(request.headers, body):
        logger.warning("PayPal webhook signature mismatch | event=%s", body.get("event_type"))
        raise AuthenticationError("Invalid webhook signature")
    result = payments.handle_paypal_event(db, body)
    logger.info("PayPal webhook | event=%s | result=%s", body.get("event_type"), result)
    return schemas.WebhookResponse(result=result)


@router.post("/telegram/pre-checkout", response_model=schemas.TelegramPreCheckoutResponse)
def telegram_pre_checkout(
    payload: schemas.TelegramPreCheckoutRequest,
    _: None = Depends(internal_key_dep),
    db: Session = Depends(get_db),
):
    ok, reason = payments.validate_telegram_pre_checkout(
        db,
        invoice_payload=payload.invoice_payload,
        tg_user_id=payload.tg_user_id,
        currency=payload.currency,
        total_amount=payload.total_amount,
    )
    return schemas.TelegramPreCheckoutResponse(ok=ok, error_message=reason)


@router.post("/telegram/success", response_model=schemas.PaymentResponse)
def telegram_payment_success(
    payload: schemas.TelegramPaymentSuccessRequest,
    _: None = Depends(internal_key_dep),
    db: Session = Depends(get_db),
):
    payment = payments.confirm_telegram_payment(
        db,
        invoice_payload=payload.invoice_payload,
        tg_user_id=payload.tg_user_id,
        currency=payload.currency,
        total_amount=payload.total_amount,
        telegram_payment_charge_id=payload.telegram_payment_charge_id,
    )
    logger.info(
        "Stars payment confirmed | payment_id=%s | tg_user_id=%s | plan=%s | status=%s",
        payment.id, payload.tg_user_id, payment.plan_id, payment.status,
    )
    return _serialize_payment(payment)


@router.get("/{payment_id}", response_model=schemas.PaymentResponse)
def get_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(current_user_dep),
):
    return _serialize_payment(payments.get_user_payment(db, user, payment_id))
