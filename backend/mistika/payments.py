import json
import logging
import uuid

import httpx
from sqlalchemy.orm import Session

from . import models, subscriptions
from .config import settings
from .errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger("mistika.payments")

PROVIDER_YOOKASSA = "yookassa"
PROVIDER_PAYPAL = "paypal"
PROVIDER_TELEGRAM_STARS = "telegram_stars"
PROVIDERS = (PROVIDER_YOOKASSA, PROVIDER_PAYPAL, PROVIDER_TELEGRAM_STARS)

STARS_CURRENCY = "XTR"

PAYMENT_STATUS_CREATED = "created"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SUCCEEDED = "succeeded"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUS_REFUNDED = "refunded"


def _provider_timeout() -> float:
    return settings.payment_provider_timeout_seconds


def _new_payment(db: Session, *, user: models.User, plan: subscriptions.Plan, provider: str) -> models.Payment:
    if provider == PROVIDER_TELEGRAM_STARS:
        amount, currency = plan.stars_price, STARS_CURRENCY
    else:
        amount, currency = plan.discounted_price, plan.currency
    payment = models.Payment(
        user_id=user.id,
        provider=provider,
        plan_id=plan.id,
        amount=amount,
        currency=currency,
        status=PAYMENT_STATUS_CREATED,
        idempotence_key=uuid.uuid4().hex,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def _mark_failed(db: Session, payment: models.Payment, reason: str) -> None:
    payment.status = PAYMENT_STATUS_FAILED
    payment.meta_payload = {**(payment.meta_payload or {}), "error": reason}
    payment.updated_at = models.utcnow()
    db.commit()


# ── YooKassa ────────────────────────────────────────────────────────

def _yookassa_auth() -> tuple[str, str]:
    if not settings.yookassa_shop_id or not settings.yookassa_secret_key:
        raise ServiceUnavailableError("YooKassa is not configured")
    return settings.yookassa_shop_id, settings.yookassa_secret_key


async def _create_yookassa_payment(payment: models.Payment, plan: subscriptions.Plan) -> tuple[str, str]:
    auth = _yookassa_auth()
    body = {
        "amount": {"value": f"{payment.amount:.2f}", "currency": payment.currency},
        "confirmation": {"type": "redirect", "return_url": settings.yookassa_return_url},
        "capture": True,
        "description": f"Подписка MISTIKA: {plan.name}",
        "metadata": {"user_id": str(payment.user_id), "plan_id": plan.id, "payment_id": str(payment.id)},
    }
    async with httpx.AsyncClient(timeout=_provider_timeout()) as client:
        response = await client.post(
            f"{settings.yookassa_api_url}/payments",
            json=body,
            auth=auth,
            headers={"Idempotence-Key": payment.idempotence_key},
        )
    response.raise_for_status()
    data = response.json()
    return data["id"], data["confirmation"]["confirmation_url"]


async def _refund_yookassa(payment: models.Payment, amount: int) -> dict:
    auth = _yookassa_auth()
    body = {
        "amount": {"value": f"{amount:.2f}", "currency": payment.currency},
        "payment_id": payment.external_id,
    }
    async with httpx.AsyncClient(timeout=_provider_timeout()) as client:
        response = await client.post(
            f"{settings.yookassa_api_url}/refunds",
            json=body,
            auth=auth,
            headers={"Idempotence-Key": uuid.uuid4().hex},
        )
    response.raise_for_status()
    return response.json()


# ── PayPal ──────────────────────────────────────────────────────────

async def _paypal_access_token(client: httpx.AsyncClient) -> str:
    if not settings.paypal_client_id or not settings.paypal_client_secret:
        raise ServiceUnavailableError("PayPal is not configured")
    response = await client.post(
        f"{settings.paypal_api_url()}/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(settings.paypal_client_id, settings.paypal_client_secret),
    )
    response.raise_for_status()
    return response.json()["access_token"]


async def _create_paypal_subscription(payment: models.Payment, plan: subscriptions.Plan) -> tuple[str, str]:
    async with httpx.AsyncClient(timeout=_provider_timeout()) as client:
        token = await _paypal_access_token(client)
        body = {
            "plan_id": f"mistika_{plan.id}",
            "custom_id": json.dumps(
                {"user_id": payment.user_id, "plan_id": plan.id, "payment_id": str(payment.id)}
            ),
            "application_context": {
                "brand_name": "MISTIKA",
                "user_action": "SUBSCRIBE_NOW",
                "return_url": settings.paypal_return_url,
                "cancel_url": settings.paypal_cancel_url,
            },
        }
        response = await client.post(
            f"{settings.paypal_api_url()}/v1/billing/subscriptions",
            json=body,
            headers={"Authorization": f"Bearer {token}", "PayPal-Request-Id": payment.idempotence_key},
        )
    response.raise_for_status()
    data = response.json()
    approve_url = next(
        (link["href"] for link in data.get("links", []) if link.get("rel") == "approve"),
        None,
    )
    if not approve_url:
        raise ValueError("PayPal response has no approve link")
    return data["id"], approve_url


PAYPAL_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


async def verify_paypal_webhook(headers, event: dict) -> bool:
    """Ask PayPal whether the webhook delivery carries a valid signature."""
    signature = {field: headers.get(name) for field, name in PAYPAL_SIGNATURE_HEADERS.items()}
    if not all(signature.values()):
        return False
    body = {**signature, "webhook_id": settings.paypal_webhook_id, "webhook_event": event}
    try:
        async with httpx.AsyncClient(timeout=_provider_timeout()) as client:
            token = await _paypal_access_token(client)
            response = await client.post(
                f"{settings.paypal_api_url()}/v1/notifications/verify-webhook-signature",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        response.raise_for_status()
        status = response.json().get("verification_status")
    except (httpx.HTTPError, KeyError, ValueError) as exc:
        logger.warning("PayPal webhook verification failed | error=%s", exc)
        raise ExternalServiceError("PayPal webhook verification is unavailable")
    return status == "SUCCESS"


# ── Telegram Stars ──────────────────────────────────────────────────

def _telegram_api_url(method: str) -> str:
    if not settings.bot_token:
        raise ServiceUnavailableError("BOT_TOKEN is not configured")
    return f"https://api.telegram.org/bot{settings.bot_token}/{method}"


async def _create_telegram_invoice_link(payment: models.Payment, plan: subscriptions.Plan) -> str:
    url = _telegram_api_url("createInvoiceLink")
    body = {
        "title": f"MISTIKA Premium: {plan.name}",
        "description": f"Подписка на {plan.duration_days} дней с полным доступом ко всем возможностям MISTIKA",
        "payload": payment.invoice_payload,
        "currency": STARS_CURRENCY,
        "prices": [{"label": plan.name, "amount": payment.amount}],
    }
    async with httpx.AsyncClient(timeout=settings.telegram_bot_api_timeout_seconds) as client:
        response = await client.post(url, json=body)
    response.raise_for_status()
    data = response.json()
    if not data.get("ok") or not isinstance(data.get("result"), str):
        raise ValueError(f"Telegram error response: {data}")
    return data["result"]


# ── Orchestration ───────────────────────────────────────────────────

async def create_payment(db: Session, *, user: models.User, plan_id: str, provider: str) -> models.Payment:
    if provider not in PROVIDERS:
        raise ValidationError(f"Unknown payment provider: {provider}")
    plan = subscriptions.get_plan(plan_id)
    if subscriptions.get_live_subscription(db, user) is not None:
        raise ConflictError("User already has an active subscription")

    payment = _new_payment(db, user=user, plan=plan, provider=provider)
    try:
        if provider == PROVIDER_YOOKASSA:
            external_id, confirmation_url = await _create_yookassa_payment(payment, plan)
        elif provider == PROVIDER_PAYPAL:
            external_id, confirmation_url = await _create_paypal_subscription(payment, plan)
        else:
            payment.invoice_payload = f"mistika:{plan.id}:{user.tg_user_id}:{uuid.uuid4().hex}"
            db.commit()
            external_id, confirmation_url = None, await _create_telegram_invoice_link(payment, plan)
    except ServiceUnavailableError as exc:
        _mark_failed(db, payment, exc.detail)
        raise
    except (httpx.HTTPError, KeyError, ValueError) as exc:
        logger.warning(
            "Payment provider call failed | provider=%s | payment_id=%s | error=%s",
            provider, payment.id, exc,
        )
        _mark_failed(db, payment, str(exc))
        raise ExternalServiceError(f"Payment provider {provider} is unavailable")

    payment.external_id = external_id
    payment.confirmation_url = confirmation_url
    payment.status = PAYMENT_STATUS_PENDING
    payment.updated_at = models.utcnow()
    db.commit()
    db.refresh(payment)
    logger.info(
        "Payment created | user_id=%s | payment_id=%s | provider=%s | plan=%s | amount=%s %s",
        user.id, payment.id, provider, plan.id, payment.amount, payment.currency,
    )
    return payment


def complete_payment(db: Session, payment: models.Payment, *, external_id: str | None = None) -> models.Subscription:
    """Mark the payment succeeded and activate its plan; repeated calls are no-ops."""
    if payment.status == PAYMENT_STATUS_SUCCEEDED and payment.subscription is not None:
        return payment.subscription
    if payment.status in (PAYMENT_STATUS_REFUNDED, PAYMENT_STATUS_CANCELLED):
        raise ConflictError(f"Payment is {payment.status}")

    plan = subscriptions.get_plan(payment.plan_id)
    subscription = subscriptions.activate(
        db,
        payment.user,
        plan,
        provider=payment.provider,
        amount=payment.amount,
        currency=payment.currency,
        external_id=external_id or payment.external_id,
    )
    now = models.utcnow()
    payment.subscription_id = subscription.id
    payment.status = PAYMENT_STATUS_SUCCEEDED
    payment.paid_at = payment.paid_at or now
    payment.updated_at = now
    if external_id and not payment.external_id:
        payment.external_id = external_id
    db.commit()
    db.refresh(subscription)
    logger.info("Payment succeeded | payment_id=%s | subscription_id=%s", payment.id, subscription.id)
    return subscription


def fail_payment(db: Session, payment: models.Payment, status: str = PAYMENT_STATUS_FAILED) -> models.Payment:
    if payment.status == PAYMENT_STATUS_SUCCEEDED:
        logger.warning("Ignoring failure for succeeded payment | payment_id=%s", payment.id)
        return payment
    payment.status = status
    payment.updated_at = models.utcnow()
    db.commit()
    db.refresh(payment)
    return payment


def _find_payment(db: Session, *, payment_id: str | None = None, external_id: str | None = None) -> models.Payment | None:
    if payment_id:
        try:
            payment = db.get(models.Payment, uuid.UUID(str(payment_id)))
        except ValueError:
            payment = None
        if payment is not None:
            return payment
    if external_id:
        return db.query(models.Payment).filter(models.Payment.external_id == external_id).first()
    return None


# ── Webhooks ────────────────────────────────────────────────────────

def handle_yookassa_event(db: Session, event: dict) -> str:
    event_type = event.get("event")
    obj = event.get("object") or {}
    metadata = obj.get("metadata") or {}
    payment = _find_payment(db, payment_id=metadata.get("payment_id"), external_id=obj.get("id"))
    if payment is None:
        logger.warning("YooKassa webhook for unknown payment | event=%s | external_id=%s", event_type, obj.get("id"))
        raise NotFoundError("Payment not found")

    if event_type == "payment.succeeded":
        complete_payment(db, payment, external_id=obj.get("id"))
        return "activated"
    if event_type == "payment.canceled":
        fail_payment(db, payment)
        return "failed"
    logger.info("YooKassa webhook ignored | event=%s | payment_id=%s", event_type, payment.id)
    return "ignored"


def handle_paypal_event(db: Session, event: dict) -> str:
    event_type = event.get("event_type")
    resource = event.get("resource") or {}
    external_id = resource.get("id")

    if event_type == "BILLING.SUBSCRIPTION.ACTIVATED":
        try:
            custom = json.loads(resource.get("custom_id") or "{}")
        except json.JSONDecodeError:
            custom = {}
        payment = _find_payment(db, payment_id=custom.get("payment_id"), external_id=external_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        complete_payment(db, payment, external_id=external_id)
        return "activated"

    if event_type == "BILLING.SUBSCRIPTION.CANCELLED":
        subscription = (
            db.query(models.Subscription)
            .filter(models.Subscription.external_subscription_id == external_id)
            .order_by(models.Subscription.created_at.desc())
            .first()
        )
        if subscription is None:
            raise NotFoundError("Subscription not found")
        if subscriptions.grants_access(subscription):
            subscriptions.cancel(db, subscription, reason="Cancelled in PayPal")
        return "cancelled"

    logger.info("PayPal webhook ignored | event=%s", event_type)
    return "ignored"


def validate_telegram_pre_checkout(
    db: Session,
    *,
    invoice_payload: str,
    tg_user_id: int,
    currency: str,
    total_amount: int,
) -> tuple[bool, str | None]:
    payment = db.query(models.Payment).filter(models.Payment.invoice_payload == invoice_payload).first()
    if payment is None:
        return False, "План подписки не найден"
    if payment.plan_id not in {plan.id for plan in subscriptions.list_plans()}:
        return False, "План подписки не найден"
    if payment.user.tg_user_id != int(tg_user_id):
        return False, "Пользователь не найден"
    if currency.upper() != STARS_CURRENCY or int(total_amount) != payment.amount:
        return False, "Сумма платежа не совпадает"
    if payment.status not in (PAYMENT_STATUS_CREATED, PAYMENT_STATUS_PENDING):
        return False, "Счёт уже неактуален"
    if subscriptions.get_live_subscription(db, payment.user) is not None:
        return False, "У вас уже есть активная подписка"
    return True, None


def confirm_telegram_payment(
    db: Session,
    *,
    invoice_payload: str,
    tg_user_id: int,
    currency: str,
    total_amount: int,
    telegram_payment_charge_id: str,
) -> models.Payment:
    payment = db.query(models.Payment).filter(models.Payment.invoice_payload == invoice_payload).first()
    if payment is None:
        raise NotFoundError("Payment for invoice_payload not found")
    if payment.user.tg_user_id != int(tg_user_id):
        raise ConflictError("Payment user mismatch")
    if currency.upper() != STARS_CURRENCY:
        raise ConflictError("Payment currency mismatch")
    if int(total_amount) != payment.amount:
        raise ConflictError("Payment amount mismatch")
    if payment.telegram_payment_charge_id not in (None, telegram_payment_charge_id):
        raise ConflictError("Payment already confirmed with another charge id")

    payment.telegram_payment_charge_id = telegram_payment_charge_id
    complete_payment(db, payment, external_id=telegram_payment_charge_id)
    db.refresh(payment)
    return payment


# ── Queries & refunds ───────────────────────────────────────────────

def list_user_payments(db: Session, user: models.User, limit: int = 50) -> list[models.Payment]:
    return (
        db.query(models.Payment)
        .filter(models.Payment.user_id == user.id)
        .order_by(models.Payment.created_at.desc())
        .limit(limit)
        .all()
    )


def get_user_payment(db: Session, user: models.User, payment_id: uuid.UUID) -> models.Payment:
    payment = (
        db.query(models.Payment)
        .filter(models.Payment.id == payment_id, models.Payment.user_id == user.id)
        .first()
    )
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


async def refund_payment(
    db: Session,
    payment: models.Payment,
    *,
    amount: int | None = None,
    reason: str | None = None,
) -> models.Payment:
    if payment.status != PAYMENT_STATUS_SUCCEEDED:
        raise ConflictError("Only succeeded payments can be refunded")
    refund_amount = amount or payment.amount
    if refund_amount > payment.amount:
        raise ValidationError("Refund amount exceeds the payment amount")

    refund_state = "succeeded"
    if payment.provider == PROVIDER_YOOKASSA:
        try:
            await _refund_yookassa(payment, refund_amount)
        except httpx.HTTPError as exc:
            logger.warning("YooKassa refund failed | payment_id=%s | error=%s", payment.id, exc)
            raise ExternalServiceError("YooKassa refund failed")
    elif payment.provider == PROVIDER_PAYPAL:
        logger.info("PayPal refund requested | payment_id=%s | amount=%s", payment.id, refund_amount)
        refund_state = "pending"
    else:
        logger.warning("Manual refund required for Telegram Stars | payment_id=%s", payment.id)
        refund_state = "manual"

    now = models.utcnow()
    payment.status = PAYMENT_STATUS_REFUNDED
    payment.refund_amount = refund_amount
    payment.refunded_at = now
    payment.updated_at = now
    payment.meta_payload = {**(payment.meta_payload or {}), "refund_state": refund_state, "refund_reason": reason}

    subscription = payment.subscription
    if subscription is not None:
        subscriptions.set_status(subscription, subscriptions.STATUS_CANCELLED)
        subscription.refund_amount = refund_amount
        subscription.refund_date = now
        subscription.end_date = now
        subscription.cancellation_date = subscription.cancellation_date or now
        subscription.cancellation_reason = reason or "Возврат средств"
        payment.user.is_premium = False
        payment.user.premium_expires_at = None
        payment.user.subscription_type = "basic"

    db.commit()
    db.refresh(payment)
    logger.info(
        "Refund processed | payment_id=%s | amount=%s | state=%s", payment.id, refund_amount, refund_state
    )
    return payment
