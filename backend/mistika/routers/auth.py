import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .. import models, schemas, services
from ..config import settings
from ..database import get_db
from ..dependencies import current_user_dep, internal_key_dep
from ..errors import AuthenticationError
from ..limiter import limiter
from ..security import create_access_token, verify_init_data
from .users import serialize_user

router = APIRouter(prefix="/v1/auth", tags=["auth"])
logger = logging.getLogger("mistika.auth")


def _token_response(user: models.User, *, token_type: str, expire_days: int) -> schemas.TokenResponse:
    token = create_access_token(
        user_id=user.id, tg_user_id=user.tg_user_id, token_type=token_type, expire_days=expire_days
    )
    return schemas.TokenResponse(access_token=token, expires_in_days=expire_days, user=serialize_user(user))


@router.post("/telegram", response_model=schemas.TokenResponse)
@limiter.limit("20/minute")
def auth_telegram(
    request: Request,
    payload: schemas.TelegramAuthRequest,
    db: Session = Depends(get_db),
):
    if not settings.bot_token:
        raise AuthenticationError("BOT_TOKEN is required to validate initData")
    check = verify_init_data(
        init_data=payload.init_data,
        bot_token=settings.bot_token,
        max_age_seconds=settings.telegram_init_data_max_age_seconds,
    )
    if not check.ok:
        logger.warning("Telegram auth rejected | reason=%s", check.reason)
        raise AuthenticationError(f"Invalid Telegram initData: {check.reason}")

    user_payload = check.payload.get("user")
    if not isinstance(user_payload, dict) or "id" not in user_payload:
        raise AuthenticationError("Invalid Telegram user payload")

    user = services.get_or_create_user(db, int(user_payload["id"]), telegram_user_payload=user_payload)
    user = services.sync_telegram_profile(db, user, user_payload)
    logger.info("Telegram auth | tg_user_id=%s | user_id=%s", user.tg_user_id, user.id)
    return _token_response(user, token_type="webapp", expire_days=settings.jwt_expire_days)


@router.post("/bot", response_model=schemas.TokenResponse)
def auth_bot(
    payload: schemas.BotAuthRequest,
    _: None = Depends(internal_key_dep),
    db: Session = Depends(get_db),
):
    telegram_payload = payload.model_dump(exclude={"telegram_id"}, exclude_none=True)
    user = services.get_or_create_user(db, payload.telegram_id, telegram_user_payload=telegram_payload)
    user = services.sync_telegram_profile(db, user, telegram_payload)
    logger.info("Bot auth | tg_user_id=%s | user_id=%s", user.tg_user_id, user.id)
    return _token_response(user, token_type="bot", expire_days=settings.bot_jwt_expire_days)


@router.post("/refresh", response_model=schemas.TokenResponse)
@limiter.limit("30/minute")
def refresh_token(
    request: Request,
    user: models.User = Depends(current_user_dep),
):
    return _token_response(user, token_type="webapp", expire_days=settings.jwt_expire_days)


@router.get("/profile", response_model=schemas.UserResponse)
def get_profile(user: models.User = Depends(current_user_dep)):
    return serialize_user(user)
