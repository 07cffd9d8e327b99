from dataclasses import dataclass
import hmac

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import get_db
from .errors import AuthenticationError, AuthorizationError
from .security import decode_access_token, verify_init_data
from .services import get_or_create_user, is_premium_active


@dataclass
class AuthContext:
    tg_user_id: int | None
    validated_via_telegram: bool
    telegram_user_payload: dict | None = None
    user_id: int | None = None
    via_internal_key: bool = False


def has_internal_key(x_internal_api_key: str | None) -> bool:
    if not settings.internal_api_key or not x_internal_api_key:
        return False
    return hmac.compare_digest(x_internal_api_key, settings.internal_api_key)


def internal_key_dep(
    x_internal_api_key: str | None = Header(default=None, alias="X-Internal-API-Key"),
) -> None:
    if not has_internal_key(x_internal_api_key):
        raise AuthenticationError("Valid X-Internal-API-Key is required")


def get_auth_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_telegram_init_data: str | None = Header(default=None, alias="X-Telegram-Init-Data"),
    x_tg_user_id: int | None = Header(default=None, alias="X-TG-USER-ID"),
    x_internal_api_key: str | None = Header(default=None, alias="X-Internal-API-Key"),
) -> AuthContext:
    if has_internal_key(x_internal_api_key):
        if x_tg_user_id is None:
            raise AuthenticationError("X-TG-USER-ID is required for internal auth")
        return AuthContext(tg_user_id=int(x_tg_user_id), validated_via_telegram=False, via_internal_key=True)

    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Access token required")
        claims = decode_access_token(token.strip())
        if claims is None:
            raise AuthorizationError("Invalid or expired token")
        return AuthContext(
            tg_user_id=claims.get("tg"),
            validated_via_telegram=False,
            user_id=int(claims["sub"]),
        )

    if x_telegram_init_data:
        if not settings.bot_token:
            raise AuthenticationError("BOT_TOKEN is required to validate initData")

        check = verify_init_data(
            init_data=x_telegram_init_data,
            bot_token=settings.bot_token,
            max_age_seconds=settings.telegram_init_data_max_age_seconds,
        )
        if not check.ok:
            raise AuthenticationError(f"Invalid Telegram initData: {check.reason}")

        user_payload = check.payload.get("user")
        if not isinstance(user_payload, dict) or "id" not in user_payload:
            raise AuthenticationError("Invalid Telegram user payload")

        return AuthContext(
            tg_user_id=int(user_payload["id"]),
            validated_via_telegram=True,
            telegram_user_payload=user_payload,
        )

    if settings.allow_insecure_dev_auth and x_tg_user_id is not None:
        return AuthContext(tg_user_id=int(x_tg_user_id), validated_via_telegram=False)

    raise AuthenticationError("Access token required")


def current_user_dep(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> models.User:
    if auth.user_id is not None:
        user = db.get(models.User, auth.user_id)
        if user is None:
            raise AuthenticationError("User not found")
    else:
        user = get_or_create_user(db, auth.tg_user_id, telegram_user_payload=auth.telegram_user_payload)

    if user.is_blocked:
        raise AuthorizationError(f"User is blocked: {user.blocked_reason or 'no reason given'}")
    if not user.is_active:
        raise AuthorizationError("User is deactivated")
    return user


def is_admin(user: models.User) -> bool:
    return user.is_admin or user.tg_user_id in settings.admin_telegram_ids()


def admin_user_dep(user: models.User = Depends(current_user_dep)) -> models.User:
    if not is_admin(user):
        raise AuthorizationError("Admin rights required")
    return user


def premium_user_dep(user: models.User = Depends(current_user_dep)) -> models.User:
    if not is_premium_active(user):
        raise AuthorizationError("Premium subscription required")
    return user
