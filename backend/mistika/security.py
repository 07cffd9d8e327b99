import hashlib
import hmac
import json
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl

from jose import JWTError, jwt

from .config import settings

SHARE_CODE_ALPHABET = string.ascii_letters + string.digits
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class InitDataCheck:
    ok: bool
    reason: str | None
    payload: dict


def _data_check_string(fields: dict[str, str]) -> str:
    return "\n".join(f"{key}={fields[key]}" for key in sorted(fields))


def verify_init_data(init_data: str, bot_token: str, max_age_seconds: int) -> InitDataCheck:
    """Validate Telegram WebApp initData.

    The secret key is ``HMAC_SHA256("WebAppData", bot_token)``; the hash covers
    every field except ``hash`` itself, sorted by key and joined with newlines.
    """
    fields = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = fields.pop("hash", None)
    if not received_hash:
        return InitDataCheck(ok=False, reason="Missing hash", payload={})

    secret_key = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    expected_hash = hmac.new(secret_key, _data_check_string(fields).encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected_hash, received_hash):
        return InitDataCheck(ok=False, reason="Hash mismatch", payload={})

    try:
        auth_date = int(fields.get("auth_date") or "")
    except ValueError:
        return InitDataCheck(ok=False, reason="Invalid auth_date", payload={})

    if int(time.time()) - auth_date > max_age_seconds:
        return InitDataCheck(ok=False, reason="initData expired", payload={})

    payload: dict = dict(fields)
    if "user" in payload:
        try:
            payload["user"] = json.loads(payload["user"])
        except json.JSONDecodeError:
            return InitDataCheck(ok=False, reason="Invalid user payload", payload={})

    return InitDataCheck(ok=True, reason=None, payload=payload)


def create_access_token(*, user_id: int, tg_user_id: int, token_type: str = "webapp", expire_days: int | None = None) -> str:
    days = expire_days if expire_days is not None else settings.jwt_expire_days
    claims = {
        "sub": str(user_id),
        "tg": tg_user_id,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + timedelta(days=days),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if not str(payload.get("sub", "")).isdigit():
        return None
    return payload


def generate_share_code(length: int = 12) -> str:
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))


def generate_referral_code() -> str:
    return "REF" + "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(6))


def sign_webhook_body(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_webhook_body(body, secret), signature.strip())
