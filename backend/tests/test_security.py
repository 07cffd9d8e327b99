import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from jose import jwt

from mistika.config import settings
from mistika.security import (
    create_access_token,
    decode_access_token,
    generate_referral_code,
    generate_share_code,
    sign_webhook_body,
    verify_init_data,
    verify_webhook_signature,
)

BOT_TOKEN = "123456:ABCDEF_TOKEN"


def _signed_init_data(payload: dict, bot_token: str = BOT_TOKEN) -> str:
    data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(payload.items()))
    secret_key = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    payload_hash = hmac.new(secret_key, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()
    return urlencode({**payload, "hash": payload_hash})


def test_verify_init_data_success():
    init_data = _signed_init_data(
        {
            "auth_date": str(int(time.time())),
            "query_id": "AAEAAAE",
            "user": json.dumps({"id": 777001, "first_name": "M"}, separators=(",", ":")),
        }
    )

    result = verify_init_data(init_data=init_data, bot_token=BOT_TOKEN, max_age_seconds=120)
    assert result.ok is True
    assert result.payload["user"]["id"] == 777001


def test_verify_init_data_invalid_hash():
    result = verify_init_data(
        init_data="auth_date=100&user=%7B%22id%22%3A1%7D&hash=broken",
        bot_token=BOT_TOKEN,
        max_age_seconds=120,
    )
    assert result.ok is False
    assert result.reason == "Hash mismatch"


def test_verify_init_data_missing_hash():
    result = verify_init_data(init_data="auth_date=100", bot_token=BOT_TOKEN, max_age_seconds=120)
    assert result.ok is False
    assert result.reason == "Missing hash"


def test_verify_init_data_expired():
    init_data = _signed_init_data(
        {
            "auth_date": str(int(time.time()) - 3600),
            "user": json.dumps({"id": 1}, separators=(",", ":")),
        }
    )
    result = verify_init_data(init_data=init_data, bot_token=BOT_TOKEN, max_age_seconds=60)
    assert result.ok is False
    assert result.reason == "initData expired"


def test_verify_init_data_rejects_other_bot_token():
    init_data = _signed_init_data({"auth_date": str(int(time.time()))}, bot_token="999:OTHER")
    result = verify_init_data(init_data=init_data, bot_token=BOT_TOKEN, max_age_seconds=60)
    assert result.ok is False


def test_access_token_roundtrip_claims():
    token = create_access_token(user_id=42, tg_user_id=4242, token_type="bot", expire_days=30)
    claims = decode_access_token(token)
    assert claims is not None
    assert claims["sub"] == "42"
    assert claims["tg"] == 4242
    assert claims["type"] == "bot"


def test_decode_access_token_rejects_expired_and_foreign_tokens():
    expired = jwt.encode(
        {"sub": "1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    foreign = jwt.encode(
        {"sub": "1", "exp": datetime.now(timezone.utc) + timedelta(days=1)},
        "another-secret",
        algorithm="HS256",
    )
    assert decode_access_token(expired) is None
    assert decode_access_token(foreign) is None
    assert decode_access_token("not-a-jwt") is None


def test_share_and_referral_codes_format():
    share_code = generate_share_code()
    referral_code = generate_referral_code()

    assert len(share_code) == 12
    assert share_code.isalnum()
    assert referral_code.startswith("REF")
    assert len(referral_code) == 9
    assert all(ch.isdigit() or "A" <= ch <= "Z" for ch in referral_code[3:])


def test_webhook_signature():
    body = b'{"event":"payment.succeeded"}'
    signature = sign_webhook_body(body, "hook-secret")

    assert verify_webhook_signature(body, signature, "hook-secret") is True
    assert verify_webhook_signature(body, signature, "other-secret") is False
    assert verify_webhook_signature(body, None, "hook-secret") is False
