import hashlib
import hmac
import json
import time
from urllib.parse import urlencode

from mistika import models
from mistika.config import settings
from mistika.security import create_access_token

BOT_TOKEN = "123456:ABCDEF_TOKEN"


def _build_init_data(*, bot_token: str, user_payload: dict) -> str:
    payload = {
        "auth_date": str(int(time.time())),
        "query_id": "AAE_TEST_QUERY",
        "user": json.dumps(user_payload, separators=(",", ":")),
    }
    data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(payload.items()))
    secret_key = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    payload_hash = hmac.new(secret_key, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()
    return urlencode({**payload, "hash": payload_hash})


def test_telegram_auth_issues_token_and_syncs_profile(client):
    original_token = settings.bot_token
    settings.bot_token = BOT_TOKEN
    try:
        init_data = _build_init_data(
            bot_token=BOT_TOKEN,
            user_payload={"id": 555001, "first_name": "Анна", "username": "anna_tarot", "language_code": "ru"},
        )
        response = client.post("/v1/auth/telegram", json={"init_data": init_data})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in_days"] == settings.jwt_expire_days
        assert body["user"]["tg_user_id"] == 555001
        assert body["user"]["first_name"] == "Анна"
        assert body["user"]["referral_code"].startswith("REF")

        profile = client.get(
            "/v1/auth/profile", headers={"Authorization": f"Bearer {body['access_token']}"}
        )
        assert profile.status_code == 200
        assert profile.json()["username"] == "anna_tarot"
    finally:
        settings.bot_token = original_token


def test_telegram_auth_rejects_bad_init_data(client):
    original_token = settings.bot_token
    settings.bot_token = BOT_TOKEN
    try:
        response = client.post("/v1/auth/telegram", json={"init_data": "auth_date=1&hash=broken"})
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_error"
    finally:
        settings.bot_token = original_token


def test_telegram_auth_requires_bot_token(client):
    original_token = settings.bot_token
    settings.bot_token = None
    try:
        response = client.post("/v1/auth/telegram", json={"init_data": "auth_date=1&hash=x"})
        assert response.status_code == 401
    finally:
        settings.bot_token = original_token


def test_init_data_header_authenticates_requests(client):
    original_token = settings.bot_token
    settings.bot_token = BOT_TOKEN
    try:
        init_data = _build_init_data(bot_token=BOT_TOKEN, user_payload={"id": 555002, "first_name": "Олег"})
        response = client.get("/v1/users/me", headers={"X-Telegram-Init-Data": init_data})
        assert response.status_code == 200
        assert response.json()["tg_user_id"] == 555002
        assert response.json()["first_name"] == "Олег"
    finally:
        settings.bot_token = original_token


def test_missing_credentials_rejected(client):
    response = client.get("/v1/users/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Access token required"


def test_dev_header_disabled_outside_dev_mode(client):
    original = settings.allow_insecure_dev_auth
    settings.allow_insecure_dev_auth = False
    try:
        response = client.get("/v1/users/me", headers={"X-TG-USER-ID": "424242"})
        assert response.status_code == 401
    finally:
        settings.allow_insecure_dev_auth = original


def test_invalid_bearer_token_is_forbidden(client):
    response = client.get("/v1/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 403
    assert response.json()["error"] == "authorization_error"


def test_non_bearer_scheme_rejected(client):
    response = client.get("/v1/users/me", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_token_for_deleted_user_rejected(client):
    token = create_access_token(user_id=99999, tg_user_id=1)
    response = client.get("/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_bot_auth_requires_internal_key(client):
    original_key = settings.internal_api_key
    settings.internal_api_key = "internal-secret"
    try:
        denied = client.post("/v1/auth/bot", json={"telegram_id": 700})
        assert denied.status_code == 401

        response = client.post(
            "/v1/auth/bot",
            headers={"X-Internal-API-Key": "internal-secret"},
            json={"telegram_id": 700, "first_name": "Bot User"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["expires_in_days"] == settings.bot_jwt_expire_days
        assert body["user"]["first_name"] == "Bot User"
    finally:
        settings.internal_api_key = original_key


def test_internal_key_auth_works_without_dev_mode(client):
    original_key = settings.internal_api_key
    original_dev = settings.allow_insecure_dev_auth
    settings.internal_api_key = "internal-secret"
    settings.allow_insecure_dev_auth = False
    try:
        response = client.get(
            "/v1/users/me",
            headers={"X-TG-USER-ID": "900", "X-Internal-API-Key": "internal-secret"},
        )
        assert response.status_code == 200
        assert response.json()["tg_user_id"] == 900

        missing_user = client.get("/v1/users/me", headers={"X-Internal-API-Key": "internal-secret"})
        assert missing_user.status_code == 401
    finally:
        settings.internal_api_key = original_key
        settings.allow_insecure_dev_auth = original_dev


def test_refresh_token(client):
    headers = {"X-TG-USER-ID": "424242"}
    response = client.post("/v1/auth/refresh", headers=headers)
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["tg_user_id"] == 424242


def test_blocked_user_is_forbidden(client, db_session):
    headers = {"X-TG-USER-ID": "424242"}
    assert client.get("/v1/users/me", headers=headers).status_code == 200

    user = db_session.query(models.User).filter(models.User.tg_user_id == 424242).one()
    user.is_blocked = True
    user.blocked_reason = "spam"
    db_session.commit()

    response = client.get("/v1/users/me", headers=headers)
    assert response.status_code == 403
    assert "spam" in response.json()["detail"]


def test_admin_ids_from_settings_get_admin_rights(client):
    original = settings.admin_telegram_ids_raw
    settings.admin_telegram_ids_raw = "111, 222"
    try:
        response = client.get("/v1/users/me", headers={"X-TG-USER-ID": "222"})
        assert response.status_code == 200
        assert response.json()["is_admin"] is True
        regular = client.get("/v1/users/me", headers={"X-TG-USER-ID": "333"})
        assert regular.json()["is_admin"] is False
    finally:
        settings.admin_telegram_ids_raw = original
