from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    app_version: str = "1.0.0"
    database_url: str = "sqlite:///./mistika.db"
    redis_url: str = "redis://localhost:6379/0"

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    public_base_url: str = "https://mistika.app"

    # Auth
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7
    bot_jwt_expire_days: int = 30
    bot_token: str | None = None
    internal_api_key: str | None = None
    allow_insecure_dev_auth: bool = False
    telegram_init_data_max_age_seconds: int = 86400
    telegram_bot_api_timeout_seconds: float = 15.0
    # Comma separated Telegram ids that get admin rights
    admin_telegram_ids_raw: str = ""

    cors_origins_raw: str = ""
    rate_limit_enabled: bool = True

    # Free tier
    free_daily_readings: int = 3
    trial_days: int = 7

    # LLM provider: "yandexgpt" or "openrouter"
    llm_provider: str = "yandexgpt"
    yandex_gpt_api_key: str | None = None
    yandex_folder_id: str | None = None
    yandex_gpt_url: str = "https://llm.api.cloud.yandex.net/foundationModels/v1/completion"
    yandex_gpt_model: str = "yandexgpt-lite/latest"
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "google/gemini-2.0-flash-001"
    llm_timeout_seconds: float = 60.0

    # YooKassa
    yookassa_shop_id: str | None = None
    yookassa_secret_key: str | None = None
    yookassa_api_url: str = "https://api.yookassa.ru/v3"
    yookassa_return_url: str = "https://mistika.app/payment/success"
    yookassa_webhook_secret: str | None = None

    # PayPal
    paypal_client_id: str | None = None
    paypal_client_secret: str | None = None
    paypal_mode: str = "sandbox"
    paypal_return_url: str = "https://mistika.app/payment/success"
    paypal_cancel_url: str = "https://mistika.app/payment/cancel"
    paypal_webhook_id: str | None = None
    payment_provider_timeout_seconds: float = 20.0

    # Telegram Stars prices per plan (currency XTR)
    stars_price_monthly: int = 100
    stars_price_quarterly: int = 250
    stars_price_yearly: int = 600

    def cors_origins(self) -> list[str]:
        raw = self.cors_origins_raw.strip()
        if not raw:
            return []
        return [item.strip() for item in raw.split(",") if item.strip()]

    def admin_telegram_ids(self) -> set[int]:
        result: set[int] = set()
        for item in self.admin_telegram_ids_raw.split(","):
            item = item.strip()
            if item.isdigit():
                result.add(int(item))
        return result

    def paypal_api_url(self) -> str:
        if self.paypal_mode.strip().lower() == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
