from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def _birth_date_in_range(v: date | None) -> date | None:
    if v is not None and (v.year < 1900 or v.year > 2100):
        raise ValueError("birth_date must be between 1900 and 2100")
    return v


def _normalize_email(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip().lower()
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("email must be a valid address")
    return v


# ── Auth & users ────────────────────────────────────────────────────

class TelegramAuthRequest(BaseModel):
    init_data: str = Field(min_length=1, max_length=8192)


class BotAuthRequest(BaseModel):
    telegram_id: int = Field(ge=1)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    username: str | None = Field(default=None, max_length=255)
    language_code: str | None = Field(default=None, max_length=16)


class UserResponse(BaseModel):
    id: int
    tg_user_id: int
    email: str | None
    username: str | None
    first_name: str | None
    last_name: str | None
    language_code: str
    is_premium: bool
    premium_expires_at: datetime | None
    subscription_type: str
    total_readings: int
    daily_readings_used: int
    remaining_daily_readings: int | None
    birth_date: date | None
    timezone: str
    referral_code: str | None
    is_admin: bool
    created_at: datetime
    last_seen_at: datetime | None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in_days: int
    user: UserResponse


class UserCreateRequest(BaseModel):
    tg_user_id: int = Field(ge=1)
    email: str | None = Field(default=None, max_length=255)
    username: str | None = Field(default=None, max_length=255)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    language_code: str | None = Field(default=None, max_length=16)
    birth_date: date | None = None

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str | None) -> str | None:
        return _normalize_email(v)

    @field_validator("birth_date")
    @classmethod
    def birth_date_valid(cls, v: date | None) -> date | None:
        return _birth_date_in_range(v)


class UserPatchRequest(BaseModel):
    email: str | None = Field(default=None, max_length=255)
    username: str | None = Field(default=None, max_length=255)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    language_code: Literal["ru", "en"] | None = None
    birth_date: date | None = None
    timezone: str | None = Field(default=None, min_length=3, max_length=64)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str | None) -> str | None:
        return _normalize_email(v)

    @field_validator("birth_date")
    @classmethod
    def birth_date_valid(cls, v: date | None) -> date | None:
        return _birth_date_in_range(v)

    @field_validator("username", "first_name", "last_name")
    @classmethod
    def strip_optional_strings(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class UserSettingsRequest(BaseModel):
    settings: dict[str, Any]


class UserSettingsResponse(BaseModel):
    settings: dict[str, Any]


class ReferralApplyRequest(BaseModel):
    referral_code: str = Field(min_length=9, max_length=9)


class ReferralUserResponse(BaseModel):
    id: int
    first_name: str | None
    username: str | None
    created_at: datetime


class ReferralsResponse(BaseModel):
    referral_code: str | None
    total: int
    referrals: list[ReferralUserResponse]


class OkResponse(BaseModel):
    ok: bool = True


# ── Cards & spreads ─────────────────────────────────────────────────

class CardResponse(BaseModel):
    id: int
    tarot_id: str
    name: str
    name_en: str
    arcana: str
    suit: str | None
    number: int | None
    court: str | None
    element: str | None
    keywords: dict[str, list[str]]
    image_url: str | None


class DrawnCardResponse(CardResponse):
    is_reversed: bool
    meaning: str


class CardListResponse(BaseModel):
    items: list[CardResponse]
    total: int
    limit: int
    offset: int


class CardMeaningResponse(BaseModel):
    tarot_id: str
    name: str
    is_reversed: bool
    category: str
    meaning: str
    keywords: list[str]


class SpreadPosition(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    meaning: str = Field(default="", max_length=500)


class SpreadResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    difficulty: str
    cards_count: int
    positions: list[SpreadPosition]
    is_premium: bool = False
    is_custom: bool = False
    is_public: bool = False


class CustomSpreadCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    positions: list[SpreadPosition] = Field(min_length=1, max_length=20)
    category: Literal["general", "love", "career", "health", "spiritual", "custom"] = "custom"
    difficulty: Literal["beginner", "intermediate", "advanced"] = "beginner"
    is_public: bool = False


# ── Readings ────────────────────────────────────────────────────────

ReadingMood = Literal["positive", "neutral", "negative", "mixed"]
ReadingStatus = Literal["draft", "completed", "archived", "deleted"]


class ReadingCreateRequest(BaseModel):
    spread_id: str = Field(min_length=1, max_length=64)
    question: str | None = Field(default=None, max_length=1000)
    title: str | None = Field(default=None, max_length=200)
    is_private: bool = True


class ReadingCardResponse(DrawnCardResponse):
    position: int
    position_name: str


class ReadingResponse(BaseModel):
    id: UUID
    title: str | None
    question: str | None
    spread_type: str
    spread_id: str
    status: str
    is_private: bool
    is_shared: bool
    share_code: str | None
    is_favorite: bool
    interpretation: str | None
    ai_generated: bool
    ai_model: str | None
    notes: str | None
    mood: str | None
    accuracy: int | None
    helpfulness: int | None
    tags: list[str] | None
    follow_up_date: date | None
    view_count: int
    created_at: datetime
    cards: list[ReadingCardResponse]


class ReadingListResponse(BaseModel):
    items: list[ReadingResponse]
    total: int
    limit: int
    offset: int


class ReadingPatchRequest(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=5000)
    mood: ReadingMood | None = None
    tags: list[str] | None = Field(default=None, max_length=20)
    follow_up_date: date | None = None


class ReadingRateRequest(BaseModel):
    accuracy: int | None = Field(default=None, ge=1, le=5)
    helpfulness: int | None = Field(default=None, ge=1, le=5)


class SharedReadingResponse(BaseModel):
    share_code: str
    title: str | None
    question: str | None
    spread_type: str
    interpretation: str | None
    view_count: int
    created_at: datetime
    cards: list[ReadingCardResponse]


class DailyCardResponse(BaseModel):
    id: UUID
    reading_date: date
    card: DrawnCardResponse
    is_new: bool


class RecommendedSpreadResponse(BaseModel):
    spread: SpreadResponse


# ── AI ──────────────────────────────────────────────────────────────

class InterpretRequest(BaseModel):
    reading_id: UUID


class InterpretResponse(BaseModel):
    reading_id: UUID
    interpretation: str
    ai_model: str
    ai_generated: bool


class InterpretCardRequest(BaseModel):
    tarot_id: str = Field(min_length=1, max_length=32)
    is_reversed: bool = False
    question: str | None = Field(default=None, max_length=1000)


class InterpretCardResponse(BaseModel):
    tarot_id: str
    interpretation: str
    ai_model: str


class RecommendationsResponse(BaseModel):
    energy_practices: str
    decision_timing: str
    relationships: str
    career: str
    spiritual_growth: str
    ai_model: str


class TaskEnqueueResponse(BaseModel):
    task_id: str | None
    status: Literal["queued", "done"] = "queued"
    result: InterpretResponse | None = None


class TaskStatusResponse(BaseModel):
    status: Literal["pending", "done", "failed"]
    result: Any | None = None
    error: str | None = None


# ── Numerology ──────────────────────────────────────────────────────

class NumerologyCalculateRequest(BaseModel):
    birth_date: date
    full_name: str = Field(min_length=2, max_length=200)

    @field_validator("birth_date")
    @classmethod
    def birth_date_valid(cls, v: date) -> date:
        return _birth_date_in_range(v)

    @field_validator("full_name")
    @classmethod
    def full_name_has_letters(cls, v: str) -> str:
        v = " ".join(v.split())
        if not any(ch.isalpha() for ch in v):
            raise ValueError("full_name must contain letters")
        return v


class NumerologyCompatibilityRequest(BaseModel):
    birth_date1: date
    birth_date2: date
    name1: str | None = Field(default=None, max_length=200)
    name2: str | None = Field(default=None, max_length=200)


class NumerologyForecastRequest(BaseModel):
    birth_date: date
    target_date: date | None = None


class NameAnalysisRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def name_has_letters(cls, v: str) -> str:
        if not any(ch.isalpha() for ch in v):
            raise ValueError("name must contain letters")
        return v.strip()


# ── Lunar ───────────────────────────────────────────────────────────

class LunarReadingRequest(BaseModel):
    cards_count: Literal[1, 3] = 1
    question: str | None = Field(default=None, max_length=1000)


class LunarReadingResponse(BaseModel):
    id: UUID
    type: str
    question: str | None
    lunar_context: dict[str, Any]
    cards: list[dict[str, Any]]
    interpretation: str | None
    created_at: datetime


# ── Payments ────────────────────────────────────────────────────────

PaymentProvider = Literal["yookassa", "paypal", "telegram_stars"]
PlanId = Literal["monthly", "quarterly", "yearly"]


class PlanResponse(BaseModel):
    id: str
    name: str
    price: int
    discounted_price: int
    price_per_month: int
    discount: int
    currency: str
    duration_days: int
    stars_price: int
    featured: bool
    features: list[str]
    limits: dict[str, int]


class PaymentCreateRequest(BaseModel):
    plan_id: PlanId
    provider: PaymentProvider


class PaymentResponse(BaseModel):
    id: UUID
    provider: str
    plan_id: str
    amount: int
    currency: str
    status: str
    confirmation_url: str | None
    subscription_id: UUID | None
    refund_amount: int | None
    created_at: datetime
    paid_at: datetime | None


class SubscriptionResponse(BaseModel):
    id: UUID
    plan_id: str
    status: str
    type: str
    price: int
    currency: str
    start_date: datetime
    end_date: datetime
    trial_end_date: datetime | None
    next_billing_date: datetime | None
    auto_renewal: bool
    payment_provider: str | None
    features: list[str]
    limits: dict[str, int]
    days_remaining: int
    days_until_billing: int | None
    is_active: bool
    is_trial: bool
    cancellation_date: datetime | None


class SubscriptionStatusResponse(BaseModel):
    is_premium: bool
    premium_expires_at: datetime | None
    subscription: SubscriptionResponse | None


class CancelSubscriptionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class RefundRequest(BaseModel):
    payment_id: UUID
    amount: int | None = Field(default=None, ge=1)
    reason: str | None = Field(default=None, max_length=1000)


class TelegramPreCheckoutRequest(BaseModel):
    invoice_payload: str = Field(min_length=1, max_length=128)
    tg_user_id: int
    currency: str = Field(min_length=1, max_length=8)
    total_amount: int = Field(ge=1)


class TelegramPreCheckoutResponse(BaseModel):
    ok: bool
    error_message: str | None = None


class TelegramPaymentSuccessRequest(TelegramPreCheckoutRequest):
    telegram_payment_charge_id: str = Field(min_length=1, max_length=255)


class WebhookResponse(BaseModel):
    ok: bool = True
    result: str


# ── Mystic circles ──────────────────────────────────────────────────

CircleType = Literal["personal", "relationship", "career", "spiritual", "health", "financial", "family", "custom"]
CircleStatus = Literal["active", "completed", "paused", "archived"]
CircleVisibility = Literal["private", "friends", "public"]


class CircleConfiguration(BaseModel):
    radius: Literal["small", "medium", "large"] = "medium"
    sectors: int = Field(default=8, ge=3, le=12)
    direction: Literal["clockwise", "counterclockwise"] = "clockwise"
    start_position: Literal["north", "east", "south", "west"] = "north"


class CircleCreateRequest(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    type: CircleType = "personal"
    center_element: dict[str, Any] | None = None
    elements: list[dict[str, Any]] = Field(default_factory=list, max_length=50)
    intentions: list[str] = Field(default_factory=list, max_length=20)
    configuration: CircleConfiguration = Field(default_factory=CircleConfiguration)
    visibility: CircleVisibility = "private"
    tags: list[str] | None = Field(default=None, max_length=20)


class CirclePatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    status: CircleStatus | None = None
    center_element: dict[str, Any] | None = None
    elements: list[dict[str, Any]] | None = Field(default=None, max_length=50)
    intentions: list[str] | None = Field(default=None, max_length=20)
    configuration: CircleConfiguration | None = None
    visibility: CircleVisibility | None = None
    tags: list[str] | None = Field(default=None, max_length=20)


class CircleResponse(BaseModel):
    id: UUID
    user_id: int
    name: str
    description: str | None
    type: str
    status: str
    center_element: dict[str, Any] | None
    elements: list[dict[str, Any]]
    intentions: list[str]
    configuration: dict[str, Any]
    phase: str
    visibility: str
    tags: list[str] | None
    created_at: datetime
    completed_at: datetime | None


# ── Analytics & admin ───────────────────────────────────────────────

class AnalyticsEventRequest(BaseModel):
    event_type: str = Field(min_length=1, max_length=64)
    payload: dict = Field(default_factory=dict)


class AnalyticsEventResponse(BaseModel):
    id: UUID
    event_type: str
    created_at: datetime


class AdminUserPatchRequest(BaseModel):
    is_premium: bool | None = None
    premium_expires_at: datetime | None = None
    subscription_type: Literal["basic", "premium", "premium_plus"] | None = None
    is_admin: bool | None = None
    is_active: bool | None = None


class BanRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class AdminUserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
    limit: int
    offset: int
