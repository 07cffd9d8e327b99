"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("tg_user_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("language_code", sa.String(length=16), nullable=False, server_default="ru"),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_type", sa.String(length=32), nullable=False, server_default="basic"),
        sa.Column("total_readings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_readings_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_daily_reset", sa.Date(), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Europe/Moscow"),
        sa.Column("preferences", sa.JSON(), nullable=True),
        sa.Column("meta_payload", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("blocked_reason", sa.Text(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("referral_code", sa.String(length=16), nullable=True, unique=True),
        sa.Column(
            "referred_by_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_username", "users", ["username"])
    op.create_index("ix_users_referred_by_id", "users", ["referred_by_id"])

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tarot_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("name_en", sa.String(length=100), nullable=False),
        sa.Column("arcana", sa.String(length=8), nullable=False),
        sa.Column("suit", sa.String(length=16), nullable=True),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("court", sa.String(length=16), nullable=True),
        sa.Column("element", sa.String(length=16), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("meanings", sa.JSON(), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_cards_arcana", "cards", ["arcana"])
    op.create_index("ix_cards_suit", "cards", ["suit"])
    op.create_index("ix_cards_element", "cards", ["element"])

    op.create_table(
        "spreads",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("owner_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("difficulty", sa.String(length=32), nullable=False, server_default="beginner"),
        sa.Column("positions", sa.JSON(), nullable=False),
        sa.Column("cards_count", sa.Integer(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("popularity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_spreads_owner_id", "spreads", ["owner_id"])

    op.create_table(
        "readings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("question", sa.Text(), nullable=True),
        sa.Column("spread_type", sa.String(length=32), nullable=False),
        sa.Column("spread_id", sa.String(length=64), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("share_code", sa.String(length=12), nullable=True, unique=True),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("interpretation", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("mood", sa.String(length=16), nullable=True),
        sa.Column("accuracy", sa.Integer(), nullable=True),
        sa.Column("helpfulness", sa.Integer(), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ai_model", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("follow_up_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_readings_user_id", "readings", ["user_id"])
    op.create_index("ix_readings_spread_type", "readings", ["spread_type"])
    op.create_index("ix_readings_status", "readings", ["status"])
    op.create_index("ix_readings_created_at", "readings", ["created_at"])

    op.create_table(
        "reading_cards",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("reading_id", sa.UUID(), sa.ForeignKey("readings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("card_id", sa.Integer(), sa.ForeignKey("cards.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("position_name", sa.String(length=100), nullable=False),
        sa.Column("is_reversed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("interpretation", sa.Text(), nullable=True),
        sa.UniqueConstraint("reading_id", "position", name="uq_reading_card_position"),
        sa.UniqueConstraint("reading_id", "card_id", name="uq_reading_card_card"),
    )
    op.create_index("ix_reading_cards_reading_id", "reading_cards", ["reading_id"])
    op.create_index("ix_reading_cards_card_id", "reading_cards", ["card_id"])

    op.create_table(
        "tarot_readings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("spread_name", sa.String(length=100), nullable=True),
        sa.Column("question", sa.Text(), nullable=True),
        sa.Column("question_category", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("cards", sa.JSON(), nullable=False),
        sa.Column("positions", sa.JSON(), nullable=True),
        sa.Column("interpretation", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("advice", sa.Text(), nullable=True),
        sa.Column("mood", sa.String(length=16), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0.75"),
        sa.Column("ai_model", sa.String(length=128), nullable=True),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="ru"),
        sa.Column("is_daily", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reading_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "type", "reading_date", name="uq_tarot_reading_daily"),
    )
    op.create_index("ix_tarot_readings_user_id", "tarot_readings", ["user_id"])
    op.create_index("ix_tarot_readings_type", "tarot_readings", ["type"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="RUB"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_renewal", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("payment_provider", sa.String(length=32), nullable=True),
        sa.Column("external_subscription_id", sa.String(length=255), nullable=True),
        sa.Column("last_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_amount", sa.Integer(), nullable=True),
        sa.Column("failed_payment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("limits", sa.JSON(), nullable=True),
        sa.Column("meta_payload", sa.JSON(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancellation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", sa.Integer(), nullable=True),
        sa.Column("refund_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_subscriptions_end_date", "subscriptions", ["end_date"])
    op.create_index(
        "ix_subscriptions_external_subscription_id", "subscriptions", ["external_subscription_id"]
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "subscription_id", sa.UUID(), sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("plan_id", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="created"),
        sa.Column("idempotence_key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("external_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("confirmation_url", sa.Text(), nullable=True),
        sa.Column("invoice_payload", sa.String(length=128), nullable=True, unique=True),
        sa.Column("telegram_payment_charge_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("meta_payload", sa.JSON(), nullable=True),
        sa.Column("refund_amount", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_subscription_id", "payments", ["subscription_id"])
    op.create_index("ix_payments_provider", "payments", ["provider"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "mystic_circles",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="personal"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("center_element", sa.JSON(), nullable=True),
        sa.Column("elements", sa.JSON(), nullable=False),
        sa.Column("intentions", sa.JSON(), nullable=False),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column("phase", sa.String(length=16), nullable=False, server_default="preparation"),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="private"),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_mystic_circles_user_id", "mystic_circles", ["user_id"])
    op.create_index("ix_mystic_circles_status", "mystic_circles", ["status"])
    op.create_index("ix_mystic_circles_visibility", "mystic_circles", ["visibility"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analytics_events_user_id", "analytics_events", ["user_id"])
    op.create_index("ix_analytics_events_event_type", "analytics_events", ["event_type"])
    op.create_index("ix_analytics_events_created_at", "analytics_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("analytics_events")
    op.drop_table("mystic_circles")
    op.drop_table("payments")
    op.drop_table("subscriptions")
    op.drop_table("tarot_readings")
    op.drop_table("reading_cards")
    op.drop_table("readings")
    op.drop_table("spreads")
    op.drop_table("cards")
    op.drop_table("users")
