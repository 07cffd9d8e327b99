"""ARQ worker: AI interpretations outside the HTTP request cycle plus periodic maintenance."""
from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from arq import cron
from arq.connections import RedisSettings

from . import models, services, subscriptions
from .config import settings
from .database import SessionLocal
from .llm_engine import (
    FALLBACK_MODEL_LABEL,
    close_async_client,
    fallback_interpretation,
    interpret_reading_async,
    llm_provider_label,
)

logger = logging.getLogger("mistika.worker")

ARQ_TASK_TTL = 600  # seconds
EXPIRING_SOON_DAYS = 3


async def _store_task_result(redis, job_id: str, payload: dict[str, Any]) -> None:
    await redis.setex(f"arq_task:{job_id}", ARQ_TASK_TTL, json.dumps(payload, ensure_ascii=False))


async def task_generate_reading_interpretation(
    ctx: dict[str, Any],
    *,
    user_id: int,
    reading_id: str,
) -> dict[str, Any]:
    job_id: str = ctx["job_id"]
    redis = ctx["redis"]
    logger.info("Worker: task_generate_reading_interpretation start | user_id=%s | reading_id=%s", user_id, reading_id)

    db = SessionLocal()
    try:
        reading = db.get(models.Reading, UUID(reading_id))
        if reading is None or reading.user_id != user_id or reading.status == "deleted":
            await _store_task_result(redis, job_id, {"status": "failed", "error": "Reading not found"})
            logger.warning("Worker: reading not found | user_id=%s | reading_id=%s", user_id, reading_id)
            return {"error": "Reading not found"}

        inputs = services.interpretation_inputs(reading)
        text = await interpret_reading_async(
            inputs["question"],
            inputs["cards"],
            birth_date=inputs["birth_date"],
            life_path_number=inputs["life_path_number"],
        )
        model = llm_provider_label() if text else FALLBACK_MODEL_LABEL
        if not text:
            logger.warning("Worker: LLM unavailable, using local fallback | reading_id=%s", reading_id)
            text = fallback_interpretation(inputs["question"], inputs["cards"])
        services.store_interpretation(db, reading, text, model)
    except Exception as exc:
        logger.error(
            "Worker: task_generate_reading_interpretation exception | user_id=%s | job_id=%s | err=%s",
            user_id, job_id, exc,
        )
        await _store_task_result(redis, job_id, {"status": "failed", "error": "Внутренняя ошибка при генерации толкования"})
        raise
    finally:
        db.close()

    result = {
        "reading_id": reading_id,
        "interpretation": text,
        "ai_model": model,
        "ai_generated": model != FALLBACK_MODEL_LABEL,
    }
    await _store_task_result(redis, job_id, {"status": "done", "result": result})
    logger.info("Worker: task_generate_reading_interpretation done | user_id=%s | job_id=%s", user_id, job_id)
    return result


async def cron_expire_subscriptions(ctx: dict[str, Any]) -> int:
    db = SessionLocal()
    try:
        return subscriptions.expire_overdue_subscriptions(db)
    finally:
        db.close()


async def cron_warn_expiring_subscriptions(ctx: dict[str, Any]) -> int:
    db = SessionLocal()
    try:
        expiring = subscriptions.subscriptions_expiring_soon(db, days=EXPIRING_SOON_DAYS)
        for subscription in expiring:
            logger.info(
                "Subscription expiring soon | subscription_id=%s | user_id=%s | days_remaining=%s",
                subscription.id,
                subscription.user_id,
                subscriptions.days_remaining(subscription),
            )
        return len(expiring)
    finally:
        db.close()


async def cron_reset_daily_counters(ctx: dict[str, Any]) -> int:
    db = SessionLocal()
    try:
        updated = services.reset_daily_counters(db)
        logger.info("Daily reading counters reset | users=%s", updated)
        return updated
    finally:
        db.close()


async def on_worker_startup(ctx: dict[str, Any]) -> None:
    logger.info("ARQ worker started")


async def on_worker_shutdown(ctx: dict[str, Any]) -> None:
    await close_async_client()
    logger.info("ARQ worker shutting down")


class WorkerSettings:
    functions = [task_generate_reading_interpretation]
    cron_jobs = [
        cron(cron_expire_subscriptions, minute=5),
        cron(cron_warn_expiring_subscriptions, hour=10, minute=0),
        cron(cron_reset_daily_counters, hour=0, minute=1),
    ]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    on_startup = on_worker_startup
    on_shutdown = on_worker_shutdown
    max_tries = 1
    job_timeout = 300
