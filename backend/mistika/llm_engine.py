from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable

import httpx

from .config import settings
from .metrics import ai_requests_total

logger = logging.getLogger("mistika.llm")

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_RECOMMENDATION_SPLIT_RE = re.compile(r"\d+\.\s*")

TAROT_SYSTEM_PROMPT = (
    "Ты опытная гадалка-таролог с 30-летним стажем. Твои предсказания точны и помогают людям. "
    "Говори мистически, но понятно. Используй образы и метафоры."
)
MENTOR_SYSTEM_PROMPT = (
    "Ты мудрый духовный наставник. Даешь практичные советы, основанные на мистических знаниях."
)

INTERPRETATION_TEMPERATURE = 0.7
INTERPRETATION_MAX_TOKENS = 1000
RECOMMENDATIONS_TEMPERATURE = 0.6
RECOMMENDATIONS_MAX_TOKENS = 800
CARD_MAX_TOKENS = 400

FALLBACK_MODEL_LABEL = "local:fallback"
RECOMMENDATION_KEYS = ("energy_practices", "decision_timing", "relationships", "career", "spiritual_growth")

# Shared async HTTP client for the arq worker
_async_client: httpx.AsyncClient | None = None


def _get_async_client() -> httpx.AsyncClient:
    global _async_client
    if _async_client is None or _async_client.is_closed:
        _async_client = httpx.AsyncClient(timeout=settings.llm_timeout_seconds)
    return _async_client


async def close_async_client() -> None:
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        await _async_client.aclose()
    _async_client = None


def sanitize_user_input(text: str, max_length: int = 1000) -> str:
    """Strip control characters and cap length before injecting into LLM prompts."""
    text = _CONTROL_CHARS_RE.sub("", text)
    return text.strip()[:max_length]


def _provider() -> str:
    return settings.llm_provider.lower().strip()


def llm_provider_label() -> str | None:
    provider = _provider()
    if provider == "openrouter":
        return f"openrouter:{settings.openrouter_model}" if settings.openrouter_api_key else None
    if provider == "yandexgpt":
        if settings.yandex_gpt_api_key and settings.yandex_folder_id:
            return f"yandexgpt:{settings.yandex_gpt_model}"
    return None


# ── Provider payloads ───────────────────────────────────────────────

def _yandex_request(system: str, prompt: str, temperature: float, max_tokens: int) -> tuple[str, dict, dict]:
    payload = {
        "modelUri": f"gpt://{settings.yandex_folder_id}/{settings.yandex_gpt_model}",
        "completionOptions": {"stream": False, "temperature": temperature, "maxTokens": max_tokens},
        "messages": [
            {"role": "system", "text": system},
            {"role": "user", "text": prompt},
        ],
    }
    headers = {
        "Authorization": f"Api-Key {settings.yandex_gpt_api_key}",
        "Content-Type": "application/json",
    }
    return settings.yandex_gpt_url, headers, payload


def _extract_yandex_text(data: Any) -> str | None:
    try:
        text = data["result"]["alternatives"][0]["message"]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


def _openrouter_request(system: str, prompt: str, temperature: float, max_tokens: int) -> tuple[str, dict, dict]:
    payload = {
        "model": settings.openrouter_model,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
    }
    headers = {
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "Content-Type": "application/json",
    }
    return f"{settings.openrouter_base_url.rstrip('/')}/chat/completions", headers, payload


def _extract_openrouter_text(data: Any) -> str | None:
    try:
        text = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


def _build_request(
    system: str, prompt: str, temperature: float, max_tokens: int
) -> tuple[str, dict, dict, Callable[[Any], str | None]] | None:
    if llm_provider_label() is None:
        logger.warning("LLM provider not configured | provider=%s", _provider())
        return None
    if _provider() == "openrouter":
        return (*_openrouter_request(system, prompt, temperature, max_tokens), _extract_openrouter_text)
    return (*_yandex_request(system, prompt, temperature, max_tokens), _extract_yandex_text)


def _log_http_error(exc: Exception, elapsed: float) -> None:
    provider = _provider()
    if isinstance(exc, httpx.TimeoutException):
        logger.warning("LLM timeout | provider=%s | time=%.2fs", provider, elapsed)
    elif isinstance(exc, httpx.HTTPStatusError):
        body = exc.response.text[:300] if exc.response is not None else ""
        logger.warning("LLM HTTP error | provider=%s | status=%s | body=%s", provider, exc.response.status_code, body)
    else:
        logger.warning("LLM request failed | provider=%s | err=%s", provider, exc)


def _request_llm_text(system: str, prompt: str, temperature: float, max_tokens: int) -> str | None:
    request = _build_request(system, prompt, temperature, max_tokens)
    if request is None:
        return None
    url, headers, payload, extract = request

    started_at = time.time()
    try:
        response = httpx.post(url, json=payload, headers=headers, timeout=settings.llm_timeout_seconds)
        response.raise_for_status()
        text = extract(response.json())
    except Exception as exc:
        _log_http_error(exc, time.time() - started_at)
        return None

    if not text:
        logger.warning("LLM empty response | provider=%s", _provider())
        return None
    logger.info("LLM success | provider=%s | time=%.2fs", _provider(), time.time() - started_at)
    return text


async def _request_llm_text_async(system: str, prompt: str, temperature: float, max_tokens: int) -> str | None:
    request = _build_request(system, prompt, temperature, max_tokens)
    if request is None:
        return None
    url, headers, payload, extract = request

    started_at = time.time()
    try:
        response = await _get_async_client().post(url, json=payload, headers=headers)
        response.raise_for_status()
        text = extract(response.json())
    except Exception as exc:
        _log_http_error(exc, time.time() - started_at)
        return None

    if not text:
        logger.warning("LLM async empty response | provider=%s", _provider())
        return None
    logger.info("LLM async success | provider=%s | time=%.2fs", _provider(), time.time() - started_at)
    return text


def _record(request_type: str, text: str | None) -> None:
    ai_requests_total.labels(request_type, "success" if text else "error").inc()


# ── Prompts & public API ────────────────────────────────────────────

def _card_line(card: dict[str, Any]) -> str:
    name = str(card.get("name") or "").strip() or "Без названия"
    suffix = " (перевернутая)" if card.get("is_reversed") else ""
    meaning = str(card.get("meaning") or "").strip()
    position = str(card.get("position_name") or "").strip()
    prefix = f"{position}: " if position else ""
    return f"{prefix}{name}{suffix}: {meaning}"


def build_interpretation_prompt(
    question: str | None,
    cards: list[dict[str, Any]],
    *,
    birth_date: str | None = None,
    life_path_number: int | None = None,
) -> str:
    safe_question = sanitize_user_input(question) if question else "Общий расклад без вопроса"
    context_lines: list[str] = []
    if birth_date:
        context_lines.append(f"Дата рождения: {birth_date}")
    if life_path_number:
        context_lines.append(f"Число жизненного пути: {life_path_number}")

    parts = [
        f'Вопрос: "{safe_question}"',
        "",
        "Выпавшие карты:",
        "\n".join(_card_line(card) for card in cards),
        "",
    ]
    if context_lines:
        parts.extend(["Личная информация:", "\n".join(context_lines), ""])
    parts.extend(
        [
            "Дай детальную интерпретацию расклада, учитывая:",
            "1. Прямую связь между вопросом и картами",
            "2. Символизм и архетипы карт",
            "3. Взаимодействие карт между собой",
            "4. Практические советы для вопрошающего",
            "5. Временные рамки событий",
            "",
            "Ответ должен быть структурированным, мистическим по стилю, но практичным по содержанию. "
            "Длина 400-600 слов.",
        ]
    )
    return "\n".join(parts)


def interpret_reading(
    question: str | None,
    cards: list[dict[str, Any]],
    *,
    birth_date: str | None = None,
    life_path_number: int | None = None,
) -> str | None:
    if not cards:
        return None
    prompt = build_interpretation_prompt(question, cards, birth_date=birth_date, life_path_number=life_path_number)
    text = _request_llm_text(TAROT_SYSTEM_PROMPT, prompt, INTERPRETATION_TEMPERATURE, INTERPRETATION_MAX_TOKENS)
    _record("interpretation", text)
    return text


async def interpret_reading_async(
    question: str | None,
    cards: list[dict[str, Any]],
    *,
    birth_date: str | None = None,
    life_path_number: int | None = None,
) -> str | None:
    if not cards:
        return None
    prompt = build_interpretation_prompt(question, cards, birth_date=birth_date, life_path_number=life_path_number)
    text = await _request_llm_text_async(
        TAROT_SYSTEM_PROMPT, prompt, INTERPRETATION_TEMPERATURE, INTERPRETATION_MAX_TOKENS
    )
    _record("interpretation", text)
    return text


def fallback_interpretation(question: str | None, cards: list[dict[str, Any]]) -> str:
    if not cards:
        return "Карты молчат. Сосредоточьтесь на вопросе и попробуйте позже."

    lines: list[str] = []
    if question and question.strip():
        lines.append(f"Ваш вопрос «{sanitize_user_input(question, 200)}» карты раскрывают так.")
    else:
        lines.append("Общая энергия расклада складывается из следующих карт.")
    for idx, card in enumerate(cards, start=1):
        lines.append(f"{idx}. {_card_line(card)}")
    lines.append("Совет: выберите один шаг, который подсказывают карты, и сделайте его сегодня.")
    return "\n".join(lines)


def interpret_card(name: str, is_reversed: bool, meaning: str, question: str | None = None) -> str | None:
    orientation = "перевернутая" if is_reversed else "прямая"
    parts = [f"Карта: {name} ({orientation})", f"Традиционное значение: {meaning}"]
    if question:
        parts.append(f'Вопрос: "{sanitize_user_input(question)}"')
    parts.append("Дай краткое толкование карты в контексте вопроса: 2-3 абзаца, мистично, но практично.")
    text = _request_llm_text(TAROT_SYSTEM_PROMPT, "\n".join(parts), INTERPRETATION_TEMPERATURE, CARD_MAX_TOKENS)
    _record("card", text)
    return text


def build_recommendations_prompt(
    *,
    birth_date: str | None,
    numerology_profile: dict | None,
    recent_readings: list[dict[str, Any]],
) -> str:
    context = ["Профиль пользователя:"]
    if birth_date:
        context.append(f"Дата рождения: {birth_date}")
    if numerology_profile:
        summary = ", ".join(f"{key}: {value}" for key, value in numerology_profile.items())
        context.append(f"Нумерологический профиль: {summary}")
    if recent_readings:
        context.append("")
        context.append("Последние гадания:")
        for idx, reading in enumerate(recent_readings, start=1):
            question = sanitize_user_input(str(reading.get("question") or ""), 200)
            interpretation = str(reading.get("interpretation") or "")[:100]
            context.append(f'{idx}. Вопрос: "{question}" - Результат: {interpretation}...')

    return "\n".join(
        [
            "На основе профиля пользователя и истории гаданий, создай персональные рекомендации:",
            "",
            *context,
            "",
            "Создай рекомендации по следующим категориям:",
            "1. Энергетические практики на сегодня",
            "2. Лучшее время для важных решений",
            "3. На что обратить внимание в отношениях",
            "4. Карьерные возможности",
            "5. Духовное развитие",
            "",
            "Каждая рекомендация должна быть конкретной и практичной.",
        ]
    )


def parse_recommendations(text: str) -> dict[str, str]:
    """Split a numbered ``1. ... 5. ...`` answer into the five categories.

    Anything before the first number is dropped; missing sections are empty.
    """
    sections = _RECOMMENDATION_SPLIT_RE.split(text)
    result: dict[str, str] = {}
    for index, key in enumerate(RECOMMENDATION_KEYS, start=1):
        result[key] = sections[index].strip() if index < len(sections) else ""
    return result


def generate_recommendations(
    *,
    birth_date: str | None,
    numerology_profile: dict | None,
    recent_readings: list[dict[str, Any]],
) -> dict[str, str] | None:
    prompt = build_recommendations_prompt(
        birth_date=birth_date,
        numerology_profile=numerology_profile,
        recent_readings=recent_readings,
    )
    text = _request_llm_text(MENTOR_SYSTEM_PROMPT, prompt, RECOMMENDATIONS_TEMPERATURE, RECOMMENDATIONS_MAX_TOKENS)
    _record("recommendations", text)
    if not text:
        return None
    return parse_recommendations(text)


def fallback_recommendations() -> dict[str, str]:
    return {
        "energy_practices": "Начните день с пяти минут тишины и осознанного дыхания.",
        "decision_timing": "Важные решения лучше принимать в первой половине дня.",
        "relationships": "Скажите близкому человеку то, что давно хотели сказать.",
        "career": "Завершите одно отложенное дело, прежде чем браться за новое.",
        "spiritual_growth": "Запишите вечером три события, за которые вы благодарны.",
    }
