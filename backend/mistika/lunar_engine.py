"""Lunar calendar: lunar day, moon phase, zodiac sign and derived advice.

All calculations are approximate and based on a fixed reference new moon and
the mean synodic month; no ephemeris is involved.
"""
from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone

REFERENCE_NEW_MOON = datetime(2024, 1, 11, 11, 57, tzinfo=timezone.utc)
LUNAR_CYCLE_DAYS = 29.53058867
MAX_CALENDAR_DAYS = 92
KEY_LUNAR_DAYS = (1, 8, 15, 22)

PHASE_ORDER = (
    "new_moon",
    "waxing_crescent",
    "first_quarter",
    "waxing_gibbous",
    "full_moon",
    "waning_gibbous",
    "last_quarter",
    "waning_crescent",
)

PHASES: dict[str, dict] = {
    "new_moon": {
        "name": "Новолуние",
        "emoji": "🌑",
        "energy": "Время новых начинаний",
        "description": "Период обновления и планирования. Идеальное время для постановки целей и намерений.",
        "recommended": [
            "Планирование новых проектов",
            "Постановка целей",
            "Медитация и самоанализ",
            "Очищение пространства",
            "Начало новых отношений",
        ],
        "avoid": ["Принятие важных решений", "Крупные покупки", "Конфликты и споры"],
        "tarot_focus": ["будущее", "новые возможности", "скрытый потенциал"],
    },
    "waxing_crescent": {
        "name": "Растущая Луна",
        "emoji": "🌒",
        "energy": "Время роста и развития",
        "description": "Период активного роста и развития. Время воплощать планы в действие.",
        "recommended": [
            "Активные действия по целям",
            "Изучение нового",
            "Налаживание связей",
            "Физические упражнения",
            "Творческие проекты",
        ],
        "avoid": ["Пассивность", "Откладывание дел", "Негативные мысли"],
        "tarot_focus": ["развитие ситуации", "рост", "прогресс"],
    },
    "first_quarter": {
        "name": "Первая четверть",
        "emoji": "🌓",
        "energy": "Время преодоления препятствий",
        "description": "Период проверки на прочность. Время принимать решения и преодолевать трудности.",
        "recommended": [
            "Решение проблем",
            "Принятие решений",
            "Переговоры",
            "Работа над собой",
            "Преодоление страхов",
        ],
        "avoid": ["Избегание проблем", "Промедление", "Уступки под давлением"],
        "tarot_focus": ["препятствия", "выбор", "решительность"],
    },
    "waxing_gibbous": {
        "name": "Растущая Луна (выпуклая)",
        "emoji": "🌔",
        "energy": "Время совершенствования",
        "description": "Период доработки и совершенствования. Время анализировать и улучшать.",
        "recommended": [
            "Анализ результатов",
            "Корректировка планов",
            "Обучение и развитие",
            "Укрепление отношений",
            "Саморазвитие",
        ],
        "avoid": ["Самодовольство", "Игнорирование критики", "Спешка"],
        "tarot_focus": ["совершенствование", "анализ", "подготовка"],
    },
    "full_moon": {
        "name": "Полнолуние",
        "emoji": "🌕",
        "energy": "Время кульминации и озарений",
        "description": "Период максимальной энергии и завершения. Время сбора урожая и празднования.",
        "recommended": [
            "Завершение проектов",
            "Празднование успехов",
            "Благодарность",
            "Освобождение от ненужного",
            "Мощные ритуалы",
        ],
        "avoid": ["Начало новых дел", "Важные решения в эмоциях", "Конфликты"],
        "tarot_focus": ["кульминация", "результаты", "истина"],
    },
    "waning_gibbous": {
        "name": "Убывающая Луна (выпуклая)",
        "emoji": "🌖",
        "energy": "Время благодарности и передачи опыта",
        "description": "Период делиться знаниями и благодарить. Время учить других и отдавать.",
        "recommended": [
            "Обучение других",
            "Благотворительность",
            "Делиться опытом",
            "Наставничество",
            "Выражение благодарности",
        ],
        "avoid": ["Эгоизм", "Накопительство", "Жадность"],
        "tarot_focus": ["передача знаний", "благодарность", "мудрость"],
    },
    "last_quarter": {
        "name": "Последняя четверть",
        "emoji": "🌗",
        "energy": "Время освобождения и прощения",
        "description": "Период отпускания и прощения. Время избавляться от ненужного.",
        "recommended": [
            "Прощение обид",
            "Избавление от ненужного",
            "Завершение отношений",
            "Очищение",
            "Подведение итогов",
        ],
        "avoid": ["Цепляние за прошлое", "Накопление негатива", "Новые обязательства"],
        "tarot_focus": ["освобождение", "прощение", "завершение"],
    },
    "waning_crescent": {
        "name": "Убывающая Луна",
        "emoji": "🌘",
        "energy": "Время отдыха и восстановления",
        "description": "Период покоя и восстановления сил. Время готовиться к новому циклу.",
        "recommended": [
            "Отдых и восстановление",
            "Медитация",
            "Планирование будущего",
            "Уединение",
            "Духовные практики",
        ],
        "avoid": ["Активная деятельность", "Стресс", "Переутомление"],
        "tarot_focus": ["восстановление", "покой", "подготовка"],
    },
}

# (start month, start day), (end month, end day); Capricorn wraps the new year.
ZODIAC_SIGNS: dict[str, dict] = {
    "aries": {
        "name": "Овен", "emoji": "♈", "element": "Огонь", "start": (3, 21), "end": (4, 19),
        "energy": "Инициатива и лидерство",
        "qualities": ["решительность", "энергичность", "первопроходство"],
        "activities": ["начинание проектов", "спорт", "лидерство"],
        "avoid": ["пассивность", "долгие раздумья"],
    },
    "taurus": {
        "name": "Телец", "emoji": "♉", "element": "Земля", "start": (4, 20), "end": (5, 20),
        "energy": "Стабильность и материальность",
        "qualities": ["настойчивость", "практичность", "надежность"],
        "activities": ["финансовые вопросы", "строительство", "садоводство"],
        "avoid": ["спешка", "резкие изменения"],
    },
    "gemini": {
        "name": "Близнецы", "emoji": "♊", "element": "Воздух", "start": (5, 21), "end": (6, 20),
        "energy": "Общение и обмен информацией",
        "qualities": ["любознательность", "общительность", "адаптивность"],
        "activities": ["обучение", "общение", "путешествия"],
        "avoid": ["изоляция", "монотонность"],
    },
    "cancer": {
        "name": "Рак", "emoji": "♋", "element": "Вода", "start": (6, 21), "end": (7, 22),
        "energy": "Забота и интуиция",
        "qualities": ["эмпатия", "интуиция", "заботливость"],
        "activities": ["семейные дела", "уход за домом", "кулинария"],
        "avoid": ["агрессия", "публичность"],
    },
    "leo": {
        "name": "Лев", "emoji": "♌", "element": "Огонь", "start": (7, 23), "end": (8, 22),
        "energy": "Творчество и самовыражение",
        "qualities": ["творчество", "великодушие", "харизма"],
        "activities": ["творческие проекты", "публичные выступления", "развлечения"],
        "avoid": ["скромность", "самокритика"],
    },
    "virgo": {
        "name": "Дева", "emoji": "♍", "element": "Земля", "start": (8, 23), "end": (9, 22),
        "energy": "Анализ и совершенствование",
        "qualities": ["внимательность", "практичность", "перфекционизм"],
        "activities": ["организация", "анализ", "здоровье"],
        "avoid": ["хаос", "небрежность"],
    },
    "libra": {
        "name": "Весы", "emoji": "♎", "element": "Воздух", "start": (9, 23), "end": (10, 22),
        "energy": "Гармония и партнерство",
        "qualities": ["дипломатичность", "справедливость", "эстетика"],
        "activities": ["переговоры", "искусство", "отношения"],
        "avoid": ["конфликты", "неуравновешенность"],
    },
    "scorpio": {
        "name": "Скорпион", "emoji": "♏", "element": "Вода", "start": (10, 23), "end": (11, 21),
        "energy": "Трансформация и глубина",
        "qualities": ["интенсивность", "проницательность", "трансформация"],
        "activities": ["исследования", "психология", "мистика"],
        "avoid": ["поверхностность", "ложь"],
    },
    "sagittarius": {
        "name": "Стрелец", "emoji": "♐", "element": "Огонь", "start": (11, 22), "end": (12, 21),
        "energy": "Расширение и философия",
        "qualities": ["оптимизм", "философичность", "свободолюбие"],
        "activities": ["путешествия", "обучение", "духовный поиск"],
        "avoid": ["ограничения", "рутина"],
    },
    "capricorn": {
        "name": "Козерог", "emoji": "♑", "element": "Земля", "start": (12, 22), "end": (1, 19),
        "energy": "Достижения и структура",
        "qualities": ["амбициозность", "дисциплина", "ответственность"],
        "activities": ["карьерные вопросы", "планирование", "структурирование"],
        "avoid": ["легкомыслие", "хаос"],
    },
    "aquarius": {
        "name": "Водолей", "emoji": "♒", "element": "Воздух", "start": (1, 20), "end": (2, 18),
        "energy": "Инновации и дружба",
        "qualities": ["оригинальность", "независимость", "гуманность"],
        "activities": ["инновации", "групповая работа", "технологии"],
        "avoid": ["консерватизм", "изоляция"],
    },
    "pisces": {
        "name": "Рыбы", "emoji": "♓", "element": "Вода", "start": (2, 19), "end": (3, 20),
        "energy": "Интуиция и сострадание",
        "qualities": ["интуиция", "сострадание", "духовность"],
        "activities": ["медитация", "искусство", "помощь другим"],
        "avoid": ["материализм", "жестокость"],
    },
}

ZODIAC_COMPATIBILITY: dict[str, dict[str, tuple[str, ...]]] = {
    "aries": {"high": ("leo", "sagittarius"), "low": ("cancer", "capricorn")},
    "taurus": {"high": ("virgo", "capricorn"), "low": ("leo", "aquarius")},
    "gemini": {"high": ("libra", "aquarius"), "low": ("virgo", "pisces")},
    "cancer": {"high": ("scorpio", "pisces"), "low": ("aries", "libra")},
    "leo": {"high": ("aries", "sagittarius"), "low": ("taurus", "scorpio")},
    "virgo": {"high": ("taurus", "capricorn"), "low": ("gemini", "sagittarius")},
    "libra": {"high": ("gemini", "aquarius"), "low": ("cancer", "capricorn")},
    "scorpio": {"high": ("cancer", "pisces"), "low": ("leo", "aquarius")},
    "sagittarius": {"high": ("aries", "leo"), "low": ("virgo", "pisces")},
    "capricorn": {"high": ("taurus", "virgo"), "low": ("aries", "libra")},
    "aquarius": {"high": ("gemini", "libra"), "low": ("taurus", "scorpio")},
    "pisces": {"high": ("cancer", "scorpio"), "low": ("gemini", "sagittarius")},
}
ZODIAC_SCORES = {"high": 85, "medium": 60, "low": 35}

ELEMENT_ADVICE = {
    "Огонь": "Огненная энергия способствует активным действиям и инициативе",
    "Вода": "Водная энергия усиливает интуицию и эмоциональную чувствительность",
    "Воздух": "Воздушная энергия благоприятствует общению и интеллектуальной деятельности",
    "Земля": "Земная энергия поддерживает практические дела и материальные вопросы",
}


def _as_moment(value: date | datetime) -> datetime:
    # Plain dates are evaluated at noon UTC.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.combine(value, time(12, 0), tzinfo=timezone.utc)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def lunar_day(value: date | datetime) -> int:
    days = (_as_moment(value) - REFERENCE_NEW_MOON).total_seconds() / 86400
    return math.floor(days % LUNAR_CYCLE_DAYS + 1)


def phase_for_lunar_day(day: int) -> str:
    if day == 1:
        return "new_moon"
    if day <= 7:
        return "waxing_crescent"
    if day == 8:
        return "first_quarter"
    if day <= 14:
        return "waxing_gibbous"
    if day == 15:
        return "full_moon"
    if day <= 21:
        return "waning_gibbous"
    if day == 22:
        return "last_quarter"
    return "waning_crescent"


def moon_phase(value: date | datetime) -> str:
    return phase_for_lunar_day(lunar_day(value))


def zodiac_sign(value: date | datetime) -> str:
    day = _as_date(value)
    for sign, data in ZODIAC_SIGNS.items():
        start_month, start_day = data["start"]
        end_month, end_day = data["end"]
        if (day.month == start_month and day.day >= start_day) or (day.month == end_month and day.day <= end_day):
            return sign
    return "capricorn"


def combine_energies(moon_energy: str, zodiac_energy: str) -> str:
    return f"{moon_energy} в сочетании с {zodiac_energy.lower()}"


def special_advice(sign: str, day: int) -> list[str]:
    advice: list[str] = []
    if day == 1:
        advice.append("Новолуние - идеальное время для загадывания желаний и постановки намерений")
    elif day == 15:
        advice.append("Полнолуние - время максимальной энергии, будьте осторожны с эмоциями")
    elif day in (8, 22):
        advice.append("Четверть луны - время принятия важных решений")

    element_advice = ELEMENT_ADVICE.get(ZODIAC_SIGNS[sign]["element"])
    if element_advice:
        advice.append(element_advice)
    return advice


def _phase_view(phase: str) -> dict:
    data = PHASES[phase]
    return {
        "phase": phase,
        "name": data["name"],
        "emoji": data["emoji"],
        "energy": data["energy"],
        "description": data["description"],
    }


def _zodiac_view(sign: str) -> dict:
    data = ZODIAC_SIGNS[sign]
    return {
        "sign": sign,
        "name": data["name"],
        "emoji": data["emoji"],
        "element": data["element"],
        "energy": data["energy"],
    }


def daily_recommendations(value: date | datetime) -> dict:
    day = lunar_day(value)
    phase = phase_for_lunar_day(day)
    sign = zodiac_sign(value)
    phase_data = PHASES[phase]
    sign_data = ZODIAC_SIGNS[sign]
    return {
        "date": _as_date(value).isoformat(),
        "lunar_day": day,
        "moon_phase": _phase_view(phase),
        "zodiac_sign": _zodiac_view(sign),
        "activities": {
            "recommended": phase_data["recommended"] + sign_data["activities"],
            "avoid": phase_data["avoid"] + sign_data["avoid"],
        },
        "tarot_focus": list(phase_data["tarot_focus"]),
        "energy": combine_energies(phase_data["energy"], sign_data["energy"]),
        "special_advice": special_advice(sign, day),
    }


def _period_recommendations(phase: str, sign: str) -> list[str]:
    phase_data = PHASES[phase]
    sign_data = ZODIAC_SIGNS[sign]
    return [
        f"Период преимущественно под влиянием {phase_data['name']}: {phase_data['energy']}",
        f"Астрологическое влияние {sign_data['name']}: {sign_data['energy']}",
        f"Рекомендуемые активности: {', '.join(sign_data['activities'])}",
        f"Избегайте: {', '.join(sign_data['avoid'])}",
    ]


def calendar_summary(days: list[dict]) -> dict:
    phases = Counter(day["moon_phase"]["phase"] for day in days)
    signs = Counter(day["zodiac_sign"]["sign"] for day in days)
    dominant_phase, phase_days = phases.most_common(1)[0]
    dominant_sign, sign_days = signs.most_common(1)[0]
    return {
        "dominant_phase": {"phase": dominant_phase, "name": PHASES[dominant_phase]["name"], "days": phase_days},
        "dominant_zodiac": {"sign": dominant_sign, "name": ZODIAC_SIGNS[dominant_sign]["name"], "days": sign_days},
        "phase_distribution": dict(phases),
        "zodiac_distribution": dict(signs),
        "recommendations": _period_recommendations(dominant_phase, dominant_sign),
    }


def lunar_calendar(start: date, end: date) -> dict:
    if end < start:
        raise ValueError("end date must not be before start date")
    total = (end - start).days + 1
    if total > MAX_CALENDAR_DAYS:
        raise ValueError(f"calendar period is limited to {MAX_CALENDAR_DAYS} days")
    days = [daily_recommendations(start + timedelta(days=offset)) for offset in range(total)]
    return {
        "period": {"start": start.isoformat(), "end": end.isoformat(), "total_days": total},
        "calendar": days,
        "summary": calendar_summary(days),
    }


def _matches(items: list[str], activity: str) -> int:
    needle = activity.lower()
    return sum(1 for item in items if needle in item.lower() or item.lower() in needle)


def favorability_score(day: dict, activity: str) -> int:
    score = 50
    score += _matches(day["activities"]["recommended"], activity) * 20
    score -= _matches(day["activities"]["avoid"], activity) * 30
    if day["lunar_day"] in (1, 15):
        score += 15
    return max(0, min(100, score))


def favorable_days(activity: str, start: date, end: date) -> dict:
    activity = activity.strip()
    if len(activity) < 2:
        raise ValueError("Activity must contain at least 2 non-blank characters")
    calendar = lunar_calendar(start, end)
    found: list[dict] = []
    for day in calendar["calendar"]:
        recommended = _matches(day["activities"]["recommended"], activity)
        avoided = _matches(day["activities"]["avoid"], activity)
        if recommended and not avoided:
            found.append({**day, "favorability_score": favorability_score(day, activity)})
    found.sort(key=lambda item: item["favorability_score"], reverse=True)
    return {
        "activity": activity,
        "period": calendar["period"],
        "favorable_days": found,
        "total_found": len(found),
        "best_day": found[0] if found else None,
    }


def _phase_distance_description(distance: int) -> str:
    if distance == 0:
        return "Идеальная гармония - одинаковые лунные фазы"
    if distance <= 1:
        return "Отличная совместимость - близкие энергии"
    if distance <= 2:
        return "Хорошая совместимость - дополняющие энергии"
    if distance <= 3:
        return "Средняя совместимость - различные, но совместимые энергии"
    return "Низкая совместимость - противоположные энергии"


def phase_compatibility(phase1: str, phase2: str) -> dict:
    distance = abs(PHASE_ORDER.index(phase1) - PHASE_ORDER.index(phase2))
    if distance > 4:
        distance = 8 - distance
    raw = 100 - distance * 15
    if raw >= 80:
        level = "high"
    elif raw >= 60:
        level = "medium"
    else:
        level = "low"
    return {
        "score": max(raw, 20),
        "level": level,
        "distance": distance,
        "description": _phase_distance_description(distance),
    }


def zodiac_compatibility(sign1: str, sign2: str) -> dict:
    row = ZODIAC_COMPATIBILITY[sign1]
    if sign2 in row["high"]:
        level = "high"
    elif sign2 in row["low"]:
        level = "low"
    else:
        level = "medium"
    prefix = {"high": "Отличная", "medium": "Хорошая", "low": "Сложная"}[level]
    return {
        "score": ZODIAC_SCORES[level],
        "level": level,
        "description": f"{prefix} совместимость между {ZODIAC_SIGNS[sign1]['name']} и {ZODIAC_SIGNS[sign2]['name']}",
    }


def lunar_compatibility(birth_date: date, target: date) -> dict:
    birth_phase = moon_phase(birth_date)
    target_phase = moon_phase(target)
    birth_sign = zodiac_sign(birth_date)
    target_sign = zodiac_sign(target)

    phase = phase_compatibility(birth_phase, target_phase)
    zodiac = zodiac_compatibility(birth_sign, target_sign)
    overall = round((phase["score"] + zodiac["score"]) / 2)

    if overall >= 80:
        description = "Отличная астрологическая совместимость! Энергии гармонично дополняют друг друга."
    elif overall >= 60:
        description = "Хорошая астрологическая совместимость с небольшими различиями в энергиях."
    else:
        description = "Сложная астрологическая совместимость, требующая понимания и адаптации."

    recommendations: list[str] = []
    if phase["level"] == "low":
        recommendations.append("Учитывайте различия в лунных циклах при планировании совместных дел")
    if zodiac["level"] == "low":
        recommendations.append("Работайте над пониманием различий в астрологических характеристиках")
    if phase["level"] == "high" and zodiac["level"] == "high":
        recommendations.append("Используйте гармоничные энергии для общих проектов и целей")

    return {
        "birth_data": {"date": birth_date.isoformat(), "moon_phase": _phase_view(birth_phase), "zodiac_sign": _zodiac_view(birth_sign)},
        "current_data": {"date": target.isoformat(), "moon_phase": _phase_view(target_phase), "zodiac_sign": _zodiac_view(target_sign)},
        "compatibility": {"phase": phase, "zodiac": zodiac, "overall": overall, "description": description},
        "recommendations": recommendations,
    }


def upcoming_events(start: date, days_ahead: int = 30) -> dict:
    events: list[dict] = []
    end = start + timedelta(days=days_ahead)
    for offset in range(days_ahead + 1):
        current = start + timedelta(days=offset)
        day = lunar_day(current)
        if day in KEY_LUNAR_DAYS:
            phase = phase_for_lunar_day(day)
            events.append(
                {
                    "date": current.isoformat(),
                    "type": "moon_phase",
                    "phase": phase,
                    "lunar_day": day,
                    "name": PHASES[phase]["name"],
                    "emoji": PHASES[phase]["emoji"],
                    "significance": "Ключевая фаза луны",
                    "energy": PHASES[phase]["energy"],
                    "days_from_now": offset,
                }
            )

        sign = zodiac_sign(current)
        previous = zodiac_sign(current - timedelta(days=1))
        if sign != previous:
            events.append(
                {
                    "date": current.isoformat(),
                    "type": "zodiac_change",
                    "from_sign": previous,
                    "to_sign": sign,
                    "name": f"Переход в {ZODIAC_SIGNS[sign]['name']}",
                    "emoji": ZODIAC_SIGNS[sign]["emoji"],
                    "significance": "Смена астрологического влияния",
                    "energy": ZODIAC_SIGNS[sign]["energy"],
                    "days_from_now": offset,
                }
            )

    return {
        "period": {"start": start.isoformat(), "end": end.isoformat(), "days_ahead": days_ahead},
        "events": events,
        "next_major_event": next((event for event in events if event["type"] == "moon_phase"), None),
    }
