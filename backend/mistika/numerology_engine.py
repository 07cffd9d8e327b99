"""Pythagorean numerology: core numbers, meanings, compatibility and forecasts."""
from __future__ import annotations

from datetime import date

# Cyrillic and Latin letters share one 1-9 cycle table.
# А=1 Б=2 В=3 Г=4 Д=5 Е=6 Ж=7 З=8 И=9 Й=1 ... Я=5, Ё counts as Е.
LETTER_VALUES: dict[str, int] = {
    "а": 1, "б": 2, "в": 3, "г": 4, "д": 5, "е": 6, "ё": 6, "ж": 7, "з": 8, "и": 9,
    "й": 1, "к": 2, "л": 3, "м": 4, "н": 5, "о": 6, "п": 7, "р": 8, "с": 9, "т": 1,
    "у": 2, "ф": 3, "х": 4, "ц": 5, "ч": 6, "ш": 7, "щ": 8, "ъ": 9, "ы": 1, "ь": 2,
    "э": 3, "ю": 4, "я": 5,
    "a": 1, "b": 2, "c": 3, "d": 4, "e": 5, "f": 6, "g": 7, "h": 8, "i": 9,
    "j": 1, "k": 2, "l": 3, "m": 4, "n": 5, "o": 6, "p": 7, "q": 8, "r": 9,
    "s": 1, "t": 2, "u": 3, "v": 4, "w": 5, "x": 6, "y": 7, "z": 8,
}

CONSONANTS = frozenset("бвгджзйклмнпрстфхцчшщъьbcdfghjklmnpqrstvwxyz")
MASTER_NUMBERS = frozenset({11, 22, 33})

NUMBER_MEANINGS: dict[int, dict] = {
    1: {
        "name": "Единица",
        "keywords": ["лидерство", "независимость", "инициатива", "новые начинания"],
        "description": "Число лидеров и пионеров. Символизирует независимость, оригинальность и стремление к достижениям.",
        "positive": ["лидерские качества", "самостоятельность", "творческий потенциал", "решительность"],
        "negative": ["эгоизм", "упрямство", "нетерпимость", "агрессивность"],
        "career": ["руководитель", "предприниматель", "изобретатель", "художник"],
        "relationships": "Нужен партнер, который будет поддерживать ваши амбиции, но не конкурировать с вами.",
    },
    2: {
        "name": "Двойка",
        "keywords": ["сотрудничество", "дипломатия", "партнерство", "гармония"],
        "description": "Число партнерства и сотрудничества. Символизирует дипломатию, чувствительность и стремление к гармонии.",
        "positive": ["дипломатичность", "чувствительность", "терпение", "миротворчество"],
        "negative": ["нерешительность", "зависимость", "излишняя чувствительность", "пассивность"],
        "career": ["дипломат", "психолог", "медиатор", "социальный работник"],
        "relationships": "Вы прирожденный партнер, ищущий глубокие эмоциональные связи и взаимопонимание.",
    },
    3: {
        "name": "Тройка",
        "keywords": ["творчество", "общение", "оптимизм", "самовыражение"],
        "description": "Число творчества и самовыражения. Символизирует артистизм, общительность и жизнерадостность.",
        "positive": ["креативность", "коммуникабельность", "оптимизм", "вдохновение"],
        "negative": ["поверхностность", "рассеянность", "неорганизованность", "критичность"],
        "career": ["актер", "писатель", "учитель", "журналист"],
        "relationships": "Вам нужен партнер, который разделяет вашу любовь к жизни и творчеству.",
    },
    4: {
        "name": "Четверка",
        "keywords": ["стабильность", "практичность", "трудолюбие", "надежность"],
        "description": "Число стабильности и порядка. Символизирует практичность, методичность и преданность.",
        "positive": ["надежность", "организованность", "практичность", "упорство"],
        "negative": ["консерватизм", "негибкость", "скучность", "ограниченность"],
        "career": ["бухгалтер", "инженер", "строитель", "администратор"],
        "relationships": "Вы ищете стабильные, долгосрочные отношения, основанные на доверии и преданности.",
    },
    5: {
        "name": "Пятерка",
        "keywords": ["свобода", "приключения", "изменения", "любознательность"],
        "description": "Число свободы и приключений. Символизирует любознательность, адаптабельность и стремление к переменам.",
        "positive": ["адаптабельность", "любознательность", "энтузиазм", "свободолюбие"],
        "negative": ["непостоянство", "безответственность", "импульсивность", "беспокойство"],
        "career": ["путешественник", "журналист", "торговый представитель", "исследователь"],
        "relationships": "Вам нужна свобода в отношениях и партнер, готовый к приключениям и переменам.",
    },
    6: {
        "name": "Шестерка",
        "keywords": ["забота", "ответственность", "семья", "служение"],
        "description": "Число заботы и ответственности. Символизирует любовь к семье, желание помогать и защищать.",
        "positive": ["заботливость", "ответственность", "сострадание", "верность"],
        "negative": ["навязчивость", "мученичество", "беспокойство", "критичность"],
        "career": ["врач", "учитель", "социальный работник", "консультант"],
        "relationships": "Семья и близкие отношения для вас приоритет. Вы прирожденный опекун и защитник.",
    },
    7: {
        "name": "Семерка",
        "keywords": ["духовность", "мудрость", "анализ", "интуиция"],
        "description": "Число мудрости и духовности. Символизирует глубокие размышления, интуицию и стремление к истине.",
        "positive": ["мудрость", "интуиция", "аналитический ум", "духовность"],
        "negative": ["замкнутость", "критичность", "перфекционизм", "отчужденность"],
        "career": ["исследователь", "философ", "аналитик", "духовный наставник"],
        "relationships": "Вам нужен интеллектуальный и духовно развитый партнер, способный к глубоким беседам.",
    },
    8: {
        "name": "Восьмерка",
        "keywords": ["материальный успех", "власть", "амбиции", "достижения"],
        "description": "Число материального успеха и власти. Символизирует амбиции, организаторские способности и стремление к достижениям.",
        "positive": ["амбициозность", "организаторские способности", "практичность", "целеустремленность"],
        "negative": ["материализм", "жестокость", "диктаторство", "нетерпимость"],
        "career": ["руководитель", "финансист", "предприниматель", "политик"],
        "relationships": "Вы ищете партнера, который поддержит ваши амбиции и разделит стремление к успеху.",
    },
    9: {
        "name": "Девятка",
        "keywords": ["универсальность", "сострадание", "мудрость", "служение человечеству"],
        "description": "Число завершения и мудрости. Символизирует сострадание, альтруизм и стремление служить человечеству.",
        "positive": ["сострадание", "мудрость", "щедрость", "альтруизм"],
        "negative": ["эмоциональность", "импульсивность", "нетерпимость", "эгоцентризм"],
        "career": ["филантроп", "художник", "целитель", "общественный деятель"],
        "relationships": "Вы ищете глубокие, духовные связи и готовы отдавать больше, чем получать.",
    },
    11: {
        "name": "Мастер-число 11",
        "keywords": ["интуиция", "вдохновение", "духовное просветление", "идеализм"],
        "description": "Мастер-число интуиции и вдохновения. Символизирует высокую чувствительность и духовные способности.",
        "positive": ["интуиция", "вдохновение", "идеализм", "духовность"],
        "negative": ["нервозность", "фанатизм", "нереалистичность", "крайности"],
        "career": ["духовный учитель", "психолог", "художник", "изобретатель"],
        "relationships": "Вам нужен духовно развитый партнер, способный понять вашу чувствительную натуру.",
    },
    22: {
        "name": "Мастер-число 22",
        "keywords": ["материализация", "строительство", "практический идеализм", "видение"],
        "description": "Мастер-число практического идеализма. Символизирует способность воплощать великие идеи в реальность.",
        "positive": ["практический идеализм", "организаторские способности", "видение", "созидание"],
        "negative": ["внутреннее напряжение", "самокритичность", "перфекционизм", "давление"],
        "career": ["архитектор", "инженер", "общественный лидер", "реформатор"],
        "relationships": "Вы ищете партнера, который разделяет ваши высокие идеалы и поддерживает ваши масштабные планы.",
    },
    33: {
        "name": "Мастер-число 33",
        "keywords": ["мастер-учитель", "сострадание", "исцеление", "служение"],
        "description": "Мастер-число сострадания и служения. Символизирует высшую форму любви и самопожертвования.",
        "positive": ["безусловная любовь", "сострадание", "мудрость", "исцеление"],
        "negative": ["мученичество", "эмоциональные перегрузки", "жертвенность", "истощение"],
        "career": ["целитель", "духовный учитель", "гуманитарный работник", "консультант"],
        "relationships": "Ваши отношения основаны на безусловной любви и взаимном духовном росте.",
    },
}

COMPATIBILITY_MATRIX: dict[int, dict[str, tuple[int, ...]]] = {
    1: {"high": (1, 5, 7), "medium": (3, 9)},
    2: {"high": (2, 4, 8), "medium": (1, 6)},
    3: {"high": (3, 6, 9), "medium": (1, 5)},
    4: {"high": (2, 4, 8), "medium": (6, 7)},
    5: {"high": (1, 5, 9), "medium": (3, 7)},
    6: {"high": (3, 6, 9), "medium": (2, 4, 8)},
    7: {"high": (4, 7), "medium": (1, 5)},
    8: {"high": (2, 4, 8), "medium": (6,)},
    9: {"high": (3, 6, 9), "medium": (1, 5)},
}

COMPATIBILITY_SCORES = {"high": 85, "medium": 65, "low": 35}

COMPATIBILITY_DESCRIPTIONS = {
    "high": "Отличная совместимость! Ваши числа гармонично дополняют друг друга.",
    "medium": "Хорошая совместимость. Возможны некоторые различия, но они преодолимы.",
    "low": "Сложная совместимость. Потребуется больше усилий для понимания друг друга.",
}

COMPATIBILITY_ADVICE = {
    "high": [
        "Развивайте общие интересы и цели",
        "Поддерживайте открытое общение",
        "Цените различия как дополнения",
    ],
    "medium": [
        "Работайте над пониманием различий",
        "Находите компромиссы в сложных ситуациях",
        "Развивайте терпение и эмпатию",
    ],
    "low": [
        "Фокусируйтесь на общих ценностях",
        "Учитесь принимать различия",
        "Уделяйте больше времени общению",
    ],
}

PERSONAL_YEAR_MEANINGS = {
    1: "Год новых начинаний и возможностей",
    2: "Год сотрудничества и партнерства",
    3: "Год творчества и самовыражения",
    4: "Год упорной работы и создания основ",
    5: "Год перемен и новых возможностей",
    6: "Год семьи и ответственности",
    7: "Год духовного развития и самопознания",
    8: "Год материальных достижений и признания",
    9: "Год завершения циклов и подведения итогов",
}

PERSONAL_PERIOD_MEANINGS = {
    1: "Время для инициативы и лидерства",
    2: "Время для терпения и сотрудничества",
    3: "Время для творчества и общения",
    4: "Время для работы и организации",
    5: "Время для приключений и изменений",
    6: "Время для заботы о близких",
    7: "Время для размышлений и духовности",
    8: "Время для бизнеса и достижений",
    9: "Время для завершения дел и отдыха",
}

MONTHS_RU = [
    "январь", "февраль", "март", "апрель", "май", "июнь",
    "июль", "август", "сентябрь", "октябрь", "ноябрь", "декабрь",
]

FAVORABLE_DATES_LIMIT = 12


def _digit_sum(n: int) -> int:
    return sum(int(d) for d in str(n))


def reduce_to_single_digit(n: int) -> int:
    while n > 9:
        n = _digit_sum(n)
    return n


def reduce_with_master(n: int) -> int:
    """Like ``reduce_to_single_digit`` but stops at 11, 22 and 33."""
    while n > 9:
        if n in MASTER_NUMBERS:
            return n
        n = _digit_sum(n)
    return n


def _fold(n: int) -> int:
    # Master numbers and anything out of 1-9 fall back to their 9-cycle position.
    if n in COMPATIBILITY_MATRIX:
        return n
    return n % 9 or 9


def _letters(text: str) -> list[str]:
    return [ch for ch in text.lower() if ch in LETTER_VALUES]


def meaning_for(number: int) -> dict | None:
    return NUMBER_MEANINGS.get(number)


def _first_keyword(number: int) -> str:
    meaning = NUMBER_MEANINGS.get(number)
    return meaning["keywords"][0] if meaning else ""


def life_path_number(birth_date: date) -> int:
    total = (
        reduce_to_single_digit(birth_date.day)
        + reduce_to_single_digit(birth_date.month)
        + reduce_to_single_digit(birth_date.year)
    )
    return reduce_with_master(total)


def destiny_number(full_name: str) -> int:
    return reduce_with_master(sum(LETTER_VALUES[ch] for ch in _letters(full_name)))


def soul_number(birth_date: date) -> int:
    return reduce_with_master(birth_date.day)


def personality_number(full_name: str) -> int:
    return reduce_with_master(sum(LETTER_VALUES[ch] for ch in _letters(full_name) if ch in CONSONANTS))


def personal_year(birth_date: date, current: date) -> int:
    total = (
        reduce_to_single_digit(birth_date.day)
        + reduce_to_single_digit(birth_date.month)
        + reduce_to_single_digit(current.year)
    )
    return reduce_with_master(total)


def personal_month(birth_date: date, current: date) -> int:
    return reduce_with_master(personal_year(birth_date, current) + reduce_to_single_digit(current.month))


def personal_day(birth_date: date, current: date) -> int:
    return reduce_with_master(personal_month(birth_date, current) + reduce_to_single_digit(current.day))


def personal_year_meaning(number: int) -> str:
    return PERSONAL_YEAR_MEANINGS.get(number) or PERSONAL_YEAR_MEANINGS.get(number % 9) or "Особое значение года"


def personal_period_meaning(number: int) -> str:
    return PERSONAL_PERIOD_MEANINGS.get(number) or PERSONAL_PERIOD_MEANINGS.get(number % 9) or "Особое время"


def compatibility(number1: int, number2: int) -> dict:
    row = COMPATIBILITY_MATRIX[_fold(number1)]
    other = _fold(number2)
    if other in row["high"]:
        level = "high"
    elif other in row["medium"]:
        level = "medium"
    else:
        level = "low"
    return {
        "level": level,
        "percentage": COMPATIBILITY_SCORES[level],
        "description": COMPATIBILITY_DESCRIPTIONS[level],
        "advice": list(COMPATIBILITY_ADVICE[level]),
    }


def _summary(life_path: int, destiny: int, soul: int, personality: int) -> str:
    return (
        f"Вы - человек с числом жизненного пути {life_path}, что делает вас {_first_keyword(life_path)}. "
        f"Ваше предназначение ({destiny}) связано с {_first_keyword(destiny)}, "
        f"внутренне вас мотивирует {_first_keyword(soul)} ({soul}), "
        f"а окружающие видят в вас {_first_keyword(personality)} ({personality})."
    )


def _recommendations(life_path: int, destiny: int, soul: int) -> list[dict[str, str]]:
    items: list[dict[str, str]] = []
    life_path_meaning = NUMBER_MEANINGS.get(life_path)
    if life_path_meaning:
        items.append(
            {
                "area": "Жизненный путь",
                "advice": (
                    f"Развивайте {', '.join(life_path_meaning['keywords'])}. "
                    f"{life_path_meaning['career'][0].capitalize()} может быть вашим призванием."
                ),
            }
        )
    destiny_meaning = NUMBER_MEANINGS.get(destiny)
    if destiny_meaning:
        items.append(
            {
                "area": "Предназначение",
                "advice": (
                    f"Ваш потенциал раскроется через {destiny_meaning['keywords'][0]}. "
                    f"Рассмотрите карьеру в области: {', '.join(destiny_meaning['career'])}."
                ),
            }
        )
    soul_meaning = NUMBER_MEANINGS.get(soul)
    if soul_meaning:
        items.append({"area": "Отношения", "advice": soul_meaning["relationships"]})
    return items


def full_analysis(birth_date: date, full_name: str) -> dict:
    life_path = life_path_number(birth_date)
    destiny = destiny_number(full_name)
    soul = soul_number(birth_date)
    personality = personality_number(full_name)
    return {
        "life_path": {
            "number": life_path,
            "meaning": meaning_for(life_path),
            "description": "Ваш жизненный путь и основные уроки",
        },
        "destiny": {
            "number": destiny,
            "meaning": meaning_for(destiny),
            "description": "Ваше предназначение и потенциал",
        },
        "soul": {
            "number": soul,
            "meaning": meaning_for(soul),
            "description": "Ваши внутренние желания и мотивации",
        },
        "personality": {
            "number": personality,
            "meaning": meaning_for(personality),
            "description": "Как вас воспринимают окружающие",
        },
        "summary": _summary(life_path, destiny, soul, personality),
        "recommendations": _recommendations(life_path, destiny, soul),
    }


def personal_forecast(birth_date: date, current: date) -> dict:
    life_path = life_path_number(birth_date)
    year_number = personal_year(birth_date, current)
    month_number = personal_month(birth_date, current)
    day_number = personal_day(birth_date, current)
    return {
        "life_path": {"number": life_path, "meaning": meaning_for(life_path)},
        "personal_year": {
            "number": year_number,
            "meaning": personal_year_meaning(year_number),
            "period": str(current.year),
        },
        "personal_month": {
            "number": month_number,
            "meaning": personal_period_meaning(month_number),
            "period": f"{MONTHS_RU[current.month - 1]} {current.year}",
        },
        "personal_day": {
            "number": day_number,
            "meaning": personal_period_meaning(day_number),
            "period": current.strftime("%d.%m.%Y"),
        },
        "advice": [
            f"Ваше число жизненного пути {life_path} указывает на важность развития {_first_keyword(life_path)}",
            f"Персональный год {year_number}: {personal_year_meaning(year_number)}",
            f"В этом месяце ({month_number}): {personal_period_meaning(month_number)}",
            f"Сегодня ({day_number}): {personal_period_meaning(day_number)}",
        ],
    }


def analyze_name(name: str) -> dict:
    number = destiny_number(name)
    letters = _letters(name)
    return {
        "name": name,
        "number": number,
        "meaning": meaning_for(number),
        "letters_count": len(letters),
        "vowels_count": sum(1 for ch in letters if ch not in CONSONANTS),
        "consonants_count": sum(1 for ch in letters if ch in CONSONANTS),
        "personality_number": personality_number(name),
    }


def favorable_dates(birth_date: date, year: int) -> list[dict]:
    life_path = life_path_number(birth_date)
    result: list[dict] = []
    for month in range(1, 13):
        for day in range(1, 29):
            day_number = reduce_to_single_digit(day)
            match = compatibility(life_path, day_number)
            if match["level"] != "high":
                continue
            result.append(
                {
                    "date": date(year, month, day).isoformat(),
                    "day_number": day_number,
                    "month_number": reduce_to_single_digit(month),
                    "compatibility": match["percentage"],
                    "description": f"Благоприятный день для {_first_keyword(day_number)}",
                }
            )
            if len(result) >= FAVORABLE_DATES_LIMIT:
                return result
    return result
