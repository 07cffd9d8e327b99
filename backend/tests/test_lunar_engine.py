from datetime import date, datetime, timedelta, timezone

import pytest

from mistika.lunar_engine import (
    MAX_CALENDAR_DAYS,
    daily_recommendations,
    favorable_days,
    lunar_calendar,
    lunar_compatibility,
    lunar_day,
    moon_phase,
    phase_compatibility,
    phase_for_lunar_day,
    upcoming_events,
    zodiac_compatibility,
    zodiac_sign,
)


def test_lunar_day_from_reference_new_moon():
    assert lunar_day(date(2024, 1, 11)) == 1
    assert moon_phase(date(2024, 1, 11)) == "new_moon"
    assert lunar_day(date(2024, 1, 25)) == 15
    assert moon_phase(date(2024, 1, 25)) == "full_moon"
    # one full cycle later the count starts over
    assert lunar_day(date(2024, 2, 10)) == 1


def test_lunar_day_before_reference_wraps_into_cycle():
    day = lunar_day(date(2023, 12, 31))
    assert 1 <= day <= 30
    assert lunar_day(datetime(2024, 1, 11, 11, 0, tzinfo=timezone.utc)) == 30


@pytest.mark.parametrize(
    ("day", "phase"),
    [(1, "new_moon"), (5, "waxing_crescent"), (8, "first_quarter"), (12, "waxing_gibbous"),
     (15, "full_moon"), (18, "waning_gibbous"), (22, "last_quarter"), (27, "waning_crescent")],
)
def test_phase_for_lunar_day(day, phase):
    assert phase_for_lunar_day(day) == phase


@pytest.mark.parametrize(
    ("value", "sign"),
    [(date(2024, 3, 21), "aries"), (date(2024, 4, 19), "aries"), (date(2024, 4, 20), "taurus"),
     (date(2024, 1, 11), "capricorn"), (date(2024, 12, 25), "capricorn"), (date(2024, 2, 29), "pisces")],
)
def test_zodiac_sign_boundaries(value, sign):
    assert zodiac_sign(value) == sign


def test_daily_recommendations_combines_phase_and_sign():
    info = daily_recommendations(date(2024, 1, 11))
    assert info["date"] == "2024-01-11"
    assert info["lunar_day"] == 1
    assert info["moon_phase"]["phase"] == "new_moon"
    assert info["zodiac_sign"]["sign"] == "capricorn"
    assert info["zodiac_sign"]["element"] == "Земля"
    assert info["special_advice"][0].startswith("Новолуние")
    assert len(info["special_advice"]) == 2
    assert info["tarot_focus"]


def test_lunar_calendar_period_and_summary():
    start = date(2024, 1, 1)
    calendar = lunar_calendar(start, start + timedelta(days=29))
    assert calendar["period"]["total_days"] == 30
    assert len(calendar["calendar"]) == 30
    assert sum(calendar["summary"]["phase_distribution"].values()) == 30
    assert len(calendar["summary"]["recommendations"]) == 4


def test_lunar_calendar_limits():
    start = date(2024, 1, 1)
    assert lunar_calendar(start, start)["period"]["total_days"] == 1
    assert lunar_calendar(start, start + timedelta(days=MAX_CALENDAR_DAYS - 1))["period"]["total_days"] == 92
    with pytest.raises(ValueError):
        lunar_calendar(start, start + timedelta(days=MAX_CALENDAR_DAYS))
    with pytest.raises(ValueError):
        lunar_calendar(start, start - timedelta(days=1))


def test_favorable_days_sorted_by_score():
    result = favorable_days("спорт", date(2024, 3, 21), date(2024, 4, 19))
    assert result["total_found"] == len(result["favorable_days"]) > 0
    scores = [day["favorability_score"] for day in result["favorable_days"]]
    assert scores == sorted(scores, reverse=True)
    assert result["best_day"]["favorability_score"] == scores[0]

    nothing = favorable_days("телепортация", date(2024, 1, 1), date(2024, 1, 5))
    assert nothing["total_found"] == 0
    assert nothing["best_day"] is None


def test_favorable_days_rejects_blank_activity():
    with pytest.raises(ValueError):
        favorable_days("   ", date(2024, 1, 1), date(2024, 1, 5))
    assert favorable_days("  спорт ", date(2024, 3, 21), date(2024, 4, 19))["activity"] == "спорт"


def test_phase_and_zodiac_compatibility():
    same = phase_compatibility("new_moon", "new_moon")
    assert same["score"] == 100
    assert same["level"] == "high"
    opposite = phase_compatibility("new_moon", "full_moon")
    assert opposite["distance"] == 4
    assert opposite["level"] == "low"
    # distance wraps around the cycle
    assert phase_compatibility("new_moon", "waning_crescent")["distance"] == 1

    assert zodiac_compatibility("aries", "leo")["score"] == 85
    assert zodiac_compatibility("aries", "cancer")["level"] == "low"
    assert zodiac_compatibility("aries", "gemini")["level"] == "medium"


def test_lunar_compatibility_overall():
    result = lunar_compatibility(date(2024, 1, 11), date(2024, 1, 11))
    assert result["compatibility"]["phase"]["score"] == 100
    assert result["compatibility"]["overall"] == round((100 + result["compatibility"]["zodiac"]["score"]) / 2)
    assert result["birth_data"]["zodiac_sign"]["sign"] == "capricorn"


def test_upcoming_events():
    result = upcoming_events(date(2024, 1, 11), days_ahead=30)
    moon_events = [event for event in result["events"] if event["type"] == "moon_phase"]
    assert {event["lunar_day"] for event in moon_events} >= {1, 8, 15, 22}
    assert result["next_major_event"]["date"] == "2024-01-11"
    assert any(event["type"] == "zodiac_change" and event["to_sign"] == "aquarius" for event in result["events"])
