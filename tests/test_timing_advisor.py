"""
Growth stage lookup, can-fertilize decision and seasonal schedule.
Run from project root: python -m pytest tests/test_timing_advisor.py -v
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fertiplan.crop_params import Crop
from fertiplan.timing_advisor import (
    fertilization_schedule,
    growth_stage,
    recommend_timing,
    timing_advice,
)
from fertiplan.weather_risk import analyze_weather

CALM = {"temperature": 20, "humidity": 60, "wind_scale": 1, "precipitation": 0, "description": "晴"}


@pytest.mark.parametrize("today,stage", [
    (date(2025, 5, 30), "pre_sowing"),
    (date(2025, 6, 1), "sowing"),
    (date(2025, 6, 7), "sowing"),
    (date(2025, 6, 8), "seedling"),
    (date(2025, 7, 1), "tillering"),
    (date(2025, 7, 20), "jointing"),
    (date(2025, 9, 14), "maturity"),
])
def test_rice_growth_stages(today, stage):
    assert growth_stage(Crop.RICE, "2025-06-01", today).stage == stage


@pytest.mark.parametrize("days,stage", [
    (10, "sowing"), (30, "tillering"), (75, "overwintering"), (130, "greenup"),
    (160, "jointing"), (200, "booting"), (230, "heading"), (260, "maturity"),
])
def test_wheat_growth_stages(days, stage):
    sown = date(2024, 11, 1)
    today = date.fromordinal(sown.toordinal() + days)
    result = growth_stage(Crop.WHEAT, sown, today)
    assert result.stage == stage
    assert result.days_since_sowing == days


def test_days_until_sowing_description():
    result = growth_stage(Crop.RICE, "2025-06-01", date(2025, 5, 30))
    assert result.days_since_sowing == -2
    assert result.description == "2 days until sowing"
    assert result.sowing_date_known


def test_missing_sowing_date():
    for value in (None, "", "sometime in june"):
        result = growth_stage(Crop.WHEAT, value, date(2025, 3, 1))
        assert result.stage == "pre_sowing"
        assert result.days_since_sowing is None
        assert not result.sowing_date_known


def test_calm_weather_allows_fertilizing():
    stage = growth_stage(Crop.RICE, "2025-06-01", date(2025, 7, 1))
    advice = timing_advice(Crop.RICE, stage, analyze_weather(CALM))
    assert advice["can_fertilize"] is True
    assert advice["best_timing"] == ["Tillering dressing: 7-10 days after transplanting"]
    assert advice["weather_warning"] is None


def test_maturity_blocks_fertilizing():
    stage = growth_stage(Crop.RICE, "2025-06-01", date(2025, 10, 1))
    advice = timing_advice(Crop.RICE, stage, analyze_weather(CALM))
    assert advice["can_fertilize"] is False
    assert "Crop has reached maturity; no further fertilizing" in advice["general_advice"]


def test_wheat_overwintering_blocks_fertilizing():
    stage = growth_stage(Crop.WHEAT, "2024-11-01", date(2025, 1, 15))
    assert stage.stage == "overwintering"
    assert timing_advice(Crop.WHEAT, stage, analyze_weather(CALM))["can_fertilize"] is False


def test_rain_warning_blocks_and_adds_advice():
    stage = growth_stage(Crop.WHEAT, "2024-11-01", date(2025, 4, 1))
    assessment = analyze_weather({**CALM, "precipitation": 12})
    advice = timing_advice(Crop.WHEAT, stage, assessment)
    assert advice["can_fertilize"] is False
    assert advice["weather_warning"].startswith("Rain warning")
    assert "Place fertilizer deep or fertigate; avoid broadcasting before rain" in advice["general_advice"]


def test_heat_adds_evening_advice():
    stage = growth_stage(Crop.RICE, "2025-06-01", date(2025, 7, 1))
    advice = timing_advice(Crop.RICE, stage, analyze_weather({**CALM, "temperature": 37}))
    assert "Apply in the evening to reduce volatilisation" in advice["general_advice"]


def test_unknown_sowing_date_advice():
    stage = growth_stage(Crop.RICE, None)
    advice = timing_advice(Crop.RICE, stage, analyze_weather(CALM))
    assert advice["can_fertilize"] is True
    assert advice["general_advice"][0] == "Provide a sowing date for stage-specific advice"


def test_schedule_shares_sum_to_one():
    for crop in Crop:
        stages = fertilization_schedule(crop, date(2025, 1, 1))["fertilization_schedule"]
        assert sum(s["ratio"] for s in stages) == pytest.approx(1.0)


def test_schedule_in_season_note():
    schedule = fertilization_schedule(Crop.WHEAT, date(2025, 10, 15))
    notes = {s["stage"]: s["best_timing"] for s in schedule["fertilization_schedule"]}
    assert notes["base"] == "Now is a good time for wheat sowing and base fertilizer"
    assert notes["greenup"] is None


def test_schedule_weather_warnings():
    rainy = [{"precipitation": 10, "temp_max": 25, "temp_min": 18}] * 3
    schedule = fertilization_schedule(Crop.RICE, date(2025, 6, 1), rainy)
    assert schedule["weather_summary"]["rainy_days"] == 3
    assert schedule["fertilization_schedule"][0]["weather_warning"].startswith("Several rainy days ahead")

    cold_and_rainy = [{"precipitation": 10, "temp_max": 8, "temp_min": 2}] * 3
    schedule = fertilization_schedule(Crop.WHEAT, date(2025, 12, 1), cold_and_rainy)
    assert schedule["fertilization_schedule"][0]["weather_warning"].startswith("Cool weather")


def test_recommend_timing_response_shape():
    out = recommend_timing("rice", "2025-06-01", CALM, [], today=date(2025, 6, 20))
    assert set(out) == {"crop", "growth_stage", "weather", "advice", "schedule"}
    assert out["growth_stage"]["stage"] == "seedling"
    assert out["weather"]["suitable"] is True
    assert out["schedule"]["current_date"] == "2025-06-20"


if __name__ == "__main__":
    import subprocess
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", __file__, "-v", "-s"]))
