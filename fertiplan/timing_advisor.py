"""
Fertilization timing advice: growth stage + weather → can-fertilize decision.

Growth stage is looked up from days since sowing:

  rice  : pre_sowing(<0) sowing(<7) seedling(<21) tillering(<45) jointing(<65)
          booting(<85) heading(<105) maturity
  wheat : pre_sowing(<0) sowing(<15) tillering(<60) overwintering(<120)
          greenup(<150) jointing(<180) booting(<210) heading(<240) maturity

can_fertilize = weather suitable AND stage != maturity
                (wheat overwintering is always False)

A missing or unreadable sowing date is not an error: the stage is reported
as pre_sowing with sowing_date_known=False.
"""

from dataclasses import asdict, dataclass
from datetime import date

from fertiplan.crop_params import Crop
from fertiplan.split_ratio import parse_date
from fertiplan.weather_risk import HIGH, MEDIUM, WeatherAssessment, analyze_weather, forecast_summary

# (stage key, upper bound in days since sowing); the last stage has no bound
GROWTH_STAGES: dict[Crop, tuple[tuple[str, float], ...]] = {
    Crop.RICE: (
        ("pre_sowing", 0), ("sowing", 7), ("seedling", 21), ("tillering", 45),
        ("jointing", 65), ("booting", 85), ("heading", 105), ("maturity", float("inf")),
    ),
    Crop.WHEAT: (
        ("pre_sowing", 0), ("sowing", 15), ("tillering", 60), ("overwintering", 120),
        ("greenup", 150), ("jointing", 180), ("booting", 210), ("heading", 240),
        ("maturity", float("inf")),
    ),
}

STAGE_NAMES = {
    "pre_sowing":    "Pre-sowing",
    "sowing":        "Sowing",
    "seedling":      "Seedling",
    "tillering":     "Tillering",
    "overwintering": "Overwintering",
    "greenup":       "Green-up",
    "jointing":      "Jointing",
    "booting":       "Booting",
    "heading":       "Heading",
    "maturity":      "Maturity",
}

# Seasonal dressing schedule: (stage, period, method, share of total fertilizer)
FERTILIZATION_SCHEDULE: dict[Crop, tuple[tuple[str, str, str, float], ...]] = {
    Crop.RICE: (
        ("base",      "7-10 days before transplanting", "Broadcast and plough in", 0.4),
        ("tillering", "7-10 days after transplanting",  "Broadcast",               0.3),
        ("panicle",   "Panicle initiation",             "Broadcast",               0.2),
        ("grain",     "After heading",                  "Foliar spray",            0.1),
    ),
    Crop.WHEAT: (
        ("base",          "Before sowing",                "Broadcast and plough in", 0.5),
        ("overwintering", "Mid to late December",         "Broadcast",               0.2),
        ("greenup",       "Late February to early March", "Broadcast",               0.2),
        ("jointing",      "Mid to late March",            "Broadcast",               0.1),
    ),
}

# (stage, months) when that dressing is in season
SEASONAL_WINDOWS: dict[Crop, tuple[tuple[str, tuple[int, ...], str], ...]] = {
    Crop.RICE: (
        ("base",      (5, 6), "Now is a good time for rice base fertilizer"),
        ("tillering", (6, 7), "Now is suitable for tillering fertilizer"),
    ),
    Crop.WHEAT: (
        ("base",    (10, 11), "Now is a good time for wheat sowing and base fertilizer"),
        ("greenup", (2, 3),   "Now is suitable for green-up fertilizer"),
    ),
}

RAINY_DAYS_WARNING = 3
COLD_AVG_TEMPERATURE = 10.0


@dataclass(frozen=True)
class GrowthStage:
    stage: str
    name: str
    days_since_sowing: int | None
    sowing_date_known: bool
    description: str

    def as_dict(self) -> dict:
        return asdict(self)


def growth_stage(crop, sowing_date, today: date | None = None) -> GrowthStage:
    """Stage of `crop` on `today` given its sowing date (date, ISO string or None)."""
    crop = Crop.parse(crop)
    today = today or date.today()
    if sowing_date in (None, ""):
        return GrowthStage("pre_sowing", STAGE_NAMES["pre_sowing"], None, False,
                           "Sowing date not provided; growth stage unknown")
    try:
        sown = parse_date(sowing_date)
    except (ValueError, TypeError):
        return GrowthStage("pre_sowing", STAGE_NAMES["pre_sowing"], None, False,
                           f"Sowing date {sowing_date!r} not understood; growth stage unknown")

    days = (today - sown).days
    for stage, upper in GROWTH_STAGES[crop]:
        if days < upper:
            break
    if days < 0:
        description = f"{-days} days until sowing"
    else:
        description = f"{STAGE_NAMES[stage]}, day {days} after sowing"
    return GrowthStage(stage, STAGE_NAMES[stage], days, True, description)


def timing_advice(crop, stage: GrowthStage | str, assessment: WeatherAssessment) -> dict:
    """
    Can-fertilize decision plus stage-specific timing and general advice.
    Weather warnings are appended verbatim.
    """
    crop = Crop.parse(crop)
    stage_key = stage.stage if isinstance(stage, GrowthStage) else str(stage)
    can_fertilize = assessment.suitable and stage_key != "maturity"
    best_timing: list[str] = []
    general: list[str] = []

    if isinstance(stage, GrowthStage) and not stage.sowing_date_known:
        general.append("Provide a sowing date for stage-specific advice")

    if crop is Crop.RICE:
        if stage_key == "sowing":
            best_timing.append("Base: incorporate with land preparation before sowing")
            general.append("Base dressing is 40-50% of total fertilizer")
        elif stage_key == "tillering":
            best_timing.append("Tillering dressing: 7-10 days after transplanting")
        elif stage_key in ("jointing", "booting"):
            best_timing.append("Panicle dressing: at early panicle initiation")
        elif stage_key == "maturity":
            general.append("Crop has reached maturity; no further fertilizing")
    else:
        if stage_key == "sowing":
            best_timing.append("Base: incorporate with land preparation before sowing")
            general.append("Base dressing is 60-70% of total fertilizer")
        elif stage_key == "overwintering":
            can_fertilize = False
            general.append("Low winter temperatures; fertilizing not recommended")
        elif stage_key == "greenup":
            best_timing.append("Green-up dressing: after spring green-up")
        elif stage_key == "jointing":
            best_timing.append("Jointing dressing: at the erecting stage")
        elif stage_key == "maturity":
            general.append("Crop has reached maturity; no further fertilizing")

    weather_warning = assessment.warning
    if weather_warning:
        if any(a.type == "rain" and a.level in (MEDIUM, HIGH) for a in assessment.alerts):
            general.append("Place fertilizer deep or fertigate; avoid broadcasting before rain")
        if any(a.type == "temperature" and a.level == HIGH and a.title == "Heat warning" for a in assessment.alerts):
            general.append("Apply in the evening to reduce volatilisation")

    return {
        "can_fertilize": can_fertilize,
        "best_timing": best_timing,
        "general_advice": general,
        "weather_warning": weather_warning,
    }


def fertilization_schedule(crop, today: date | None = None, daily=None) -> dict:
    """Seasonal dressing schedule with forecast-based warnings and in-season notes."""
    crop = Crop.parse(crop)
    today = today or date.today()
    summary = forecast_summary(daily)

    warning = None
    if summary["rainy_days"] >= RAINY_DAYS_WARNING:
        warning = "Several rainy days ahead; avoid fertilizing before rain to limit nutrient loss"
    if summary["avg_temperature"] is not None and summary["avg_temperature"] < COLD_AVG_TEMPERATURE:
        warning = "Cool weather slows fertilizer breakdown; consider a slightly higher rate"

    in_season = {stage: note for stage, months, note in SEASONAL_WINDOWS[crop] if today.month in months}
    stages = [
        {
            "stage": stage,
            "period": period,
            "method": method,
            "ratio": ratio,
            "weather_warning": warning,
            "best_timing": in_season.get(stage),
        }
        for stage, period, method, ratio in FERTILIZATION_SCHEDULE[crop]
    ]
    return {
        "crop": crop.value,
        "current_date": today.isoformat(),
        "weather_summary": summary,
        "fertilization_schedule": stages,
    }


def recommend_timing(crop, sowing_date, current=None, daily=None, today: date | None = None) -> dict:
    """Growth stage + weather assessment + advice + seasonal schedule in one response."""
    crop = Crop.parse(crop)
    stage = growth_stage(crop, sowing_date, today)
    assessment = analyze_weather(current, daily)
    return {
        "crop": crop.value,
        "growth_stage": stage.as_dict(),
        "weather": assessment.as_dict(),
        "advice": timing_advice(crop, stage, assessment),
        "schedule": fertilization_schedule(crop, today, daily),
    }
