"""
Weather risk classification for fertilizer application.

Factors are evaluated independently and each triggered factor emits one
alert. The overall level is the worst alert level.

  Rain        current precipitation >10 mm high, >5 mm medium, >0.1 mm note;
              current probability >70 % medium; today's probability >80 %
              medium, >60 % note; today's forecast >15 mm high; next two days'
              probability >70 % note; weather-description keywords on top
              (first matching keyword wins).
  Temperature >35 °C or <5 °C high; >30 °C or <10 °C medium.
  Humidity    >85 % medium (caking), <40 % low (irrigate after application).
  Wind        scale >=5 high; >=3 low.

Rain and temperature alerts at medium/high, any humidity alert and a high
wind alert also add a warning line; the weather is "suitable" only when no
warning was raised.
"""

from dataclasses import asdict, dataclass, field

import numpy as np

LOW = "low"
MEDIUM = "medium"
HIGH = "high"
_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}

RAINY_DAY_MM = 5.0

# Description keywords, checked in order; the first one found is used.
RAIN_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("暴雨", HIGH),
    ("大暴雨", HIGH),
    ("特大暴雨", HIGH),
    ("大雨", HIGH),
    ("中雨", MEDIUM),
    ("小雨", LOW),
    ("雷阵雨", MEDIUM),
    ("阵雨", LOW),
    ("冻雨", HIGH),
    ("雨夹雪", MEDIUM),
    ("heavy rain", HIGH),
    ("rainstorm", HIGH),
    ("freezing rain", HIGH),
    ("moderate rain", MEDIUM),
    ("thunderstorm", MEDIUM),
    ("sleet", MEDIUM),
    ("light rain", LOW),
    ("shower", LOW),
)


def worst(*levels: str) -> str:
    return max(levels, key=_RANK.__getitem__, default=LOW)


def _num(value) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Weather inputs
# ---------------------------------------------------------------------------

@dataclass
class CurrentWeather:
    temperature: float | None = None             # °C
    humidity: float | None = None                # %
    wind_scale: float | None = None              # Beaufort
    precipitation: float | None = None           # mm
    precipitation_probability: float | None = None   # %
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "CurrentWeather":
        data = data or {}
        return cls(
            temperature=_num(data.get("temperature")),
            humidity=_num(data.get("humidity")),
            wind_scale=_num(data.get("wind_scale")),
            precipitation=_num(data.get("precipitation")),
            precipitation_probability=_num(data.get("precipitation_probability")),
            description=str(data.get("description") or ""),
        )


@dataclass
class DailyForecast:
    date: str = ""
    temp_max: float | None = None
    temp_min: float | None = None
    description: str = ""
    precipitation: float | None = None
    precipitation_probability: float | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "DailyForecast":
        data = data or {}
        return cls(
            date=str(data.get("date") or ""),
            temp_max=_num(data.get("temp_max")),
            temp_min=_num(data.get("temp_min")),
            description=str(data.get("description") or ""),
            precipitation=_num(data.get("precipitation")),
            precipitation_probability=_num(data.get("precipitation_probability")),
        )

    @property
    def mean_temperature(self) -> float | None:
        if self.temp_max is None or self.temp_min is None:
            return None
        return (self.temp_max + self.temp_min) / 2


@dataclass
class WeatherSnapshot:
    current: CurrentWeather = field(default_factory=CurrentWeather)
    daily: list[DailyForecast] = field(default_factory=list)
    location: str = ""
    source: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "WeatherSnapshot":
        data = data or {}
        return cls(
            current=CurrentWeather.from_dict(data.get("current")),
            daily=[DailyForecast.from_dict(d) for d in (data.get("daily") or [])][:7],
            location=str(data.get("location") or ""),
            source=str(data.get("source") or ""),
        )

    def as_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class Alert:
    type: str
    level: str
    title: str
    message: str
    details: list[str] = field(default_factory=list)


@dataclass
class WeatherAssessment:
    level: str = LOW
    alerts: list[Alert] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rain_risk: str = LOW
    temperature_risk: str = LOW

    @property
    def suitable(self) -> bool:
        return not self.warnings

    @property
    def warning(self) -> str | None:
        return "; ".join(self.warnings) if self.warnings else None

    def as_dict(self) -> dict:
        out = asdict(self)
        out["suitable"] = self.suitable
        out["warning"] = self.warning
        return out


# ---------------------------------------------------------------------------
# Rain
# ---------------------------------------------------------------------------

def assess_rain(current: CurrentWeather, daily: list[DailyForecast]) -> tuple[str, str, list[str]]:
    """Return (level, advice, details) for rain."""
    level, advice, details = LOW, "Suitable for fertilizing", []

    precip = current.precipitation
    if precip is not None:
        if precip > 10:
            level = HIGH
            details.append(f"Current precipitation {precip:g} mm (heavy rain)")
            advice = "Heavy rain now: do not apply fertilizer"
        elif precip > 5:
            level = worst(level, MEDIUM)
            details.append(f"Current precipitation {precip:g} mm (moderate rain)")
            advice = "Moderate rain now: avoid broadcasting fertilizer"
        elif precip > 0.1:
            details.append(f"Current precipitation {precip:g} mm (light rain)")
            advice = "Light rain now: place fertilizer deep or apply after the rain"

    pop = current.precipitation_probability
    if pop is not None and pop > 70 and level != HIGH:
        level = MEDIUM
        details.append(f"Current precipitation probability {pop:g}%")

    if daily:
        today = daily[0]
        today_pop = today.precipitation_probability or 0.0
        today_precip = today.precipitation or 0.0
        if today_pop > 80:
            level = worst(level, MEDIUM)
            details.append(f"Precipitation probability today {today_pop:g}%")
            advice = "Rain very likely today: postpone, or place fertilizer deep and cover"
        elif today_pop > 60:
            details.append(f"Precipitation probability today {today_pop:g}%")
        if today_precip > 15:
            level = HIGH
            details.append(f"Forecast precipitation today {today_precip:g} mm")
            advice = "Heavy rain forecast today: do not apply fertilizer"

        for offset, day in enumerate(daily[1:3], start=1):
            day_pop = day.precipitation_probability or 0.0
            if day_pop > 70:
                details.append(f"{'Tomorrow' if offset == 1 else 'Day after tomorrow'}: "
                               f"precipitation probability {day_pop:g}%")
                if level == LOW:
                    advice = "Rain possible in the next 1-2 days: place fertilizer deep and cover"

    description = current.description.lower()
    for keyword, kw_level in RAIN_KEYWORDS:
        if keyword in description:
            details.append(f"Weather description: {keyword}")
            if kw_level == HIGH and level != HIGH:
                level = HIGH
                advice = f"{keyword}: do not apply fertilizer"
            elif kw_level == MEDIUM and level == LOW:
                level = MEDIUM
                advice = f"{keyword}: place fertilizer deep or postpone"
            break

    return level, advice, details


# ---------------------------------------------------------------------------
# Combined analysis
# ---------------------------------------------------------------------------

def analyze_weather(current: CurrentWeather | dict | None, daily=None) -> WeatherAssessment:
    """
    Classify current conditions plus up to 7 forecast days.

    Parameters
    ----------
    current : CurrentWeather, dict or None
    daily : list of DailyForecast or dicts, optional

    Returns
    -------
    WeatherAssessment with overall level, alerts, warnings and per-category risk.
    """
    if not isinstance(current, CurrentWeather):
        current = CurrentWeather.from_dict(current)
    daily = [d if isinstance(d, DailyForecast) else DailyForecast.from_dict(d) for d in (daily or [])][:7]

    alerts: list[Alert] = []
    warnings: list[str] = []

    rain_level, rain_advice, rain_details = assess_rain(current, daily)
    if rain_level == HIGH:
        warnings.append(f"Rain warning: {rain_advice}")
        alerts.append(Alert("rain", HIGH, "High rain risk", rain_advice, rain_details))
    elif rain_level == MEDIUM:
        warnings.append(f"Rain notice: {rain_advice}")
        alerts.append(Alert("rain", MEDIUM, "Rain risk", rain_advice, rain_details))
    elif rain_details:
        alerts.append(Alert("rain", LOW, "Rain information", rain_advice, rain_details))

    temp = current.temperature
    if temp is not None:
        if temp > 35:
            warnings.append("High temperature: above 35°C fertilizer volatilises; apply early morning or evening")
            alerts.append(Alert("temperature", HIGH, "Heat warning",
                                f"Temperature {temp:g}°C exceeds 35°C; apply early or late, or place deep and cover."))
        elif temp > 30:
            warnings.append("Warm: avoid fertilizing around midday")
            alerts.append(Alert("temperature", MEDIUM, "Warm conditions",
                                f"Temperature {temp:g}°C; apply in the morning or evening."))
        if temp < 5:
            warnings.append("Low temperature: below 5°C fertilizer response is limited; wait for warming")
            alerts.append(Alert("temperature", HIGH, "Cold warning",
                                f"Temperature {temp:g}°C; soil microbial activity is low."))
        elif temp < 10:
            warnings.append("Cool: fertilizer response may be reduced")
            alerts.append(Alert("temperature", MEDIUM, "Cool conditions",
                                f"Temperature {temp:g}°C; consider more organic fertilizer."))

    humidity = current.humidity
    if humidity is not None:
        if humidity > 85:
            warnings.append("High humidity: fertilizer may cake; mix just before use")
            alerts.append(Alert("humidity", MEDIUM, "High humidity", f"Humidity {humidity:g}%; fertilizer cakes easily."))
        elif humidity < 40:
            warnings.append("Dry air: irrigate lightly after fertilizing")
            alerts.append(Alert("humidity", LOW, "Dry air", f"Humidity {humidity:g}%; irrigate after application."))

    wind = current.wind_scale
    if wind is not None:
        if wind >= 5:
            warnings.append("Strong wind: do not broadcast fertilizer")
            alerts.append(Alert("wind", HIGH, "Strong wind", f"Wind force {wind:g}; place deep or wait for calmer weather."))
        elif wind >= 3:
            alerts.append(Alert("wind", LOW, "Breezy", f"Wind force {wind:g}; mind the wind direction when broadcasting."))

    def _category(kind: str) -> str:
        return worst(*(a.level for a in alerts if a.type == kind))

    return WeatherAssessment(
        level=worst(*(a.level for a in alerts)),
        alerts=alerts,
        warnings=warnings,
        rain_risk=_category("rain"),
        temperature_risk=_category("temperature"),
    )


def forecast_summary(daily) -> dict:
    """Rainy days (>5 mm) and mean daily temperature over the forecast."""
    daily = [d if isinstance(d, DailyForecast) else DailyForecast.from_dict(d) for d in (daily or [])]
    rainy_days = sum(1 for d in daily if (d.precipitation or 0.0) > RAINY_DAY_MM)
    temps = [d.mean_temperature for d in daily if d.mean_temperature is not None]
    return {
        "days": len(daily),
        "rainy_days": rainy_days,
        "avg_temperature": float(np.mean(temps)) if temps else None,
    }
