"""
Open-Meteo Weather Fetcher
==========================
Source: Open-Meteo forecast API (no key required)
API   : GET https://api.open-meteo.com/v1/forecast

Usage (from project root):
    python -m fertiplan.weather_fetcher --lon 114.305 --lat 30.592
    python -m fertiplan.weather_fetcher --city 南京

Or call from code:
    from fertiplan.weather_fetcher import get_weather_snapshot
    snapshot = get_weather_snapshot(114.305, 30.592)

The response is converted to a WeatherSnapshot:
  - WMO weather codes → Chinese descriptions, so the rain keyword rules apply
  - wind speed (km/h) → Beaufort scale
  - daily max/min temperature, precipitation sum and probability (7 days)
"""

import argparse
import json
import logging

import requests

from fertiplan.config import CITY_COORDS, FORECAST_DAYS
from fertiplan.weather_risk import CurrentWeather, DailyForecast, WeatherSnapshot, analyze_weather

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API constants
# ---------------------------------------------------------------------------
API_BASE_URL    = "https://api.open-meteo.com/v1/forecast"
REQUEST_TIMEOUT = 15      # seconds
TIMEZONE        = "Asia/Shanghai"

CURRENT_FIELDS = ["temperature_2m", "relative_humidity_2m", "precipitation", "weather_code", "wind_speed_10m"]
DAILY_FIELDS   = ["weather_code", "temperature_2m_max", "temperature_2m_min",
                  "precipitation_sum", "precipitation_probability_max"]

# WMO weather interpretation codes
WEATHER_CODE_ZH: dict[int, str] = {
    0: "晴", 1: "晴", 2: "多云", 3: "阴",
    45: "雾", 48: "雾",
    51: "小雨", 53: "小雨", 55: "中雨",
    61: "小雨", 63: "中雨", 65: "大雨",
    71: "小雪", 73: "中雪", 75: "大雪", 77: "雪",
    80: "阵雨", 81: "阵雨", 82: "暴雨",
    85: "阵雪", 86: "阵雪",
    95: "雷阵雨", 96: "雷阵雨", 99: "雷阵雨",
}

# Upper bounds (km/h, exclusive) of Beaufort forces 0..11; anything above is 12
BEAUFORT_KMH = (1, 6, 12, 20, 29, 39, 50, 62, 75, 89, 103, 118)


def weather_description(code) -> str:
    if code is None:
        return "未知"
    return WEATHER_CODE_ZH.get(int(code), "未知")


def kmh_to_beaufort(speed_kmh: float | None) -> int | None:
    if speed_kmh is None:
        return None
    for force, upper in enumerate(BEAUFORT_KMH):
        if speed_kmh < upper:
            return force
    return 12


def nearest_city(lon: float, lat: float) -> str:
    """Closest city in the lookup table (squared-degree distance)."""
    return min(CITY_COORDS, key=lambda c: (CITY_COORDS[c][0] - lon) ** 2 + (CITY_COORDS[c][1] - lat) ** 2)


def _at(values: list | None, i: int):
    if not values or i >= len(values):
        return None
    return values[i]


def snapshot_from_open_meteo(payload: dict, location: str = "") -> WeatherSnapshot:
    """Convert an Open-Meteo forecast response into a WeatherSnapshot."""
    cur = payload.get("current") or {}
    current = CurrentWeather(
        temperature=cur.get("temperature_2m"),
        humidity=cur.get("relative_humidity_2m"),
        wind_scale=kmh_to_beaufort(cur.get("wind_speed_10m")),
        precipitation=cur.get("precipitation"),
        precipitation_probability=None,      # not provided for current conditions
        description=weather_description(cur.get("weather_code")) if cur else "",
    )
    daily_raw = payload.get("daily") or {}
    dates = daily_raw.get("time") or []
    daily = [
        DailyForecast(
            date=dates[i],
            temp_max=_at(daily_raw.get("temperature_2m_max"), i),
            temp_min=_at(daily_raw.get("temperature_2m_min"), i),
            description=weather_description(_at(daily_raw.get("weather_code"), i)),
            precipitation=_at(daily_raw.get("precipitation_sum"), i),
            precipitation_probability=_at(daily_raw.get("precipitation_probability_max"), i),
        )
        for i in range(min(len(dates), FORECAST_DAYS))
    ]
    return WeatherSnapshot(current=current, daily=daily, location=location, source="open-meteo")


def _make_request(lon: float, lat: float) -> dict:
    """One GET request to the Open-Meteo forecast API. Returns parsed JSON."""
    params = {
        "latitude":      lat,
        "longitude":     lon,
        "current":       ",".join(CURRENT_FIELDS),
        "daily":         ",".join(DAILY_FIELDS),
        "timezone":      TIMEZONE,
        "forecast_days": FORECAST_DAYS,
    }
    resp = requests.get(API_BASE_URL, params=params, timeout=REQUEST_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


def fetch_weather_snapshot(lon: float, lat: float) -> WeatherSnapshot:
    """Fetch current weather + 7-day forecast. Network errors propagate (requests exceptions)."""
    location = nearest_city(lon, lat)
    log.info("Fetching Open-Meteo forecast for (%.3f, %.3f) near %s...", lon, lat, location)
    return snapshot_from_open_meteo(_make_request(lon, lat), location=location)


def get_weather_snapshot(lon: float, lat: float) -> WeatherSnapshot | None:
    """Like fetch_weather_snapshot, but logs and returns None when the service is unreachable."""
    try:
        return fetch_weather_snapshot(lon, lat)
    except requests.RequestException as exc:
        log.warning("Weather fetch failed for (%.3f, %.3f): %s", lon, lat, exc)
        return None


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    parser = argparse.ArgumentParser(description="Fetch weather and show fertilizing risk.")
    parser.add_argument("--lon", type=float, default=None, help="Longitude (degrees E)")
    parser.add_argument("--lat", type=float, default=None, help="Latitude (degrees N)")
    parser.add_argument("--city", default=None, choices=sorted(CITY_COORDS), help="Use a known city instead of lon/lat")
    args = parser.parse_args()

    if args.city:
        lon, lat = CITY_COORDS[args.city]
    elif args.lon is not None and args.lat is not None:
        lon, lat = args.lon, args.lat
    else:
        parser.error("give --city or both --lon and --lat")

    snapshot = fetch_weather_snapshot(lon, lat)
    assessment = analyze_weather(snapshot.current, snapshot.daily)
    print(json.dumps({"snapshot": snapshot.as_dict(), "assessment": assessment.as_dict()},
                     ensure_ascii=False, indent=2))
