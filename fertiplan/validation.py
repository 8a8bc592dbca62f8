"""
Calculation request validation.

A request is checked completely before any computation starts; the first
problem found is raised as ValidationError(field, reason). Accepted requests
become a CalculationInput with crop defaults filled in.
"""

from dataclasses import dataclass, field
from datetime import date

from fertiplan.config import (
    LON_RANGE,
    LAT_RANGE,
    TARGET_YIELD_RANGE,
    CUSTOM_SOIL_RANGES,
    ORGANIC_MATTER_RANGE,
    SOIL_PH_RANGE,
    STRAW_RETURN_RANGE,
    TEMPERATURE_RANGE,
    DEFAULT_ORGANIC_MATTER,
    DEFAULT_SOIL_PH,
)
from fertiplan.crop_params import Crop, NUTRIENTS, get_crop_params
from fertiplan.split_ratio import parse_date


class ValidationError(ValueError):
    """Rejected calculation request. `field` names the offending input."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason

    def as_dict(self) -> dict:
        return {"error": "validation", "field": self.field, "reason": self.reason}


@dataclass(frozen=True)
class CalculationInput:
    crop: Crop
    target_yield: float                          # kg/mu
    lon: float | None = None
    lat: float | None = None
    sowing_date: date | str | None = None        # unparseable input kept as given
    custom_soil: dict[str, float] = field(default_factory=dict)
    organic_matter: float = DEFAULT_ORGANIC_MATTER
    soil_ph: float = DEFAULT_SOIL_PH
    straw_return_amount: float | None = None     # None = crop default
    temperature_forecast: float | None = None    # None = crop default

    @property
    def has_coords(self) -> bool:
        return self.lon is not None and self.lat is not None


def _number(payload: dict, key: str, required: bool = False, label: str | None = None) -> float | None:
    value = payload.get(key)
    key = label or key
    if value is None or value == "":
        if required:
            raise ValidationError(key, "is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(key, f"must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(key, f"must be a number, got {value!r}") from None
    if number != number:   # NaN
        raise ValidationError(key, "must be a number, got NaN")
    return number


def _check_range(key: str, value: float | None, bounds: tuple[float, float]):
    if value is None:
        return
    low, high = bounds
    if value < low or value > high:
        raise ValidationError(key, f"{value:g} outside [{low:g}, {high:g}]")


def validate_calculation_request(payload: dict) -> CalculationInput:
    """
    Validate a raw request dict and return a CalculationInput.

    Accepted keys: crop_type (rice / wheat / 水稻 / 小麦), target_yield,
    lon, lat, sowing_date (ISO), custom_soil {N, P, K}, organic_matter,
    soil_ph, straw_return_amount, temperature_forecast.

    Raises
    ------
    ValidationError
        Unknown crop, yield outside [1, 1000], coordinates outside the
        deployment window or given singly, custom soil out of range, or a
        malformed optional numeric field. An unparseable sowing date is not
        rejected; it is kept as given and the plan uses the normal split.
    """
    if not isinstance(payload, dict):
        raise ValidationError("request", "must be a mapping of field names to values")

    try:
        crop = Crop.parse(payload.get("crop_type", payload.get("crop")))
    except ValueError:
        raise ValidationError("crop_type", "must be 'rice' or 'wheat' (水稻 / 小麦)") from None
    params = get_crop_params(crop)

    target_yield = _number(payload, "target_yield", required=True)
    _check_range("target_yield", target_yield, TARGET_YIELD_RANGE)

    lon = _number(payload, "lon")
    lat = _number(payload, "lat")
    if (lon is None) != (lat is None):
        raise ValidationError("lon" if lon is None else "lat", "lon and lat must be given together")
    _check_range("lon", lon, LON_RANGE)
    _check_range("lat", lat, LAT_RANGE)

    sowing_date = None
    raw_sowing = payload.get("sowing_date")
    if raw_sowing not in (None, ""):
        try:
            sowing_date = parse_date(raw_sowing)
        except (ValueError, TypeError):
            # split_ratios falls back to the normal regime for this value
            sowing_date = raw_sowing

    custom_raw = payload.get("custom_soil") or {}
    if not isinstance(custom_raw, dict):
        raise ValidationError("custom_soil", "must be a mapping of N / P / K values")
    custom_soil: dict[str, float] = {}
    for nutrient in NUTRIENTS:
        value = _number(custom_raw, nutrient, label=f"custom_soil.{nutrient}")
        if value is None:
            continue
        _check_range(f"custom_soil.{nutrient}", value, CUSTOM_SOIL_RANGES[nutrient])
        custom_soil[nutrient] = value

    organic_matter = _number(payload, "organic_matter")
    soil_ph = _number(payload, "soil_ph")
    straw = _number(payload, "straw_return_amount")
    temperature = _number(payload, "temperature_forecast")
    _check_range("organic_matter", organic_matter, ORGANIC_MATTER_RANGE)
    _check_range("soil_ph", soil_ph, SOIL_PH_RANGE)
    _check_range("straw_return_amount", straw, STRAW_RETURN_RANGE)
    _check_range("temperature_forecast", temperature, TEMPERATURE_RANGE)

    return CalculationInput(
        crop=crop,
        target_yield=target_yield,
        lon=lon,
        lat=lat,
        sowing_date=sowing_date,
        custom_soil=custom_soil,
        organic_matter=DEFAULT_ORGANIC_MATTER if organic_matter is None else organic_matter,
        soil_ph=DEFAULT_SOIL_PH if soil_ph is None else soil_ph,
        straw_return_amount=params.default_straw_return if straw is None else straw,
        temperature_forecast=params.default_temperature if temperature is None else temperature,
    )
