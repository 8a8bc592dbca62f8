"""
Soil nutrient resolution with provenance.

Each nutrient (N, P, K) is resolved independently by walking an ordered list
of attempts and taking the first one that yields a value:

  with coordinates    : MANUAL → RASTER → SIMULATED
  without coordinates : MANUAL → DEFAULT (crop default soil)

  MANUAL    : value supplied by the caller
  RASTER    : decoded sample from the nutrient GeoTIFF
  SIMULATED : regional linear trend around (114E, 30N) + bounded jitter,
              clamped to a realistic range and rounded to 0.1 mg/kg
  DEFAULT   : fixed crop default soil

The jitter comes from an injectable random source (anything with a
``uniform(low, high)`` method, e.g. numpy.random.Generator) so a fixed seed
reproduces the same record.

Resolved values are floored at SOIL_VALUE_FLOOR so the balance calculator's
hyperbolic corrections never divide by zero.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from fertiplan.config import RASTER_SCALE_FACTORS, SOIL_VALUE_FLOOR
from fertiplan.crop_params import NUTRIENTS, get_crop_params
from fertiplan.numeric import clamp, round_half_up
from fertiplan.raster_sampler import sample_decoded

log = logging.getLogger(__name__)


class NutrientLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class NutrientSource(str, Enum):
    RASTER = "raster"
    GEOFEATURE = "geofeature"
    SIMULATED = "simulated"
    MANUAL = "manual"
    DEFAULT = "default"


# ---------------------------------------------------------------------------
# Level thresholds (mg/kg), nutrient-specific, shared by both crops.
# value < LOW bound → LOW, < MEDIUM bound → MEDIUM, < HIGH bound → HIGH,
# otherwise VERY_HIGH.
# ---------------------------------------------------------------------------
LEVEL_THRESHOLDS: dict[str, tuple[tuple[NutrientLevel, float], ...]] = {
    "N": ((NutrientLevel.LOW, 50.0), (NutrientLevel.MEDIUM, 90.0),  (NutrientLevel.HIGH, 120.0)),
    "P": ((NutrientLevel.LOW, 5.0),  (NutrientLevel.MEDIUM, 10.0),  (NutrientLevel.HIGH, 20.0)),
    "K": ((NutrientLevel.LOW, 50.0), (NutrientLevel.MEDIUM, 100.0), (NutrientLevel.HIGH, 150.0)),
}


def classify_nutrient_level(nutrient: str, value: float) -> NutrientLevel:
    for level, bound in LEVEL_THRESHOLDS[nutrient]:
        if value < bound:
            return level
    return NutrientLevel.VERY_HIGH


# ---------------------------------------------------------------------------
# Simulated fallback model
# (base, lon slope, lat slope, jitter half-width, clamp min, clamp max)
# ---------------------------------------------------------------------------
SIMULATION_ORIGIN = (114.0, 30.0)
SIMULATION_MODEL: dict[str, tuple[float, float, float, float, float, float]] = {
    "N": (89.2,  2.0, 3.0, 10.0, 50.0, 150.0),
    "P": (23.8,  0.5, 0.8,  5.0,  5.0,  40.0),
    "K": (105.0, 1.5, 2.0, 20.0, 60.0, 200.0),
}


def simulated_nutrient(nutrient: str, lon: float, lat: float, rng) -> float:
    base, lon_slope, lat_slope, jitter, low, high = SIMULATION_MODEL[nutrient]
    lon0, lat0 = SIMULATION_ORIGIN
    trend = base + (lon - lon0) * lon_slope + (lat - lat0) * lat_slope
    value = clamp(trend + float(rng.uniform(-jitter, jitter)), low, high)
    return round_half_up(value, 1)


# ---------------------------------------------------------------------------
# Resolver attempts: each returns (value, source) or None
# ---------------------------------------------------------------------------

def _manual_attempt(custom_soil: dict | None):
    def attempt(nutrient: str):
        if custom_soil and custom_soil.get(nutrient) is not None:
            return float(custom_soil[nutrient]), NutrientSource.MANUAL
        return None
    return attempt


def _raster_attempt(context, lon: float, lat: float):
    def attempt(nutrient: str):
        layer = context.layer(nutrient) if context is not None else None
        if layer is None:
            return None
        value = sample_decoded(layer, lon, lat, RASTER_SCALE_FACTORS[nutrient])
        if value is None:
            return None
        return value, NutrientSource.RASTER
    return attempt


def _simulated_attempt(lon: float, lat: float, rng):
    def attempt(nutrient: str):
        return simulated_nutrient(nutrient, lon, lat, rng), NutrientSource.SIMULATED
    return attempt


def _default_attempt(crop):
    defaults = get_crop_params(crop).default_soil
    def attempt(nutrient: str):
        return float(defaults[nutrient]), NutrientSource.DEFAULT
    return attempt


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SoilNutrientRecord:
    values: dict[str, float]
    levels: dict[str, NutrientLevel]
    sources: dict[str, NutrientSource]
    is_default: bool

    @property
    def N(self) -> float:
        return self.values["N"]

    @property
    def P(self) -> float:
        return self.values["P"]

    @property
    def K(self) -> float:
        return self.values["K"]

    @property
    def uses_manual(self) -> bool:
        return any(s is NutrientSource.MANUAL for s in self.sources.values())

    def as_dict(self) -> dict:
        return {
            "values":     dict(self.values),
            "levels":     {n: lvl.value for n, lvl in self.levels.items()},
            "sources":    {n: src.value for n, src in self.sources.items()},
            "is_default": self.is_default,
        }


def build_record(readings: dict[str, tuple[float, NutrientSource]]) -> SoilNutrientRecord:
    """Assemble a record from per-nutrient (value, source) readings."""
    values = {n: max(float(readings[n][0]), SOIL_VALUE_FLOOR) for n in NUTRIENTS}
    sources = {n: readings[n][1] for n in NUTRIENTS}
    return SoilNutrientRecord(
        values=values,
        levels={n: classify_nutrient_level(n, values[n]) for n in NUTRIENTS},
        sources=sources,
        is_default=not any(
            s in (NutrientSource.MANUAL, NutrientSource.RASTER) for s in sources.values()
        ),
    )


def resolve_soil_nutrients(
    crop,
    lon: float | None = None,
    lat: float | None = None,
    custom_soil: dict | None = None,
    context=None,
    rng=None,
) -> SoilNutrientRecord:
    """
    Resolve N, P, K for a location.

    Parameters
    ----------
    crop : Crop or str
        Selects the default soil when no coordinates are given.
    lon, lat : float or None
        Both or neither; without them the chain is MANUAL → DEFAULT.
    custom_soil : dict or None
        Partial {"N": .., "P": .., "K": ..} override, values in mg/kg.
    context : GeospatialContext or None
        Raster layers; None skips the RASTER attempt.
    rng : random source or None
        Object with uniform(low, high); defaults to an unseeded numpy Generator.

    Returns
    -------
    SoilNutrientRecord (never raises for missing data)
    """
    has_coords = lon is not None and lat is not None
    if has_coords:
        attempts = [
            _manual_attempt(custom_soil),
            _raster_attempt(context, lon, lat),
            _simulated_attempt(lon, lat, rng if rng is not None else np.random.default_rng()),
        ]
    else:
        attempts = [_manual_attempt(custom_soil), _default_attempt(crop)]

    readings: dict[str, tuple[float, NutrientSource]] = {}
    for nutrient in NUTRIENTS:
        for attempt in attempts:
            reading = attempt(nutrient)
            if reading is not None:
                readings[nutrient] = reading
                break
        log.debug("Soil %s = %.2f (%s)", nutrient, readings[nutrient][0], readings[nutrient][1].value)
    return build_record(readings)
