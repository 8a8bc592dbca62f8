"""
Agronomic parameter tables for the rice-wheat rotation fertilizer model.

Each crop carries:
  - nutrient uptake per 100 kg grain (kg N / P / K)
  - default fertilizer-use efficiency (fraction)
  - straw composition and decomposition release rates (used when that crop's
    straw is returned to the field ahead of the *other* crop)
  - normal sowing date and the split-application regimes around it
  - wheat only: yield-tier reference doses for compound fertilizer

Soil-supply correction curves are fitted per crop from field trials in the
middle/lower Yangtze rice-wheat belt:
  rice  : corr = (a + b / soil) / 100         (hyperbolic)
  wheat : corr = a * exp(-b * soil)           (exponential decay)

All tables are immutable and shared read-only across calculations.
"""

import math
from dataclasses import dataclass
from enum import Enum

NUTRIENTS = ("N", "P", "K")


class Crop(str, Enum):
    RICE = "rice"
    WHEAT = "wheat"

    @property
    def label_zh(self) -> str:
        return _CROP_LABELS_ZH[self]

    @classmethod
    def parse(cls, value) -> "Crop":
        """Accept a Crop, an English name or a Chinese label (水稻 / 小麦 / 冬小麦)."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        if key in _CROP_ALIASES:
            return _CROP_ALIASES[key]
        raise ValueError(f"Unknown crop type: {value!r}. Expected 'rice' or 'wheat'.")


_CROP_LABELS_ZH = {Crop.RICE: "水稻", Crop.WHEAT: "冬小麦"}
_CROP_ALIASES = {
    "rice": Crop.RICE, "paddy": Crop.RICE, "水稻": Crop.RICE,
    "wheat": Crop.WHEAT, "winter wheat": Crop.WHEAT, "小麦": Crop.WHEAT, "冬小麦": Crop.WHEAT,
}

# ---------------------------------------------------------------------------
# Commodity products: nutrient content as a mass fraction
# ---------------------------------------------------------------------------
PRODUCT_FOR_NUTRIENT: dict[str, str] = {
    "N": "urea",
    "P": "superphosphate",
    "K": "potassium_chloride",
}
PRODUCT_CONTENT: dict[str, float] = {
    "urea":               0.46,
    "superphosphate":     0.12,
    "potassium_chloride": 0.60,
}


# ---------------------------------------------------------------------------
# Parameter records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrawParameters:
    nutrient_pct: dict[str, float]     # % of dry mass
    moisture_pct: float
    cn_ratio: float
    release_rate: dict[str, float]     # negative N rate = net immobilisation


@dataclass(frozen=True)
class SplitRegimes:
    """Base / mid / late nitrogen fractions by sowing regime."""
    stages: tuple[str, str, str]
    early: tuple[float, float, float]
    normal: tuple[float, float, float]
    late: tuple[float, float, float]
    cold_threshold: float              # °C; below this shift fraction late -> base
    cold_shift: float = 0.05
    window_days: int = 7


@dataclass(frozen=True)
class YieldTier:
    min_yield: float
    max_yield: float
    formula_kg: tuple[float, float]    # compound fertilizer at base dressing
    urea_kg: tuple[float, float]       # urea top-dressing at jointing

    def contains(self, target_yield: float) -> bool:
        return self.min_yield <= target_yield <= self.max_yield

    @property
    def formula_mid(self) -> float:
        return (self.formula_kg[0] + self.formula_kg[1]) / 2

    @property
    def urea_mid(self) -> float:
        return (self.urea_kg[0] + self.urea_kg[1]) / 2


@dataclass(frozen=True)
class CropParameters:
    crop: Crop
    per_100kg: dict[str, float]
    efficiency: dict[str, float]
    normal_sowing: str                 # "MM-DD"
    straw: StrawParameters
    split: SplitRegimes
    potassium_base_share: float        # remainder goes to the late stage
    default_soil: dict[str, float]     # used when no coordinates are given
    default_straw_return: float        # kg/mu
    default_temperature: float         # °C
    yield_tiers: tuple[YieldTier, ...] = ()
    formula_ratio: tuple[float, float, float] | None = None   # N-P-K %

    @property
    def normal_sowing_month_day(self) -> tuple[int, int]:
        month, day = self.normal_sowing.split("-")
        return int(month), int(day)


CROP_PARAMS: dict[Crop, CropParameters] = {
    Crop.RICE: CropParameters(
        crop=Crop.RICE,
        per_100kg={"N": 2.2, "P": 1.2, "K": 2.5},
        efficiency={"N": 0.30, "P": 0.25, "K": 0.45},
        normal_sowing="06-17",
        straw=StrawParameters(
            nutrient_pct={"N": 0.6, "P": 0.1, "K": 1.8},
            moisture_pct=40.0,
            cn_ratio=80.0,
            release_rate={"N": -0.6, "P": 0.65, "K": 0.80},
        ),
        split=SplitRegimes(
            stages=("base", "tillering", "panicle"),
            early=(0.40, 0.25, 0.35),
            normal=(0.50, 0.25, 0.25),
            late=(0.55, 0.30, 0.15),
            cold_threshold=20.0,
        ),
        potassium_base_share=0.6,
        default_soil={"N": 89.2, "P": 23.83, "K": 105.0},
        default_straw_return=600.0,
        default_temperature=22.5,
    ),
    Crop.WHEAT: CropParameters(
        crop=Crop.WHEAT,
        per_100kg={"N": 3.0, "P": 1.5, "K": 2.8},
        efficiency={"N": 0.40, "P": 0.18, "K": 0.50},
        normal_sowing="11-01",
        straw=StrawParameters(
            nutrient_pct={"N": 0.5, "P": 0.1, "K": 1.2},
            moisture_pct=15.0,
            cn_ratio=70.0,
            release_rate={"N": 0.35, "P": 0.75, "K": 0.90},
        ),
        split=SplitRegimes(
            stages=("base", "jointing", "booting"),
            early=(0.60, 0.25, 0.15),
            normal=(0.65, 0.25, 0.10),
            late=(0.70, 0.20, 0.10),
            cold_threshold=10.0,
        ),
        potassium_base_share=1.0,
        default_soil={"N": 89.0, "P": 23.0, "K": 90.0},
        default_straw_return=700.0,
        default_temperature=12.0,
        yield_tiers=(
            YieldTier(0,   300,      (25, 30), (6, 8)),
            YieldTier(300, 400,      (30, 40), (8, 10)),
            YieldTier(400, 500,      (40, 50), (10, 12)),
            YieldTier(500, math.inf, (50, 55), (12, 14)),
        ),
        formula_ratio=(20, 15, 10),
    ),
}


def get_crop_params(crop) -> CropParameters:
    """Return the parameter record for a crop (Crop or any alias accepted by Crop.parse)."""
    return CROP_PARAMS[Crop.parse(crop)]


def straw_donor(crop) -> Crop:
    """Crop whose straw is returned ahead of `crop` in the rice-wheat rotation."""
    return Crop.WHEAT if Crop.parse(crop) is Crop.RICE else Crop.RICE


# ---------------------------------------------------------------------------
# Soil supply correction curves (plain functions keyed by crop)
# ---------------------------------------------------------------------------
_RICE_CORRECTION: dict[str, tuple[float, float]] = {
    "N": (3.2164, 4799.9239),
    "P": (17.4898, 2235.9674),
    "K": (10.7412, 6147.1032),
}
_WHEAT_CORRECTION: dict[str, tuple[float, float]] = {
    "N": (0.821222, 0.005429),
    "P": (1.976,    0.041744),
    "K": (1.1038,   0.006362),
}


def _rice_correction(nutrient: str, soil_value: float) -> float:
    a, b = _RICE_CORRECTION[nutrient]
    return (a + b / soil_value) / 100


def _wheat_correction(nutrient: str, soil_value: float) -> float:
    a, b = _WHEAT_CORRECTION[nutrient]
    return a * math.exp(-b * soil_value)


_CORRECTIONS = {Crop.RICE: _rice_correction, Crop.WHEAT: _wheat_correction}


def soil_correction(crop, nutrient: str, soil_value: float) -> float:
    """
    Crop-specific correction coefficient for soil nutrient availability.
    soil_value must be positive; the soil resolver floors it upstream.
    """
    return _CORRECTIONS[Crop.parse(crop)](nutrient, soil_value)


# ---------------------------------------------------------------------------
# Soil property factors
# ---------------------------------------------------------------------------
ORGANIC_MATTER_REFERENCE = 20.0      # g/kg
ORGANIC_MATTER_SLOPES: dict[str, float] = {"N": 0.015, "P": 0.01, "K": 0.008}
PH_OPTIMAL_RANGE_P = (6.0, 7.0)
PH_PENALTY_P = 0.7


def organic_matter_factor(nutrient: str, organic_matter: float) -> float:
    return 1 + ORGANIC_MATTER_SLOPES[nutrient] * (organic_matter - ORGANIC_MATTER_REFERENCE)


def ph_factor_p(soil_ph: float) -> float:
    """Phosphorus availability factor: 1.0 inside the optimal pH band, else 0.7."""
    low, high = PH_OPTIMAL_RANGE_P
    return 1.0 if low <= soil_ph <= high else PH_PENALTY_P


def wheat_yield_tier(target_yield: float) -> YieldTier:
    """First tier whose [min, max] contains the target yield (boundaries go to the lower tier)."""
    tiers = CROP_PARAMS[Crop.WHEAT].yield_tiers
    for tier in tiers:
        if tier.contains(target_yield):
            return tier
    return tiers[-1]
